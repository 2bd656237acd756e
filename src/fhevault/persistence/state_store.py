"""State store — JSON snapshot of the ledger and the local oracle.

The snapshot is rewritten in full after each successful mutation. Writes
go to a sibling temp file first and are moved into place with
Path.replace, so a crash mid-write never leaves a truncated snapshot.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from fhevault.capabilities.base import EncryptionCapability
from fhevault.ledger.state import LedgerState


class StateStore:
    """File-backed snapshot store.

    Usage:
        store = StateStore(Path("data/state.json"))
        store.save(state, encryption, oracle_state=oracle.to_dict())
        state, oracle_state = store.load(encryption)
    """

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path

    @property
    def exists(self) -> bool:
        return self._storage_path.exists()

    def save(
        self,
        state: LedgerState,
        encryption: EncryptionCapability,
        oracle_state: Optional[dict[str, Any]] = None,
    ) -> None:
        snapshot = {
            "ledger": state.to_dict(encryption),
            "oracle": oracle_state,
        }
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        tmp.write_text(
            json.dumps(snapshot, indent=2, sort_keys=True, ensure_ascii=False),
            encoding="utf-8",
        )
        tmp.replace(self._storage_path)

    def load(
        self,
        encryption: EncryptionCapability,
    ) -> tuple[LedgerState, Optional[dict[str, Any]]]:
        """Return the persisted ledger state and oracle state.

        Raises FileNotFoundError if nothing has been saved yet.
        """
        snapshot = json.loads(self._storage_path.read_text(encoding="utf-8"))
        return LedgerState.from_dict(snapshot["ledger"], encryption), snapshot.get("oracle")
