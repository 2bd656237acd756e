"""Decryption context model — one record per valuation request.

A context is created when a valuation is requested and is keyed by the
request id the decryption capability hands back. It records the
commitment over the aggregate ciphertext at request time so the
fulfilment can prove nothing changed in between.

State machine:
    PENDING → PROCESSED     (terminal)

There is no cancellation or expiry. A context whose fulfilment never
arrives stays PENDING.

A PROCESSED context may later be anchored on chain; anchor_tx records
the transaction that carries its commitment.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from fhevault.errors import ReplayAttempt


class DecryptionState(str, enum.Enum):
    PENDING = "pending"
    PROCESSED = "processed"


DECRYPTION_TRANSITIONS: Dict[DecryptionState, frozenset] = {
    DecryptionState.PENDING: frozenset({DecryptionState.PROCESSED}),
    DecryptionState.PROCESSED: frozenset(),
}


@dataclass
class DecryptionContext:
    """Pending or fulfilled valuation request."""
    request_id: int
    batch_id: int
    state_hash: str
    requester: str
    state: DecryptionState = DecryptionState.PENDING
    requested_utc: Optional[datetime] = None
    finalized_utc: Optional[datetime] = None
    total_value: Optional[int] = None
    anchor_tx: Optional[str] = None

    @property
    def processed(self) -> bool:
        return self.state == DecryptionState.PROCESSED

    def transition_to(self, new_state: DecryptionState) -> None:
        allowed = DECRYPTION_TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise ReplayAttempt(
                f"Decryption request {self.request_id} already {self.state.value}"
            )
        self.state = new_state

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "batch_id": self.batch_id,
            "state_hash": self.state_hash,
            "requester": self.requester,
            "state": self.state.value,
            "requested_utc": _fmt(self.requested_utc),
            "finalized_utc": _fmt(self.finalized_utc),
            "total_value": self.total_value,
            "anchor_tx": self.anchor_tx,
        }


def _fmt(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None
