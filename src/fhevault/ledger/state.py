"""Ledger state store — the single mutable store behind the vault.

All ledger state lives here: global configuration, provider set, batches,
per-batch entry lists, per-address cooldowns and decryption contexts.
The store applies mutations without checking authorization or lifecycle
rules; those guards live in the components that call it. Tests inject
their own instance to run against isolated state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Optional

from fhevault.capabilities.base import EncryptionCapability
from fhevault.models.decryption import DecryptionContext, DecryptionState
from fhevault.models.ledger import (
    Batch,
    BatchState,
    Entry,
    GlobalConfig,
    RateLimitState,
)

GENESIS_BATCH_ID = 1


@dataclass
class LedgerState:
    """In-memory ledger state.

    Usage:
        state = LedgerState.genesis(owner="alice", cooldown_seconds=60)
        state.append_entry(entry)
        state.set_last_submission("bob", now)
    """
    config: GlobalConfig
    providers: set[str] = field(default_factory=set)
    batches: dict[int, Batch] = field(default_factory=dict)
    entries: dict[int, list[Entry]] = field(default_factory=dict)
    rate_limits: dict[str, RateLimitState] = field(default_factory=dict)
    contexts: dict[int, DecryptionContext] = field(default_factory=dict)

    @classmethod
    def genesis(
        cls,
        owner: str,
        cooldown_seconds: int = 60,
        now: Optional[datetime] = None,
    ) -> LedgerState:
        """Fresh ledger with batch 1 open."""
        state = cls(config=GlobalConfig(
            owner=owner,
            cooldown_seconds=cooldown_seconds,
            current_batch_id=GENESIS_BATCH_ID,
        ))
        state.add_batch(Batch(batch_id=GENESIS_BATCH_ID, opened_utc=now))
        return state

    # ------------------------------------------------------------------
    # Batches and entries
    # ------------------------------------------------------------------

    def add_batch(self, batch: Batch) -> None:
        if batch.batch_id in self.batches:
            raise ValueError(f"Batch ID already exists: {batch.batch_id}")
        self.batches[batch.batch_id] = batch
        self.entries[batch.batch_id] = []

    def get_batch(self, batch_id: int) -> Optional[Batch]:
        return self.batches.get(batch_id)

    def entries_for(self, batch_id: int) -> tuple[Entry, ...]:
        return tuple(self.entries.get(batch_id, ()))

    def append_entry(self, entry: Entry) -> None:
        self.entries.setdefault(entry.batch_id, []).append(entry)

    def remove_batch(self, batch_id: int) -> None:
        self.batches.pop(batch_id, None)
        self.entries.pop(batch_id, None)

    def pop_entry(self, batch_id: int) -> Entry:
        """Drop the most recent entry of a batch (undo of append_entry)."""
        return self.entries[batch_id].pop()

    # ------------------------------------------------------------------
    # Cooldowns
    # ------------------------------------------------------------------

    def rate_limit(self, address: str) -> RateLimitState:
        """Cooldown timestamps for an address (a blank record if never seen)."""
        return self.rate_limits.get(address, RateLimitState())

    def set_last_submission(self, address: str, when: datetime) -> None:
        self.rate_limits.setdefault(address, RateLimitState()).last_submission_utc = when

    def set_last_request(self, address: str, when: datetime) -> None:
        self.rate_limits.setdefault(address, RateLimitState()).last_request_utc = when

    def snapshot_rate_limit(self, address: str) -> Optional[RateLimitState]:
        record = self.rate_limits.get(address)
        return replace(record) if record is not None else None

    def restore_rate_limit(self, address: str, snapshot: Optional[RateLimitState]) -> None:
        if snapshot is None:
            self.rate_limits.pop(address, None)
        else:
            self.rate_limits[address] = snapshot

    # ------------------------------------------------------------------
    # Decryption contexts
    # ------------------------------------------------------------------

    def add_context(self, context: DecryptionContext) -> None:
        if context.request_id in self.contexts:
            raise ValueError(f"Request ID already registered: {context.request_id}")
        self.contexts[context.request_id] = context

    def get_context(self, request_id: int) -> Optional[DecryptionContext]:
        return self.contexts.get(request_id)

    def remove_context(self, request_id: int) -> None:
        self.contexts.pop(request_id, None)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self, encryption: EncryptionCapability) -> dict[str, Any]:
        return {
            "config": {
                "owner": self.config.owner,
                "paused": self.config.paused,
                "cooldown_seconds": self.config.cooldown_seconds,
                "current_batch_id": self.config.current_batch_id,
            },
            "providers": sorted(self.providers),
            "batches": [
                {
                    "batch_id": b.batch_id,
                    "state": b.state.value,
                    "opened_utc": _fmt(b.opened_utc),
                    "closed_utc": _fmt(b.closed_utc),
                    "entries": [
                        {
                            "index": e.index,
                            "provider": e.provider,
                            "value": encryption.serialize(e.encrypted_value).hex(),
                            "weight": encryption.serialize(e.encrypted_weight).hex(),
                            "submitted_utc": _fmt(e.submitted_utc),
                        }
                        for e in self.entries_for(b.batch_id)
                    ],
                }
                for b in sorted(self.batches.values(), key=lambda b: b.batch_id)
            ],
            "rate_limits": {
                addr: {
                    "last_submission_utc": _fmt(rl.last_submission_utc),
                    "last_request_utc": _fmt(rl.last_request_utc),
                }
                for addr, rl in sorted(self.rate_limits.items())
            },
            "contexts": [
                c.to_dict()
                for c in sorted(self.contexts.values(), key=lambda c: c.request_id)
            ],
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        encryption: EncryptionCapability,
    ) -> LedgerState:
        cfg = data["config"]
        state = cls(
            config=GlobalConfig(
                owner=cfg["owner"],
                paused=bool(cfg["paused"]),
                cooldown_seconds=int(cfg["cooldown_seconds"]),
                current_batch_id=int(cfg["current_batch_id"]),
            ),
            providers=set(data.get("providers", [])),
        )
        for raw in data.get("batches", []):
            batch_id = int(raw["batch_id"])
            state.add_batch(Batch(
                batch_id=batch_id,
                state=BatchState(raw["state"]),
                opened_utc=_parse(raw.get("opened_utc")),
                closed_utc=_parse(raw.get("closed_utc")),
            ))
            for e in raw.get("entries", []):
                state.append_entry(Entry(
                    batch_id=batch_id,
                    index=int(e["index"]),
                    provider=e["provider"],
                    encrypted_value=encryption.deserialize(bytes.fromhex(e["value"])),
                    encrypted_weight=encryption.deserialize(bytes.fromhex(e["weight"])),
                    submitted_utc=_parse(e.get("submitted_utc")),
                ))
        for addr, rl in data.get("rate_limits", {}).items():
            state.rate_limits[addr] = RateLimitState(
                last_submission_utc=_parse(rl.get("last_submission_utc")),
                last_request_utc=_parse(rl.get("last_request_utc")),
            )
        for c in data.get("contexts", []):
            state.add_context(DecryptionContext(
                request_id=int(c["request_id"]),
                batch_id=int(c["batch_id"]),
                state_hash=c["state_hash"],
                requester=c["requester"],
                state=DecryptionState(c["state"]),
                requested_utc=_parse(c.get("requested_utc")),
                finalized_utc=_parse(c.get("finalized_utc")),
                total_value=c.get("total_value"),
                anchor_tx=c.get("anchor_tx"),
            ))
        return state


def _fmt(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def _parse(raw: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(raw) if raw else None
