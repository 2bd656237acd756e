"""Batch ledger — monotonic batch ids, open/closed lifecycle, entry lists.

Lifecycle:
    open_batch:  current batch must be CLOSED; id increments, new batch OPEN
    close_batch: current batch OPEN → CLOSED (irreversible)
    append:      only the current batch, only while OPEN

Entries are append-only. An entry's index is the length of the batch's
list at the moment it was appended, so indices run 0, 1, 2, ... in
submission order.

Role and pause checks are the caller's responsibility.
"""

from __future__ import annotations

from datetime import datetime

from fhevault.errors import BatchClosed, InvalidBatch
from fhevault.ledger.state import LedgerState
from fhevault.models.ledger import Batch, BatchState, Ciphertext, Entry


class BatchLedger:
    def __init__(self, state: LedgerState) -> None:
        self._state = state

    @property
    def current_batch_id(self) -> int:
        return self._state.config.current_batch_id

    def get(self, batch_id: int) -> Batch:
        batch = self._state.get_batch(batch_id)
        if batch is None:
            raise InvalidBatch(f"Unknown batch: {batch_id}")
        return batch

    def current(self) -> Batch:
        return self.get(self.current_batch_id)

    def entries(self, batch_id: int) -> tuple[Entry, ...]:
        self.get(batch_id)
        return self._state.entries_for(batch_id)

    def open_batch(self, now: datetime) -> Batch:
        """Start the next batch. Ids are never reused."""
        current = self.current()
        if not current.closed:
            raise InvalidBatch(
                f"Batch {current.batch_id} is still open; close it before opening another"
            )
        batch = Batch(batch_id=current.batch_id + 1, opened_utc=now)
        self._state.add_batch(batch)
        self._state.config.current_batch_id = batch.batch_id
        return batch

    def close_batch(self, now: datetime) -> Batch:
        batch = self.current()
        if batch.closed:
            raise InvalidBatch(f"Batch {batch.batch_id} is already closed")
        batch.transition_to(BatchState.CLOSED)
        batch.closed_utc = now
        return batch

    def require_open(self) -> Batch:
        batch = self.current()
        if batch.closed:
            raise BatchClosed(f"Batch {batch.batch_id} is closed to new entries")
        return batch

    def append(
        self,
        provider: str,
        encrypted_value: Ciphertext,
        encrypted_weight: Ciphertext,
        now: datetime,
    ) -> Entry:
        batch = self.require_open()
        entry = Entry(
            batch_id=batch.batch_id,
            index=len(self._state.entries_for(batch.batch_id)),
            provider=provider,
            encrypted_value=encrypted_value,
            encrypted_weight=encrypted_weight,
            submitted_utc=now,
        )
        self._state.append_entry(entry)
        return entry
