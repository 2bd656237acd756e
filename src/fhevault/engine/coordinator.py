"""Decryption coordinator — two-phase valuation protocol.

Phase 1, request (synchronous):
    1. Batch must be CLOSED and non-empty.
    2. Aggregate ciphertext is computed and serialized.
    3. state_hash = commit([serialized], ledger_identity).
    4. The decryption capability registers the request and returns an id.
    5. A PENDING DecryptionContext is stored under that id.

Phase 2, finalize (out of band, invoked through the oracle callback):
    1. Unknown id          → UnknownRequest
    2. Already PROCESSED   → ReplayAttempt
    3. Recomputed commitment differs from the stored one → StateMismatch
    4. Proof does not bind cleartext to the request      → InvalidProof
    5. Cleartext is not a 32-byte unsigned integer       → InvalidCleartext
    6. Context → PROCESSED, total_value recorded.

Every check runs before the context is touched, so a rejected fulfilment
leaves it exactly as it was. Nothing here retries or expires a request.
"""

from __future__ import annotations

from datetime import datetime

from fhevault.capabilities.base import (
    DecryptionCallback,
    DecryptionCapability,
    decode_cleartext,
)
from fhevault.crypto.commitment import commit
from fhevault.engine.aggregation import AggregationEngine
from fhevault.errors import (
    InvalidBatch,
    InvalidCleartext,
    InvalidProof,
    ReplayAttempt,
    StateMismatch,
    UnknownRequest,
)
from fhevault.ledger.batches import BatchLedger
from fhevault.ledger.state import LedgerState
from fhevault.models.decryption import DecryptionContext, DecryptionState


class DecryptionCoordinator:
    """Request/fulfil state machine keyed by oracle request id.

    Usage:
        coordinator = DecryptionCoordinator(state, batches, engine, oracle, "ledger:1")
        context = coordinator.request("alice", batch_id=1, callback=cb, now=now)
        # ... oracle calls back later:
        context = coordinator.finalize(context.request_id, cleartext, proof, now)
    """

    def __init__(
        self,
        state: LedgerState,
        batches: BatchLedger,
        engine: AggregationEngine,
        oracle: DecryptionCapability,
        ledger_identity: str,
    ) -> None:
        self._state = state
        self._batches = batches
        self._engine = engine
        self._oracle = oracle
        self._ledger_identity = ledger_identity

    def commitment_for(self, batch_id: int) -> tuple[bytes, str]:
        """Serialized aggregate of a batch and its state hash."""
        serialized = self._engine.aggregate_serialized(self._batches.entries(batch_id))
        return serialized, commit([serialized], self._ledger_identity)

    def require_valuable(self, batch_id: int) -> None:
        batch = self._batches.get(batch_id)
        if not batch.closed:
            raise InvalidBatch(f"Batch {batch_id} is still open")
        if not self._state.entries_for(batch_id):
            raise InvalidBatch(f"Batch {batch_id} has no entries")

    def request(
        self,
        requester: str,
        batch_id: int,
        callback: DecryptionCallback,
        now: datetime,
    ) -> DecryptionContext:
        self.require_valuable(batch_id)
        serialized, state_hash = self.commitment_for(batch_id)
        request_id = self._oracle.request_decryption([serialized], callback)
        if self._state.get_context(request_id) is not None:
            raise ReplayAttempt(f"Oracle reissued request id {request_id}")
        context = DecryptionContext(
            request_id=request_id,
            batch_id=batch_id,
            state_hash=state_hash,
            requester=requester,
            requested_utc=now,
        )
        self._state.add_context(context)
        return context

    def finalize(
        self,
        request_id: int,
        cleartext: bytes,
        proof: bytes,
        now: datetime,
    ) -> DecryptionContext:
        context = self._state.get_context(request_id)
        if context is None:
            raise UnknownRequest(f"No decryption context for request {request_id}")
        if context.processed:
            raise ReplayAttempt(f"Decryption request {request_id} already processed")

        _, current_hash = self.commitment_for(context.batch_id)
        if current_hash != context.state_hash:
            raise StateMismatch(
                f"Batch {context.batch_id} changed since request {request_id}: "
                f"{context.state_hash} != {current_hash}"
            )

        if not self._oracle.verify_proof(request_id, cleartext, proof):
            raise InvalidProof(f"Proof rejected for request {request_id}")

        try:
            total = decode_cleartext(cleartext)
        except ValueError as e:
            raise InvalidCleartext(str(e)) from e

        context.transition_to(DecryptionState.PROCESSED)
        context.total_value = total
        context.finalized_utc = now
        return context
