"""Confidential vault — the shared ledger facade.

Providers contribute encrypted (value, weight) pairs to the current batch.
Once the owner closes a batch, anyone may request its valuation: the
weighted sum is computed homomorphically, committed to by hash, and sent
to the decryption capability. The plaintext total only appears when the
capability calls back with a proof and the batch still hashes to the same
commitment.

Every operation takes the caller identity first and an optional `now`.
Operations run their checks before mutating anything and raise a
VaultError subclass on rejection. Each successful mutation is recorded
by exactly one event; if that event cannot be appended the mutation is
undone and EventLogFailure is raised, so a failed call changes nothing
and emits nothing.

Trust assumption made explicit: finalize is accepted only from the
decryption capability's own identity (NotOracle otherwise).
"""

from __future__ import annotations

import functools
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar

from fhevault.capabilities.base import DecryptionCapability, EncryptionCapability
from fhevault.crypto.commitment import receipt_digest
from fhevault.engine.aggregation import AggregationEngine
from fhevault.engine.coordinator import DecryptionCoordinator
from fhevault.errors import (
    EventLogFailure,
    FHENotInitialized,
    InvalidParameter,
    NotOracle,
    UnknownRequest,
    VaultError,
)
from fhevault.ledger.access import AccessControl
from fhevault.ledger.batches import BatchLedger
from fhevault.ledger.rate_limit import RateLimiter
from fhevault.ledger.state import LedgerState
from fhevault.models.decryption import DecryptionContext, DecryptionState
from fhevault.models.ledger import Batch, BatchState, Ciphertext, Entry
from fhevault.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_ID = "fhevault:local"

F = TypeVar("F", bound=Callable[..., Any])


def _logged(op: F) -> F:
    """Log rejected operations at WARNING and re-raise."""
    @functools.wraps(op)
    def wrapper(self: "ConfidentialVault", caller: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return op(self, caller, *args, **kwargs)
        except VaultError as e:
            logger.warning("%s by %s rejected [%s]: %s", op.__name__, caller, e.code, e)
            raise
    return wrapper  # type: ignore[return-value]


class ConfidentialVault:
    """Batch lifecycle, encrypted submissions and proof-verified valuations.

    Usage:
        encryption = MockEncryption()
        oracle = LocalDecryptionOracle(encryption, private_key="0x...")
        vault = ConfidentialVault(LedgerState.genesis("owner"), encryption, oracle)

        vault.add_provider("owner", "alice")
        vault.submit("alice", encryption.encrypt(3), encryption.encrypt(2))
        vault.close_batch("owner")
        context = vault.request_valuation("bob", batch_id=1)
        oracle.fulfill(context.request_id)
        vault.context(context.request_id).total_value  # 6
    """

    def __init__(
        self,
        state: LedgerState,
        encryption: EncryptionCapability,
        oracle: DecryptionCapability,
        ledger_identity: str = DEFAULT_LEDGER_ID,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._state = state
        self._encryption = encryption
        self._oracle = oracle
        self._ledger_identity = ledger_identity
        self._access = AccessControl(state)
        self._batches = BatchLedger(state)
        self._rate_limiter = RateLimiter(state)
        self._engine = AggregationEngine(encryption)
        self._coordinator = DecryptionCoordinator(
            state, self._batches, self._engine, oracle, ledger_identity,
        )
        self._event_log = event_log if event_log is not None else EventLog()
        self._event_counter = self._event_log.count

    # ------------------------------------------------------------------
    # Access control
    # ------------------------------------------------------------------

    @_logged
    def transfer_owner(self, caller: str, new_owner: str, now: Optional[datetime] = None) -> None:
        previous = self._access.transfer_owner(caller, new_owner)

        def _rollback() -> None:
            self._state.config.owner = previous

        self._emit(EventKind.OWNERSHIP_TRANSFERRED, caller, {
            "previous_owner": previous,
            "new_owner": self._state.config.owner,
        }, now, on_rollback=_rollback)
        logger.info("ownership transferred %s -> %s", previous, self._state.config.owner)

    @_logged
    def add_provider(self, caller: str, provider: str, now: Optional[datetime] = None) -> None:
        already = self._access.is_provider(provider.strip())
        provider = self._access.add_provider(caller, provider)

        def _rollback() -> None:
            if not already:
                self._state.providers.discard(provider)

        self._emit(
            EventKind.PROVIDER_ADDED, caller, {"provider": provider}, now,
            on_rollback=_rollback,
        )
        logger.info("provider added: %s", provider)

    @_logged
    def remove_provider(self, caller: str, provider: str, now: Optional[datetime] = None) -> None:
        provider = self._access.remove_provider(caller, provider)

        def _rollback() -> None:
            self._state.providers.add(provider)

        self._emit(
            EventKind.PROVIDER_REMOVED, caller, {"provider": provider}, now,
            on_rollback=_rollback,
        )
        logger.info("provider removed: %s", provider)

    @_logged
    def set_paused(self, caller: str, paused: bool, now: Optional[datetime] = None) -> None:
        previous = self._access.paused
        self._access.set_paused(caller, paused)

        def _rollback() -> None:
            self._state.config.paused = previous

        self._emit(
            EventKind.PAUSED if paused else EventKind.UNPAUSED, caller, {}, now,
            on_rollback=_rollback,
        )
        logger.info("ledger %s", "paused" if paused else "unpaused")

    @_logged
    def set_cooldown(self, caller: str, seconds: int, now: Optional[datetime] = None) -> None:
        previous = self._access.cooldown_seconds
        self._access.set_cooldown(caller, seconds)

        def _rollback() -> None:
            self._state.config.cooldown_seconds = previous

        self._emit(
            EventKind.COOLDOWN_CHANGED, caller, {"cooldown_seconds": seconds}, now,
            on_rollback=_rollback,
        )
        logger.info("cooldown set to %ds", seconds)

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    @_logged
    def open_batch(self, caller: str, now: Optional[datetime] = None) -> Batch:
        self._access.require_owner(caller)
        self._access.require_not_paused()
        now = _utc(now)
        previous_id = self._batches.current_batch_id
        batch = self._batches.open_batch(now)

        def _rollback() -> None:
            self._state.remove_batch(batch.batch_id)
            self._state.config.current_batch_id = previous_id

        self._emit(
            EventKind.BATCH_OPENED, caller, {"batch_id": batch.batch_id}, now,
            on_rollback=_rollback,
        )
        logger.info("batch %d opened", batch.batch_id)
        return batch

    @_logged
    def close_batch(self, caller: str, now: Optional[datetime] = None) -> Batch:
        self._access.require_owner(caller)
        self._access.require_not_paused()
        now = _utc(now)
        batch = self._batches.close_batch(now)

        def _rollback() -> None:
            # bypasses transition_to: CLOSED -> OPEN is only legal as an undo
            batch.state = BatchState.OPEN
            batch.closed_utc = None

        self._emit(EventKind.BATCH_CLOSED, caller, {
            "batch_id": batch.batch_id,
            "entry_count": len(self._state.entries_for(batch.batch_id)),
        }, now, on_rollback=_rollback)
        logger.info("batch %d closed", batch.batch_id)
        return batch

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def require_submitter(self, caller: str, now: Optional[datetime] = None) -> None:
        """Role, pause and cooldown checks of submit, without submitting."""
        self._access.require_provider(caller)
        self._access.require_not_paused()
        self._rate_limiter.require_submission_allowed(caller, _utc(now))

    @_logged
    def submit(
        self,
        caller: str,
        encrypted_value: Ciphertext,
        encrypted_weight: Ciphertext,
        now: Optional[datetime] = None,
    ) -> Entry:
        """Append an encrypted (value, weight) pair to the current batch."""
        now = _utc(now)
        self.require_submitter(caller, now)
        if not (
            self._encryption.is_well_formed(encrypted_value)
            and self._encryption.is_well_formed(encrypted_weight)
        ):
            raise FHENotInitialized("Submitted ciphertext is not a well-formed handle")

        rate_limit = self._state.snapshot_rate_limit(caller)
        entry = self._batches.append(caller, encrypted_value, encrypted_weight, now)
        self._rate_limiter.record_submission(caller, now)

        def _rollback() -> None:
            self._state.pop_entry(entry.batch_id)
            self._state.restore_rate_limit(caller, rate_limit)

        self._emit(EventKind.ENTRY_SUBMITTED, caller, {
            "provider": caller,
            "batch_id": entry.batch_id,
            "index": entry.index,
        }, now, on_rollback=_rollback)
        logger.info("entry %d submitted to batch %d by %s", entry.index, entry.batch_id, caller)
        return entry

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    @_logged
    def request_valuation(
        self,
        caller: str,
        batch_id: int,
        now: Optional[datetime] = None,
    ) -> DecryptionContext:
        """Register a decryption request for a closed batch's aggregate.

        Returns immediately with the PENDING context; the total arrives
        later through finalize.
        """
        now = _utc(now)
        self._access.require_not_paused()
        self._coordinator.require_valuable(batch_id)
        self._rate_limiter.require_request_allowed(caller, now)

        rate_limit = self._state.snapshot_rate_limit(caller)
        context = self._coordinator.request(caller, batch_id, self.finalize, now)
        self._rate_limiter.record_request(caller, now)

        def _rollback() -> None:
            self._state.remove_context(context.request_id)
            self._state.restore_rate_limit(caller, rate_limit)
            self._oracle.cancel_request(context.request_id)

        self._emit(EventKind.VALUATION_REQUESTED, caller, {
            "request_id": context.request_id,
            "batch_id": batch_id,
            "state_hash": context.state_hash,
        }, now, on_rollback=_rollback)
        logger.info(
            "valuation of batch %d requested by %s (request %d)",
            batch_id, caller, context.request_id,
        )
        return context

    @_logged
    def finalize(
        self,
        caller: str,
        request_id: int,
        cleartext: bytes,
        proof: bytes,
        now: Optional[datetime] = None,
    ) -> DecryptionContext:
        """Decryption callback. Only the decryption capability may call it."""
        if caller != self._oracle.identity:
            raise NotOracle(f"Caller {caller!r} is not the decryption capability")
        context = self._coordinator.finalize(request_id, cleartext, proof, _utc(now))

        def _rollback() -> None:
            context.state = DecryptionState.PENDING
            context.total_value = None
            context.finalized_utc = None

        self._emit(EventKind.VALUATION_COMPLETED, caller, {
            "request_id": request_id,
            "batch_id": context.batch_id,
            "total_value": context.total_value,
        }, context.finalized_utc, on_rollback=_rollback)
        logger.info(
            "valuation %d of batch %d completed: %d",
            request_id, context.batch_id, context.total_value,
        )
        return context

    # ------------------------------------------------------------------
    # Anchoring
    # ------------------------------------------------------------------

    def require_anchorable(self, caller: str, request_id: int) -> DecryptionContext:
        """Owner-only; the valuation must be finalized and not yet anchored."""
        self._access.require_owner(caller)
        context = self._state.get_context(request_id)
        if context is None:
            raise UnknownRequest(f"No decryption context for request {request_id}")
        if not context.processed:
            raise InvalidParameter(f"Request {request_id} has not been finalized")
        if context.anchor_tx is not None:
            raise InvalidParameter(
                f"Request {request_id} is already anchored in {context.anchor_tx}"
            )
        return context

    @_logged
    def record_anchor(
        self,
        caller: str,
        request_id: int,
        tx_hash: str,
        block_number: int,
        chain_id: int,
        now: Optional[datetime] = None,
    ) -> DecryptionContext:
        """Attach the transaction carrying a valuation's anchor payload."""
        context = self.require_anchorable(caller, request_id)
        context.anchor_tx = tx_hash

        def _rollback() -> None:
            context.anchor_tx = None

        self._emit(EventKind.VALUATION_ANCHORED, caller, {
            "request_id": request_id,
            "batch_id": context.batch_id,
            "tx_hash": tx_hash,
            "block_number": block_number,
            "chain_id": chain_id,
        }, now, on_rollback=_rollback)
        logger.info("valuation %d anchored in %s", request_id, tx_hash)
        return context

    # ------------------------------------------------------------------
    # State reads
    # ------------------------------------------------------------------

    @property
    def state(self) -> LedgerState:
        return self._state

    @property
    def oracle(self) -> DecryptionCapability:
        return self._oracle

    @property
    def ledger_identity(self) -> str:
        return self._ledger_identity

    @property
    def owner(self) -> str:
        return self._access.owner

    @property
    def paused(self) -> bool:
        return self._access.paused

    @property
    def cooldown_seconds(self) -> int:
        return self._access.cooldown_seconds

    @property
    def current_batch_id(self) -> int:
        return self._batches.current_batch_id

    def is_available(self) -> bool:
        return not self._access.paused

    def is_provider(self, address: str) -> bool:
        return self._access.is_provider(address)

    def last_submission(self, address: str) -> Optional[datetime]:
        return self._state.rate_limit(address).last_submission_utc

    def last_request(self, address: str) -> Optional[datetime]:
        return self._state.rate_limit(address).last_request_utc

    def batch(self, batch_id: int) -> Batch:
        return self._batches.get(batch_id)

    def is_batch_closed(self, batch_id: int) -> bool:
        return self._batches.get(batch_id).closed

    def entries(self, batch_id: int) -> tuple[Entry, ...]:
        return self._batches.entries(batch_id)

    def context(self, request_id: int) -> Optional[DecryptionContext]:
        return self._state.get_context(request_id)

    def batch_summary(self, batch_id: int) -> dict[str, Any]:
        batch = self._batches.get(batch_id)
        return {
            "batch_id": batch.batch_id,
            "closed": batch.closed,
            "entry_count": len(self._state.entries_for(batch_id)),
            "request_ids": sorted(
                c.request_id for c in self._state.contexts.values()
                if c.batch_id == batch_id
            ),
        }

    def valuation_receipt(self, request_id: int) -> tuple[dict[str, Any], str]:
        """Canonical record of a completed valuation and its SHA-256 digest."""
        context = self._state.get_context(request_id)
        if context is None:
            raise UnknownRequest(f"No decryption context for request {request_id}")
        if not context.processed:
            raise InvalidParameter(f"Request {request_id} has not been finalized")
        receipt = {
            "ledger": self._ledger_identity,
            "request_id": context.request_id,
            "batch_id": context.batch_id,
            "state_hash": context.state_hash,
            "total_value": context.total_value,
        }
        return receipt, receipt_digest(receipt)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        return self._event_log.events(kind)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _next_event_id(self) -> str:
        return f"EVT-{self._event_counter + 1:08d}"

    def _emit(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        now: Optional[datetime],
        on_rollback: Callable[[], None],
    ) -> None:
        """Append the event recording a mutation that has just been applied.

        On failure the mutation is undone through on_rollback before
        EventLogFailure is raised.
        """
        event = EventRecord.create(
            event_id=self._next_event_id(),
            event_kind=kind,
            actor_id=actor_id,
            payload=payload,
            timestamp_utc=now,
        )
        try:
            self._event_log.append(event)
        except (ValueError, OSError) as e:
            on_rollback()
            logger.error(
                "event %s (%s) not recorded, operation undone: %s",
                event.event_id, kind.value, e,
            )
            raise EventLogFailure(f"Event log failure: {e}") from e
        self._event_counter += 1


def _utc(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)
