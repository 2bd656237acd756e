"""Vault service — persistent facade over the confidential vault.

Wires configuration, the local capabilities, the event log and the state
snapshot around a ConfidentialVault. This is the interface the CLI uses:
every operation returns a ServiceResult instead of raising, and every
successful mutation is persisted.

Persistence ordering: the event is appended (durable when the log is
file-backed) before the snapshot is rewritten. If the snapshot write
fails the in-memory state stays aligned with the event log, the service
flags itself as persistence_degraded, and the result carries a warning.
If the event append itself fails, the vault undoes the mutation and the
operation fails with code event_log_failure; nothing is snapshotted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from fhevault.capabilities.mock import LocalDecryptionOracle, MockEncryption
from fhevault.config import VaultConfig
from fhevault.crypto.anchor import ChainAnchor, anchor_payload
from fhevault.errors import InvalidParameter, UnknownRequest
from fhevault.ledger.state import LedgerState
from fhevault.models.decryption import DecryptionState
from fhevault.persistence.event_log import EventLog
from fhevault.persistence.state_store import StateStore
from fhevault.vault import ConfidentialVault

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class VaultService:
    """Persistent vault facade.

    Usage:
        service = VaultService(VaultConfig.from_env())
        service.add_provider("owner", "alice")
        service.submit("alice", value=3, weight=2)
        service.close_batch("owner")
        result = service.request_valuation("bob", batch_id=1)
        service.fulfill(result.data["request_id"])

    Persistence (optional):
        service = VaultService(config, event_log=log, state_store=store)
        # State is persisted on each mutation and loaded on construction.
    """

    def __init__(
        self,
        config: VaultConfig,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
    ) -> None:
        self._config = config
        self._encryption = MockEncryption()
        self._oracle = LocalDecryptionOracle(
            self._encryption, private_key=config.oracle_private_key,
        )
        self._event_log = event_log
        self._state_store = state_store

        oracle_state: Optional[dict[str, Any]] = None
        if state_store is not None and state_store.exists:
            state, oracle_state = state_store.load(self._encryption)
        else:
            state = LedgerState.genesis(config.owner, config.cooldown_seconds)

        self._vault = ConfidentialVault(
            state,
            self._encryption,
            self._oracle,
            ledger_identity=config.ledger_id,
            event_log=event_log,
        )
        if oracle_state is not None:
            self._oracle.restore(oracle_state, callback=self._vault.finalize)

        self._persistence_degraded = False

    @property
    def vault(self) -> ConfidentialVault:
        return self._vault

    @property
    def encryption(self) -> MockEncryption:
        return self._encryption

    @property
    def oracle(self) -> LocalDecryptionOracle:
        return self._oracle

    # ------------------------------------------------------------------
    # Access control
    # ------------------------------------------------------------------

    def transfer_owner(self, caller: str, new_owner: str) -> ServiceResult:
        return self._run(
            lambda: self._vault.transfer_owner(caller, new_owner),
            lambda _: {"owner": self._vault.owner},
        )

    def add_provider(self, caller: str, provider: str) -> ServiceResult:
        return self._run(
            lambda: self._vault.add_provider(caller, provider),
            lambda _: {"provider": provider.strip()},
        )

    def remove_provider(self, caller: str, provider: str) -> ServiceResult:
        return self._run(
            lambda: self._vault.remove_provider(caller, provider),
            lambda _: {"provider": provider},
        )

    def set_paused(self, caller: str, paused: bool) -> ServiceResult:
        return self._run(
            lambda: self._vault.set_paused(caller, paused),
            lambda _: {"paused": self._vault.paused},
        )

    def set_cooldown(self, caller: str, seconds: int) -> ServiceResult:
        return self._run(
            lambda: self._vault.set_cooldown(caller, seconds),
            lambda _: {"cooldown_seconds": self._vault.cooldown_seconds},
        )

    # ------------------------------------------------------------------
    # Batches and submissions
    # ------------------------------------------------------------------

    def open_batch(self, caller: str, now: Optional[datetime] = None) -> ServiceResult:
        return self._run(
            lambda: self._vault.open_batch(caller, now=now),
            lambda batch: {"batch_id": batch.batch_id},
        )

    def close_batch(self, caller: str, now: Optional[datetime] = None) -> ServiceResult:
        return self._run(
            lambda: self._vault.close_batch(caller, now=now),
            lambda batch: {"batch_id": batch.batch_id},
        )

    def submit(
        self,
        caller: str,
        value: int,
        weight: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Encrypt value and weight client-side, then submit them.

        Role, pause and cooldown are checked before the plaintexts, so the
        failure code matches what submitting ciphertexts would report.
        """
        def _submit() -> Any:
            self._vault.require_submitter(caller, now)
            try:
                encrypted_value = self._encryption.encrypt(value)
                encrypted_weight = self._encryption.encrypt(weight)
            except ValueError as e:
                raise InvalidParameter(str(e)) from e
            return self._vault.submit(caller, encrypted_value, encrypted_weight, now=now)

        return self._run(
            _submit,
            lambda entry: {"batch_id": entry.batch_id, "index": entry.index},
        )

    def submit_encrypted(
        self,
        caller: str,
        encrypted_value: Any,
        encrypted_weight: Any,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            lambda: self._vault.submit(caller, encrypted_value, encrypted_weight, now=now),
            lambda entry: {"batch_id": entry.batch_id, "index": entry.index},
        )

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    def request_valuation(
        self,
        caller: str,
        batch_id: int,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        return self._run(
            lambda: self._vault.request_valuation(caller, batch_id, now=now),
            lambda ctx: {
                "request_id": ctx.request_id,
                "batch_id": ctx.batch_id,
                "state_hash": ctx.state_hash,
            },
        )

    def fulfill(self, request_id: int) -> ServiceResult:
        """Have the local oracle deliver a pending decryption."""
        def _deliver() -> Any:
            self._oracle.fulfill(request_id)
            return self._vault.context(request_id)

        return self._run(
            _deliver,
            lambda ctx: {
                "request_id": ctx.request_id,
                "batch_id": ctx.batch_id,
                "total_value": ctx.total_value,
            },
        )

    def valuation_receipt(self, request_id: int) -> ServiceResult:
        try:
            receipt, digest = self._vault.valuation_receipt(request_id)
        except ValueError as e:
            return _failure(e)
        return ServiceResult(success=True, data={"receipt": receipt, "digest": digest})

    def anchor_valuation(self, caller: str, request_id: int) -> ServiceResult:
        """Publish a finalized valuation's anchor payload and record the tx.

        Owner-only. The vault's checks run before any transaction is sent.
        """
        if not self._anchoring_configured():
            return _not_configured()
        try:
            self._vault.require_anchorable(caller, request_id)
            payload = self._anchor_payload(request_id)
            record = self._chain_anchor().publish(payload)
        except ValueError as e:
            return _failure(e)
        return self._run(
            lambda: self._vault.record_anchor(
                caller, request_id, record.tx_hash, record.block_number, record.chain_id,
            ),
            lambda ctx: {
                "request_id": ctx.request_id,
                "payload": payload.hex(),
                "tx_hash": record.tx_hash,
                "block_number": record.block_number,
                "chain_id": record.chain_id,
            },
        )

    def verify_anchor(self, request_id: int) -> ServiceResult:
        """Read an anchored valuation's tx back and compare it to the receipt."""
        if not self._anchoring_configured():
            return _not_configured()
        context = self._vault.context(request_id)
        if context is None:
            return _failure(UnknownRequest(f"No decryption context for request {request_id}"))
        if context.anchor_tx is None:
            return _failure(InvalidParameter(f"Request {request_id} has not been anchored"))
        try:
            expected = self._anchor_payload(request_id)
            on_chain = self._chain_anchor().payload_of(context.anchor_tx)
        except ValueError as e:
            return _failure(e)
        return ServiceResult(success=True, data={
            "request_id": request_id,
            "tx_hash": context.anchor_tx,
            "verified": on_chain == expected,
        })

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def batch_summary(self, batch_id: int) -> ServiceResult:
        try:
            return ServiceResult(success=True, data=self._vault.batch_summary(batch_id))
        except ValueError as e:
            return _failure(e)

    def request_info(self, request_id: int) -> ServiceResult:
        context = self._vault.context(request_id)
        if context is None:
            return ServiceResult(
                success=False,
                errors=[f"No decryption context for request {request_id}"],
                data={"code": "unknown_request"},
            )
        return ServiceResult(success=True, data=context.to_dict())

    def status(self) -> dict[str, Any]:
        """Return ledger-wide status summary."""
        contexts = self._vault.state.contexts.values()
        return {
            "ledger_id": self._vault.ledger_identity,
            "oracle": self._oracle.identity,
            "owner": self._vault.owner,
            "available": self._vault.is_available(),
            "paused": self._vault.paused,
            "cooldown_seconds": self._vault.cooldown_seconds,
            "providers": sorted(self._vault.state.providers),
            "batches": {
                "current": self._vault.current_batch_id,
                "current_closed": self._vault.is_batch_closed(self._vault.current_batch_id),
                "total": len(self._vault.state.batches),
            },
            "valuations": {
                "pending": sum(1 for c in contexts if c.state == DecryptionState.PENDING),
                "processed": sum(1 for c in contexts if c.state == DecryptionState.PROCESSED),
                "awaiting_oracle": self._oracle.pending_ids,
            },
            "persistence_degraded": self._persistence_degraded,
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _anchoring_configured(self) -> bool:
        return bool(self._config.rpc_url and self._config.private_key)

    def _chain_anchor(self) -> ChainAnchor:
        return ChainAnchor(
            self._config.rpc_url, self._config.private_key, chain_id=self._config.chain_id,
        )

    def _anchor_payload(self, request_id: int) -> bytes:
        receipt, digest = self._vault.valuation_receipt(request_id)
        return anchor_payload(receipt["state_hash"], digest)

    def _run(
        self,
        operation: Callable[[], Any],
        describe: Callable[[Any], dict[str, Any]],
    ) -> ServiceResult:
        try:
            outcome = operation()
        except ValueError as e:
            return _failure(e)
        data = describe(outcome)
        warning = self._safe_persist()
        if warning:
            return ServiceResult(success=True, errors=[warning], data=data)
        return ServiceResult(success=True, data=data)

    def _safe_persist(self) -> Optional[str]:
        """Persist the snapshot after the event is committed.

        Never rolls back: the event log already records the change.
        """
        if self._state_store is None:
            return None
        try:
            self._state_store.save(
                self._vault.state,
                self._encryption,
                oracle_state=self._oracle.to_dict(),
            )
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("state snapshot write failed: %s", e)
            return f"Persistence degraded: {e}; state committed in event log but snapshot is stale"


def _failure(error: ValueError) -> ServiceResult:
    return ServiceResult(
        success=False,
        errors=[str(error)],
        data={"code": getattr(error, "code", "invalid")},
    )


def _not_configured() -> ServiceResult:
    return ServiceResult(
        success=False,
        errors=["SEPOLIA_RPC_URL and PRIVATE_KEY must be configured to anchor"],
        data={"code": "not_configured"},
    )
