"""Tests for ledger components — access control, batch ledger, rate limiter."""

import pytest
from datetime import datetime, timedelta, timezone

from fhevault.capabilities import MockEncryption
from fhevault.errors import (
    BatchClosed,
    CooldownActive,
    InvalidBatch,
    InvalidParameter,
    NotOwner,
    NotProvider,
    Paused,
)
from fhevault.ledger import AccessControl, BatchLedger, LedgerState, RateLimiter
from fhevault.models.ledger import BatchState


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


def _state(cooldown: int = 60) -> LedgerState:
    return LedgerState.genesis("owner", cooldown_seconds=cooldown, now=_now())


class TestGenesis:
    def test_batch_one_open(self) -> None:
        state = _state()
        assert state.config.current_batch_id == 1
        assert state.get_batch(1).state == BatchState.OPEN
        assert state.entries_for(1) == ()

    def test_duplicate_batch_rejected(self) -> None:
        state = _state()
        with pytest.raises(ValueError, match="already exists"):
            state.add_batch(state.get_batch(1))


class TestAccessControl:
    def test_owner_operations(self) -> None:
        access = AccessControl(_state())
        access.add_provider("owner", "alice")
        assert access.is_provider("alice")
        access.remove_provider("owner", "alice")
        assert not access.is_provider("alice")
        access.set_cooldown("owner", 5)
        assert access.cooldown_seconds == 5
        access.set_paused("owner", True)
        assert access.paused

    def test_non_owner_rejected(self) -> None:
        access = AccessControl(_state())
        for op in (
            lambda: access.add_provider("mallory", "x"),
            lambda: access.remove_provider("mallory", "x"),
            lambda: access.set_cooldown("mallory", 1),
            lambda: access.set_paused("mallory", True),
            lambda: access.transfer_owner("mallory", "mallory"),
        ):
            with pytest.raises(NotOwner):
                op()

    def test_remove_requires_registered_provider(self) -> None:
        access = AccessControl(_state())
        access.add_provider("owner", "alice")
        with pytest.raises(InvalidParameter, match="not a registered provider"):
            access.remove_provider("owner", "bob")
        assert access.remove_provider("owner", " alice\t") == "alice"
        assert not access.is_provider("alice")

    def test_transfer_owner(self) -> None:
        access = AccessControl(_state())
        assert access.transfer_owner("owner", "bob") == "owner"
        assert access.owner == "bob"
        with pytest.raises(NotOwner):
            access.require_owner("owner")

    def test_blank_identity_rejected(self) -> None:
        access = AccessControl(_state())
        with pytest.raises(InvalidParameter):
            access.transfer_owner("owner", "  ")
        with pytest.raises(InvalidParameter):
            access.add_provider("owner", "")
        assert access.owner == "owner"

    def test_negative_cooldown_rejected(self) -> None:
        access = AccessControl(_state())
        with pytest.raises(InvalidParameter):
            access.set_cooldown("owner", -1)
        assert access.cooldown_seconds == 60

    def test_guards(self) -> None:
        state = _state()
        access = AccessControl(state)
        with pytest.raises(NotProvider):
            access.require_provider("alice")
        state.config.paused = True
        with pytest.raises(Paused):
            access.require_not_paused()


class TestBatchLedger:
    def test_open_requires_current_closed(self) -> None:
        batches = BatchLedger(_state())
        with pytest.raises(InvalidBatch, match="still open"):
            batches.open_batch(_now())

    def test_ids_strictly_increase(self) -> None:
        batches = BatchLedger(_state())
        seen = []
        for _ in range(3):
            batches.close_batch(_now())
            seen.append(batches.open_batch(_now()).batch_id)
        assert seen == [2, 3, 4]

    def test_close_is_irreversible(self) -> None:
        batches = BatchLedger(_state())
        batch = batches.close_batch(_now())
        assert batch.closed
        assert batch.closed_utc == _now()
        with pytest.raises(InvalidBatch, match="already closed"):
            batches.close_batch(_now())
        with pytest.raises(InvalidBatch):
            batch.transition_to(BatchState.OPEN)
        assert batch.closed

    def test_append_assigns_indices(self) -> None:
        enc = MockEncryption()
        batches = BatchLedger(_state())
        indices = [
            batches.append(f"p{i}", enc.encrypt(i), enc.encrypt(1), _now()).index
            for i in range(3)
        ]
        assert indices == [0, 1, 2]
        assert [e.provider for e in batches.entries(1)] == ["p0", "p1", "p2"]

    def test_append_into_closed_batch(self) -> None:
        enc = MockEncryption()
        batches = BatchLedger(_state())
        batches.close_batch(_now())
        with pytest.raises(BatchClosed):
            batches.append("p", enc.encrypt(1), enc.encrypt(1), _now())
        assert batches.entries(1) == ()

    def test_unknown_batch(self) -> None:
        batches = BatchLedger(_state())
        with pytest.raises(InvalidBatch, match="Unknown"):
            batches.get(42)
        with pytest.raises(InvalidBatch):
            batches.entries(42)


class TestRateLimiter:
    def test_first_action_never_limited(self) -> None:
        limiter = RateLimiter(_state())
        limiter.require_submission_allowed("alice", _now())
        limiter.require_request_allowed("alice", _now())

    def test_cooldown_boundary(self) -> None:
        limiter = RateLimiter(_state(cooldown=60))
        limiter.record_submission("alice", _now())
        with pytest.raises(CooldownActive):
            limiter.require_submission_allowed("alice", _now() + timedelta(seconds=59))
        limiter.require_submission_allowed("alice", _now() + timedelta(seconds=60))

    def test_counters_independent(self) -> None:
        limiter = RateLimiter(_state(cooldown=60))
        limiter.record_submission("alice", _now())
        limiter.require_request_allowed("alice", _now())
        limiter.record_request("alice", _now())
        with pytest.raises(CooldownActive, match="Valuation"):
            limiter.require_request_allowed("alice", _now() + timedelta(seconds=1))

    def test_per_address(self) -> None:
        limiter = RateLimiter(_state(cooldown=60))
        limiter.record_submission("alice", _now())
        limiter.require_submission_allowed("bob", _now())

    def test_zero_cooldown(self) -> None:
        limiter = RateLimiter(_state(cooldown=0))
        limiter.record_submission("alice", _now())
        limiter.require_submission_allowed("alice", _now())

    def test_snapshot_restores_earlier_record(self) -> None:
        state = _state(cooldown=60)
        limiter = RateLimiter(state)
        limiter.record_submission("alice", _now())
        snapshot = state.snapshot_rate_limit("alice")
        limiter.record_submission("alice", _now() + timedelta(seconds=90))
        state.restore_rate_limit("alice", snapshot)
        assert state.rate_limit("alice").last_submission_utc == _now()

    def test_restore_without_snapshot_forgets_address(self) -> None:
        state = _state(cooldown=60)
        snapshot = state.snapshot_rate_limit("bob")
        assert snapshot is None
        RateLimiter(state).record_request("bob", _now())
        state.restore_rate_limit("bob", snapshot)
        assert "bob" not in state.rate_limits
        RateLimiter(state).require_request_allowed("bob", _now())
