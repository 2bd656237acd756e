"""Tests for the event log and state snapshot store."""

import json
import pytest
from datetime import datetime, timezone
from pathlib import Path

from fhevault.capabilities import LocalDecryptionOracle, MockEncryption
from fhevault.ledger.state import LedgerState
from fhevault.models.decryption import DecryptionState
from fhevault.models.ledger import BatchState
from fhevault.persistence import EventKind, EventLog, EventRecord, StateStore
from fhevault.vault import ConfidentialVault


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


def _event(event_id: str = "EVT-00000001") -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=EventKind.BATCH_OPENED,
        actor_id="owner",
        payload={"batch_id": 2},
        timestamp_utc=_now(),
    )


class TestEventLog:
    def test_append_and_filter(self) -> None:
        log = EventLog()
        log.append(_event("EVT-1"))
        log.append(EventRecord.create(
            event_id="EVT-2",
            event_kind=EventKind.PAUSED,
            actor_id="owner",
            payload={},
            timestamp_utc=_now(),
        ))
        assert log.count == 2
        assert [e.event_id for e in log.events(EventKind.PAUSED)] == ["EVT-2"]
        assert log.last_event.event_id == "EVT-2"

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.append(_event())
        with pytest.raises(ValueError, match="Duplicate"):
            log.append(_event())
        assert log.count == 1

    def test_hash_is_deterministic(self) -> None:
        assert _event().event_hash == _event().event_hash
        assert _event().event_hash.startswith("sha256:")

    def test_file_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event("EVT-1"))
        log.append(_event("EVT-2"))

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events()[0] == log.events()[0]

    def test_tampered_file_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event())
        record = json.loads(path.read_text(encoding="utf-8"))
        record["payload"]["batch_id"] = 99
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_duplicate_in_file_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event())
        line = path.read_text(encoding="utf-8")
        path.write_text(line + line, encoding="utf-8")
        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(storage_path=path)


class TestStateStore:
    def _populated(self) -> tuple[MockEncryption, LocalDecryptionOracle, ConfidentialVault]:
        enc = MockEncryption()
        oracle = LocalDecryptionOracle(enc, private_key="0x" + "4c" * 32)
        vault = ConfidentialVault(LedgerState.genesis("owner", now=_now()), enc, oracle)
        vault.add_provider("owner", "alice", now=_now())
        vault.submit("alice", enc.encrypt(3), enc.encrypt(2), now=_now())
        vault.close_batch("owner", now=_now())
        vault.request_valuation("bob", 1, now=_now())
        vault.open_batch("owner", now=_now())
        return enc, oracle, vault

    def test_round_trip(self, tmp_path: Path) -> None:
        enc, oracle, vault = self._populated()
        store = StateStore(tmp_path / "state.json")
        assert not store.exists
        store.save(vault.state, enc, oracle_state=oracle.to_dict())
        assert store.exists

        state, oracle_state = store.load(enc)
        assert state.config.owner == "owner"
        assert state.config.current_batch_id == 2
        assert state.providers == {"alice"}
        assert state.get_batch(1).state == BatchState.CLOSED
        assert state.get_batch(1).closed_utc == _now()
        assert state.get_batch(2).state == BatchState.OPEN
        (entry,) = state.entries_for(1)
        assert entry.provider == "alice"
        assert enc.decrypt(entry.encrypted_value) == 3
        assert enc.decrypt(entry.encrypted_weight) == 2
        assert state.rate_limit("alice").last_submission_utc == _now()
        assert state.rate_limit("bob").last_request_utc == _now()
        context = state.get_context(1)
        assert context.state == DecryptionState.PENDING
        assert context.state_hash == vault.context(1).state_hash
        assert oracle_state == oracle.to_dict()

    def test_anchor_tx_survives_round_trip(self, tmp_path: Path) -> None:
        enc, oracle, vault = self._populated()
        oracle.fulfill(1)
        tx_hash = "0x" + "ab" * 32
        vault.record_anchor("owner", 1, tx_hash, 7, 11155111, now=_now())
        store = StateStore(tmp_path / "state.json")
        store.save(vault.state, enc, oracle_state=oracle.to_dict())

        state, _ = store.load(enc)
        context = state.get_context(1)
        assert context.anchor_tx == tx_hash
        assert context.processed
        assert context.total_value == 6

    def test_no_temp_file_left(self, tmp_path: Path) -> None:
        enc, oracle, vault = self._populated()
        store = StateStore(tmp_path / "nested" / "state.json")
        store.save(vault.state, enc)
        store.save(vault.state, enc)
        assert [p.name for p in (tmp_path / "nested").iterdir()] == ["state.json"]

    def test_load_missing_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            StateStore(tmp_path / "absent.json").load(MockEncryption())
