"""Tests for the aggregation engine and state commitments."""

from fhevault.capabilities import MockEncryption
from fhevault.crypto.commitment import commit, receipt_digest
from fhevault.engine.aggregation import AggregationEngine
from fhevault.models.ledger import Entry


def _entries(enc: MockEncryption, pairs: list[tuple[int, int]]) -> list[Entry]:
    return [
        Entry(
            batch_id=1,
            index=i,
            provider=f"p{i}",
            encrypted_value=enc.encrypt(value),
            encrypted_weight=enc.encrypt(weight),
        )
        for i, (value, weight) in enumerate(pairs)
    ]


class TestWeightedSum:
    def test_weighted_sum(self) -> None:
        enc = MockEncryption()
        engine = AggregationEngine(enc)
        total = engine.aggregate(_entries(enc, [(3, 2), (5, 1)]))
        assert enc.decrypt(total) == 11

    def test_empty_is_zero(self) -> None:
        enc = MockEncryption()
        engine = AggregationEngine(enc)
        assert engine.aggregate([]) == enc.zero()

    def test_zero_weight_contributes_nothing(self) -> None:
        enc = MockEncryption()
        engine = AggregationEngine(enc)
        assert enc.decrypt(engine.aggregate(_entries(enc, [(100, 0), (4, 3)]))) == 12

    def test_recomputation_is_byte_identical(self) -> None:
        enc = MockEncryption()
        engine = AggregationEngine(enc)
        entries = _entries(enc, [(7, 3), (2, 9), (1, 1)])
        assert engine.aggregate_serialized(entries) == engine.aggregate_serialized(list(entries))


class TestCommitment:
    def test_deterministic(self) -> None:
        blob = b"FHE-MTE="
        assert commit([blob], "ledger-a") == commit([blob], "ledger-a")
        assert commit([blob], "ledger-a").startswith("sha256:")

    def test_binds_ledger_identity(self) -> None:
        blob = b"FHE-MTE="
        assert commit([blob], "ledger-a") != commit([blob], "ledger-b")

    def test_binds_ciphertexts(self) -> None:
        assert commit([b"FHE-MTE="], "ledger-a") != commit([b"FHE-MTI="], "ledger-a")

    def test_receipt_digest_ignores_key_order(self) -> None:
        a = {"request_id": 1, "batch_id": 2, "total_value": 11}
        b = {"total_value": 11, "batch_id": 2, "request_id": 1}
        assert receipt_digest(a) == receipt_digest(b)
        assert len(receipt_digest(a)) == 64
