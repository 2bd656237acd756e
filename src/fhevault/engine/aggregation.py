"""Aggregation engine — homomorphic weighted sum over a batch.

    total = zero()
    for entry in entries (submission order):
        total = add(total, mul(value, weight))

The fold order is fixed and the engine holds no state, so the same entry
list always yields a ciphertext with the same canonical serialization.
The decryption coordinator relies on this to recompute and compare the
aggregate at fulfilment time.
"""

from __future__ import annotations

from typing import Iterable

from fhevault.capabilities.base import EncryptionCapability
from fhevault.models.ledger import Ciphertext, Entry


class AggregationEngine:
    def __init__(self, encryption: EncryptionCapability) -> None:
        self._encryption = encryption

    def aggregate(self, entries: Iterable[Entry]) -> Ciphertext:
        total = self._encryption.zero()
        for entry in entries:
            product = self._encryption.mul(entry.encrypted_value, entry.encrypted_weight)
            total = self._encryption.add(total, product)
        return total

    def aggregate_serialized(self, entries: Iterable[Entry]) -> bytes:
        return self._encryption.serialize(self.aggregate(entries))
