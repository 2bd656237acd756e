"""Capability interfaces consumed by the ledger.

The ledger never performs homomorphic arithmetic or decryption itself.
Both are injected behind these interfaces so the aggregation and
decryption logic can run against fakes in tests and against a real
FHE backend and decryption network in production.

BOUNDARY ENFORCEMENT:
- Ciphertext handles are opaque to the ledger
- Serialization must be canonical (same handle → same bytes)
- Decryption is never a blocking call: registration returns an id,
  fulfilment arrives later through the callback
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Sequence

from fhevault.models.ledger import Ciphertext


# callback(caller, request_id, cleartext, proof)
DecryptionCallback = Callable[[str, int, bytes, bytes], None]


class EncryptionCapability(ABC):
    """Homomorphic arithmetic over opaque ciphertext handles."""

    @abstractmethod
    def add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        ...

    @abstractmethod
    def mul(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        ...

    @abstractmethod
    def zero(self) -> Ciphertext:
        """Encryption of 0, the identity of the aggregation fold."""

    @abstractmethod
    def is_well_formed(self, c: Ciphertext) -> bool:
        ...

    @abstractmethod
    def serialize(self, c: Ciphertext) -> bytes:
        """Canonical byte form of a handle."""

    @abstractmethod
    def deserialize(self, data: bytes) -> Ciphertext:
        ...


class DecryptionCapability(ABC):
    """External decryption service (oracle).

    Implementations invoke the registered callback with their own
    identity as caller once the plaintext and its proof are available.
    """

    @property
    @abstractmethod
    def identity(self) -> str:
        ...

    @abstractmethod
    def request_decryption(
        self,
        serialized_ciphertexts: Sequence[bytes],
        callback: DecryptionCallback,
    ) -> int:
        """Register a decryption request and return its request id."""

    @abstractmethod
    def verify_proof(self, request_id: int, cleartext: bytes, proof: bytes) -> bool:
        """Check that proof binds cleartext to the given request."""

    @abstractmethod
    def cancel_request(self, request_id: int) -> None:
        """Withdraw a registration the ledger failed to record.

        Called only when the ledger rolls back the request that created it.
        """


CLEARTEXT_SIZE = 32


def encode_cleartext(value: int) -> bytes:
    """Encode a plaintext aggregate as a 32-byte big-endian unsigned integer."""
    if value < 0:
        raise ValueError(f"Cleartext must be non-negative, got {value}")
    return value.to_bytes(CLEARTEXT_SIZE, "big")


def decode_cleartext(cleartext: bytes) -> int:
    if len(cleartext) != CLEARTEXT_SIZE:
        raise ValueError(
            f"Cleartext must be {CLEARTEXT_SIZE} bytes, got {len(cleartext)}"
        )
    return int.from_bytes(cleartext, "big")
