"""Core data models for the confidential aggregation ledger."""

from fhevault.models.decryption import DecryptionContext, DecryptionState
from fhevault.models.ledger import (
    Batch,
    BatchState,
    Ciphertext,
    Entry,
    GlobalConfig,
    RateLimitState,
)

__all__ = [
    "Batch",
    "BatchState",
    "Ciphertext",
    "DecryptionContext",
    "DecryptionState",
    "Entry",
    "GlobalConfig",
    "RateLimitState",
]
