"""Capability interfaces (encryption, decryption oracle) and local stand-ins."""

from fhevault.capabilities.base import (
    DecryptionCallback,
    DecryptionCapability,
    EncryptionCapability,
    decode_cleartext,
    encode_cleartext,
)
from fhevault.capabilities.mock import LocalDecryptionOracle, MockEncryption

__all__ = [
    "DecryptionCallback",
    "DecryptionCapability",
    "EncryptionCapability",
    "LocalDecryptionOracle",
    "MockEncryption",
    "decode_cleartext",
    "encode_cleartext",
]
