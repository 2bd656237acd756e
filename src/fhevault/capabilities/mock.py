"""In-process capability implementations.

MockEncryption is NOT encryption. A handle is the string
"FHE-" + base64(decimal plaintext), which lets the aggregation and
coordinator logic be exercised end to end without an FHE backend.

LocalDecryptionOracle plays the external decryption network: it issues
request ids, keeps a pending table, and on fulfil decrypts with
MockEncryption and signs "<request_id>:<cleartext hex>" as an EIP-191
message with its own account key. A proof verifies when the recovered
signer is the oracle's address, which is also its caller identity.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from eth_account import Account
from eth_account.messages import SignableMessage, encode_defunct
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError

from fhevault.capabilities.base import (
    DecryptionCallback,
    DecryptionCapability,
    EncryptionCapability,
    encode_cleartext,
)

logger = logging.getLogger(__name__)

HANDLE_PREFIX = "FHE-"
SIGNATURE_SIZE = 65


class MockEncryption(EncryptionCapability):
    """Transparent stand-in for homomorphic arithmetic over non-negative ints."""

    def encrypt(self, value: int) -> str:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"Plaintext must be a non-negative integer, got {value!r}")
        encoded = base64.b64encode(str(value).encode("ascii")).decode("ascii")
        return f"{HANDLE_PREFIX}{encoded}"

    def decrypt(self, handle: str) -> int:
        if not isinstance(handle, str) or not handle.startswith(HANDLE_PREFIX):
            raise ValueError(f"Not a ciphertext handle: {handle!r}")
        try:
            raw = base64.b64decode(handle[len(HANDLE_PREFIX):], validate=True)
        except binascii.Error as e:
            raise ValueError(f"Corrupt ciphertext handle: {handle!r}") from e
        text = raw.decode("ascii", errors="replace")
        if not text.isdigit():
            raise ValueError(f"Corrupt ciphertext handle: {handle!r}")
        return int(text)

    def add(self, a: str, b: str) -> str:
        return self.encrypt(self.decrypt(a) + self.decrypt(b))

    def mul(self, a: str, b: str) -> str:
        return self.encrypt(self.decrypt(a) * self.decrypt(b))

    def zero(self) -> str:
        return self.encrypt(0)

    def is_well_formed(self, c: Any) -> bool:
        try:
            self.decrypt(c)
        except ValueError:
            return False
        return True

    def serialize(self, c: str) -> bytes:
        return c.encode("ascii")

    def deserialize(self, data: bytes) -> str:
        return data.decode("ascii")


@dataclass
class _PendingRequest:
    request_id: int
    ciphertexts: list[bytes]
    callback: Optional[DecryptionCallback]


def proof_message(request_id: int, cleartext: bytes) -> SignableMessage:
    return encode_defunct(text=f"{request_id}:{cleartext.hex()}")


class LocalDecryptionOracle(DecryptionCapability):
    """Single-process decryption oracle with ECDSA-signed proofs.

    Usage:
        oracle = LocalDecryptionOracle(MockEncryption(), private_key="0x...")
        request_id = oracle.request_decryption([blob], callback)
        # ... later, out of band:
        oracle.fulfill(request_id)

    Without a private key the oracle signs with a fresh account, so its
    address changes on every start.
    """

    def __init__(
        self,
        encryption: MockEncryption,
        private_key: Optional[str] = None,
    ) -> None:
        if private_key:
            self._account = Account.from_key(private_key)
        else:
            self._account = Account.create()
            logger.warning(
                "no oracle key configured; signing with ephemeral account %s",
                self._account.address,
            )
        self._encryption = encryption
        self._next_id = 1
        self._pending: dict[int, _PendingRequest] = {}

    @property
    def identity(self) -> str:
        return self._account.address

    @property
    def pending_ids(self) -> list[int]:
        return sorted(self._pending)

    def request_decryption(
        self,
        serialized_ciphertexts: Sequence[bytes],
        callback: DecryptionCallback,
    ) -> int:
        if not serialized_ciphertexts:
            raise ValueError("Nothing to decrypt")
        request_id = self._next_id
        self._next_id += 1
        self._pending[request_id] = _PendingRequest(
            request_id=request_id,
            ciphertexts=[bytes(c) for c in serialized_ciphertexts],
            callback=callback,
        )
        logger.info("decryption request %d registered", request_id)
        return request_id

    def cancel_request(self, request_id: int) -> None:
        if self._pending.pop(request_id, None) is not None:
            logger.info("decryption request %d withdrawn", request_id)

    def sign(self, request_id: int, cleartext: bytes) -> bytes:
        signed = self._account.sign_message(proof_message(request_id, cleartext))
        return bytes(signed.signature)

    def verify_proof(self, request_id: int, cleartext: bytes, proof: bytes) -> bool:
        if request_id < 1 or request_id >= self._next_id:
            return False
        # EIP-191 signatures are r || s || v with v in {27, 28}
        if len(proof) != SIGNATURE_SIZE or proof[-1] not in (27, 28):
            return False
        try:
            signer = Account.recover_message(proof_message(request_id, cleartext), signature=proof)
        except (BadSignature, KeyValidationError):
            return False
        return signer == self._account.address

    def decrypt_request(self, request_id: int) -> bytes:
        """Decrypt the (single) ciphertext of a pending request into cleartext bytes."""
        pending = self._get(request_id)
        handle = self._encryption.deserialize(pending.ciphertexts[0])
        return encode_cleartext(self._encryption.decrypt(handle))

    def fulfill(self, request_id: int) -> None:
        """Deliver the plaintext and proof for a pending request.

        The request is dropped from the pending table only if the callback
        accepts it; any error propagates and the request stays pending.
        """
        pending = self._get(request_id)
        if pending.callback is None:
            raise ValueError(f"No callback bound for request {request_id}")
        cleartext = self.decrypt_request(request_id)
        proof = self.sign(request_id, cleartext)
        pending.callback(self.identity, request_id, cleartext, proof)
        del self._pending[request_id]
        logger.info("decryption request %d fulfilled", request_id)

    def fulfill_all(self) -> list[int]:
        delivered = []
        for request_id in self.pending_ids:
            self.fulfill(request_id)
            delivered.append(request_id)
        return delivered

    def to_dict(self) -> dict[str, Any]:
        return {
            "next_id": self._next_id,
            "pending": {
                str(p.request_id): [c.hex() for c in p.ciphertexts]
                for p in self._pending.values()
            },
        }

    def restore(self, data: dict[str, Any], callback: DecryptionCallback) -> None:
        """Reload persisted state, binding every pending request to callback."""
        self._next_id = int(data["next_id"])
        self._pending = {
            int(rid): _PendingRequest(
                request_id=int(rid),
                ciphertexts=[bytes.fromhex(c) for c in blobs],
                callback=callback,
            )
            for rid, blobs in data.get("pending", {}).items()
        }

    def _get(self, request_id: int) -> _PendingRequest:
        pending = self._pending.get(request_id)
        if pending is None:
            raise ValueError(f"Unknown or already fulfilled request: {request_id}")
        return pending
