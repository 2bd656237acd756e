"""State commitments — binds a decryption request to the exact ciphertexts sent.

The commitment is computed at request time and again at fulfilment time.
Both sides must produce the same digest, so the canonical form is fixed:
sorted-key JSON of the hex-encoded ciphertexts (in order) and the ledger
identity, UTF-8 encoded, SHA-256, "sha256:" prefixed.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Sequence


def commit(serialized_ciphertexts: Sequence[bytes], ledger_identity: str) -> str:
    """Compute the state hash over the ciphertexts being decrypted."""
    canonical = json.dumps(
        {
            "ciphertexts": [c.hex() for c in serialized_ciphertexts],
            "ledger": ledger_identity,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


def receipt_digest(receipt: dict[str, Any]) -> str:
    """SHA-256 hex digest of a valuation receipt in canonical JSON form."""
    canonical = json.dumps(receipt, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()
