"""Cryptographic helpers: state commitments and chain anchoring."""

from fhevault.crypto.commitment import commit, receipt_digest
from fhevault.crypto.anchor import AnchorRecord, ChainAnchor, anchor_payload

__all__ = ["AnchorRecord", "ChainAnchor", "anchor_payload", "commit", "receipt_digest"]
