"""Ledger state and its guarded components."""

from fhevault.ledger.access import AccessControl
from fhevault.ledger.batches import BatchLedger
from fhevault.ledger.rate_limit import RateLimiter
from fhevault.ledger.state import LedgerState

__all__ = ["AccessControl", "BatchLedger", "LedgerState", "RateLimiter"]
