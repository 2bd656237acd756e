"""Aggregation engine and decryption coordinator."""

from fhevault.engine.aggregation import AggregationEngine
from fhevault.engine.coordinator import DecryptionCoordinator

__all__ = ["AggregationEngine", "DecryptionCoordinator"]
