"""fhevault — confidential aggregation ledger over encrypted contributions."""

__version__ = "0.1.0"
