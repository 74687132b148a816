"""Canonical serialisation, object hashes, checksummed addresses and ledger data model."""

__version__ = "0.1.0"