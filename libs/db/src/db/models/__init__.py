"""Shared SQLAlchemy models registry for the ledger database.

Currently includes the ledger models consumed by ``statement_import``.
"""

from .ledger import Base, LedgerAccount, LedgerCategory, LedgerTransaction

__all__ = [
    "Base",
    "LedgerAccount",
    "LedgerCategory",
    "LedgerTransaction",
]
