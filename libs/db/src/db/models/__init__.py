"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger models used by ``statement_analysis``.
"""

from .ledger import Base, LedgerTransaction

__all__ = [
    "Base",
    "LedgerTransaction",
]
