"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the local ledger store used by ``statement_ledger``.
"""

from .ledger import Base, LedgerEmbedding, LedgerKV

__all__ = [
    "Base",
    "LedgerEmbedding",
    "LedgerKV",
]
