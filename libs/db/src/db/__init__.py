"""db: shared database library (SQLAlchemy).

Public exports
--------------
- ``Base`` and ``metadata`` (tables are created with ``metadata.create_all``)
- ORM models in ``db.models.ledger`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.ledger import Base, LedgerEmbedding, LedgerKV

metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "LedgerEmbedding",
    "LedgerKV",
]
