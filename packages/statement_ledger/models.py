"""Data models for ``statement_ledger``.

Amounts follow one sign convention everywhere: positive values are inflows,
negative values are outflows. Amounts and balances are ``Decimal`` values
quantized to two places so balance-delta arithmetic is exact.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

from .categories import OTHER

_CENT = Decimal("0.01")


def quantize_amount(value: Decimal) -> Decimal:
    """Round ``value`` to cents (half-up)."""

    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


class StatementKind(StrEnum):
    bank_account = "bank_account"
    credit_card = "credit_card"


class CategorySource(StrEnum):
    """Provenance of a transaction's current category."""

    rule = "rule"
    embedding = "embedding"
    user = "user"


# ---------------------------------------------------------------------------
# Statements and transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StatementPeriod:
    """Inclusive date range printed on a statement; drives year resolution."""

    start: date
    end: date

    @property
    def spans_year_boundary(self) -> bool:
        return self.start.year < self.end.year


@dataclass(slots=True)
class Transaction:
    """A single signed transaction extracted from a statement.

    ``category`` is assigned by the rule engine at parse time and may later be
    overwritten by the embedding classifier or by the user; ``category_source``
    records which tier made the current assignment. ``hidden`` excludes the
    row from classification and similarity scans without deleting it.
    """

    date: date
    description: str
    amount: Decimal
    kind: StatementKind
    category: str = OTHER
    category_source: CategorySource = CategorySource.rule
    vendor: str | None = None
    balance: Decimal | None = None
    statement_id: str = ""
    raw_text: str = ""
    hidden: bool = False

    def __post_init__(self) -> None:
        if not self.category or not self.category.strip():
            self.category = OTHER

    @property
    def is_inflow(self) -> bool:
        return self.amount > 0


@dataclass(slots=True)
class Statement:
    """A parsed statement: identity, kind, period and ordered transactions."""

    id: str
    kind: StatementKind
    period: StatementPeriod
    transactions: list[Transaction] = field(default_factory=list)
    bank_id: str = ""
    source_name: str | None = None


class TextFragment(NamedTuple):
    """A positioned text run on a page (PDF user space: larger ``y`` is higher)."""

    text: str
    x: float
    y: float


# ---------------------------------------------------------------------------
# Classification results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Outcome of the embedding tier for one (description, vendor) pair.

    ``confidence`` carries the raw best score when it fell below the
    acceptance threshold (the category is then ``"Other"``).
    """

    category: str
    confidence: float
    source: CategorySource = CategorySource.embedding


@dataclass(frozen=True, slots=True)
class SimilarityCandidate:
    """A transaction proposed for the same correction as a target."""

    index: int
    transaction: Transaction
    similarity: float


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Composite (description, vendor) key for cached embedding vectors.

    ``digest`` hashes a JSON array of both fields, so separator characters in
    either field cannot make two distinct keys collide.
    """

    description: str
    vendor: str | None = None

    @property
    def digest(self) -> str:
        payload = json.dumps([self.description, self.vendor], ensure_ascii=False)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    @property
    def text(self) -> str:
        """The text sent to the embedding model."""

        if self.vendor:
            return f"{self.description} {self.vendor}"
        return self.description

    @classmethod
    def for_transaction(cls, tx: Transaction) -> CacheKey:
        return cls(description=tx.description, vendor=tx.vendor)


# ---------------------------------------------------------------------------
# DTOs for durable storage
# ---------------------------------------------------------------------------

CORRECTIONS_SCHEMA_VERSION: int = 1


class CorrectionMapRecord(BaseModel):
    """Persisted description → category map (one record in ``ledger_kv``)."""

    model_config = ConfigDict(strict=True, extra="forbid")

    schema_version: int
    mappings: dict[str, str]

    @field_validator("mappings")
    @classmethod
    def _no_blank_entries(cls, v: dict[str, str]) -> dict[str, str]:
        for desc, cat in v.items():
            if not desc.strip() or not cat.strip():
                raise ValueError("correction entries must have non-empty description and category")
        return v


__all__ = [
    "StatementKind",
    "CategorySource",
    "StatementPeriod",
    "Transaction",
    "Statement",
    "TextFragment",
    "ClassificationResult",
    "SimilarityCandidate",
    "CacheKey",
    "CorrectionMapRecord",
    "CORRECTIONS_SCHEMA_VERSION",
    "quantize_amount",
]
