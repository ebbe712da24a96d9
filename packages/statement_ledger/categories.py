"""Canonical category taxonomy shared by the rule engine and the classifier.

The taxonomy is fixed: both categorization tiers (keyword rules and the
embedding exemplar table) must only ever emit labels from ``CATEGORIES``.
Adding a label means updating ``CATEGORIES``, ``CATEGORY_EXEMPLARS`` and the
rule list in :mod:`statement_ledger.rules` together.
"""

from __future__ import annotations

from collections.abc import Mapping

OTHER = "Other"

CATEGORIES: tuple[str, ...] = (
    "Income",
    "Investments",
    "Savings",
    "Credit Card Payment",
    "Food & Dining",
    "Groceries",
    "Transport",
    "Shopping",
    "Subscriptions",
    "Entertainment",
    "Bills",
    "Tax",
    "Rent",
    "Healthcare",
    "Insurance",
    "Education",
    "P2P Transfers",
    "Transfers",
    OTHER,
)

# Curated phrases per category; each list is joined into one text and embedded
# once at classifier initialization. "Other" deliberately has no exemplar.
CATEGORY_EXEMPLARS: Mapping[str, tuple[str, ...]] = {
    "Income": (
        "salary payment",
        "payroll deposit",
        "bonus payment",
        "wage transfer",
        "monthly salary",
        "income received",
    ),
    "Investments": (
        "stock purchase",
        "investment transfer",
        "brokerage deposit",
        "tiger brokers",
        "moomoo securities",
        "syfe investment",
        "stashaway deposit",
        "cpf contribution",
        "srs transfer",
    ),
    "Savings": (
        "savings transfer",
        "fixed deposit",
        "save money",
        "savings account",
    ),
    "Credit Card Payment": (
        "credit card payment",
        "card bill payment",
        "pay credit card",
        "card statement payment",
    ),
    "Food & Dining": (
        "restaurant payment",
        "food delivery",
        "grab food",
        "foodpanda order",
        "deliveroo",
        "cafe coffee",
        "mcdonald burger",
        "kfc chicken",
        "starbucks coffee",
        "bubble tea",
        "hawker food",
        "lunch dinner breakfast",
    ),
    "Groceries": (
        "supermarket shopping",
        "ntuc fairprice",
        "cold storage",
        "giant hypermarket",
        "sheng siong",
        "grocery shopping",
        "don don donki",
    ),
    "Transport": (
        "bus mrt fare",
        "transit payment",
        "grab ride",
        "taxi fare",
        "gojek transport",
        "parking fee",
        "petrol fuel",
        "ez-link top up",
    ),
    "Shopping": (
        "online shopping",
        "shopee purchase",
        "lazada order",
        "amazon purchase",
        "retail store",
        "clothing purchase",
        "uniqlo clothes",
        "ikea furniture",
    ),
    "Subscriptions": (
        "netflix subscription",
        "spotify premium",
        "youtube premium",
        "disney plus",
        "streaming service",
        "monthly subscription",
        "chatgpt openai",
        "github subscription",
    ),
    "Entertainment": (
        "movie cinema",
        "concert ticket",
        "theme park",
        "karaoke",
        "arcade games",
        "sentosa attraction",
    ),
    "Bills": (
        "utility bill",
        "electricity payment",
        "water bill",
        "internet broadband",
        "mobile phone bill",
        "singtel starhub m1",
    ),
    "Tax": (
        "income tax payment",
        "iras tax",
        "gst payment",
        "property tax",
    ),
    "Rent": (
        "rental payment",
        "monthly rent",
        "lease payment",
        "landlord payment",
    ),
    "Healthcare": (
        "clinic visit",
        "hospital payment",
        "medical expense",
        "pharmacy medicine",
        "dental treatment",
        "doctor consultation",
    ),
    "Insurance": (
        "insurance premium",
        "life insurance",
        "health insurance",
        "policy payment",
        "prudential aia",
    ),
    "Education": (
        "school fees",
        "tuition payment",
        "course enrollment",
        "education expense",
        "university college",
    ),
    "P2P Transfers": (
        "paynow transfer",
        "paylah payment",
        "peer transfer",
        "send money friend",
    ),
    "Transfers": (
        "bank transfer",
        "fund transfer",
        "giro payment",
        "interbank transfer",
    ),
}


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``."""

    return " ".join(name.strip().split())


def validate_category(name: str) -> str:
    """Return the canonical label for ``name`` or raise ``ValueError``.

    Matching is case-insensitive after whitespace normalization; the returned
    value uses the taxonomy's casing.
    """

    n = normalize_name(name)
    for label in CATEGORIES:
        if label.lower() == n.lower():
            return label
    raise ValueError(f"Unknown category {name!r}; expected one of: {', '.join(CATEGORIES)}")


__all__ = [
    "OTHER",
    "CATEGORIES",
    "CATEGORY_EXEMPLARS",
    "normalize_name",
    "validate_category",
]
