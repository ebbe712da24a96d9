"""Deterministic keyword categorization (first tier of the cascade).

Rules are evaluated in order over the lower-cased description and vendor; the
first matching rule wins and unmatched text falls back to ``"Other"``. Order is
significant: specific categories come before broader ones that share
vocabulary (``"transfer to investment account"`` must land in Investments,
not Transfers).

Keyword matching
----------------
- Keywords longer than three characters match at the start of a word, so
  ``rent`` matches ``rental`` but not ``current``.
- Keywords of three characters or fewer must match a whole word, so ``tax``
  does not match ``taxi`` and ``m1`` does not match ``m1234``.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache

from .categories import CATEGORIES, OTHER


@lru_cache(maxsize=256)
def _compile(keywords: tuple[str, ...]) -> re.Pattern[str] | None:
    if not keywords:
        return None
    parts: list[str] = []
    for kw in keywords:
        k = re.escape(kw.lower())
        if len(kw) <= 3:
            parts.append(rf"(?<![a-z0-9]){k}(?![a-z0-9])")
        else:
            parts.append(rf"(?<![a-z0-9]){k}")
    return re.compile("|".join(parts))


@dataclass(frozen=True, slots=True)
class KeywordRule:
    category: str
    keywords: tuple[str, ...] = ()
    vendor_keywords: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.category not in CATEGORIES:
            raise ValueError(f"KeywordRule category not in taxonomy: {self.category!r}")

    def matches(self, description: str, vendor: str) -> bool:
        pat = _compile(self.keywords)
        if pat is not None and pat.search(description):
            return True
        vpat = _compile(self.vendor_keywords)
        return bool(vendor) and vpat is not None and vpat.search(vendor) is not None


DEFAULT_RULES: tuple[KeywordRule, ...] = (
    KeywordRule("Income", ("salary", "payroll", "giro - salary", "bonus")),
    # Investments before Savings/Transfers: investment transfers read like transfers.
    KeywordRule(
        "Investments",
        (
            "investment",
            "tiger brokers",
            "moomoo",
            "interactive brokers",
            "syfe",
            "stashaway",
            "endowus",
            "poems",
            "dbs vickers",
            "saxo",
            "brokerage",
            "cpf",
            "srs",
        ),
        ("tiger", "moomoo", "syfe"),
    ),
    KeywordRule("Savings", ("savings", "save to", "fixed deposit", "time deposit")),
    KeywordRule(
        "Credit Card Payment",
        (
            "credit card",
            "card payment",
            "uob card",
            "dbs card",
            "ocbc card",
            "citi card",
            "amex",
            "american express",
            "paymt thru",
            "e-bank",
            "cyberb",
        ),
    ),
    KeywordRule("Income", ("rebate", "cashback", "cash back", "reward", "one card additional")),
    KeywordRule(
        "Food & Dining",
        (
            "grabfood",
            "grab food",
            "foodpanda",
            "deliveroo",
            "restaurant",
            "cafe",
            "coffee",
            "mcdonald",
            "kfc",
            "subway",
            "starbucks",
            "toast box",
            "ya kun",
            "kopitiam",
            "food court",
            "hawker",
            "bakery",
            "bubble tea",
            "bbt",
            "gongcha",
            "gong cha",
            "koi",
            "liho",
            "mixue",
            "eatery",
            "dining",
            "dinner",
            "lunch",
            "breakfast",
        ),
        ("cafe", "restaurant", "food", "coffee", "bakery", "kitchen", "prata", "noodle"),
    ),
    KeywordRule(
        "Groceries",
        (
            "ntuc",
            "fairprice",
            "cold storage",
            "giant",
            "sheng siong",
            "don don donki",
            "supermarket",
            "market",
            "grocer",
        ),
        ("ntuc", "fairprice", "cold storage"),
    ),
    KeywordRule(
        "Transport",
        (
            "bus/mrt",
            "ez-link",
            "transit",
            "simplygo",
            "grab",
            "gojek",
            "tada",
            "comfort",
            "taxi",
            "uber",
            "parking",
            "carpark",
            "petrol",
            "shell",
            "esso",
            "caltex",
            "spc",
            "lta",
        ),
    ),
    KeywordRule(
        "Shopping",
        (
            "shopee",
            "lazada",
            "amazon",
            "qoo10",
            "taobao",
            "uniqlo",
            "h&m",
            "zara",
            "cotton on",
            "ikea",
            "courts",
            "harvey norman",
            "best denki",
            "challenger",
        ),
        ("shop", "store", "retail"),
    ),
    KeywordRule(
        "Subscriptions",
        (
            "netflix",
            "spotify",
            "youtube",
            "disney",
            "apple",
            "google",
            "hbo",
            "subscription",
            "membership",
            "recurring",
            "chatgpt",
            "openai",
            "github",
            "notion",
            "figma",
            "adobe",
            "patreon",
        ),
    ),
    KeywordRule(
        "Entertainment",
        (
            "cinema",
            "movie",
            "golden village",
            "cathay",
            "shaw",
            "imax",
            "concert",
            "ticket",
            "event",
            "karaoke",
            "arcade",
            "bowling",
            "escape",
            "zoo",
            "safari",
            "sentosa",
            "uss",
            "attraction",
            "climbing",
            "piano",
            "gym",
            "fitness",
        ),
    ),
    KeywordRule(
        "Bills",
        (
            "singtel",
            "starhub",
            "m1",
            "circles",
            "giga",
            "sp services",
            "sp group",
            "utilities",
            "electricity",
            "water",
            "gas",
            "internet",
            "broadband",
            "mobile",
            "phone bill",
        ),
    ),
    KeywordRule("Tax", ("iras", "income tax", "tax payment", "gst", "property tax", "tax")),
    KeywordRule("Rent", ("rent", "rental", "lease", "landlord", "tenancy")),
    KeywordRule(
        "Healthcare",
        (
            "clinic",
            "hospital",
            "doctor",
            "medical",
            "pharmacy",
            "guardian",
            "watsons",
            "dental",
            "polyclinic",
            "health",
            "medisave",
        ),
    ),
    KeywordRule(
        "Insurance",
        (
            "insurance",
            "prudential",
            "aia",
            "great eastern",
            "ntuc income",
            "aviva",
            "manulife",
            "policy",
            "premium",
        ),
    ),
    KeywordRule(
        "Education",
        (
            "school",
            "university",
            "college",
            "tuition",
            "course",
            "udemy",
            "coursera",
            "skillsfuture",
            "education",
        ),
    ),
    KeywordRule("P2P Transfers", ("paynow", "paylah", "pay lah"), ("paynow",)),
    KeywordRule("Transfers", ("transfer", "pib", "mbk", "giro")),
)


def categorize(
    description: str,
    vendor: str | None = None,
    *,
    rules: Sequence[KeywordRule] = DEFAULT_RULES,
) -> str:
    """Return the first matching rule's category, or ``"Other"``."""

    desc = (description or "").lower()
    v = (vendor or "").lower()
    for rule in rules:
        if rule.matches(desc, v):
            return rule.category
    return OTHER


__all__ = ["KeywordRule", "DEFAULT_RULES", "categorize"]
