"""Counterparty extraction from PayNow/NETS detail text."""

from __future__ import annotations

import re

# Reference ids, masked card numbers and rail markers carry no vendor signal.
_NOISE_RE = re.compile(
    r"PIB\d+|MBK\d+|\d{10,}|x{6}\d+|OTHR|FAST|PAYNOW",
    re.IGNORECASE,
)
_STOP_WORDS = frozenset({"the", "and", "for", "pte", "ltd", "sg", "singapore"})
_MAX_WORDS = 3


def extract_counterparty(detail: str) -> str | None:
    """Return a title-cased counterparty name from ``detail`` or ``None``.

    Example: ``"PIB2412011234567 OTHR JOHN TAN WEI MING"`` -> ``"John Tan Wei"``.
    """

    info = " ".join((detail or "").split())
    if len(info) < 3:
        return None
    cleaned = _NOISE_RE.sub("", info).strip()
    if len(cleaned) < 3:
        return None

    words = [
        w
        for w in cleaned.split()
        if len(w) > 2 and not w.isdigit() and w.lower() not in _STOP_WORDS
    ]
    if not words:
        return None
    return " ".join(w[:1].upper() + w[1:].lower() for w in words[:_MAX_WORDS])


__all__ = ["extract_counterparty"]
