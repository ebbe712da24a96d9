"""United Overseas Bank (UOB) statements: bank accounts and credit cards."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal

from ..logging_setup import get_logger
from ..models import CategorySource, StatementKind, StatementPeriod, Transaction, quantize_amount
from ..rules import categorize
from .base import (
    BankRow,
    BankRowMatcher,
    CardRowMatcher,
    StatementParser,
    months_before,
    resolve_year,
    tokenize,
)
from .vendors import extract_counterparty

_log = get_logger("statement_ledger.parsers.uob")

_CARD_MARKERS = (
    "card.centre@uobgroup",
    "Credit Card(s) Statement",
    "UOB ONE CARD",
    "UOB VISA",
    "UOB MASTERCARD",
)

# Header/footer rows that the bank row pattern also matches.
_BOILERPLATE_MARKERS = (
    "BALANCE B/F",
    "Page ",
    "Account Transaction",
    "Date Description",
    "SGD SGD",
)

_INFLOW_MARKERS = ("Inward", "Cash Deposit", "Bonus Interest")

_PERIOD_RE = re.compile(
    r"Period:\s*(\d{1,2}\s+\w+\s+\d{4})\s+to\s+(\d{1,2}\s+\w+\s+\d{4})", re.IGNORECASE
)
_STATEMENT_DATE_RE = re.compile(r"Statement Date\s+(\d{1,2}\s+\w+\s+\d{4})", re.IGNORECASE)

MAX_BANK_DESCRIPTION = 150
MAX_CARD_DESCRIPTION = 100


def _parse_long_date(text: str) -> date | None:
    cleaned = " ".join(text.split())
    for fmt in ("%d %b %Y", "%d %B %Y"):
        try:
            return datetime.strptime(cleaned, fmt).date()
        except ValueError:
            continue
    return None


class UOBParser(StatementParser):
    bank_id = "uob"
    bank_name = "United Overseas Bank (UOB)"

    def confidence(self, first_page_text: str) -> float:
        text = first_page_text.lower()
        if "uobgroup" in text or "united overseas bank" in text:
            return 0.95
        if "uob one" in text or "uob card" in text:
            return 0.85
        # Weak: other banks print similar account names.
        if "one account" in text and "singapore" in text:
            return 0.6
        return 0.0

    def detect_statement_type(self, text: str) -> StatementKind:
        if any(marker in text for marker in _CARD_MARKERS):
            return StatementKind.credit_card
        return StatementKind.bank_account

    def extract_period(self, text: str) -> StatementPeriod:
        m = _PERIOD_RE.search(text)
        if m:
            start, end = _parse_long_date(m.group(1)), _parse_long_date(m.group(2))
            if start is not None and end is not None:
                return StatementPeriod(start=start, end=end)

        m = _STATEMENT_DATE_RE.search(text)
        if m:
            end = _parse_long_date(m.group(1))
            if end is not None:
                return StatementPeriod(start=months_before(end, 1), end=end)

        return super().extract_period(text)

    def parse_transactions(
        self,
        pages: Sequence[str],
        kind: StatementKind,
        period: StatementPeriod,
        *,
        statement_id: str = "",
    ) -> list[Transaction]:
        if kind is StatementKind.bank_account:
            return self._parse_bank(pages, period, statement_id)
        return self._parse_card(pages, period, statement_id)

    # ---- bank accounts -------------------------------------------------

    @staticmethod
    def _is_boilerplate(row: BankRow) -> bool:
        desc = row.description
        return len(desc) < 3 or any(marker in desc for marker in _BOILERPLATE_MARKERS)

    @staticmethod
    def _looks_like_inflow(description: str) -> bool:
        if any(marker in description for marker in _INFLOW_MARKERS):
            return True
        # PayNow without an outgoing internet/mobile banking reference is incoming.
        return "PAYNOW" in description and "PIB" not in description and "MBK" not in description

    def _parse_bank(
        self, pages: Sequence[str], period: StatementPeriod, statement_id: str
    ) -> list[Transaction]:
        rows = [r for r in BankRowMatcher().match(tokenize(pages)) if not self._is_boilerplate(r)]
        noise_threshold = self.settings.interest_noise_threshold

        out: list[Transaction] = []
        prev_balance: Decimal | None = None
        for row in rows:
            if prev_balance is None:
                amount = row.amount if self._looks_like_inflow(row.description) else -row.amount
            else:
                amount = row.balance - prev_balance
            # Filtered rows still anchor the next row's balance delta.
            prev_balance = row.balance

            if "Interest" in row.description and abs(amount) < noise_threshold:
                _log.debug("uob:skip_interest amount=%s", amount)
                continue

            tx_date = resolve_year(row.date_token.day, row.date_token.month, period)
            if tx_date is None:
                _log.debug("uob:skip_invalid_date token=%r", row.date_token.text)
                continue

            vendor = None
            if "PAYNOW" in row.description or "NETS" in row.description:
                vendor = extract_counterparty(row.detail or row.description)

            full = " ".join(f"{row.description} {row.detail}".split())
            out.append(
                Transaction(
                    date=tx_date,
                    description=full[:MAX_BANK_DESCRIPTION],
                    amount=quantize_amount(amount),
                    kind=StatementKind.bank_account,
                    category=categorize(full, vendor),
                    category_source=CategorySource.rule,
                    vendor=vendor,
                    balance=row.balance,
                    statement_id=statement_id,
                    raw_text=row.raw_text,
                )
            )

        _log.debug("uob:bank_parsed rows=%s kept=%s", len(rows), len(out))
        return out

    # ---- credit cards --------------------------------------------------

    def _parse_card(
        self, pages: Sequence[str], period: StatementPeriod, statement_id: str
    ) -> list[Transaction]:
        rows = CardRowMatcher().match(tokenize(pages))
        out: list[Transaction] = []
        for row in rows:
            if "PREVIOUS BALANCE" in row.description:
                continue
            tx_date = resolve_year(row.post_date_token.day, row.post_date_token.month, period)
            if tx_date is None:
                _log.debug("uob:skip_invalid_date token=%r", row.post_date_token.text)
                continue
            description = " ".join(row.description.split())
            out.append(
                Transaction(
                    date=tx_date,
                    description=description[:MAX_CARD_DESCRIPTION],
                    amount=row.amount if row.is_credit else -row.amount,
                    kind=StatementKind.credit_card,
                    category=categorize(description),
                    category_source=CategorySource.rule,
                    statement_id=statement_id,
                    raw_text=row.raw_text,
                )
            )

        _log.debug("uob:card_parsed rows=%s kept=%s", len(rows), len(out))
        return out


__all__ = ["UOBParser", "MAX_BANK_DESCRIPTION", "MAX_CARD_DESCRIPTION"]
