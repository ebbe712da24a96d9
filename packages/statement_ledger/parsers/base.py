"""Parser contract plus the shared tokenizer and row matchers.

Statement rows are recognized in two steps:

1. :func:`tokenize` turns linearized page text into a flat token stream
   (``DATE``, ``AMOUNT``, ``WORD``, and a ``BREAK`` between pages).
2. A small finite-state matcher walks the tokens and emits raw rows:

   - :class:`BankRowMatcher`: ``DATE -> DESCRIPTION -> AMOUNT -> BALANCE ->
     DETAIL``. Detail runs until the next ``DATE`` that is followed by a
     word, a stop phrase, a page break or the end of input.
   - :class:`CardRowMatcher`: ``DATE -> DATE -> DESCRIPTION -> AMOUNT [CR]``.

Segments that do not complete a row are skipped; matchers never raise on
content. Bank-specific parsers turn raw rows into :class:`Transaction`
values (sign inference, year resolution, filtering).
"""

from __future__ import annotations

import calendar
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import ClassVar

from ..models import StatementKind, StatementPeriod, Transaction, quantize_amount
from ..settings import LedgerSettings

MONTHS: dict[str, int] = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_DAY_RE = re.compile(r"^\d{1,2}$")
_AMOUNT_RE = re.compile(r"^(\d[\d,]*\.\d{2})(CR)?$", re.IGNORECASE)


class TokenKind(StrEnum):
    DATE = "DATE"
    AMOUNT = "AMOUNT"
    WORD = "WORD"
    BREAK = "BREAK"


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    day: int = 0
    month: int = 0
    value: Decimal | None = None
    credit: bool = False

    @property
    def starts_with_letter(self) -> bool:
        return bool(self.text) and self.text[0].isascii() and self.text[0].isalpha()


def parse_amount(text: str) -> Decimal:
    """Parse ``"1,234.56"`` (optionally suffixed with ``CR``) into a Decimal."""

    cleaned = text.strip()
    if cleaned.upper().endswith("CR"):
        cleaned = cleaned[:-2].strip()
    try:
        return quantize_amount(Decimal(cleaned.replace(",", "")))
    except InvalidOperation as exc:
        raise ValueError(f"not an amount: {text!r}") from exc


def _page_tokens(text: str) -> Iterator[Token]:
    words = text.split()
    i = 0
    while i < len(words):
        w = words[i]
        nxt = words[i + 1] if i + 1 < len(words) else None
        if _DAY_RE.match(w) and nxt is not None and nxt.lower() in MONTHS:
            yield Token(
                TokenKind.DATE, f"{w} {nxt}", day=int(w), month=MONTHS[nxt.lower()]
            )
            i += 2
            continue
        m = _AMOUNT_RE.match(w)
        if m:
            credit = m.group(2) is not None
            text_ = w
            # A detached "CR" marker belongs to the preceding amount.
            if not credit and nxt is not None and nxt.upper() == "CR":
                credit = True
                text_ = f"{w} {nxt}"
                i += 1
            yield Token(TokenKind.AMOUNT, text_, value=parse_amount(m.group(1)), credit=credit)
            i += 1
            continue
        yield Token(TokenKind.WORD, w)
        i += 1


def tokenize(text: str | Sequence[str]) -> list[Token]:
    """Tokenize one page of text, or several pages separated by ``BREAK``."""

    pages = [text] if isinstance(text, str) else list(text)
    tokens: list[Token] = []
    for n, page in enumerate(pages):
        if n:
            tokens.append(Token(TokenKind.BREAK, ""))
        tokens.extend(_page_tokens(page))
    return tokens


def _join(tokens: Sequence[Token]) -> str:
    return " ".join(t.text for t in tokens if t.text)


# ---------------------------------------------------------------------------
# Row matchers
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BankRow:
    date_token: Token
    description: str
    amount: Decimal
    balance: Decimal
    detail: str
    raw_text: str


@dataclass(frozen=True, slots=True)
class CardRow:
    post_date_token: Token
    txn_date_token: Token
    description: str
    amount: Decimal
    is_credit: bool
    raw_text: str


# Phrases that end a bank row's trailing detail (page footers).
BANK_STOP_PHRASES: tuple[tuple[str, str], ...] = (("please", "note"), ("united", "overseas"))


class _BankState(StrEnum):
    IDLE = "IDLE"
    DESCRIPTION = "DESCRIPTION"
    AMOUNT = "AMOUNT"
    DETAIL = "DETAIL"


class BankRowMatcher:
    """Match bank-account rows in a token stream."""

    def __init__(self, stop_phrases: Sequence[tuple[str, str]] = BANK_STOP_PHRASES) -> None:
        self._stops = tuple((a.lower(), b.lower()) for a, b in stop_phrases)

    def _is_stop(self, tokens: Sequence[Token], i: int) -> bool:
        tok = tokens[i]
        if tok.kind is not TokenKind.WORD:
            return False
        low = tok.text.lower()
        nxt = tokens[i + 1].text.lower() if i + 1 < len(tokens) else ""
        for first, second in self._stops:
            if low.startswith(first + second):
                return True
            if low == first and nxt.startswith(second):
                return True
        return False

    def match(self, tokens: Sequence[Token]) -> list[BankRow]:
        rows: list[BankRow] = []
        state = _BankState.IDLE
        date_tok: Token | None = None
        desc: list[Token] = []
        amount_tok: Token | None = None
        balance_tok: Token | None = None
        detail: list[Token] = []

        def _emit() -> None:
            assert date_tok is not None and amount_tok is not None and balance_tok is not None
            assert amount_tok.value is not None and balance_tok.value is not None
            rows.append(
                BankRow(
                    date_token=date_tok,
                    description=_join(desc),
                    amount=amount_tok.value,
                    balance=balance_tok.value,
                    detail=_join(detail),
                    raw_text=_join([date_tok, *desc, amount_tok, balance_tok, *detail]),
                )
            )

        i = 0
        while i < len(tokens):
            tok = tokens[i]
            if state is _BankState.IDLE:
                if tok.kind is TokenKind.DATE:
                    date_tok, desc, amount_tok, balance_tok, detail = tok, [], None, None, []
                    state = _BankState.DESCRIPTION
                i += 1
                continue

            if state is _BankState.DESCRIPTION:
                if tok.kind is TokenKind.DATE:
                    date_tok, desc = tok, []
                elif tok.kind is TokenKind.WORD:
                    if not desc and not tok.starts_with_letter:
                        state = _BankState.IDLE
                    else:
                        desc.append(tok)
                elif tok.kind is TokenKind.AMOUNT:
                    if desc:
                        amount_tok = tok
                        state = _BankState.AMOUNT
                    else:
                        state = _BankState.IDLE
                else:
                    state = _BankState.IDLE
                i += 1
                continue

            if state is _BankState.AMOUNT:
                if tok.kind is TokenKind.AMOUNT:
                    balance_tok = tok
                    state = _BankState.DETAIL
                elif tok.kind is TokenKind.WORD:
                    # Not a row end after all: the number belongs to the description.
                    assert amount_tok is not None
                    desc.extend([amount_tok, tok])
                    amount_tok = None
                    state = _BankState.DESCRIPTION
                elif tok.kind is TokenKind.DATE:
                    date_tok, desc, amount_tok = tok, [], None
                    state = _BankState.DESCRIPTION
                else:
                    state = _BankState.IDLE
                i += 1
                continue

            # DETAIL
            if tok.kind is TokenKind.BREAK:
                _emit()
                state = _BankState.IDLE
                i += 1
                continue
            if tok.kind is TokenKind.DATE:
                nxt = tokens[i + 1] if i + 1 < len(tokens) else None
                if nxt is not None and nxt.kind is TokenKind.WORD and nxt.starts_with_letter:
                    _emit()
                    state = _BankState.IDLE
                    continue  # reprocess the date in IDLE
                detail.append(tok)
                i += 1
                continue
            if self._is_stop(tokens, i):
                _emit()
                state = _BankState.IDLE
                i += 1
                continue
            detail.append(tok)
            i += 1

        if state is _BankState.DETAIL:
            _emit()
        return rows


class _CardState(StrEnum):
    IDLE = "IDLE"
    POSTED = "POSTED"
    DESCRIPTION = "DESCRIPTION"


class CardRowMatcher:
    """Match credit-card rows in a token stream."""

    def match(self, tokens: Sequence[Token]) -> list[CardRow]:
        rows: list[CardRow] = []
        state = _CardState.IDLE
        post_tok: Token | None = None
        txn_tok: Token | None = None
        desc: list[Token] = []

        i = 0
        while i < len(tokens):
            tok = tokens[i]
            if state is _CardState.IDLE:
                if tok.kind is TokenKind.DATE:
                    post_tok = tok
                    state = _CardState.POSTED
                i += 1
                continue

            if state is _CardState.POSTED:
                if tok.kind is TokenKind.DATE:
                    txn_tok, desc = tok, []
                    state = _CardState.DESCRIPTION
                else:
                    state = _CardState.IDLE
                i += 1
                continue

            # DESCRIPTION
            if tok.kind is TokenKind.BREAK:
                state = _CardState.IDLE
                i += 1
                continue
            if tok.kind is TokenKind.DATE:
                nxt = tokens[i + 1] if i + 1 < len(tokens) else None
                if nxt is not None and nxt.kind is TokenKind.DATE:
                    # An unfinished row followed by a fresh date pair: restart there.
                    state = _CardState.IDLE
                    continue
                desc.append(tok)
                i += 1
                continue
            if tok.kind is TokenKind.AMOUNT:
                if desc:
                    assert post_tok is not None and txn_tok is not None and tok.value is not None
                    rows.append(
                        CardRow(
                            post_date_token=post_tok,
                            txn_date_token=txn_tok,
                            description=_join(desc),
                            amount=tok.value,
                            is_credit=tok.credit,
                            raw_text=_join([post_tok, txn_tok, *desc, tok]),
                        )
                    )
                state = _CardState.IDLE
                i += 1
                continue
            desc.append(tok)
            i += 1

        return rows


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def resolve_year(day: int, month: int, period: StatementPeriod) -> date | None:
    """Resolve a year-less ``day month`` against the statement period.

    Defaults to the period's end year. When the period spans a year boundary
    and ``month`` is on or after the start month, the start year is used.
    Returns ``None`` for impossible calendar dates.
    """

    year = period.end.year
    if period.spans_year_boundary and month >= period.start.month:
        year = period.start.year
    try:
        return date(year, month, day)
    except ValueError:
        return None


def months_before(d: date, months: int) -> date:
    """Return ``d`` shifted back by ``months``, clamping the day to month end."""

    total = d.year * 12 + (d.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    return date(year, month, min(d.day, calendar.monthrange(year, month)[1]))


# ---------------------------------------------------------------------------
# Parser contract
# ---------------------------------------------------------------------------


class StatementParser(ABC):
    """One bank's statement format.

    Subclasses set ``bank_id``/``bank_name`` and implement format detection
    and row conversion. Instances are stateless apart from their settings, so
    parsing the same pages twice yields identical results.
    """

    bank_id: ClassVar[str]
    bank_name: ClassVar[str]

    def __init__(self, settings: LedgerSettings | None = None) -> None:
        self.settings = settings or LedgerSettings()

    @abstractmethod
    def confidence(self, first_page_text: str) -> float:
        """Return how likely it is that this parser handles the statement (0..1)."""

    @abstractmethod
    def detect_statement_type(self, text: str) -> StatementKind: ...

    def extract_period(self, text: str) -> StatementPeriod:
        today = date.today()
        return StatementPeriod(start=today, end=today)

    @abstractmethod
    def parse_transactions(
        self,
        pages: Sequence[str],
        kind: StatementKind,
        period: StatementPeriod,
        *,
        statement_id: str = "",
    ) -> list[Transaction]: ...

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"{type(self).__name__}(bank_id={self.bank_id!r})"


__all__ = [
    "MONTHS",
    "TokenKind",
    "Token",
    "tokenize",
    "parse_amount",
    "BankRow",
    "CardRow",
    "BankRowMatcher",
    "CardRowMatcher",
    "BANK_STOP_PHRASES",
    "resolve_year",
    "months_before",
    "StatementParser",
]
