from collections.abc import Sequence
from pathlib import Path

import pytest

from statement_ledger.ingest import (
    UnsupportedFormatError,
    load_statements,
    parse_pages,
    parse_statement,
    statement_id_for,
)
from statement_ledger.models import StatementKind, StatementPeriod, Transaction
from statement_ledger.parsers.base import StatementParser
from statement_ledger.parsers.registry import ParserRegistry, default_registry
from statement_ledger.parsers.uob import UOBParser
from statement_ledger.parsers.vendors import extract_counterparty
from tests.helpers.statements import (
    BANK_PAGE,
    CARD_PAGE,
    UNSUPPORTED_PAGE,
    YEAR_END_PAGES,
    write_pages,
)


class _FixedParser(StatementParser):
    bank_id = "fixed"
    bank_name = "Fixed Test Bank"
    score = 0.7

    def confidence(self, first_page_text: str) -> float:
        return self.score

    def detect_statement_type(self, text: str) -> StatementKind:
        return StatementKind.bank_account

    def parse_transactions(
        self,
        pages: Sequence[str],
        kind: StatementKind,
        period: StatementPeriod,
        *,
        statement_id: str = "",
    ) -> list[Transaction]:
        return []


# ---- registry ----------------------------------------------------------------


def test_default_registry_selects_uob():
    reg = default_registry()
    assert reg.supported_banks() == [("uob", "United Overseas Bank (UOB)")]
    assert isinstance(reg.select(BANK_PAGE), UOBParser)
    assert reg.select(UNSUPPORTED_PAGE) is None


def test_selection_respects_minimum_confidence():
    strict = ParserRegistry(min_confidence=0.9)
    strict.register(UOBParser())
    assert strict.select(BANK_PAGE) is not None  # 0.95
    assert strict.select(CARD_PAGE) is None  # 0.85


def test_most_confident_parser_wins():
    reg = ParserRegistry()
    reg.register(_FixedParser())
    reg.register(UOBParser())
    assert isinstance(reg.select(BANK_PAGE), UOBParser)
    assert isinstance(reg.select("One Account Singapore"), _FixedParser)  # 0.7 > 0.6


def test_register_replaces_same_bank_id():
    reg = ParserRegistry()
    reg.register(UOBParser())
    reg.register(UOBParser())
    assert len(reg) == 1


# ---- vendors -----------------------------------------------------------------


@pytest.mark.parametrize(
    ("detail", "expected"),
    [
        ("PIB2412011234567 OTHR JOHN TAN WEI MING", "John Tan Wei"),
        ("THE COFFEE BEAN PTE LTD", "Coffee Bean"),
        ("xxxxxx1234 SG", None),
        ("", None),
    ],
)
def test_extract_counterparty(detail: str, expected: str | None):
    assert extract_counterparty(detail) == expected


# ---- ingest ------------------------------------------------------------------


def test_parse_pages_builds_statement():
    st = parse_pages([BANK_PAGE], source_name="dec.pdf")
    assert st.bank_id == "uob"
    assert st.kind is StatementKind.bank_account
    assert st.source_name == "dec.pdf"
    assert len(st.transactions) == 3
    assert st.id == statement_id_for([BANK_PAGE])
    assert all(t.statement_id == st.id for t in st.transactions)


def test_statement_id_is_stable_and_content_based():
    assert statement_id_for(["a", "b"]) == statement_id_for(["a", "b"])
    assert statement_id_for(["a", "b"]) != statement_id_for(["ab"])


def test_kind_and_period_come_from_first_page():
    st = parse_pages(list(YEAR_END_PAGES))
    assert st.period.start.year == 2024 and st.period.end.year == 2025
    assert len(st.transactions) == 2


def test_unsupported_format_lists_supported_banks():
    with pytest.raises(UnsupportedFormatError) as excinfo:
        parse_pages([UNSUPPORTED_PAGE], source_name="dbs.pdf")
    msg = str(excinfo.value)
    assert "dbs.pdf" in msg
    assert "United Overseas Bank (UOB)" in msg
    assert excinfo.value.supported == [("uob", "United Overseas Bank (UOB)")]


def test_parse_statement_reads_text_files(tmp_path: Path):
    path = write_pages(tmp_path / "uob.txt", *YEAR_END_PAGES)
    st = parse_statement(path)
    assert st.source_name == "uob.txt"
    assert [t.description for t in st.transactions] == [
        "Misc Debit SHOPEE SINGAPORE",
        "Misc Debit NETFLIX.COM",
    ]


def test_load_statements_preserves_order(tmp_path: Path):
    card = write_pages(tmp_path / "card.txt", CARD_PAGE)
    bank = write_pages(tmp_path / "bank.txt", BANK_PAGE)
    statements = load_statements([card, bank], concurrency=2)
    assert [s.kind for s in statements] == [StatementKind.credit_card, StatementKind.bank_account]


def test_load_statements_propagates_first_failure(tmp_path: Path):
    good = write_pages(tmp_path / "bank.txt", BANK_PAGE)
    with pytest.raises(FileNotFoundError):
        load_statements([good, tmp_path / "missing.txt"])
