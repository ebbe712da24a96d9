import contextlib
from datetime import date
from decimal import Decimal

import pytest
from prompt_toolkit import PromptSession
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.output import DummyOutput

from statement_ledger.categories import CATEGORIES
from statement_ledger.models import SimilarityCandidate, StatementKind, Transaction
from statement_ledger.term_ui import confirm_candidates, parse_selection, select_category


@contextlib.contextmanager
def pipe_session():
    with create_pipe_input() as pipe:
        sess = PromptSession(input=pipe, output=DummyOutput())
        yield pipe, sess


def _candidates(*indices: int) -> list[SimilarityCandidate]:
    return [
        SimilarityCandidate(
            index=i,
            transaction=Transaction(
                date=date(2025, 11, 12),
                description=f"GRAB* RIDE {i}",
                amount=Decimal("-15.20"),
                kind=StatementKind.credit_card,
            ),
            similarity=0.9,
        )
        for i in indices
    ]


def test_select_category_accepts_default_with_enter():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert select_category(CATEGORIES, default="Groceries", session=sess) == "Groceries"


def test_select_category_returns_canonical_spelling():
    with pipe_session() as (pipe, sess):
        pipe.send_text("food & dining\r")
        assert select_category(CATEGORIES, default="Other", session=sess) == "Food & Dining"


def test_select_category_rejects_unknown_until_corrected():
    with pipe_session() as (pipe, sess):
        # Invalid entry stays in the buffer; Ctrl-A, Ctrl-K clears it.
        pipe.send_text("Pets\r")
        pipe.send_text("\x01\x0bRent\r")
        assert select_category(CATEGORIES, default="Other", session=sess) == "Rent"


def test_confirm_candidates_all_and_subset():
    with pipe_session() as (pipe, sess):
        pipe.send_text("all\r")
        assert confirm_candidates(_candidates(1, 4), "Transport", session=sess) == [1, 4]
    with pipe_session() as (pipe, sess):
        pipe.send_text("4\r")
        assert confirm_candidates(_candidates(1, 4), "Transport", session=sess) == [4]


def test_confirm_candidates_without_candidates_does_not_prompt():
    assert confirm_candidates([], "Transport") == []


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("", []),
        ("none", []),
        ("ALL", [1, 4, 7]),
        ("7, 1", [7, 1]),
        ("1 4 1", [1, 4]),
    ],
)
def test_parse_selection(text: str, expected: list[int]):
    assert parse_selection(text, {1, 4, 7}) == expected


@pytest.mark.parametrize("text", ["2", "one", "1,x"])
def test_parse_selection_rejects_invalid(text: str):
    with pytest.raises(ValueError):
        parse_selection(text, {1, 4, 7})
