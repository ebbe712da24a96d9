import asyncio
from datetime import date
from decimal import Decimal

import pytest

from statement_ledger.classifier import EmbeddingClassifier
from statement_ledger.models import CategorySource, StatementKind, Transaction
from statement_ledger.review import apply_corrections, correct_and_propagate
from statement_ledger.similarity import find_similar, find_similar_cached
from tests.helpers.fake_embedder import FakeEmbedder

EXEMPLARS = {"Transport": ("bus fare",), "Subscriptions": ("netflix",)}


def _tx(description: str, **kw) -> Transaction:
    return Transaction(
        date=date(2025, 11, 12),
        description=description,
        amount=Decimal("-15.20"),
        kind=StatementKind.credit_card,
        **kw,
    )


def _transactions() -> list[Transaction]:
    return [
        _tx("GRAB* RIDE 12345"),
        _tx("GRAB* RIDE 67890"),
        _tx("NETFLIX.COM SINGAPORE"),
        _tx("GRAB* RIDE 55555", hidden=True),
        # Shares two of three tokens: similarity 2/sqrt(6), about 0.816.
        _tx("GRAB* RIDE 777 PROMO"),
    ]


def _classifier(emb: FakeEmbedder | None = None) -> EmbeddingClassifier:
    clf = EmbeddingClassifier(emb or FakeEmbedder(), exemplars=EXEMPLARS)
    clf.initialize()
    return clf


# ---- similarity ----------------------------------------------------------------


def test_find_similar_returns_visible_lookalikes_above_threshold():
    txs = _transactions()
    found = asyncio.run(find_similar(0, txs, _classifier()))
    assert [c.index for c in found] == [1]
    assert found[0].transaction is txs[1]
    assert found[0].similarity == pytest.approx(1.0)

    back = asyncio.run(find_similar(1, txs, _classifier()))
    assert [c.index for c in back] == [0]


def test_lower_threshold_includes_weaker_matches_sorted_by_similarity():
    found = asyncio.run(find_similar(0, _transactions(), _classifier(), threshold=0.8))
    assert [c.index for c in found] == [1, 4]
    assert found[0].similarity > found[1].similarity


def test_ties_are_ordered_by_index():
    txs = [_tx("GRAB RIDE"), _tx("GRAB RIDE 2"), _tx("GRAB RIDE 3")]
    found = asyncio.run(find_similar(2, txs, _classifier()))
    assert [c.index for c in found] == [0, 1]


def test_low_cache_coverage_triggers_batched_fill():
    txs = _transactions()
    clf = _classifier()

    before = find_similar_cached(0, txs, clf)
    assert before.eligible == 3
    assert before.cached == 0
    assert before.coverage == 0.0
    assert not before.target_cached
    assert before.candidates == []

    found = asyncio.run(find_similar(0, txs, clf, batch_size=1))
    assert [c.index for c in found] == [1]

    after = find_similar_cached(0, txs, clf)
    assert after.coverage == 1.0
    assert after.target_cached


def test_sufficient_coverage_uses_cache_only():
    emb = FakeEmbedder()
    clf = _classifier(emb)
    found = asyncio.run(find_similar(0, _transactions(), clf, min_coverage=0.0))
    assert found == []
    # Exemplars plus the target vector; nothing else was computed.
    assert emb.calls == 2


def test_not_ready_and_bad_index():
    txs = _transactions()
    idle = EmbeddingClassifier(FakeEmbedder(), exemplars=EXEMPLARS)
    assert asyncio.run(find_similar(0, txs, idle)) == []
    with pytest.raises(IndexError):
        asyncio.run(find_similar(9, txs, idle))
    with pytest.raises(IndexError):
        find_similar_cached(-1, txs, idle)


def test_nothing_eligible_means_full_coverage():
    scan = find_similar_cached(0, [_tx("ONLY")], _classifier())
    assert scan.coverage == 1.0
    assert scan.candidates == []


# ---- review ------------------------------------------------------------------


def test_apply_corrections_validates_everything_first():
    a, b = _tx("A"), _tx("B")
    with pytest.raises(ValueError):
        apply_corrections([(a, "Shopping"), (b, "Pets")])
    assert a.category == "Other" and a.category_source is CategorySource.rule

    changed = apply_corrections([(a, "shopping")])
    assert changed == [a]
    assert (a.category, a.category_source) == ("Shopping", CategorySource.user)


def test_correct_and_propagate_applies_only_confirmed_candidates():
    txs = _transactions()
    clf = _classifier()
    seen: list[tuple[list[int], str]] = []

    def confirm(candidates, category):
        seen.append(([c.index for c in candidates], category))
        return [1]

    outcome = asyncio.run(
        correct_and_propagate(txs, 0, "food & dining", clf, confirm=confirm, threshold=0.8)
    )

    assert seen == [([1, 4], "Food & Dining")]
    assert outcome.category == "Food & Dining"
    assert outcome.applied == [txs[0], txs[1]]
    assert [(t.category, t.category_source) for t in txs[:2]] == [
        ("Food & Dining", CategorySource.user)
    ] * 2
    assert txs[4].category == "Other"
    assert clf.corrections() == {
        "GRAB* RIDE 12345": "Food & Dining",
        "GRAB* RIDE 67890": "Food & Dining",
    }


def test_correct_without_candidates_skips_confirmation():
    txs = [_tx("NETFLIX.COM SINGAPORE"), _tx("GRAB RIDE")]

    def confirm(candidates, category):
        raise AssertionError("confirm should not be called")

    outcome = asyncio.run(
        correct_and_propagate(txs, 0, "Entertainment", _classifier(), confirm=confirm)
    )
    assert outcome.candidates == []
    assert outcome.applied == [txs[0]]


def test_unknown_category_is_rejected_before_any_change():
    txs = _transactions()
    with pytest.raises(ValueError):
        asyncio.run(correct_and_propagate(txs, 0, "Pets", _classifier(), confirm=lambda c, k: []))
    assert txs[0].category_source is CategorySource.rule


def test_backend_failure_after_ready_still_applies_the_correction():
    emb = FakeEmbedder()
    clf = _classifier(emb)
    emb.fail = True
    txs = _transactions()

    assert asyncio.run(find_similar(0, txs, clf)) == []
    outcome = asyncio.run(
        correct_and_propagate(txs, 0, "Transport", clf, confirm=lambda c, k: [x.index for x in c])
    )
    assert outcome.candidates == []
    assert outcome.applied == [txs[0]]
    assert (txs[0].category, txs[0].category_source) == ("Transport", CategorySource.user)
    assert clf.corrections() == {"GRAB* RIDE 12345": "Transport"}
