"""Manual corrections: apply, learn, and propagate to similar transactions."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field

from .categories import validate_category
from .classifier import EmbeddingClassifier
from .logging_setup import get_logger
from .models import CategorySource, SimilarityCandidate, Transaction
from .similarity import find_similar

_log = get_logger("statement_ledger.review")

# Receives the proposed candidates and the category; returns the transaction
# indices the user confirmed.
ConfirmFn = Callable[[Sequence[SimilarityCandidate], str], Iterable[int]]


@dataclass(frozen=True, slots=True)
class CorrectionOutcome:
    target: Transaction
    category: str
    candidates: list[SimilarityCandidate] = field(default_factory=list)
    applied: list[Transaction] = field(default_factory=list)


def apply_corrections(
    pairs: Iterable[tuple[Transaction, str]],
    classifier: EmbeddingClassifier | None = None,
) -> list[Transaction]:
    """Set user categories on transactions and learn each correction.

    All categories are validated before any transaction is touched, so an
    unknown label (``ValueError``) leaves every transaction unchanged.
    """

    validated = [(tx, validate_category(cat)) for tx, cat in pairs]
    changed: list[Transaction] = []
    for tx, label in validated:
        tx.category = label
        tx.category_source = CategorySource.user
        if classifier is not None:
            classifier.learn(tx.description, label)
        changed.append(tx)
    if changed:
        _log.info("review:applied count=%s", len(changed))
    return changed


async def correct_and_propagate(
    transactions: Sequence[Transaction],
    target_index: int,
    category: str,
    classifier: EmbeddingClassifier,
    *,
    confirm: ConfirmFn,
    threshold: float | None = None,
) -> CorrectionOutcome:
    """Correct one transaction, then apply the same category to confirmed look-alikes.

    Candidates are only applied when ``confirm`` returns their index.
    """

    label = validate_category(category)
    target = transactions[target_index]
    apply_corrections([(target, label)], classifier)

    candidates = await find_similar(target_index, transactions, classifier, threshold=threshold)
    if not candidates:
        return CorrectionOutcome(target=target, category=label, applied=[target])

    chosen = set(confirm(candidates, label))
    picked = [(c.transaction, label) for c in candidates if c.index in chosen]
    applied = apply_corrections(picked, classifier)
    _log.info(
        "review:propagated candidates=%s confirmed=%s", len(candidates), len(applied)
    )
    return CorrectionOutcome(
        target=target, category=label, candidates=candidates, applied=[target, *applied]
    )


__all__ = ["ConfirmFn", "CorrectionOutcome", "apply_corrections", "correct_and_propagate"]
