"""Correction propagation: find transactions that likely need the same fix.

Given a target transaction that was just corrected, scan every other visible
transaction and collect those whose vector is at least ``similarity_threshold``
close to the target's. The scan prefers cached vectors; when too few are
cached it computes the rest in short time-boxed batches, yielding to the event
loop between batches. Results are proposals only; nothing is applied here.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from .classifier import EmbeddingClassifier, cosine_similarity
from .logging_setup import get_logger
from .models import CacheKey, SimilarityCandidate, Transaction

_log = get_logger("statement_ledger.similarity")


@dataclass(frozen=True, slots=True)
class SimilarityScan:
    """Outcome of a cache-only scan."""

    candidates: list[SimilarityCandidate] = field(default_factory=list)
    eligible: int = 0
    cached: int = 0
    target_cached: bool = False

    @property
    def coverage(self) -> float:
        """Share of eligible transactions that had a cached vector."""

        if self.eligible == 0:
            return 1.0
        return self.cached / self.eligible


def _eligible_indices(target_index: int, transactions: Sequence[Transaction]) -> list[int]:
    return [i for i, tx in enumerate(transactions) if i != target_index and not tx.hidden]


def _check_index(target_index: int, transactions: Sequence[Transaction]) -> None:
    if not 0 <= target_index < len(transactions):
        raise IndexError(
            f"target index {target_index} out of range ({len(transactions)} transactions)"
        )


def find_similar_cached(
    target_index: int,
    transactions: Sequence[Transaction],
    classifier: EmbeddingClassifier,
    *,
    threshold: float | None = None,
) -> SimilarityScan:
    """Scan using only cached vectors; never computes anything."""

    _check_index(target_index, transactions)
    thr = classifier.settings.similarity_threshold if threshold is None else threshold
    target_vec = classifier.cached_vector(CacheKey.for_transaction(transactions[target_index]))

    eligible = _eligible_indices(target_index, transactions)
    cached = 0
    candidates: list[SimilarityCandidate] = []
    for i in eligible:
        vec = classifier.cached_vector(CacheKey.for_transaction(transactions[i]))
        if vec is None:
            continue
        cached += 1
        if target_vec is None:
            continue
        score = cosine_similarity(target_vec, vec)
        if score >= thr:
            candidates.append(
                SimilarityCandidate(index=i, transaction=transactions[i], similarity=score)
            )

    candidates.sort(key=lambda c: (-c.similarity, c.index))
    return SimilarityScan(
        candidates=candidates,
        eligible=len(eligible),
        cached=cached,
        target_cached=target_vec is not None,
    )


async def find_similar(
    target_index: int,
    transactions: Sequence[Transaction],
    classifier: EmbeddingClassifier,
    *,
    threshold: float | None = None,
    min_coverage: float | None = None,
    batch_size: int | None = None,
    time_budget: float | None = None,
) -> list[SimilarityCandidate]:
    """Return candidates sorted by descending similarity.

    Returns an empty list when the classifier is not ready.
    """

    _check_index(target_index, transactions)
    if not classifier.ready:
        return []
    s = classifier.settings
    coverage_floor = s.min_cache_coverage if min_coverage is None else min_coverage
    size = batch_size or s.batch_size
    budget = s.batch_time_budget if time_budget is None else time_budget

    await classifier.vector(CacheKey.for_transaction(transactions[target_index]))
    scan = find_similar_cached(target_index, transactions, classifier, threshold=threshold)
    if scan.coverage >= coverage_floor:
        return scan.candidates

    missing = list(
        dict.fromkeys(
            CacheKey.for_transaction(transactions[i])
            for i in _eligible_indices(target_index, transactions)
            if classifier.cached_vector(CacheKey.for_transaction(transactions[i])) is None
        )
    )
    _log.debug(
        "similarity:fill_cache coverage=%.2f missing=%s", scan.coverage, len(missing)
    )
    pos = 0
    batches = 0
    while pos < len(missing):
        deadline = time.monotonic() + budget
        # At least one chunk per batch, then keep going until the budget is spent.
        while pos < len(missing):
            chunk = missing[pos : pos + size]
            classifier.embed_missing(chunk)
            pos += len(chunk)
            if time.monotonic() >= deadline:
                break
        batches += 1
        await asyncio.sleep(0)

    final = find_similar_cached(target_index, transactions, classifier, threshold=threshold)
    _log.debug(
        "similarity:done batches=%s candidates=%s", batches, len(final.candidates)
    )
    return final.candidates


__all__ = ["SimilarityScan", "find_similar_cached", "find_similar"]
