"""Embedding classifier: the semantic and user-learned tiers of the cascade.

:class:`EmbeddingClassifier` is an explicit service object. Callers create
one, call :meth:`~EmbeddingClassifier.initialize` and pass it wherever
classification or similarity search is needed. While it is not ready every
entry point degrades quietly (``None`` or ``0``) so callers keep the rule
engine's categories.

Scoring
-------
For an input vector ``v``:

1. An exact match of the raw description in the correction table returns the
   learned category with confidence ``1.0`` and computes no vector.
2. Otherwise ``v`` is compared against every learned correction vector (each
   score gets ``correction_boost`` added) and every category exemplar vector.
3. The best score below ``confidence_threshold`` yields ``("Other", score)``;
   otherwise ``(category, min(score, 1.0))``.

All vectors are unit length, so the dot product is the cosine similarity.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

import numpy as np
from sqlalchemy.exc import SQLAlchemyError

from .cache import CorrectionStore, EmbeddingCache
from .categories import CATEGORIES, CATEGORY_EXEMPLARS, OTHER, validate_category
from .logging_setup import get_logger
from .models import CacheKey, CategorySource, ClassificationResult, Transaction
from .persistence import LedgerStore, WriteBehindQueue
from .settings import DEFAULT_EMBEDDING_MODEL, LedgerSettings

_log = get_logger("statement_ledger.classifier")


class Embedder(Protocol):
    def embed(self, texts: Sequence[str]) -> np.ndarray:
        """Return one row per text; rows are unit-normalized."""
        ...


class SentenceTransformerEmbedder:
    """sentence-transformers backend, loaded on first use."""

    def __init__(self, model_name: str = DEFAULT_EMBEDDING_MODEL) -> None:
        self.model_name = model_name
        self._model: Any = None

    def _get_model(self) -> Any:
        if self._model is None:
            # Heavy import (torch); only paid when the classifier initializes.
            from sentence_transformers import SentenceTransformer

            _log.info("classifier:loading_model name=%s", self.model_name)
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        model = self._get_model()
        out = model.encode(
            list(texts),
            normalize_embeddings=True,
            convert_to_numpy=True,
            show_progress_bar=False,
        )
        return np.asarray(out, dtype=np.float32)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two unit vectors (their dot product)."""

    return float(np.dot(a, b))


def _normalize_rows(mat: np.ndarray) -> np.ndarray:
    mat = np.atleast_2d(np.asarray(mat, dtype=np.float32))
    norms = np.linalg.norm(mat, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return mat / norms


class EmbeddingClassifier:
    """Semantic classifier with learned user corrections and a vector cache."""

    def __init__(
        self,
        embedder: Embedder | None = None,
        *,
        settings: LedgerSettings | None = None,
        store: LedgerStore | None = None,
        writer: WriteBehindQueue | None = None,
        exemplars: Mapping[str, Sequence[str]] = CATEGORY_EXEMPLARS,
    ) -> None:
        self.settings = settings or LedgerSettings()
        for cat, phrases in exemplars.items():
            if cat not in CATEGORIES or cat == OTHER:
                raise ValueError(f"exemplar category not in taxonomy: {cat!r}")
            if not phrases:
                raise ValueError(f"exemplar list for {cat!r} is empty")
        self._exemplars = dict(exemplars)
        self._injected_embedder = embedder
        self._embedder = embedder
        self._store = store
        self._writer = writer
        self._category_vectors: dict[str, np.ndarray] = {}
        self._ready = False

        self.cache = EmbeddingCache()
        self.correction_table = CorrectionStore()
        # Number of texts sent to the embedder; exposed for diagnostics.
        self.vectors_computed = 0

    # ---- lifecycle ---------------------------------------------------------

    @property
    def ready(self) -> bool:
        return self._ready

    def initialize(self) -> bool:
        """Load the model, exemplar vectors and persisted state.

        Returns ``ready``. A failing embedding backend leaves the classifier
        not ready; a failing store only loses persisted state.
        """

        if self._ready:
            return True
        embedder = self._embedder or SentenceTransformerEmbedder(self.settings.embedding_model)
        names = list(self._exemplars)
        texts = [". ".join(self._exemplars[n]) for n in names]
        try:
            vectors = _normalize_rows(embedder.embed(texts))
        except Exception:
            _log.warning("classifier:backend_unavailable", exc_info=True)
            return False
        self.vectors_computed += len(texts)
        self._embedder = embedder
        self._category_vectors = dict(zip(names, vectors, strict=True))

        self._load_persisted()
        self._fill_correction_vectors()
        self._ready = True
        _log.info(
            "classifier:ready categories=%s corrections=%s cached_vectors=%s",
            len(self._category_vectors),
            len(self.correction_table),
            len(self.cache),
        )
        return True

    def dispose(self) -> None:
        """Flush pending writes and release the model."""

        if self._writer is not None:
            self._writer.flush()
        self._ready = False
        self._category_vectors = {}
        self._embedder = self._injected_embedder

    def _load_persisted(self) -> None:
        if self._store is None:
            return
        # Vectors and corrections load independently.
        try:
            self.cache.load_from_store(self._store.load_vectors())
        except (SQLAlchemyError, OSError, ValueError):
            _log.warning("classifier:store_unavailable part=vectors", exc_info=True)
        try:
            self.correction_table.load_from_store(self._store.load_corrections())
        except (SQLAlchemyError, OSError, ValueError):
            _log.warning("classifier:store_unavailable part=corrections", exc_info=True)

    def _fill_correction_vectors(self) -> None:
        missing = self.correction_table.missing_vectors()
        if not missing:
            return
        keys = [CacheKey(description=d) for d in missing]
        vectors = self._vectors_for(keys)
        if vectors is None:
            return
        for desc, vec in zip(missing, vectors, strict=True):
            self.correction_table.set_vector(desc, vec)

    # ---- vectors -----------------------------------------------------------

    def _embed(self, texts: Sequence[str]) -> np.ndarray:
        assert self._embedder is not None
        # Unit length regardless of backend.
        out = _normalize_rows(self._embedder.embed(texts))
        self.vectors_computed += len(texts)
        return out

    def _persist(self, fn: Any, *args: Any, label: str) -> None:
        if self._store is None:
            return
        if self._writer is None:
            try:
                fn(*args)
            except (SQLAlchemyError, OSError):
                _log.warning("classifier:persist_failed op=%s", label, exc_info=True)
            return
        self._writer.submit(fn, *args, label=label)

    def _vectors_for(self, keys: Sequence[CacheKey]) -> list[np.ndarray] | None:
        """Return vectors for ``keys``, embedding cache misses in one call.

        ``None`` when the backend fails; callers keep what they already have.
        """

        missing: list[CacheKey] = []
        seen: set[CacheKey] = set()
        for k in keys:
            if k not in self.cache and k not in seen:
                missing.append(k)
                seen.add(k)
        if missing:
            try:
                vecs = self._embed([k.text for k in missing])
            except Exception:
                _log.warning("classifier:embed_failed texts=%s", len(missing), exc_info=True)
                return None
            fresh = dict(zip(missing, vecs, strict=True))
            for k, v in fresh.items():
                self.cache.put(k, v)
            if self._store is not None:
                self._persist(self._store.save_vectors, fresh, label="save_vectors")
        out: list[np.ndarray] = []
        for k in keys:
            vec = self.cache.get(k)
            assert vec is not None
            out.append(vec)
        return out

    def cached_vector(self, key: CacheKey) -> np.ndarray | None:
        return self.cache.get(key)

    def embed_missing(self, keys: Iterable[CacheKey]) -> int:
        """Compute and cache vectors for uncached ``keys``; returns how many."""

        if not self._ready:
            return 0
        todo = list(dict.fromkeys(k for k in keys if k not in self.cache))
        if todo and self._vectors_for(todo) is None:
            return 0
        return len(todo)

    async def vector(self, key: CacheKey) -> np.ndarray | None:
        """Vector for ``key``, computed on a miss.

        ``None`` when not ready or when the backend fails.
        """

        if not self._ready:
            return None
        vectors = self._vectors_for([key])
        return vectors[0] if vectors is not None else None

    # ---- scoring -----------------------------------------------------------

    def _score(self, vec: np.ndarray) -> ClassificationResult:
        best_cat = OTHER
        best = -1.0
        boost = self.settings.correction_boost
        for _desc, entry in self.correction_table.entries():
            if entry.vector is None:
                continue
            s = cosine_similarity(vec, entry.vector) + boost
            if s > best:
                best, best_cat = s, entry.category
        for cat, cvec in self._category_vectors.items():
            s = cosine_similarity(vec, cvec)
            if s > best:
                best, best_cat = s, cat
        if best < self.settings.confidence_threshold:
            return ClassificationResult(category=OTHER, confidence=best)
        return ClassificationResult(category=best_cat, confidence=min(best, 1.0))

    def _exact(self, description: str) -> ClassificationResult | None:
        cat = self.correction_table.get_category(description)
        if cat is None:
            return None
        return ClassificationResult(category=cat, confidence=1.0, source=CategorySource.user)

    def is_accepted(self, result: ClassificationResult) -> bool:
        return result.confidence >= self.settings.confidence_threshold

    def classify_cached(
        self, description: str, vendor: str | None = None
    ) -> ClassificationResult | None:
        """Fast path: never computes a vector; ``None`` on a cache miss."""

        if not self._ready:
            return None
        exact = self._exact(description)
        if exact is not None:
            return exact
        vec = self.cache.get(CacheKey(description=description, vendor=vendor))
        if vec is None:
            return None
        return self._score(vec)

    async def classify(
        self, description: str, vendor: str | None = None
    ) -> ClassificationResult | None:
        """Full cascade, computing the input vector when it is not cached."""

        if not self._ready:
            return None
        exact = self._exact(description)
        if exact is not None:
            return exact
        vec = await self.vector(CacheKey(description=description, vendor=vendor))
        if vec is None:
            return None
        return self._score(vec)

    # ---- bulk passes -------------------------------------------------------

    async def recategorize(
        self, transactions: Sequence[Transaction], *, batch_size: int | None = None
    ) -> int:
        """Re-score transactions in sequential batches.

        Hidden and user-categorized transactions are left alone. Only accepted
        results are applied; anything below the confidence threshold keeps
        its rule category. Returns the number of transactions whose category
        changed.
        """

        if not self._ready:
            _log.info("classifier:recategorize_skipped reason=not_ready")
            return 0
        size = batch_size or self.settings.batch_size
        eligible = [
            tx
            for tx in transactions
            if not tx.hidden and tx.category_source is not CategorySource.user
        ]
        changed = 0
        for start in range(0, len(eligible), size):
            batch = eligible[start : start + size]
            self.embed_missing(
                CacheKey.for_transaction(tx) for tx in batch if self._exact(tx.description) is None
            )
            for tx in batch:
                result = self.classify_cached(tx.description, tx.vendor)
                if result is None or not self.is_accepted(result):
                    continue
                if tx.category != result.category:
                    changed += 1
                tx.category = result.category
                tx.category_source = result.source
            await asyncio.sleep(0)
        _log.info("classifier:recategorized eligible=%s changed=%s", len(eligible), changed)
        return changed

    async def precompute(
        self, transactions: Sequence[Transaction], *, batch_size: int | None = None
    ) -> int:
        """Warm the vector cache for visible transactions; returns vectors computed."""

        if not self._ready:
            return 0
        size = batch_size or self.settings.batch_size
        keys = list(
            dict.fromkeys(
                CacheKey.for_transaction(tx)
                for tx in transactions
                if not tx.hidden and CacheKey.for_transaction(tx) not in self.cache
            )
        )
        computed = 0
        for start in range(0, len(keys), size):
            computed += self.embed_missing(keys[start : start + size])
            await asyncio.sleep(0)
        _log.debug("classifier:precomputed vectors=%s", computed)
        return computed

    # ---- corrections -------------------------------------------------------

    def learn(self, description: str, category: str) -> str:
        """Record a user correction and persist it.

        Returns the canonical category label. When the classifier is not
        ready, or the backend fails, the mapping is still stored; its vector
        is computed on the next :meth:`initialize`.
        """

        label = validate_category(category)
        vec = None
        if self._ready:
            vectors = self._vectors_for([CacheKey(description=description)])
            vec = vectors[0] if vectors is not None else None
        self.correction_table.set(description, label, vec)
        if self._store is not None:
            self._persist(
                self._store.save_corrections,
                self.correction_table.mappings(),
                label="save_corrections",
            )
        _log.info("classifier:learned description=%r category=%s", description[:50], label)
        return label

    def corrections(self) -> dict[str, str]:
        return self.correction_table.mappings()

    def clear(self) -> None:
        """Purge learned corrections and cached vectors, in memory and on disk."""

        self.correction_table.clear()
        self.cache.clear()
        if self._store is not None:
            self._persist(self._store.clear, label="clear")
        _log.info("classifier:cleared")


__all__ = [
    "Embedder",
    "SentenceTransformerEmbedder",
    "EmbeddingClassifier",
    "cosine_similarity",
]
