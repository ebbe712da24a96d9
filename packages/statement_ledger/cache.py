"""In-memory caches backing the embedding classifier.

Both caches are authoritative for the running session and are loaded once
from :class:`~statement_ledger.persistence.LedgerStore`. Entries never
expire; only :meth:`clear` removes them.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass

import numpy as np

from .models import CacheKey


class EmbeddingCache:
    """Unit vectors keyed by ``(description, vendor)``."""

    def __init__(self) -> None:
        self._vectors: dict[CacheKey, np.ndarray] = {}

    def get(self, key: CacheKey) -> np.ndarray | None:
        return self._vectors.get(key)

    def put(self, key: CacheKey, vector: np.ndarray) -> None:
        self._vectors[key] = vector

    def has(self, key: CacheKey) -> bool:
        return key in self._vectors

    def load_from_store(self, vectors: Mapping[CacheKey, np.ndarray]) -> int:
        """Merge persisted vectors without overwriting entries made this session."""

        added = 0
        for key, vec in vectors.items():
            if key not in self._vectors:
                self._vectors[key] = vec
                added += 1
        return added

    def clear(self) -> None:
        self._vectors.clear()

    def __len__(self) -> int:
        return len(self._vectors)

    def __contains__(self, key: object) -> bool:
        return key in self._vectors


@dataclass(slots=True)
class CorrectionEntry:
    category: str
    vector: np.ndarray | None = None


class CorrectionStore:
    """User corrections: raw description -> (category, description vector)."""

    def __init__(self) -> None:
        self._entries: dict[str, CorrectionEntry] = {}

    def get_category(self, description: str) -> str | None:
        entry = self._entries.get(description)
        return entry.category if entry is not None else None

    def set(self, description: str, category: str, vector: np.ndarray | None = None) -> None:
        # Last write wins.
        self._entries[description] = CorrectionEntry(category=category, vector=vector)

    def set_vector(self, description: str, vector: np.ndarray) -> None:
        entry = self._entries.get(description)
        if entry is not None:
            entry.vector = vector

    def entries(self) -> Iterator[tuple[str, CorrectionEntry]]:
        return iter(list(self._entries.items()))

    def missing_vectors(self) -> list[str]:
        return [d for d, e in self._entries.items() if e.vector is None]

    def mappings(self) -> dict[str, str]:
        return {d: e.category for d, e in self._entries.items()}

    def load_from_store(self, mappings: Mapping[str, str]) -> None:
        for desc, cat in mappings.items():
            if desc not in self._entries:
                self._entries[desc] = CorrectionEntry(category=cat)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["EmbeddingCache", "CorrectionEntry", "CorrectionStore"]
