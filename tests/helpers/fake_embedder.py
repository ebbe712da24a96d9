"""Deterministic stand-in for the sentence-transformers backend.

Each distinct lower-case alphabetic token gets its own axis, assigned in the
order tokens are first seen, and a text embeds to the normalized indicator
vector of its tokens. Digits are not tokens, so ``"GRAB* RIDE 12345"`` and
``"GRAB* RIDE 67890"`` embed identically, and texts sharing no token are
exactly orthogonal. Tests reason about similarity as token overlap:
``|A & B| / sqrt(|A| * |B|)``.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

import numpy as np

_TOKEN_RE = re.compile(r"[a-z]+")


class FakeEmbedder:
    def __init__(self, *, dim: int = 2048, fail: bool = False) -> None:
        self.dim = dim
        self.fail = fail
        self.calls = 0
        self.texts: list[str] = []
        self._axes: dict[str, int] = {}

    def _axis(self, token: str) -> int:
        if token not in self._axes:
            if len(self._axes) >= self.dim:
                raise AssertionError("FakeEmbedder vocabulary exhausted; raise dim")
            self._axes[token] = len(self._axes)
        return self._axes[token]

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        if self.fail:
            raise RuntimeError("embedding backend unavailable")
        self.calls += 1
        self.texts.extend(texts)
        out = np.zeros((len(texts), self.dim), dtype=np.float32)
        for row, text in enumerate(texts):
            tokens = set(_TOKEN_RE.findall(text.lower()))
            if not tokens:
                # Empty texts get a reserved axis so every row stays unit length.
                tokens = {"<empty>"}
            for tok in tokens:
                out[row, self._axis(tok)] = 1.0
            out[row] /= np.linalg.norm(out[row])
        return out
