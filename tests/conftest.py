"""Pytest configuration for test isolation.

The ledger persists corrections and embedding vectors to a SQLite file under
a project-relative cache directory (``./.cache``). When tests run in the same
working tree, a store written by one test would leak learned corrections into
the next, so every test gets its own cache root and database file.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Make the workspace packages importable without an editable install, and let
# tests import ``tests.helpers``.
_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs/db/src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import dispose_engines  # noqa: E402

_LEDGER_ENV = (
    "LEDGER_CONFIDENCE_THRESHOLD",
    "LEDGER_SIMILARITY_THRESHOLD",
    "LEDGER_CORRECTION_BOOST",
    "LEDGER_INTEREST_NOISE_THRESHOLD",
    "LEDGER_LINE_TOLERANCE",
    "LEDGER_MIN_PARSER_CONFIDENCE",
    "LEDGER_MIN_CACHE_COVERAGE",
    "LEDGER_BATCH_SIZE",
    "LEDGER_BATCH_TIME_BUDGET",
    "LEDGER_EMBEDDING_MODEL",
    "DATABASE_URL",
)


@pytest.fixture(autouse=True)
def _isolate_cache_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Force a per-test cache root and database so tests don't share state."""

    for name in _LEDGER_ENV:
        monkeypatch.delenv(name, raising=False)
    cache_root = tmp_path / "cache"
    cache_root.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("LEDGER_CACHE_DIR", os.fspath(cache_root))
    monkeypatch.setenv(
        "LEDGER_DATABASE_URL", f"sqlite+pysqlite:///{cache_root / 'ledger.sqlite3'}"
    )
    yield
    dispose_engines()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+pysqlite:///{tmp_path / 'store.sqlite3'}"
