"""Named, overridable tunables for parsing and categorization.

Every threshold the pipeline depends on lives on :class:`LedgerSettings` so
callers (and tests) can override them explicitly instead of patching module
constants. ``LedgerSettings.from_env()`` reads ``LEDGER_*`` variables; the CLI
loads ``.env`` before calling it.

Environment variables
---------------------
- ``LEDGER_CONFIDENCE_THRESHOLD`` (float, default ``0.8``)
- ``LEDGER_SIMILARITY_THRESHOLD`` (float, default ``0.85``)
- ``LEDGER_CORRECTION_BOOST`` (float, default ``0.25``)
- ``LEDGER_INTEREST_NOISE_THRESHOLD`` (decimal, default ``50``)
- ``LEDGER_LINE_TOLERANCE`` (float, default ``5.0``)
- ``LEDGER_MIN_PARSER_CONFIDENCE`` (float, default ``0.5``)
- ``LEDGER_MIN_CACHE_COVERAGE`` (float, default ``0.5``)
- ``LEDGER_BATCH_SIZE`` (int, default ``32``)
- ``LEDGER_BATCH_TIME_BUDGET`` (seconds, default ``0.05``)
- ``LEDGER_EMBEDDING_MODEL`` (default ``sentence-transformers/all-MiniLM-L6-v2``)
- ``LEDGER_DATABASE_URL`` (default: SQLite file under the cache root)
- ``LEDGER_CACHE_DIR`` (default ``./.cache``)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


def get_cache_root() -> Path:
    """Return the cache root directory.

    Default: ``./.cache`` under the current working directory.
    Override: ``LEDGER_CACHE_DIR`` (absolute or relative).
    """

    root = os.getenv("LEDGER_CACHE_DIR")
    if root and root.strip():
        return Path(root).expanduser().resolve()
    return (Path.cwd() / ".cache").resolve()


def default_database_url() -> str:
    url = os.getenv("LEDGER_DATABASE_URL")
    if url and url.strip():
        return url.strip()
    return f"sqlite+pysqlite:///{get_cache_root() / 'ledger.sqlite3'}"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"{name} must be a decimal amount, got {raw!r}") from exc


@dataclass(frozen=True, slots=True)
class LedgerSettings:
    """Thresholds and resource knobs shared across the pipeline."""

    confidence_threshold: float = 0.8
    similarity_threshold: float = 0.85
    correction_boost: float = 0.25
    interest_noise_threshold: Decimal = Decimal("50")
    line_tolerance: float = 5.0
    min_parser_confidence: float = 0.5
    min_cache_coverage: float = 0.5
    batch_size: int = 32
    batch_time_budget: float = 0.05
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    database_url: str | None = field(default=None)

    def __post_init__(self) -> None:
        for name in (
            "confidence_threshold",
            "similarity_threshold",
            "min_parser_confidence",
            "min_cache_coverage",
        ):
            val = getattr(self, name)
            if not 0.0 <= val <= 1.0:
                raise ValueError(f"LedgerSettings.{name} must be within [0,1], got {val}")
        if self.correction_boost < 0:
            raise ValueError("LedgerSettings.correction_boost must be non-negative")
        if self.interest_noise_threshold < 0:
            raise ValueError("LedgerSettings.interest_noise_threshold must be non-negative")
        if self.line_tolerance < 0:
            raise ValueError("LedgerSettings.line_tolerance must be non-negative")
        # Booleans are ints; disallow them explicitly.
        if isinstance(self.batch_size, bool) or self.batch_size < 1:
            raise ValueError("LedgerSettings.batch_size must be a positive integer")
        if self.batch_time_budget <= 0:
            raise ValueError("LedgerSettings.batch_time_budget must be positive")

    @classmethod
    def from_env(cls) -> LedgerSettings:
        model = os.getenv("LEDGER_EMBEDDING_MODEL")
        db_url = os.getenv("LEDGER_DATABASE_URL")
        return cls(
            confidence_threshold=_env_float("LEDGER_CONFIDENCE_THRESHOLD", 0.8),
            similarity_threshold=_env_float("LEDGER_SIMILARITY_THRESHOLD", 0.85),
            correction_boost=_env_float("LEDGER_CORRECTION_BOOST", 0.25),
            interest_noise_threshold=_env_decimal(
                "LEDGER_INTEREST_NOISE_THRESHOLD", Decimal("50")
            ),
            line_tolerance=_env_float("LEDGER_LINE_TOLERANCE", 5.0),
            min_parser_confidence=_env_float("LEDGER_MIN_PARSER_CONFIDENCE", 0.5),
            min_cache_coverage=_env_float("LEDGER_MIN_CACHE_COVERAGE", 0.5),
            batch_size=_env_int("LEDGER_BATCH_SIZE", 32),
            batch_time_budget=_env_float("LEDGER_BATCH_TIME_BUDGET", 0.05),
            embedding_model=(model.strip() if model and model.strip() else DEFAULT_EMBEDDING_MODEL),
            database_url=(db_url.strip() if db_url and db_url.strip() else None),
        )

    def resolved_database_url(self) -> str:
        return self.database_url or default_database_url()


__all__ = ["LedgerSettings", "DEFAULT_EMBEDDING_MODEL", "get_cache_root", "default_database_url"]
