"""Durable local storage for learned corrections and embedding vectors.

Two tables owned by ``libs/db`` (``db.models.ledger``):

- ``ledger_kv``: named JSON records; the correction map lives under
  ``user_category_mappings`` as a :class:`CorrectionMapRecord`.
- ``ledger_embeddings``: one row per :class:`CacheKey` digest with the
  vector stored as little-endian float32 bytes.

Writes go through :class:`WriteBehindQueue`: callers submit and move on, a
single worker applies writes in submission order, and ``flush()`` waits for
everything submitted so far. A failed write is logged and dropped; the
in-memory state stays authoritative for the session.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any

import numpy as np
from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.engine import make_url

from db.client import get_engine, session_scope
from db.models.ledger import Base, LedgerEmbedding, LedgerKV

from .logging_setup import get_logger
from .models import CORRECTIONS_SCHEMA_VERSION, CacheKey, CorrectionMapRecord
from .settings import default_database_url

_log = get_logger("statement_ledger.persistence")

CORRECTIONS_KEY = "user_category_mappings"
_VECTOR_DTYPE = np.dtype("<f4")


def encode_vector(vector: np.ndarray) -> bytes:
    return np.asarray(vector, dtype=_VECTOR_DTYPE).tobytes()


def decode_vector(blob: Any, dim: Any) -> np.ndarray | None:
    """Decode a stored blob; ``None`` when it is not ``dim`` float32 values."""

    if not isinstance(blob, (bytes, bytearray, memoryview)):
        return None
    if isinstance(dim, bool) or not isinstance(dim, int) or dim <= 0:
        return None
    if len(blob) != dim * _VECTOR_DTYPE.itemsize:
        return None
    return np.frombuffer(blob, dtype=_VECTOR_DTYPE).astype(np.float32)


class LedgerStore:
    """SQLAlchemy-backed store (SQLite file under the cache root by default)."""

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url or default_database_url()
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def ensure_schema(self) -> None:
        """Create the tables (and a SQLite file's directory) on first use."""

        with self._schema_lock:
            if self._schema_ready:
                return
            url = make_url(self.database_url)
            if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
                Path(url.database).parent.mkdir(parents=True, exist_ok=True)
            Base.metadata.create_all(get_engine(database_url=self.database_url))
            self._schema_ready = True

    # ---- corrections -------------------------------------------------------

    def load_corrections(self) -> dict[str, str]:
        """Return the persisted description -> category map.

        A malformed record, including one that is not valid JSON, yields an
        empty map.
        """

        self.ensure_schema()
        try:
            with session_scope(database_url=self.database_url) as session:
                row = session.get(LedgerKV, CORRECTIONS_KEY)
                payload: Any = row.value if row is not None else None
        except ValueError:
            _log.warning("persistence:corrections_undecodable", exc_info=True)
            return {}
        if payload is None:
            return {}
        try:
            record = CorrectionMapRecord.model_validate(payload)
        except ValidationError as e:
            _log.warning("persistence:corrections_malformed error=%s", e.error_count())
            return {}
        if record.schema_version != CORRECTIONS_SCHEMA_VERSION:
            _log.warning(
                "persistence:corrections_schema_mismatch found=%s expected=%s",
                record.schema_version,
                CORRECTIONS_SCHEMA_VERSION,
            )
            return {}
        return dict(record.mappings)

    def save_corrections(self, mappings: Mapping[str, str]) -> None:
        record = CorrectionMapRecord(
            schema_version=CORRECTIONS_SCHEMA_VERSION, mappings=dict(mappings)
        )
        self.ensure_schema()
        with session_scope(database_url=self.database_url) as session:
            session.merge(LedgerKV(key=CORRECTIONS_KEY, value=record.model_dump()))

    # ---- vectors -----------------------------------------------------------

    def load_vectors(self) -> dict[CacheKey, np.ndarray]:
        """Return every persisted vector; rows with a bad payload are skipped."""

        self.ensure_schema()
        out: dict[CacheKey, np.ndarray] = {}
        skipped = 0
        with session_scope(database_url=self.database_url) as session:
            for row in session.scalars(select(LedgerEmbedding)):
                vec = decode_vector(row.vector, row.dim)
                if vec is None:
                    skipped += 1
                    continue
                out[CacheKey(description=row.description, vendor=row.vendor)] = vec
        if skipped:
            _log.warning("persistence:vectors_malformed skipped=%s", skipped)
        return out

    def save_vectors(self, items: Mapping[CacheKey, np.ndarray]) -> None:
        if not items:
            return
        self.ensure_schema()
        with session_scope(database_url=self.database_url) as session:
            for key, vector in items.items():
                session.merge(
                    LedgerEmbedding(
                        digest=key.digest,
                        description=key.description,
                        vendor=key.vendor,
                        dim=int(np.asarray(vector).size),
                        vector=encode_vector(vector),
                    )
                )

    # ---- maintenance -------------------------------------------------------

    def clear(self) -> None:
        """Delete all corrections and vectors."""

        self.ensure_schema()
        with session_scope(database_url=self.database_url) as session:
            session.execute(delete(LedgerEmbedding))
            session.execute(delete(LedgerKV).where(LedgerKV.key == CORRECTIONS_KEY))


class WriteBehindQueue:
    """Fire-and-forget durable writes on a single worker thread."""

    def __init__(self, *, name: str = "ledger-writes") -> None:
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._pending: set[Future[None]] = set()
        self._lock = threading.Lock()
        self.failures = 0

    def submit(self, fn: Callable[..., Any], *args: Any, label: str = "write") -> Future[None]:
        """Schedule ``fn(*args)``; returns immediately."""

        def _run() -> None:
            try:
                fn(*args)
            except Exception:
                self.failures += 1
                _log.warning("persistence:write_failed op=%s", label, exc_info=True)

        fut = self._pool.submit(_run)
        with self._lock:
            self._pending.add(fut)
        fut.add_done_callback(self._discard)
        return fut

    def _discard(self, fut: Future[None]) -> None:
        with self._lock:
            self._pending.discard(fut)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def flush(self, timeout: float | None = None) -> None:
        """Block until every write submitted so far has completed."""

        with self._lock:
            snapshot = list(self._pending)
        if snapshot:
            wait(snapshot, timeout=timeout)

    def close(self) -> None:
        self.flush()
        self._pool.shutdown(wait=True)


__all__ = [
    "CORRECTIONS_KEY",
    "LedgerStore",
    "WriteBehindQueue",
    "encode_vector",
    "decode_vector",
]
