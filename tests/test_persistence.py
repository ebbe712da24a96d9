import threading

import numpy as np
import pytest
from sqlalchemy import text

from db.client import get_engine, session_scope
from db.models.ledger import LedgerKV
from statement_ledger.models import CacheKey
from statement_ledger.persistence import (
    CORRECTIONS_KEY,
    LedgerStore,
    WriteBehindQueue,
    decode_vector,
    encode_vector,
)


def test_corrections_round_trip(database_url: str):
    store = LedgerStore(database_url)
    assert store.load_corrections() == {}
    store.save_corrections({"NETFLIX.COM": "Subscriptions"})
    store.save_corrections({"NETFLIX.COM": "Entertainment", "GRAB* RIDE": "Transport"})
    assert LedgerStore(database_url).load_corrections() == {
        "NETFLIX.COM": "Entertainment",
        "GRAB* RIDE": "Transport",
    }


@pytest.mark.parametrize(
    "payload",
    [
        {"mappings": {"A": "Other"}},
        {"schema_version": 1, "mappings": {"A": ""}},
        {"schema_version": "1", "mappings": {"A": "Other"}},
        {"schema_version": 99, "mappings": {"A": "Other"}},
        ["not", "a", "record"],
    ],
)
def test_malformed_or_foreign_corrections_load_as_empty(database_url: str, payload):
    store = LedgerStore(database_url)
    store.load_corrections()  # creates the schema
    with session_scope(database_url=database_url) as session:
        session.merge(LedgerKV(key=CORRECTIONS_KEY, value=payload))
    assert store.load_corrections() == {}


def test_vectors_round_trip_with_vendor_in_key(database_url: str):
    store = LedgerStore(database_url)
    a = np.array([0.6, 0.8], dtype=np.float32)
    b = np.array([1.0, 0.0], dtype=np.float32)
    store.save_vectors({CacheKey("NETS Debit", "Ntuc"): a, CacheKey("NETS Debit"): b})
    store.save_vectors({CacheKey("NETS Debit"): a})

    loaded = LedgerStore(database_url).load_vectors()
    assert set(loaded) == {CacheKey("NETS Debit", "Ntuc"), CacheKey("NETS Debit")}
    np.testing.assert_allclose(loaded[CacheKey("NETS Debit", "Ntuc")], a)
    np.testing.assert_allclose(loaded[CacheKey("NETS Debit")], a)


def test_cache_key_digest_does_not_collide_on_separators():
    assert CacheKey("a|b", None).digest != CacheKey("a", "b").digest
    assert CacheKey("a b").digest != CacheKey("a", "b").digest


def test_decode_rejects_malformed_blobs():
    blob = encode_vector(np.ones(4, dtype=np.float32))
    assert decode_vector(blob, 4) is not None
    assert decode_vector(blob, 3) is None
    assert decode_vector(b"", 0) is None
    assert decode_vector(b"\x00" * 5, 1) is None
    assert decode_vector("not bytes", 2) is None
    assert decode_vector(blob, "4") is None


def test_clear_removes_vectors_and_corrections(database_url: str):
    store = LedgerStore(database_url)
    store.save_corrections({"A": "Other"})
    store.save_vectors({CacheKey("A"): np.ones(2, dtype=np.float32)})
    store.clear()
    assert store.load_corrections() == {}
    assert store.load_vectors() == {}


def test_write_behind_queue_runs_in_order_and_flushes():
    seen: list[int] = []
    gate = threading.Event()
    q = WriteBehindQueue()
    q.submit(gate.wait, 5)
    for i in range(5):
        q.submit(seen.append, i)
    assert q.pending >= 1
    gate.set()
    q.flush()
    assert seen == [0, 1, 2, 3, 4]
    q.close()
    assert q.pending == 0


def test_write_behind_queue_logs_and_drops_failures():
    seen: list[str] = []

    def boom() -> None:
        raise RuntimeError("disk full")

    q = WriteBehindQueue()
    q.submit(boom, label="boom")
    q.submit(seen.append, "after")
    q.close()
    assert q.failures == 1
    assert seen == ["after"]


def _execute_raw(database_url: str, statement: str, **params) -> None:
    with get_engine(database_url=database_url).begin() as conn:
        conn.execute(text(statement), params)


def test_undecodable_corrections_record_loads_as_empty(database_url: str):
    LedgerStore(database_url).save_corrections({"NETFLIX.COM": "Entertainment"})
    _execute_raw(database_url, "UPDATE ledger_kv SET value = 'not json {'")
    assert LedgerStore(database_url).load_corrections() == {}


def test_vector_rows_with_wrong_column_types_are_skipped(database_url: str):
    store = LedgerStore(database_url)
    vec = np.array([0.6, 0.8], dtype=np.float32)
    store.save_vectors({CacheKey("GOOD"): vec, CacheKey("TEXT"): vec, CacheKey("DIM"): vec})
    _execute_raw(
        database_url,
        "UPDATE ledger_embeddings SET vector = 'garbage' WHERE digest = :d",
        d=CacheKey("TEXT").digest,
    )
    _execute_raw(
        database_url,
        "UPDATE ledger_embeddings SET dim = 'two' WHERE digest = :d",
        d=CacheKey("DIM").digest,
    )

    loaded = LedgerStore(database_url).load_vectors()
    assert set(loaded) == {CacheKey("GOOD")}
    np.testing.assert_allclose(loaded[CacheKey("GOOD")], vec)


def test_sqlite_directory_is_created_on_first_use(tmp_path):
    url = f"sqlite+pysqlite:///{tmp_path / 'nested' / 'dir' / 'ledger.sqlite3'}"
    store = LedgerStore(url)
    store.save_corrections({"A": "Other"})
    assert (tmp_path / "nested" / "dir" / "ledger.sqlite3").exists()
    assert store.load_corrections() == {"A": "Other"}
