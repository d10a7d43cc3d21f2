import asyncio

import asyncpg
import numpy as np
import pytest

from song_search.errors import StoreError
from song_search.records import Song
from song_search.store import postgres
from song_search.store.base import InsertResult
from song_search.store.postgres import PgVectorStore, lock_key, schema_sql

DIM = 4


class FakeTransaction:
    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        self.conn.log.append("BEGIN")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.conn.log.append("ROLLBACK" if exc_type else "COMMIT")
        return False


class FakeConnection:
    """Keeps rows in a list and interprets the handful of statements the store issues."""

    def __init__(self, rows):
        self.rows = rows
        self.log = []

    def transaction(self):
        return FakeTransaction(self)

    async def execute(self, sql, *args):
        self.log.append(("execute", " ".join(sql.split()), args))

    async def fetchval(self, sql, *args):
        self.log.append(("fetchval", " ".join(sql.split()), args))
        if sql is postgres.INSERT_SQL:
            artist, title, album, lyric, vec = args
            if any(r[:3] == (artist, title, album) for r in self.rows):
                return None
            self.rows.append((artist, title, album, lyric, vec))
            return 1
        raise AssertionError(f"unexpected fetchval {sql}")


class FakeAcquire:
    def __init__(self, conn):
        self.conn = conn

    async def __aenter__(self):
        return self.conn

    async def __aexit__(self, *exc):
        return False


class FakePool:
    def __init__(self):
        self.rows = []
        self.conn = FakeConnection(self.rows)
        self.closed = False
        self.fail_with = None

    def acquire(self):
        return FakeAcquire(self.conn)

    async def fetchval(self, sql, *args):
        if self.fail_with:
            raise self.fail_with
        if sql is postgres.EXISTS_SQL:
            return any(r[:3] == args for r in self.rows)
        if sql is postgres.COUNT_SQL:
            return len(self.rows)
        raise AssertionError(f"unexpected fetchval {sql}")

    async def fetch(self, sql, vec, k):
        if self.fail_with:
            raise self.fail_with
        assert sql is postgres.NEAREST_SQL

        def cosine(a, b):
            return 1.0 - float(np.dot(a, b) / (np.linalg.norm(a) * np.linalg.norm(b)))

        scored = sorted(
            ((a, t, al, ly, cosine(e, vec)) for a, t, al, ly, e in self.rows),
            key=lambda r: r[4],
        )
        return scored[:k]

    async def close(self):
        self.closed = True


def _store():
    pool = FakePool()
    return PgVectorStore(pool, dim=DIM), pool


def test_insert_if_absent_inserts_once_under_advisory_lock():
    store, pool = _store()
    song = Song("Coldplay", "Yellow", "Parachutes", "look at the stars")

    async def run():
        assert not await store.exists(song.key)
        first = await store.insert_if_absent(song, np.ones(DIM))
        second = await store.insert_if_absent(song, np.ones(DIM))
        return first, second, await store.exists(song.key), await store.count()

    first, second, exists, count = asyncio.run(run())
    assert first is InsertResult.INSERTED
    assert second is InsertResult.ALREADY_EXISTS
    assert exists and count == 1

    log = pool.conn.log
    assert log[0] == "BEGIN"
    assert log[1][0] == "execute" and "pg_advisory_xact_lock" in log[1][1]
    assert log[1][2] == (lock_key(song.key),)
    assert log[2][0] == "fetchval" and "WHERE NOT EXISTS" in log[2][1]
    assert log[3] == "COMMIT"


def test_insert_rejects_wrong_dimension_before_touching_db():
    store, pool = _store()
    with pytest.raises(ValueError):
        asyncio.run(store.insert_if_absent(Song("a", "b", "c"), np.ones(DIM + 1)))
    assert pool.conn.log == []


def test_nearest_maps_projection_in_distance_order():
    store, pool = _store()
    pool.rows.extend([
        ("A", "far", "X", "l1", np.array([0, 1, 0, 0], dtype=np.float32)),
        ("B", "near", "Y", None, np.array([1, 0.1, 0, 0], dtype=np.float32)),
        ("C", "mid", "Z", "l3", np.array([1, 1, 0, 0], dtype=np.float32)),
    ])

    matches = asyncio.run(store.nearest(np.array([1, 0, 0, 0]), 2))

    assert [m.song.title for m in matches] == ["near", "mid"]
    assert matches[0].song == Song("B", "near", "Y", "")
    assert matches[0].distance < matches[1].distance


def test_nearest_on_empty_store_is_empty():
    store, _ = _store()
    assert asyncio.run(store.nearest(np.ones(DIM), 5)) == []
    assert asyncio.run(store.nearest(np.ones(DIM), 0)) == []


@pytest.mark.parametrize(
    "error",
    [ConnectionRefusedError("refused"), asyncpg.InterfaceError("pool is closed")],
)
def test_driver_errors_become_store_errors(error):
    store, pool = _store()
    pool.fail_with = error
    with pytest.raises(StoreError):
        asyncio.run(store.exists(("a", "b", "c")))
    with pytest.raises(StoreError):
        asyncio.run(store.nearest(np.ones(DIM), 1))


def test_schema_is_idempotent_and_parameterized():
    sql = schema_sql(1536, 100)
    assert "CREATE EXTENSION IF NOT EXISTS vector" in sql
    assert "CREATE TABLE IF NOT EXISTS songs" in sql
    assert "embedding vector(1536)" in sql
    assert "CREATE INDEX IF NOT EXISTS songs_idx" in sql
    assert "vector_cosine_ops" in sql and "lists = 100" in sql
    assert "UNIQUE" not in sql.upper()


def test_connect_migrates_then_opens_pool(monkeypatch):
    boot = FakeConnection([])
    boot_closed = []

    async def close():
        boot_closed.append(True)

    boot.close = close
    created = {}

    async def fake_connect(dsn, timeout=None):
        created["dsn"] = dsn
        return boot

    async def fake_create_pool(dsn, **kwargs):
        created["pool_kwargs"] = kwargs
        return FakePool()

    monkeypatch.setattr(postgres.asyncpg, "connect", fake_connect)
    monkeypatch.setattr(postgres.asyncpg, "create_pool", fake_create_pool)

    store = asyncio.run(PgVectorStore.connect("postgres://x/songs", dim=DIM, lists=7, max_size=3))

    assert isinstance(store, PgVectorStore)
    assert created["dsn"] == "postgres://x/songs"
    assert created["pool_kwargs"]["max_size"] == 3
    assert callable(created["pool_kwargs"]["init"])
    executed = [entry for entry in boot.log if isinstance(entry, tuple)]
    assert "vector(4)" in executed[0][1] and "lists = 7" in executed[0][1]
    assert boot.log[0] == "BEGIN" and boot.log[-1] == "COMMIT"
    assert boot_closed == [True]


def test_connect_failure_is_a_store_error(monkeypatch):
    async def refuse(dsn, timeout=None):
        raise ConnectionRefusedError("no server")

    monkeypatch.setattr(postgres.asyncpg, "connect", refuse)
    with pytest.raises(StoreError, match="schema bootstrap"):
        asyncio.run(PgVectorStore.connect("postgres://x/songs", dim=DIM))
