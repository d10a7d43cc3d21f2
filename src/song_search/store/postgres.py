"""
PostgreSQL + pgvector backend
=============================

- Schema bootstrap from ``schema.sql`` (idempotent, run on every connect).
- asyncpg pool with the pgvector codec registered on each connection.
- Cosine distance (``<=>``), matching the ``vector_cosine_ops`` ivfflat index.

The schema has no uniqueness constraint, so ``insert_if_absent``
serializes writers per key with a transaction-scoped advisory lock and only
inserts when the key is still absent inside that transaction.
"""

from __future__ import annotations

import asyncio
import logging
import pathlib
from contextlib import contextmanager
from typing import Iterator, List, NamedTuple

import asyncpg
from pgvector.asyncpg import register_vector

from song_search.config import Config
from song_search.errors import StoreError
from song_search.records import Song, SongKey

from .base import InsertResult, Match, as_vector

logger = logging.getLogger(__name__)

_SCHEMA_FILE = pathlib.Path(__file__).with_name("schema.sql")

EXISTS_SQL = """
    SELECT EXISTS (
        SELECT 1 FROM songs WHERE artist = $1 AND title = $2 AND album = $3
    )
"""

LOCK_SQL = "SELECT pg_advisory_xact_lock(hashtextextended($1, 0))"

INSERT_SQL = """
    INSERT INTO songs (artist, title, album, lyric, embedding)
    SELECT $1::text, $2::text, $3::text, $4::text, $5::vector
    WHERE NOT EXISTS (
        SELECT 1 FROM songs WHERE artist = $1 AND title = $2 AND album = $3
    )
    RETURNING 1
"""

NEAREST_SQL = """
    SELECT artist, title, album, lyric, embedding <=> $1 AS distance
    FROM songs
    ORDER BY embedding <=> $1
    LIMIT $2
"""

COUNT_SQL = "SELECT count(*) FROM songs"

_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


class NearestRow(NamedTuple):
    """Column projection of :data:`NEAREST_SQL`, in select order."""

    artist: str
    title: str
    album: str
    lyric: str | None
    distance: float


@contextmanager
def _store_errors(op: str) -> Iterator[None]:
    try:
        yield
    except _STORE_ERRORS as e:
        raise StoreError(f"{op} failed: {e}") from e


def schema_sql(dim: int, lists: int) -> str:
    return _SCHEMA_FILE.read_text(encoding="utf-8").format(dim=int(dim), lists=int(lists))


def lock_key(key: SongKey) -> str:
    return "\x1f".join(key)


async def migrate(conn: asyncpg.Connection, dim: int, lists: int) -> None:
    """Create extension, table and indexes if they do not exist yet."""
    async with conn.transaction():
        await conn.execute(schema_sql(dim, lists))


class PgVectorStore:
    def __init__(self, pool, *, dim: int) -> None:
        self._pool = pool
        self.dim = dim

    @classmethod
    async def connect(
        cls,
        dsn: str,
        *,
        dim: int,
        lists: int = 100,
        probes: int = 10,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 10.0,
    ) -> "PgVectorStore":
        """
        Bootstrap the schema and open a connection pool.

        Any failure here is a setup error: it is raised as :class:`StoreError`
        and the caller is expected to abort.
        """
        async def _init(conn: asyncpg.Connection) -> None:
            await register_vector(conn)
            await conn.execute(f"SET ivfflat.probes = {int(probes)}")

        with _store_errors("schema bootstrap"):
            conn = await asyncpg.connect(dsn, timeout=timeout)
            try:
                await migrate(conn, dim, lists)
            finally:
                await conn.close()

        with _store_errors("pool creation"):
            pool = await asyncpg.create_pool(
                dsn, min_size=min_size, max_size=max_size, timeout=timeout, init=_init
            )

        logger.info("Connected to PostgreSQL (pool %d-%d, dim=%d)", min_size, max_size, dim)
        return cls(pool, dim=dim)

    @classmethod
    async def from_config(cls, cfg: Config) -> "PgVectorStore":
        pg = cfg.postgres
        return await cls.connect(
            pg.POSTGRES_DSN,
            dim=cfg.embedding.EMB_DIM,
            lists=pg.IVFFLAT_LISTS,
            probes=pg.IVFFLAT_PROBES,
            min_size=pg.POOL_MIN_SIZE,
            max_size=pg.POOL_MAX_SIZE,
            timeout=pg.CONNECT_TIMEOUT,
        )

    async def exists(self, key: SongKey) -> bool:
        with _store_errors("exists"):
            return bool(await self._pool.fetchval(EXISTS_SQL, *key))

    async def insert_if_absent(self, song: Song, embedding) -> InsertResult:
        vec = as_vector(embedding, self.dim)
        with _store_errors("insert"):
            async with self._pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(LOCK_SQL, lock_key(song.key))
                    inserted = await conn.fetchval(
                        INSERT_SQL, song.artist, song.title, song.album, song.lyric, vec
                    )
        return InsertResult.INSERTED if inserted else InsertResult.ALREADY_EXISTS

    async def nearest(self, query, k: int) -> List[Match]:
        if k <= 0:
            return []
        vec = as_vector(query, self.dim)
        with _store_errors("nearest"):
            records = await self._pool.fetch(NEAREST_SQL, vec, int(k))

        matches: List[Match] = []
        for record in records:
            row = NearestRow(*tuple(record))
            song = Song(row.artist, row.title, row.album, row.lyric or "")
            matches.append(Match(song, float(row.distance)))
        return matches

    async def count(self) -> int:
        with _store_errors("count"):
            return int(await self._pool.fetchval(COUNT_SQL))

    async def close(self) -> None:
        await self._pool.close()

    async def __aenter__(self) -> "PgVectorStore":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()


__all__ = ["PgVectorStore", "NearestRow", "migrate", "schema_sql"]
