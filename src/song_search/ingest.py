"""
Ingestion: songs -> embeddings -> store
=======================================

One task per song, admitted through a fixed-size semaphore. A slot is taken
before the task is created (so the dispatcher itself waits when the pool is
full) and is released by a done-callback, which runs on every exit path of
the task including cancellation.

Per song: existence check, embed if absent, conditional insert. Failures are
logged with the song's identity and counted; they never stop other songs.
``StoreError`` is counted separately from provider failures so an outage
does not read as a run of ordinary skips, and can be made fatal with
``store_errors_fatal``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass
from typing import Iterable, List, Set

from .clients.oai import EmbeddingClient
from .config import Config
from .errors import ProviderError, StoreError
from .records import Song, embedding_text
from .store.base import IngestTarget, InsertResult

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


@dataclass
class IngestStats:
    """Outcome counts for one run. ``store_failed`` and ``timed_out`` are subsets of ``failed``."""

    total: int = 0
    inserted: int = 0
    skipped: int = 0
    duplicates: int = 0
    failed: int = 0
    store_failed: int = 0
    timed_out: int = 0

    @property
    def processed(self) -> int:
        return self.inserted + self.skipped + self.duplicates + self.failed

    def as_dict(self) -> dict:
        return asdict(self)


def song_label(song: Song) -> str:
    return f"Song {song.title} by {song.artist}"


async def _process(song: Song, client: EmbeddingClient, store: IngestTarget, stats: IngestStats) -> None:
    if await store.exists(song.key):
        logger.debug("%s already stored; skipping", song_label(song))
        stats.skipped += 1
        return

    vec = await client.embed(embedding_text(song), label=song_label(song))
    result = await store.insert_if_absent(song, vec)

    if result is InsertResult.INSERTED:
        stats.inserted += 1
    else:
        logger.info("%s was stored concurrently; embedding discarded", song_label(song))
        stats.duplicates += 1


async def _ingest_one(
    song: Song,
    client: EmbeddingClient,
    store: IngestTarget,
    stats: IngestStats,
    *,
    record_timeout: float | None,
    store_errors_fatal: bool,
    fatal: List[BaseException],
) -> None:
    try:
        await asyncio.wait_for(_process(song, client, store, stats), timeout=record_timeout)
    except StoreError as e:
        stats.failed += 1
        stats.store_failed += 1
        logger.error("Store failure for %s (artist=%r album=%r): %s", song_label(song), song.artist, song.album, e)
        if store_errors_fatal:
            fatal.append(e)
            raise
    except ProviderError as e:
        stats.failed += 1
        logger.error("Embedding failed for %s (artist=%r album=%r): %s", song_label(song), song.artist, song.album, e)
    except asyncio.TimeoutError:
        stats.failed += 1
        stats.timed_out += 1
        logger.error("%s timed out after %ss", song_label(song), record_timeout)
    except Exception:
        stats.failed += 1
        logger.exception("Ingestion failed for %s", song_label(song))


async def ingest_songs(
    songs: Iterable[Song],
    *,
    client: EmbeddingClient,
    store: IngestTarget,
    concurrency: int = DEFAULT_CONCURRENCY,
    record_timeout: float | None = None,
    store_errors_fatal: bool = False,
) -> IngestStats:
    """
    Embed and persist every song not already in ``store``.

    :param songs: Any iterable; consumed lazily as slots free up.
    :param client: Embedding client (shared by all tasks).
    :param store: Target exposing ``exists`` and ``insert_if_absent``.
    :param concurrency: Maximum songs between slot acquisition and release.
    :param record_timeout: Seconds allowed per song (``None`` = no limit).
    :param store_errors_fatal: Abort the run on the first ``StoreError``.
    :returns: Aggregate :class:`IngestStats` once every task has finished.
    :raises StoreError: only when ``store_errors_fatal`` is set.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    stats = IngestStats()
    semaphore = asyncio.Semaphore(concurrency)
    in_flight: Set[asyncio.Task[None]] = set()
    fatal: List[BaseException] = []

    def _done(task: asyncio.Task[None]) -> None:
        in_flight.discard(task)
        semaphore.release()
        if not task.cancelled():
            task.exception()  # mark retrieved; fatal errors are re-raised below

    try:
        for song in songs:
            await semaphore.acquire()
            if fatal:
                semaphore.release()
                break
            stats.total += 1
            task = asyncio.create_task(
                _ingest_one(
                    song,
                    client,
                    store,
                    stats,
                    record_timeout=record_timeout,
                    store_errors_fatal=store_errors_fatal,
                    fatal=fatal,
                )
            )
            in_flight.add(task)
            task.add_done_callback(_done)

        while in_flight and not fatal:
            await asyncio.wait(set(in_flight), return_when=asyncio.FIRST_EXCEPTION)
    finally:
        if in_flight:
            pending = list(in_flight)
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    if fatal:
        logger.error("Ingestion aborted after store failure: %s", stats.as_dict())
        raise fatal[0]

    logger.info(
        "Ingestion finished: total=%d inserted=%d skipped=%d duplicates=%d failed=%d (store=%d, timeout=%d)",
        stats.total, stats.inserted, stats.skipped, stats.duplicates,
        stats.failed, stats.store_failed, stats.timed_out,
    )
    return stats


async def ingest_with_config(
    songs: Iterable[Song], *, client: EmbeddingClient, store: IngestTarget, cfg: Config
) -> IngestStats:
    """:func:`ingest_songs` with limits taken from ``cfg.ingest``."""
    return await ingest_songs(
        songs,
        client=client,
        store=store,
        concurrency=cfg.ingest.CONCURRENCY,
        record_timeout=cfg.ingest.RECORD_TIMEOUT,
        store_errors_fatal=cfg.ingest.STORE_ERRORS_FATAL,
    )


__all__ = ["IngestStats", "ingest_songs", "ingest_with_config", "song_label", "DEFAULT_CONCURRENCY"]
