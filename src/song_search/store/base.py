"""
Vector store contract
=====================

Every backend answers three questions about ``(artist, title, album)`` keyed
songs: is this key stored, store it unless it is, and which stored songs are
closest to a query vector. Distance metrics differ per backend (cosine for
PostgreSQL, Euclidean for the in-memory index); callers must not compare
distances across backends.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Protocol, Sequence, runtime_checkable

import numpy as np

from song_search.records import Song, SongKey


class InsertResult(enum.Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True, slots=True)
class Match:
    """One nearest-neighbor hit. ``distance`` is backend-specific (lower is closer)."""

    song: Song
    distance: float


@dataclass(slots=True)
class SongEmbedding:
    """A song's identity plus its vector; the lyric is not kept."""

    artist: str
    title: str
    album: str
    embedding: np.ndarray

    @property
    def key(self) -> SongKey:
        return (self.artist, self.title, self.album)

    def to_song(self) -> Song:
        return Song(self.artist, self.title, self.album)

    def __str__(self) -> str:
        return str(self.to_song())


@runtime_checkable
class IngestTarget(Protocol):
    """What the ingestion orchestrator writes to."""

    async def exists(self, key: SongKey) -> bool: ...

    async def insert_if_absent(self, song: Song, embedding: np.ndarray) -> InsertResult: ...


@runtime_checkable
class VectorStore(IngestTarget, Protocol):
    """A target that can also answer nearest-neighbor queries."""

    async def nearest(self, query: np.ndarray, k: int) -> List[Match]: ...


def as_vector(values: Sequence[float] | np.ndarray, dim: int) -> np.ndarray:
    """Return ``values`` as a 1-D float32 array, rejecting any other length."""
    vec = np.asarray(values, dtype=np.float32).reshape(-1)
    if vec.shape[0] != dim:
        raise ValueError(f"Expected embedding of dim {dim}, got {vec.shape[0]}")
    return vec


__all__ = ["InsertResult", "Match", "SongEmbedding", "IngestTarget", "VectorStore", "as_vector"]
