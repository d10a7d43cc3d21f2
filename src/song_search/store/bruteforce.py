"""In-process exact nearest-neighbor index (Euclidean, brute force)."""

from __future__ import annotations

import logging
from typing import Iterable, List, Tuple

import numpy as np

from .base import Match, SongEmbedding, as_vector

logger = logging.getLogger(__name__)


class BruteForceIndex:
    """
    Collect vectors with :meth:`add`, freeze them with :meth:`build`, then
    :meth:`search`. Positions are assigned in insertion order.
    """

    def __init__(self, dim: int) -> None:
        self.dim = dim
        self._pending: List[np.ndarray] = []
        self._matrix: np.ndarray | None = None

    @property
    def built(self) -> bool:
        return self._matrix is not None

    def __len__(self) -> int:
        return len(self._pending) if self._matrix is None else self._matrix.shape[0]

    def add(self, vector) -> int:
        """Append ``vector`` and return its position."""
        if self.built:
            raise RuntimeError("index is already built; vectors are immutable")
        self._pending.append(as_vector(vector, self.dim))
        return len(self._pending) - 1

    def build(self) -> None:
        if self.built:
            raise RuntimeError("index is already built")
        if self._pending:
            self._matrix = np.vstack(self._pending)
        else:
            self._matrix = np.empty((0, self.dim), dtype=np.float32)
        self._pending = []

    def search(self, query, k: int) -> List[Tuple[int, float]]:
        """Return up to ``k`` ``(position, distance)`` pairs, closest first."""
        if self._matrix is None:
            raise RuntimeError("index must be built before searching")
        n = self._matrix.shape[0]
        if k <= 0 or n == 0:
            return []

        q = as_vector(query, self.dim)
        dists = np.linalg.norm(self._matrix - q, axis=1)
        # stable sort keeps insertion order among equal distances
        order = np.argsort(dists, kind="stable")[: min(k, n)]
        return [(int(i), float(dists[i])) for i in order]


class SongIndex:
    """Brute-force index over a fixed batch of song embeddings."""

    def __init__(self, entries: List[SongEmbedding], index: BruteForceIndex) -> None:
        self.entries = entries
        self._index = index

    @classmethod
    def build(cls, entries: Iterable[SongEmbedding], dim: int) -> "SongIndex":
        items = list(entries)
        index = BruteForceIndex(dim)
        for entry in items:
            logger.debug("Adding Song %s to index", entry)
            index.add(entry.embedding)
        index.build()
        logger.info("Index built (%d songs).", len(items))
        return cls(items, index)

    def __len__(self) -> int:
        return len(self.entries)

    async def nearest(self, query, k: int) -> List[Match]:
        return [
            Match(self.entries[pos].to_song(), dist)
            for pos, dist in self._index.search(query, k)
        ]


__all__ = ["BruteForceIndex", "SongIndex"]
