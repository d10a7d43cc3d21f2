"""
Serialized embedding batch
==========================

The offline variant of ingestion writes song embeddings to a single YAML
document instead of PostgreSQL::

    - artist: Coldplay
      title: Yellow
      album: Parachutes
      embedding: [0.0123, -0.0045, ...]

:class:`EmbeddingBatch` is both the ingestion target for that variant and the
loader that feeds the brute-force index at query time.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List

import numpy as np
import yaml

from song_search.errors import LoadError
from song_search.records import Song, SongKey

from .base import InsertResult, SongEmbedding, as_vector
from .bruteforce import SongIndex

logger = logging.getLogger(__name__)

_Loader = getattr(yaml, "CSafeLoader", yaml.SafeLoader)
_Dumper = getattr(yaml, "CSafeDumper", yaml.SafeDumper)

_FIELDS = ("artist", "title", "album", "embedding")


class EmbeddingBatch:
    """
    Ordered, key-unique collection of :class:`SongEmbedding`.

    ``insert_if_absent`` never suspends between its check and its write, so it
    is atomic with respect to other tasks on the same event loop.
    """

    def __init__(self, dim: int, entries: List[SongEmbedding] | None = None) -> None:
        self.dim = dim
        self._entries: Dict[SongKey, SongEmbedding] = {}
        for entry in entries or []:
            self._entries.setdefault(entry.key, entry)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> List[SongEmbedding]:
        return list(self._entries.values())

    async def exists(self, key: SongKey) -> bool:
        return key in self._entries

    async def insert_if_absent(self, song: Song, embedding) -> InsertResult:
        vec = as_vector(embedding, self.dim)
        if song.key in self._entries:
            return InsertResult.ALREADY_EXISTS
        self._entries[song.key] = SongEmbedding(song.artist, song.title, song.album, vec)
        return InsertResult.INSERTED

    def to_index(self) -> SongIndex:
        return SongIndex.build(self.entries, self.dim)

    # --- YAML ---------------------------------------------------------------

    def save(self, path: str | Path) -> None:
        """Write the batch; the file is replaced only once fully written."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        docs = [
            {
                "artist": e.artist,
                "title": e.title,
                "album": e.album,
                "embedding": [float(x) for x in e.embedding],
            }
            for e in self._entries.values()
        ]
        tmp = target.with_name(target.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as handle:
            yaml.dump(docs, handle, Dumper=_Dumper, sort_keys=False, allow_unicode=True)
        os.replace(tmp, target)
        logger.info("Wrote %d song embeddings to %s", len(docs), target)

    @classmethod
    def load(cls, path: str | Path, dim: int) -> "EmbeddingBatch":
        target = Path(path)
        try:
            with target.open("r", encoding="utf-8") as handle:
                docs = yaml.load(handle, Loader=_Loader)
        except (OSError, yaml.YAMLError) as exc:
            raise LoadError(f"Failed to read {target}: {exc}") from exc

        if docs is None:
            docs = []
        if not isinstance(docs, list):
            raise LoadError(f"{target}: expected a sequence of song embeddings")

        entries: List[SongEmbedding] = []
        for i, doc in enumerate(docs):
            if not isinstance(doc, dict) or any(f not in doc for f in _FIELDS):
                raise LoadError(f"{target}: entry {i} must have fields {', '.join(_FIELDS)}")
            try:
                vec = as_vector(doc["embedding"], dim)
            except (TypeError, ValueError) as exc:
                raise LoadError(f"{target}: entry {i}: {exc}") from exc
            entries.append(
                SongEmbedding(str(doc["artist"]), str(doc["title"]), str(doc["album"]), vec)
            )

        logger.info("Total embeddings: %d", len(entries))
        return cls(dim, entries)

    @classmethod
    def load_or_empty(cls, path: str | Path, dim: int) -> "EmbeddingBatch":
        """Resume from ``path`` if it exists, otherwise start empty."""
        if Path(path).is_file():
            return cls.load(path, dim)
        return cls(dim)


__all__ = ["EmbeddingBatch"]
