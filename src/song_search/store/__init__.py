"""Vector store backends.

- :class:`PgVectorStore`: durable, PostgreSQL + pgvector, cosine distance.
- :class:`SongIndex`: volatile, in-process brute force, Euclidean distance.
- :class:`EmbeddingBatch`: YAML batch document used to build a ``SongIndex``.
"""

from .base import IngestTarget, InsertResult, Match, SongEmbedding, VectorStore
from .batch import EmbeddingBatch
from .bruteforce import BruteForceIndex, SongIndex
from .postgres import PgVectorStore

__all__ = [
    "IngestTarget",
    "InsertResult",
    "Match",
    "SongEmbedding",
    "VectorStore",
    "EmbeddingBatch",
    "BruteForceIndex",
    "SongIndex",
    "PgVectorStore",
]
