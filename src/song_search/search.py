"""Free-text similarity search over a vector store."""

from __future__ import annotations

import logging
from typing import List

from .clients.oai import EmbeddingClient
from .records import normalize_query
from .store.base import Match, VectorStore

logger = logging.getLogger(__name__)


class SearchService:
    """
    Embed a query and return the store's nearest songs, closest first.

    Stateless: no caching, every call embeds again.
    """

    def __init__(self, client: EmbeddingClient, store: VectorStore) -> None:
        self.client = client
        self.store = store

    async def search(self, text: str, k: int) -> List[Match]:
        query = normalize_query(text)
        if not query or k <= 0:
            return []

        qvec = await self.client.embed(query, label=f"Query {query[:40]!r}")
        matches = await self.store.nearest(qvec, k)
        if not matches:
            logger.info("Search returned no results for %r", query)
        return matches


__all__ = ["SearchService"]
