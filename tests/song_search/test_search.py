import asyncio

import numpy as np

from song_search.records import Song
from song_search.search import SearchService
from song_search.store.base import Match


class RecordingClient:
    def __init__(self):
        self.calls = []

    async def embed(self, text, *, label=None):
        self.calls.append(text)
        return np.array([1.0, 0.0], dtype=np.float32)


class RecordingStore:
    def __init__(self, matches):
        self.matches = matches
        self.calls = []

    async def nearest(self, query, k):
        self.calls.append((query.tolist(), k))
        return self.matches[:k]


def test_search_normalizes_query_and_keeps_store_order():
    matches = [
        Match(Song("Coldplay", "Yellow", "Parachutes"), 0.1),
        Match(Song("Coldplay", "Sparks", "Parachutes"), 0.2),
        Match(Song("Ed Sheeran", "Perfect", "Divide"), 0.3),
    ]
    client = RecordingClient()
    store = RecordingStore(matches)
    service = SearchService(client, store)

    result = asyncio.run(service.search("  Songs About STARS\n", 2))

    assert client.calls == ["songs about stars"]
    assert store.calls == [([1.0, 0.0], 2)]
    assert result == matches[:2]


def test_blank_query_skips_provider():
    client = RecordingClient()
    store = RecordingStore([])
    service = SearchService(client, store)

    assert asyncio.run(service.search("   \n", 5)) == []
    assert client.calls == [] and store.calls == []


def test_each_call_embeds_again():
    client = RecordingClient()
    service = SearchService(client, RecordingStore([]))
    asyncio.run(service.search("yellow", 1))
    asyncio.run(service.search("yellow", 1))
    assert client.calls == ["yellow", "yellow"]
