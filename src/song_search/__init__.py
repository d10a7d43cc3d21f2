"""Song similarity search: embed lyrics with OpenAI, store and query the vectors."""

from .errors import LoadError, MalformedResponse, ProviderError, RateLimited, SongSearchError, StoreError
from .records import Song, embedding_text, load_songs

__all__ = [
    "Song",
    "embedding_text",
    "load_songs",
    "SongSearchError",
    "LoadError",
    "ProviderError",
    "RateLimited",
    "MalformedResponse",
    "StoreError",
]
