"""Exception hierarchy shared by the loader, embedding client and stores."""

from __future__ import annotations


class SongSearchError(Exception):
    """Base class for all song-search errors."""


class LoadError(SongSearchError):
    """Input file is missing, unreadable or does not match the column schema."""


class ProviderError(SongSearchError):
    """
    The embedding provider could not produce a vector.

    ``retryable`` tells the client's backoff loop whether another attempt can
    help (transport errors, 5xx) or not (bad request, auth, bad payload).
    """

    def __init__(self, message: str = "", *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class RateLimited(ProviderError):
    """The provider signalled throttling (HTTP 429)."""


class MalformedResponse(ProviderError):
    """The provider answered, but not with exactly one vector of the expected size."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message, retryable=False)


class StoreError(SongSearchError):
    """The vector store is unreachable or rejected an operation."""


__all__ = [
    "SongSearchError",
    "LoadError",
    "ProviderError",
    "RateLimited",
    "MalformedResponse",
    "StoreError",
]
