"""Clients for external services."""

from .oai import EmbeddingClient, RetryPolicy

__all__ = ["EmbeddingClient", "RetryPolicy"]
