"""Embedding client over the OpenAI async SDK, with bounded exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import numpy as np
import openai
from openai import AsyncOpenAI

from song_search.config import Config
from song_search.errors import MalformedResponse, ProviderError, RateLimited

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """
    Backoff schedule for provider calls.

    Attributes:
        max_attempts: Total attempts including the first call. Required; there
            is no unbounded mode.
        initial_interval: Delay in seconds before the first retry.
        multiplier: Growth factor applied per retry.
        jitter: Relative randomization; each delay is scaled by a factor drawn
            from ``[1 - jitter, 1 + jitter]``.
        max_interval: Ceiling for the un-jittered delay.
    """

    max_attempts: int
    initial_interval: float = 0.5
    multiplier: float = 3.0
    jitter: float = 0.15
    max_interval: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")
        if self.initial_interval < 0 or self.multiplier < 1:
            raise ValueError("initial_interval must be >= 0 and multiplier >= 1")

    @classmethod
    def from_config(cls, cfg: Config) -> "RetryPolicy":
        emb = cfg.embedding
        return cls(
            max_attempts=emb.RETRY_MAX_ATTEMPTS,
            initial_interval=emb.RETRY_INITIAL_INTERVAL,
            multiplier=emb.RETRY_MULTIPLIER,
            jitter=emb.RETRY_JITTER,
            max_interval=emb.RETRY_MAX_INTERVAL,
        )

    def delay(self, retry: int, rand: Callable[[], float] = random.random) -> float:
        """Seconds to wait before retry number ``retry`` (0-based)."""
        base = min(self.initial_interval * (self.multiplier ** retry), self.max_interval)
        return base * (1.0 - self.jitter + 2.0 * self.jitter * rand())


class EmbeddingClient:
    """
    Turn text into a fixed-size ``float32`` vector.

    Safe to share between concurrent tasks; each :meth:`embed` call owns its
    own retry state.
    """

    def __init__(
        self,
        client: Any,
        *,
        model: str,
        dim: int,
        retry: RetryPolicy,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self._client = client
        self.model = model
        self.dim = dim
        self.retry = retry
        self._sleep = sleep
        self._rand = rand

    @classmethod
    def from_config(cls, cfg: Config) -> "EmbeddingClient":
        # SDK retries are disabled so RetryPolicy is the only backoff loop
        aoai = AsyncOpenAI(
            api_key=cfg.core.require_openai_key(),
            base_url=cfg.core.OPENAI_BASE_URL,
            max_retries=0,
            timeout=cfg.embedding.REQUEST_TIMEOUT,
        )
        return cls(
            aoai,
            model=cfg.embedding.EMB_MODEL_ID,
            dim=cfg.embedding.EMB_DIM,
            retry=RetryPolicy.from_config(cfg),
        )

    async def embed(self, text: str, *, label: str | None = None) -> np.ndarray:
        """
        Return the embedding of ``text``.

        :param text: Input text, already normalized by the caller.
        :param label: Optional name used in log lines (defaults to a text prefix).
        :raises MalformedResponse: wrong vector count or size (not retried).
        :raises ProviderError: non-retryable API error, or retries exhausted.
        """
        if not text:
            raise ProviderError("Refusing to embed empty text", retryable=False)

        name = label or repr(text[:40])
        last_err: ProviderError | None = None

        for attempt in range(self.retry.max_attempts):
            try:
                vec = await self._request(text, name)
                if attempt > 0:
                    logger.info("Embedding for %s succeeded after %d attempts", name, attempt + 1)
                return vec
            except ProviderError as e:
                if not e.retryable:
                    raise
                last_err = e

            if attempt + 1 >= self.retry.max_attempts:
                break
            delay = self.retry.delay(attempt, self._rand)
            logger.warning(
                "Embedding for %s failed (attempt %d/%d, err=%s); retrying in %.2fs",
                name, attempt + 1, self.retry.max_attempts, last_err, delay,
            )
            await self._sleep(delay)

        raise ProviderError(
            f"Embedding for {name} failed after {self.retry.max_attempts} attempts: {last_err}"
        ) from last_err

    async def _request(self, text: str, name: str) -> np.ndarray:
        """One provider round trip with SDK errors mapped onto our taxonomy."""
        try:
            resp = await self._client.embeddings.create(model=self.model, input=text)
        except openai.RateLimitError as e:
            raise RateLimited(str(e)) from e
        except (openai.APITimeoutError, openai.APIConnectionError) as e:
            raise ProviderError(f"transport error: {e}") from e
        except openai.InternalServerError as e:
            raise ProviderError(f"server error: {e}") from e
        except openai.APIStatusError as e:
            raise ProviderError(f"request rejected ({e.status_code}): {e}", retryable=False) from e

        data = list(resp.data or [])
        if len(data) != 1:
            raise MalformedResponse(f"Expected 1 embedding for {name}, got {len(data)}")

        vec = np.asarray(data[0].embedding, dtype=np.float32)
        if vec.shape != (self.dim,):
            raise MalformedResponse(
                f"Unexpected embedding size {vec.size} != {self.dim} for model {self.model}"
            )

        usage = getattr(resp, "usage", None)
        if usage is not None:
            logger.info("%s used %d tokens", name, usage.total_tokens)
        return vec

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()
