"""Bounded exponential-backoff retry over FetchClient."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog

from polywatch.ingestion.http import FetchClient, FetchError, UpstreamHttpError, is_retryable

log = structlog.get_logger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 5
    base_delay_sec: float = 0.75
    max_jitter_sec: float = 0.25
    max_delay_sec: float = 60.0

    def delay_for(self, attempt: int, retry_after_ms: int | None, jitter: float) -> float:
        """Wait before retry number attempt+1. Retry-After is a floor, max_delay_sec a cap."""
        backoff = self.base_delay_sec * (2**attempt) + jitter
        floor = (retry_after_ms or 0) / 1000.0
        return min(self.max_delay_sec, max(floor, backoff))


class RetryingFetcher:
    """Retries FetchClient.fetch on retryable failures; anything else is re-raised at once."""

    def __init__(
        self,
        client: FetchClient,
        policy: RetryPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
        jitter: Callable[[float], float] | None = None,
    ) -> None:
        self.client = client
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._jitter = jitter or (lambda upper: random.uniform(0, upper))

    @property
    def has_alternate(self) -> bool:
        return self.client.has_alternate

    async def fetch(self, url: str, timeout: float, use_alternate: bool = False) -> Any:
        max_retries = max(0, self.policy.max_retries)
        attempt = 0
        while True:
            try:
                return await self.client.fetch(url, timeout, use_alternate=use_alternate)
            except FetchError as e:
                if attempt >= max_retries or not is_retryable(e):
                    raise
                retry_after = e.retry_after_ms if isinstance(e, UpstreamHttpError) else None
                wait = self.policy.delay_for(attempt, retry_after, self._jitter(self.policy.max_jitter_sec))
                log.debug(
                    "fetch_retry",
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    wait_sec=round(wait, 3),
                    status=getattr(e, "status", None),
                    alternate=use_alternate,
                    error=str(e),
                )
                await self._sleep(wait)
                attempt += 1
