"""Route-fallback circuit: direct first, a time-boxed forced-alternate window when blocked.

States:
    DIRECT            -- try the direct route; a fallback-worthy failure opens the window
                         and the same request is retried once over the alternate route.
    FORCED_ALTERNATE  -- window open: skip direct entirely until it expires.

An alternate-route failure after a trip closes the window again, so a broken alternate
never pins the circuit.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Callable

import structlog

from polywatch.ingestion.http import FetchError, is_fallback_worthy
from polywatch.ingestion.retry import RetryingFetcher

log = structlog.get_logger(__name__)

FORCED_ALTERNATE_WINDOW_SEC = 15 * 60


class RouteMode(str, Enum):
    DIRECT = "direct"
    FORCED_ALTERNATE = "forced_alternate"


class RouteFallbackCircuit:
    """Owns the forced-alternate deadline for one fetch stack."""

    def __init__(
        self,
        fetcher: RetryingFetcher,
        *,
        clock: Callable[[], float] = time.time,
        window_sec: float = FORCED_ALTERNATE_WINDOW_SEC,
    ) -> None:
        self.fetcher = fetcher
        self._clock = clock
        self.window_sec = window_sec
        self.forced_until: float = 0.0

    @property
    def has_alternate(self) -> bool:
        return self.fetcher.has_alternate

    def mode(self, now: float | None = None) -> RouteMode:
        current = self._clock() if now is None else now
        if self.has_alternate and current < self.forced_until:
            return RouteMode.FORCED_ALTERNATE
        return RouteMode.DIRECT

    def open_window(self, now: float) -> None:
        self.forced_until = now + self.window_sec

    def close_window(self) -> None:
        self.forced_until = 0.0

    async def fetch_json(self, url: str, timeout: float) -> Any:
        now = self._clock()
        if self.mode(now) is RouteMode.FORCED_ALTERNATE:
            return await self.fetcher.fetch(url, timeout, use_alternate=True)

        try:
            return await self.fetcher.fetch(url, timeout, use_alternate=False)
        except FetchError as e:
            if not self.has_alternate or not is_fallback_worthy(e):
                raise
            self.open_window(now)
            log.warning("route_fallback_opened", url=url, error=str(e), window_sec=self.window_sec)

        try:
            return await self.fetcher.fetch(url, timeout, use_alternate=True)
        except FetchError as e:
            self.close_window()
            log.warning("route_fallback_failed", url=url, error=str(e))
            raise
