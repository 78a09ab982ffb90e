"""Polymarket Gamma API client - paginated event listing in bounded-concurrency batches."""

from __future__ import annotations

import asyncio
import time
from typing import Any
from urllib.parse import urlencode

import structlog

from polywatch.config.monitor import MonitorConfig
from polywatch.ingestion.circuit import RouteFallbackCircuit
from polywatch.ingestion.http import PayloadDecodeError
from polywatch.ingestion.polymarket.normalize import CatalogFilters, SkipReason, normalize_event
from polywatch.models import Market

log = structlog.get_logger(__name__)

MIN_REQUEST_BUDGET_MS = 250


def events_url(base_url: str, limit: int, offset: int, category: str = "") -> str:
    params: dict[str, Any] = {"active": "true", "closed": "false", "limit": limit, "offset": offset}
    if category:
        params["category"] = category
    return f"{base_url.rstrip('/')}/events?{urlencode(params)}"


def plan_pages(config: MonitorConfig) -> list[tuple[int, int]]:
    """(offset, limit) per page for this cycle, capped by the per-interval request budget."""
    page_size = max(1, config.page_size)
    requested = max(1, config.events_limit)
    per_request_ms = max(MIN_REQUEST_BUDGET_MS, config.request_delay_ms)
    max_pages = max(1, config.poll_interval_ms // per_request_ms)
    limit = min(requested, max_pages * page_size)
    return [(offset, min(page_size, limit - offset)) for offset in range(0, limit, page_size)]


class GammaCatalog:
    """Lists markets for one cycle through the route-fallback circuit."""

    def __init__(self, circuit: RouteFallbackCircuit, config: MonitorConfig) -> None:
        self.circuit = circuit
        self.config = config

    async def _fetch_page(self, offset: int, limit: int) -> list[Any] | None:
        """One page of events. None when the payload could not be decoded."""
        url = events_url(self.config.gamma_api_base, limit, offset, self.config.category)
        try:
            data = await self.circuit.fetch_json(url, self.config.request_timeout_sec)
        except PayloadDecodeError as e:
            log.warning("catalog_page_decode_error", offset=offset, error=str(e))
            return None
        if not isinstance(data, list):
            log.warning("catalog_page_not_a_list", offset=offset, type=type(data).__name__)
            return None
        return data

    async def list_markets(self, now_ms: int | None = None) -> list[Market]:
        """Fetch, normalize and filter the listing. Order follows page order; ids are unique."""
        now = int(time.time() * 1000) if now_ms is None else now_ms
        filters = CatalogFilters(
            min_liquidity=self.config.min_liquidity,
            end_date_max_past_hours=self.config.end_date_max_past_hours,
        )
        pages = plan_pages(self.config)
        concurrency = max(1, self.config.page_concurrency)
        markets: list[Market] = []
        seen: set[str] = set()
        skipped: dict[SkipReason, int] = {}
        pages_fetched = 0

        for start in range(0, len(pages), concurrency):
            batch = pages[start : start + concurrency]
            results = await asyncio.gather(
                *(self._fetch_page(offset, limit) for offset, limit in batch),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            pages_fetched += len(batch)

            for events in results:
                for event in events or []:
                    found, skips = normalize_event(event, filters, now)
                    for reason, count in skips.items():
                        skipped[reason] = skipped.get(reason, 0) + count
                    for market in found:
                        if market.market_id in seen:
                            continue
                        seen.add(market.market_id)
                        markets.append(market)

            last_events, (_, last_limit) = results[-1], batch[-1]
            if last_events is not None and len(last_events) < last_limit:
                break
            if self.config.request_delay_ms > 0:
                await asyncio.sleep(self.config.request_delay_ms / 1000)

        log.info(
            "catalog_listed",
            markets=len(markets),
            pages=pages_fetched,
            skipped={reason.value: count for reason, count in skipped.items()},
        )
        return markets
