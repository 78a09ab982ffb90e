"""One full cycle: catalog -> state upsert -> signals -> alerts -> prune."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import structlog

from polywatch.alerts.scheduler import AlertScheduler
from polywatch.config.monitor import MonitorConfig
from polywatch.models import Market
from polywatch.signals.engine import collect_candidates
from polywatch.storage.store import MarketStateStore

log = structlog.get_logger(__name__)


class Catalog(Protocol):
    async def list_markets(self, now_ms: int | None = None) -> list[Market]: ...


@dataclass
class CycleReport:
    markets: int
    new_markets: int
    signals: int
    alerts_sent: int
    removed: int
    error: str | None = None


async def run_cycle(
    store: MarketStateStore,
    catalog: Catalog,
    scheduler: AlertScheduler,
    config: MonitorConfig,
    now_ms: int,
) -> CycleReport:
    """Catalog failures propagate; the caller decides when to try again."""
    markets = await catalog.list_markets(now_ms)
    retention_ms = config.retention_ms

    new_ids: set[str] = set()
    for market in markets:
        if store.upsert(market, now_ms, retention_ms):
            new_ids.add(market.market_id)

    candidates = collect_candidates(store, markets, new_ids, now_ms, config)
    dispatch = await scheduler.dispatch(
        store,
        candidates,
        now_ms,
        max_alerts=config.max_alerts_per_cycle,
        cooldown_ms=config.cooldown_ms,
    )
    removed = store.prune(now_ms, retention_ms)

    meta = store.state.meta
    meta.last_scan_at = now_ms
    meta.last_scan_markets = len(markets)
    meta.last_scan_new_markets = len(new_ids)
    meta.last_scan_signals = len(candidates)
    meta.last_scan_alerts_sent = dispatch.sent
    meta.last_scan_removed_markets = removed
    store.mark_bootstrapped()

    report = CycleReport(
        markets=len(markets),
        new_markets=len(new_ids),
        signals=len(candidates),
        alerts_sent=dispatch.sent,
        removed=removed,
        error=dispatch.error,
    )
    log.info(
        "cycle_complete",
        markets=report.markets,
        new_markets=report.new_markets,
        signals=report.signals,
        alerts_sent=report.alerts_sent,
        cooled_down=dispatch.cooled_down,
        removed=report.removed,
        tracked=len(store),
    )
    return report
