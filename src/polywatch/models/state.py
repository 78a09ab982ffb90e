"""Persisted tracking state - samples, per-market entries, whole-state snapshot."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field


class Sample(BaseModel):
    """One timestamped observation of cumulative volume and per-outcome prices."""

    model_config = ConfigDict(frozen=True)

    ts: int  # ms epoch
    volume_usd: float = 0.0
    prices: dict[str, float] = Field(default_factory=dict)  # normalized outcome key -> price


class MarketMeta(BaseModel):
    """Last-seen descriptive snapshot of a market, overwritten every cycle."""

    title: str = ""
    event_title: str = ""
    url: str = ""
    slug: str = ""
    volume_usd: float = 0.0
    liquidity_usd: float = 0.0
    created_at: int | None = None


class MarketEntry(BaseModel):
    """Tracked market: sliding window of samples plus alert cooldown table."""

    meta: MarketMeta = Field(default_factory=MarketMeta)
    samples: list[Sample] = Field(default_factory=list)
    last_seen_ts: int = 0
    alerts: dict[str, int] = Field(default_factory=dict)  # alert key -> last sent ms


def _now_ms() -> int:
    return int(time.time() * 1000)


class StateMeta(BaseModel):
    """Process-level bookkeeping surfaced by status queries."""

    created_at: int = Field(default_factory=_now_ms)
    bootstrapped: bool = False
    last_scan_at: int | None = None
    last_cycle_ms: int | None = None
    last_scan_markets: int | None = None
    last_scan_new_markets: int | None = None
    last_scan_signals: int | None = None
    last_scan_alerts_sent: int | None = None
    last_scan_removed_markets: int | None = None
    last_error_at: int | None = None
    last_error: str | None = None


class WatchState(BaseModel):
    """Whole tracked-market map plus meta; the unit of snapshot persistence."""

    meta: StateMeta = Field(default_factory=StateMeta)
    markets: dict[str, MarketEntry] = Field(default_factory=dict)
