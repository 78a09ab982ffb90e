"""Typed configuration surface consumed by the fetch layer, signal engine and scheduler."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

MINUTE_MS = 60_000
HOUR_MS = 60 * MINUTE_MS


class MonitorConfig(BaseModel):
    """Immutable thresholds and knobs for one watcher process."""

    model_config = ConfigDict(frozen=True)

    # Cycle
    poll_interval_sec: float = 60.0
    request_timeout_sec: float = 30.0
    max_alerts_per_cycle: int = 10
    alert_cooldown_sec: float = 1800.0

    # Catalog
    gamma_api_base: str = "https://gamma-api.polymarket.com"
    category: str = ""
    events_limit: int = 3000
    page_size: int = 100
    page_concurrency: int = 5
    request_delay_ms: int = 0
    max_retries: int = 5
    retry_base_delay_sec: float = 0.75
    min_liquidity: float = 0.0
    end_date_max_past_hours: float = 12.0
    proxy_url: str = ""

    # Signals
    enable_volume_spike: bool = True
    enable_big_buy: bool = True
    enable_price_change: bool = True
    enable_new_market: bool = True
    volume_spike_usd_30m: float = 20_000.0
    volume_spike_min_pct_30m: float = 0.25
    big_buy_usd_10m: float = 10_000.0
    big_buy_min_pct_10m: float = 0.10
    price_move_abs_10m: float = 0.08
    price_change_abs_10m: float = 0.15
    price_change_min_volume_usd_10m: float = 1_000.0
    price_change_score_multiplier: float = 100_000.0
    new_market_min_volume_usd: float = 1.0
    new_market_min_liquidity_usd: float = 0.0
    new_market_max_age_hours: float = 24.0

    # State
    retention_minutes: float = 180.0

    @property
    def poll_interval_ms(self) -> int:
        return int(self.poll_interval_sec * 1000)

    @property
    def cooldown_ms(self) -> int:
        return int(self.alert_cooldown_sec * 1000)

    @property
    def retention_ms(self) -> int:
        return int(max(10.0, self.retention_minutes) * MINUTE_MS)

    @property
    def staleness_tolerance_ms(self) -> int:
        """Slack allowed between a horizon and the sample found for it."""
        return max(5 * MINUTE_MS, 2 * max(1_000, self.poll_interval_ms))

    @property
    def has_alternate_route(self) -> bool:
        return bool(self.proxy_url.strip())
