"""Market state store - per-market sliding window of samples, cooldown table, pruning."""

from __future__ import annotations

from typing import Iterator

from polywatch.models import Market, MarketEntry, MarketMeta, Sample, WatchState


def normalize_outcome_key(name: str) -> str:
    """Case- and whitespace-insensitive outcome key, stable across cycles."""
    return " ".join(str(name or "").lower().split())


def sample_from_market(market: Market, now_ms: int) -> Sample:
    prices: dict[str, float] = {}
    for outcome in market.outcomes:
        key = normalize_outcome_key(outcome.name)
        if key and key not in prices:
            prices[key] = outcome.price
    return Sample(ts=now_ms, volume_usd=market.volume_usd, prices=prices)


class MarketStateStore:
    """Wraps a WatchState. Single-threaded by construction: cycles never overlap."""

    def __init__(self, state: WatchState | None = None) -> None:
        self.state = state or WatchState()

    def __len__(self) -> int:
        return len(self.state.markets)

    def __contains__(self, market_id: object) -> bool:
        return market_id in self.state.markets

    def get(self, market_id: str) -> MarketEntry | None:
        return self.state.markets.get(market_id)

    def items(self) -> Iterator[tuple[str, MarketEntry]]:
        return iter(list(self.state.markets.items()))

    @property
    def bootstrapped(self) -> bool:
        return self.state.meta.bootstrapped

    def mark_bootstrapped(self) -> None:
        self.state.meta.bootstrapped = True

    def upsert(self, market: Market, now_ms: int, retention_ms: int) -> bool:
        """Record one observation. Returns True when the market was not tracked before."""
        entry = self.state.markets.get(market.market_id)
        is_new = entry is None
        if entry is None:
            entry = MarketEntry()
            self.state.markets[market.market_id] = entry

        entry.last_seen_ts = now_ms
        entry.meta = MarketMeta(
            title=market.title,
            event_title=market.event_title,
            url=market.url,
            slug=market.slug,
            volume_usd=market.volume_usd,
            liquidity_usd=market.liquidity_usd,
            created_at=market.created_at,
        )

        sample = sample_from_market(market, now_ms)
        samples = entry.samples
        # Samples stay strictly ordered: a repeat observation at the same instant replaces the last one.
        while samples and samples[-1].ts >= now_ms:
            samples.pop()
        samples.append(sample)

        cutoff = now_ms - retention_ms
        drop = 0
        while drop < len(samples) and samples[drop].ts < cutoff:
            drop += 1
        if drop:
            del samples[:drop]
        return is_new

    def prune(self, now_ms: int, retention_ms: int) -> int:
        """Delete entries not seen within the retention horizon. Returns the count removed."""
        cutoff = now_ms - retention_ms
        stale = [mid for mid, entry in self.state.markets.items() if entry.last_seen_ts < cutoff]
        for mid in stale:
            del self.state.markets[mid]
        return len(stale)

    def in_cooldown(self, market_id: str, alert_key: str, now_ms: int, cooldown_ms: int) -> bool:
        entry = self.state.markets.get(market_id)
        if entry is None:
            return False
        last = entry.alerts.get(alert_key)
        return last is not None and now_ms - last < cooldown_ms

    def should_alert(self, market_id: str, alert_key: str, now_ms: int, cooldown_ms: int) -> bool:
        """Check-and-set: True (and stamp now) if the key is out of cooldown."""
        entry = self.state.markets.get(market_id)
        if entry is None:
            return False
        if self.in_cooldown(market_id, alert_key, now_ms, cooldown_ms):
            return False
        entry.alerts[alert_key] = now_ms
        return True

    def reset_cooldowns(self) -> int:
        """Forget every alert stamp. Returns how many were cleared."""
        cleared = 0
        for entry in self.state.markets.values():
            cleared += len(entry.alerts)
            entry.alerts.clear()
        return cleared

    def record_error(self, now_ms: int, message: str) -> None:
        self.state.meta.last_error_at = now_ms
        self.state.meta.last_error = message
