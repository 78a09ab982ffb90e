"""Horizon-based signal detection over a market's sample window.

For each lookback horizon the engine pairs the newest sample with the nearest sample at or
before `now - horizon`. A horizon whose best match is older than `horizon + tolerance` is
stale (a gap in observation) and produces nothing.

    VolumeSpike  30 min  dVolume >= usd and dVolume/volume >= pct
    BigBuy       10 min  as above, plus |dominant dPrice| >= price_move
    PriceChange  10 min  |dominant dPrice| >= price_change and dVolume >= floor
    NewMarket    --      first sight after bootstrap, floors met, known age <= max
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from polywatch.config.monitor import HOUR_MS, MINUTE_MS, MonitorConfig
from polywatch.models import (
    BigBuy,
    Market,
    MarketEntry,
    NewMarket,
    PriceChange,
    PriceMove,
    Sample,
    SignalCandidate,
    VolumeSpike,
)
from polywatch.storage.store import MarketStateStore

SPIKE_HORIZON_MS = 30 * MINUTE_MS
MOVE_HORIZON_MS = 10 * MINUTE_MS
_TIE_EPSILON = 1e-12


@dataclass(frozen=True)
class HorizonDelta:
    past: Sample
    current: Sample
    volume_delta: float
    pct_of_total: float
    move: PriceMove | None


@dataclass(frozen=True)
class DetectedSignals:
    volume_spike: VolumeSpike | None = None
    big_buy: BigBuy | None = None
    price_change: PriceChange | None = None

    def candidates(self) -> list[SignalCandidate]:
        return [c for c in (self.volume_spike, self.big_buy, self.price_change) if c is not None]


def nearest_at_or_before(samples: Sequence[Sample], cutoff_ms: int) -> Sample | None:
    """Latest sample with ts <= cutoff_ms."""
    best = None
    for s in samples:
        if s.ts <= cutoff_ms and (best is None or s.ts > best.ts):
            best = s
    return best


def dominant_move(current: Sample, past: Sample) -> PriceMove | None:
    """Outcome with the largest absolute price change; ties go to the rising outcome."""
    best: PriceMove | None = None
    for key, curr_price in current.prices.items():
        prev_price = past.prices.get(key)
        if prev_price is None:
            continue
        delta = curr_price - prev_price
        if best is None:
            best = PriceMove(outcome_key=key, delta=delta, prev_price=prev_price, curr_price=curr_price)
            continue
        diff = abs(delta) - best.abs_delta
        if diff > _TIE_EPSILON or (abs(diff) <= _TIE_EPSILON and delta > best.delta):
            best = PriceMove(outcome_key=key, delta=delta, prev_price=prev_price, curr_price=curr_price)
    return best


def horizon_delta(
    samples: Sequence[Sample],
    now_ms: int,
    horizon_ms: int,
    tolerance_ms: int,
) -> HorizonDelta | None:
    """Delta between the newest sample and the one at `now - horizon`, or None when stale."""
    if len(samples) < 2:
        return None
    current = samples[-1]
    past = nearest_at_or_before(samples, now_ms - horizon_ms)
    if past is None or past is current or now_ms - past.ts > horizon_ms + tolerance_ms:
        return None
    volume_delta = current.volume_usd - past.volume_usd
    pct_of_total = volume_delta / current.volume_usd if current.volume_usd > 0 else 0.0
    return HorizonDelta(
        past=past,
        current=current,
        volume_delta=volume_delta,
        pct_of_total=pct_of_total,
        move=dominant_move(current, past),
    )


def detect(market_id: str, entry: MarketEntry, now_ms: int, config: MonitorConfig) -> DetectedSignals:
    """Derive horizon signals for one market. Pure: same state, same result."""
    samples = entry.samples
    if len(samples) < 2:
        return DetectedSignals()
    tolerance = config.staleness_tolerance_ms

    volume_spike = None
    spike = horizon_delta(samples, now_ms, SPIKE_HORIZON_MS, tolerance)
    if (
        spike is not None
        and spike.volume_delta >= config.volume_spike_usd_30m
        and spike.pct_of_total >= config.volume_spike_min_pct_30m
    ):
        volume_spike = VolumeSpike(
            market_id=market_id,
            delta_usd=spike.volume_delta,
            pct_of_total=spike.pct_of_total,
            from_ts=spike.past.ts,
            from_volume_usd=spike.past.volume_usd,
            to_volume_usd=spike.current.volume_usd,
            move=spike.move,
        )

    big_buy = None
    price_change = None
    recent = horizon_delta(samples, now_ms, MOVE_HORIZON_MS, tolerance)
    if recent is not None and recent.move is not None:
        move = recent.move
        if (
            recent.volume_delta >= config.big_buy_usd_10m
            and recent.pct_of_total >= config.big_buy_min_pct_10m
            and move.abs_delta >= config.price_move_abs_10m
        ):
            big_buy = BigBuy(
                market_id=market_id,
                volume_delta_usd=recent.volume_delta,
                pct_of_total=recent.pct_of_total,
                from_ts=recent.past.ts,
                from_volume_usd=recent.past.volume_usd,
                to_volume_usd=recent.current.volume_usd,
                outcome_key=move.outcome_key,
                delta_price=move.delta,
                prev_price=move.prev_price,
                curr_price=move.curr_price,
            )
        if (
            move.abs_delta >= config.price_change_abs_10m
            and recent.volume_delta >= config.price_change_min_volume_usd_10m
        ):
            price_change = PriceChange(
                market_id=market_id,
                volume_delta_usd=recent.volume_delta,
                from_ts=recent.past.ts,
                outcome_key=move.outcome_key,
                delta_price=move.delta,
                prev_price=move.prev_price,
                curr_price=move.curr_price,
                score_multiplier=config.price_change_score_multiplier,
            )

    return DetectedSignals(volume_spike=volume_spike, big_buy=big_buy, price_change=price_change)


def detect_new_market(
    market: Market,
    is_new: bool,
    bootstrapped: bool,
    now_ms: int,
    config: MonitorConfig,
) -> NewMarket | None:
    """First-sight alert. Unknown creation time counts as too old."""
    if not is_new or not bootstrapped:
        return None
    if market.volume_usd < config.new_market_min_volume_usd:
        return None
    if market.liquidity_usd < config.new_market_min_liquidity_usd:
        return None
    if market.created_at is None:
        return None
    age_hours = max(0, now_ms - market.created_at) / HOUR_MS
    if age_hours > config.new_market_max_age_hours:
        return None
    return NewMarket(
        market_id=market.market_id,
        volume_usd=market.volume_usd,
        liquidity_usd=market.liquidity_usd,
        age_hours=age_hours,
    )


def collect_candidates(
    store: MarketStateStore,
    markets: Iterable[Market],
    new_ids: set[str],
    now_ms: int,
    config: MonitorConfig,
) -> list[SignalCandidate]:
    """All enabled candidates for this cycle's markets, unranked."""
    candidates: list[SignalCandidate] = []
    bootstrapped = store.bootstrapped
    for market in markets:
        if config.enable_new_market:
            fresh = detect_new_market(market, market.market_id in new_ids, bootstrapped, now_ms, config)
            if fresh is not None:
                candidates.append(fresh)

        entry = store.get(market.market_id)
        if entry is None:
            continue
        found = detect(market.market_id, entry, now_ms, config)
        if config.enable_volume_spike and found.volume_spike is not None:
            candidates.append(found.volume_spike)
        if config.enable_big_buy and found.big_buy is not None:
            candidates.append(found.big_buy)
        if config.enable_price_change and found.price_change is not None:
            candidates.append(found.price_change)
    return candidates
