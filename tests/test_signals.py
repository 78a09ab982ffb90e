"""Signal engine: horizons, staleness, dominant move, thresholds, new-market gating."""

import pytest

from polywatch.config import MonitorConfig
from polywatch.models import BigBuy, Market, MarketEntry, Outcome, PriceChange, Sample, VolumeSpike
from polywatch.signals import collect_candidates, detect, detect_new_market, dominant_move, nearest_at_or_before
from polywatch.storage.store import MarketStateStore

MINUTE = 60_000
HOUR = 60 * MINUTE
NOW = 1_700_000_000_000


def _entry(*samples):
    return MarketEntry(samples=[Sample(ts=ts, volume_usd=vol, prices=prices) for ts, vol, prices in samples])


def _quiet_config(**overrides):
    """Thresholds high enough that only the signal under test can fire."""
    values = dict(
        volume_spike_usd_30m=1e12,
        big_buy_usd_10m=1e12,
        price_change_abs_10m=1.0,
        price_change_min_volume_usd_10m=1e12,
    )
    values.update(overrides)
    return MonitorConfig(**values)


def test_nearest_at_or_before():
    samples = [Sample(ts=t) for t in (100, 200, 300)]
    assert nearest_at_or_before(samples, 250).ts == 200
    assert nearest_at_or_before(samples, 300).ts == 300
    assert nearest_at_or_before(samples, 99) is None


def test_dominant_move_tie_prefers_positive_delta():
    past = Sample(ts=0, prices={"a": 0.40, "b": 0.60})
    current = Sample(ts=1, prices={"a": 0.50, "b": 0.50})
    assert dominant_move(current, past).outcome_key == "a"
    past_rev = Sample(ts=0, prices={"b": 0.60, "a": 0.40})
    current_rev = Sample(ts=1, prices={"b": 0.50, "a": 0.50})
    assert dominant_move(current_rev, past_rev).outcome_key == "a"


def test_dominant_move_ignores_outcomes_missing_in_past():
    past = Sample(ts=0, prices={"yes": 0.5})
    current = Sample(ts=1, prices={"yes": 0.55, "new": 0.9})
    move = dominant_move(current, past)
    assert move.outcome_key == "yes"
    assert move.delta == pytest.approx(0.05)


def test_volume_spike_fires_at_threshold():
    prices = {"yes": 0.5, "no": 0.5}
    entry = _entry((NOW - 30 * MINUTE, 10_000.0, prices), (NOW, 16_000.0, prices))
    config = _quiet_config(volume_spike_usd_30m=5_000, volume_spike_min_pct_30m=0.25)
    found = detect("m1", entry, NOW, config)
    assert isinstance(found.volume_spike, VolumeSpike)
    assert found.volume_spike.delta_usd == 6_000
    assert found.volume_spike.pct_of_total == pytest.approx(0.375)
    assert found.volume_spike.score == 6_000
    assert found.big_buy is None

    stricter = _quiet_config(volume_spike_usd_30m=6_001, volume_spike_min_pct_30m=0.25)
    assert detect("m1", entry, NOW, stricter).volume_spike is None


def test_volume_spike_requires_share_of_total():
    prices = {"yes": 0.5}
    entry = _entry((NOW - 30 * MINUTE, 100_000.0, prices), (NOW, 106_000.0, prices))
    config = _quiet_config(volume_spike_usd_30m=5_000, volume_spike_min_pct_30m=0.25)
    assert detect("m1", entry, NOW, config).volume_spike is None


def test_big_buy_requires_volume_share_and_price_move():
    entry = _entry(
        (NOW - 10 * MINUTE, 68_000.0, {"yes": 0.50, "no": 0.50}),
        (NOW, 80_000.0, {"yes": 0.59, "no": 0.41}),
    )
    config = _quiet_config(big_buy_usd_10m=10_000, big_buy_min_pct_10m=0.10, price_move_abs_10m=0.08)
    found = detect("m1", entry, NOW, config)
    assert isinstance(found.big_buy, BigBuy)
    assert found.big_buy.outcome_key == "yes"
    assert found.big_buy.delta_price == pytest.approx(0.09)
    assert found.big_buy.volume_delta_usd == 12_000
    assert found.big_buy.pct_of_total == pytest.approx(0.15)
    assert found.big_buy.alert_key == "big_buy:yes"

    no_move = _quiet_config(big_buy_usd_10m=10_000, big_buy_min_pct_10m=0.10, price_move_abs_10m=0.10)
    assert detect("m1", entry, NOW, no_move).big_buy is None
    low_share = _quiet_config(big_buy_usd_10m=10_000, big_buy_min_pct_10m=0.20, price_move_abs_10m=0.08)
    assert detect("m1", entry, NOW, low_share).big_buy is None


def test_price_change_independent_of_spike_volume():
    entry = _entry(
        (NOW - 12 * MINUTE, 500_000.0, {"yes": 0.30, "no": 0.70}),
        (NOW, 501_500.0, {"yes": 0.50, "no": 0.50}),
    )
    config = _quiet_config(price_change_abs_10m=0.15, price_change_min_volume_usd_10m=1_000)
    found = detect("m1", entry, NOW, config)
    assert isinstance(found.price_change, PriceChange)
    assert found.price_change.outcome_key == "yes"
    assert found.price_change.score == pytest.approx(0.2 * 100_000)
    assert found.big_buy is None

    floor = _quiet_config(price_change_abs_10m=0.15, price_change_min_volume_usd_10m=2_000)
    assert detect("m1", entry, NOW, floor).price_change is None


def test_stale_horizon_skipped():
    config = _quiet_config(volume_spike_usd_30m=1, volume_spike_min_pct_30m=0)
    tolerance = config.staleness_tolerance_ms
    assert tolerance == 5 * MINUTE
    prices = {"yes": 0.5}
    stale = _entry((NOW - 30 * MINUTE - tolerance - 1, 0.0, prices), (NOW, 50_000.0, prices))
    assert detect("m1", stale, NOW, config).volume_spike is None
    edge = _entry((NOW - 30 * MINUTE - tolerance, 0.0, prices), (NOW, 50_000.0, prices))
    assert detect("m1", edge, NOW, config).volume_spike is not None


def test_staleness_tolerance_scales_with_poll_interval():
    assert MonitorConfig(poll_interval_sec=600).staleness_tolerance_ms == 20 * MINUTE


def test_single_sample_detects_nothing():
    entry = _entry((NOW, 1_000_000.0, {"yes": 0.9}))
    config = _quiet_config(volume_spike_usd_30m=0, volume_spike_min_pct_30m=0)
    assert detect("m1", entry, NOW, config).candidates() == []


def test_zero_current_volume_gives_zero_share():
    prices = {"yes": 0.5}
    entry = _entry((NOW - 30 * MINUTE, 0.0, prices), (NOW, 0.0, prices))
    config = _quiet_config(volume_spike_usd_30m=0, volume_spike_min_pct_30m=0)
    spike = detect("m1", entry, NOW, config).volume_spike
    assert spike is not None
    assert spike.pct_of_total == 0


def test_detect_is_idempotent():
    entry = _entry(
        (NOW - 30 * MINUTE, 10_000.0, {"yes": 0.3, "no": 0.7}),
        (NOW - 10 * MINUTE, 20_000.0, {"yes": 0.4, "no": 0.6}),
        (NOW, 60_000.0, {"yes": 0.6, "no": 0.4}),
    )
    config = MonitorConfig(volume_spike_usd_30m=1_000, big_buy_usd_10m=1_000)
    first = detect("m1", entry, NOW, config)
    second = detect("m1", entry, NOW, config)
    assert first == second
    assert len(first.candidates()) == 3


# --- new market ----------------------------------------------------------


def _new_market(volume=2_000.0, liquidity=500.0, created_at=NOW - 3 * HOUR):
    return Market(
        market_id="fresh",
        volume_usd=volume,
        liquidity_usd=liquidity,
        created_at=created_at,
        outcomes=[Outcome(name="Yes", price=0.5), Outcome(name="No", price=0.5)],
    )


def test_new_market_fires_when_all_gates_pass():
    config = MonitorConfig(new_market_min_volume_usd=1, new_market_min_liquidity_usd=0, new_market_max_age_hours=24)
    signal = detect_new_market(_new_market(), True, True, NOW, config)
    assert signal is not None
    assert signal.age_hours == pytest.approx(3.0)
    assert signal.score == 2_000


@pytest.mark.parametrize(
    "market, is_new, bootstrapped",
    [
        (_new_market(), True, False),
        (_new_market(), False, True),
        (_new_market(volume=0.5), True, True),
        (_new_market(created_at=None), True, True),
        (_new_market(created_at=NOW - 25 * HOUR), True, True),
    ],
)
def test_new_market_gates(market, is_new, bootstrapped):
    config = MonitorConfig(new_market_min_volume_usd=1, new_market_max_age_hours=24)
    assert detect_new_market(market, is_new, bootstrapped, NOW, config) is None


def test_collect_candidates_respects_enable_flags():
    store = MarketStateStore()
    store.mark_bootstrapped()
    market = _new_market()
    store.upsert(market, NOW, 180 * MINUTE)
    config = MonitorConfig(enable_new_market=False)
    assert collect_candidates(store, [market], {"fresh"}, NOW, config) == []
    enabled = collect_candidates(store, [market], {"fresh"}, NOW, MonitorConfig())
    assert [c.kind.value for c in enabled] == ["new_market"]
