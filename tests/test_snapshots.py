"""State snapshot persistence."""

import json

from polywatch.models import Market, Outcome, WatchState
from polywatch.storage.snapshots import load_state, save_state
from polywatch.storage.store import MarketStateStore


def _populated_state():
    store = MarketStateStore()
    market = Market(
        market_id="m1",
        title="Will it rain?",
        volume_usd=1_234.5,
        created_at=1_699_000_000_000,
        outcomes=[Outcome(name="Yes", price=0.4), Outcome(name="No", price=0.6)],
    )
    store.upsert(market, 1_700_000_000_000, 3_600_000)
    store.should_alert("m1", "volume_spike", 1_700_000_000_000, 60_000)
    store.mark_bootstrapped()
    store.record_error(1_700_000_000_500, "TransportFailure: boom")
    return store.state


def test_save_then_load_preserves_state(tmp_path):
    path = tmp_path / "state.json"
    state = _populated_state()
    save_state(path, state)
    loaded = load_state(path)
    assert loaded.model_dump() == state.model_dump()
    assert loaded.meta.bootstrapped is True
    assert loaded.markets["m1"].samples[0].prices == {"yes": 0.4, "no": 0.6}


def test_save_leaves_no_temp_files(tmp_path):
    path = tmp_path / "nested" / "state.json"
    save_state(path, _populated_state())
    save_state(path, WatchState())
    assert [p.name for p in path.parent.iterdir()] == ["state.json"]


def test_missing_file_yields_empty_state(tmp_path):
    state = load_state(tmp_path / "absent.json")
    assert state.markets == {}
    assert state.meta.bootstrapped is False


def test_corrupt_file_yields_empty_state(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_state(path).markets == {}
    path.write_text(json.dumps({"markets": {"m1": {"samples": "nope"}}}), encoding="utf-8")
    assert load_state(path).markets == {}


def test_snapshot_without_bootstrap_flag(tmp_path):
    path = tmp_path / "state.json"
    path.write_text(
        json.dumps({"meta": {"created_at": 1}, "markets": {"m1": {"last_seen_ts": 5}}}),
        encoding="utf-8",
    )
    assert load_state(path).meta.bootstrapped is True
    path.write_text(json.dumps({"meta": {"created_at": 1}, "markets": {}}), encoding="utf-8")
    assert load_state(path).meta.bootstrapped is False
