"""Runtime overrides over MonitorConfig.

Every tunable field is a member of `RuntimeKey`; the `FIELDS` table maps each key to a
(parse, validate, apply) triple. Anything outside the enum is rejected before it can touch
the config. Overrides persist as a small JSON object next to the state snapshot.
"""

from __future__ import annotations

import json
import math
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any, Callable, NamedTuple
from urllib.parse import urlparse

import structlog

from polywatch.config.monitor import MonitorConfig

log = structlog.get_logger(__name__)


class ConfigError(ValueError):
    """Base for runtime override failures."""


class UnknownConfigKey(ConfigError):
    def __init__(self, key: str) -> None:
        super().__init__(f"unknown config key: {key}")
        self.key = key


class InvalidConfigValue(ConfigError):
    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"{key}: {reason}")
        self.key = key
        self.reason = reason


class RuntimeKey(str, Enum):
    POLL_INTERVAL_SEC = "poll_interval_sec"
    REQUEST_TIMEOUT_SEC = "request_timeout_sec"
    MAX_ALERTS_PER_CYCLE = "max_alerts_per_cycle"
    ALERT_COOLDOWN_SEC = "alert_cooldown_sec"
    PROXY_URL = "proxy_url"
    GAMMA_API_BASE = "gamma_api_base"
    CATEGORY = "category"
    EVENTS_LIMIT = "events_limit"
    PAGE_SIZE = "page_size"
    PAGE_CONCURRENCY = "page_concurrency"
    REQUEST_DELAY_MS = "request_delay_ms"
    MAX_RETRIES = "max_retries"
    RETRY_BASE_DELAY_SEC = "retry_base_delay_sec"
    MIN_LIQUIDITY = "min_liquidity"
    END_DATE_MAX_PAST_HOURS = "end_date_max_past_hours"
    ENABLE_VOLUME_SPIKE = "enable_volume_spike"
    ENABLE_BIG_BUY = "enable_big_buy"
    ENABLE_PRICE_CHANGE = "enable_price_change"
    ENABLE_NEW_MARKET = "enable_new_market"
    VOLUME_SPIKE_USD_30M = "volume_spike_usd_30m"
    VOLUME_SPIKE_MIN_PCT_30M = "volume_spike_min_pct_30m"
    BIG_BUY_USD_10M = "big_buy_usd_10m"
    BIG_BUY_MIN_PCT_10M = "big_buy_min_pct_10m"
    PRICE_MOVE_ABS_10M = "price_move_abs_10m"
    PRICE_CHANGE_ABS_10M = "price_change_abs_10m"
    PRICE_CHANGE_MIN_VOLUME_USD_10M = "price_change_min_volume_usd_10m"
    PRICE_CHANGE_SCORE_MULTIPLIER = "price_change_score_multiplier"
    NEW_MARKET_MIN_VOLUME_USD = "new_market_min_volume_usd"
    NEW_MARKET_MIN_LIQUIDITY_USD = "new_market_min_liquidity_usd"
    NEW_MARKET_MAX_AGE_HOURS = "new_market_max_age_hours"
    RETENTION_MINUTES = "retention_minutes"


SENSITIVE_KEYS = frozenset({RuntimeKey.PROXY_URL})


def parse_key(key: str) -> RuntimeKey:
    try:
        return RuntimeKey(key.strip().lower())
    except ValueError:
        raise UnknownConfigKey(key) from None


# Parsers: raw (str or JSON scalar) -> typed value


def _parse_float(raw: Any) -> float:
    if isinstance(raw, bool):
        raise ValueError("value must be a number")
    value = float(str(raw).strip())
    if not math.isfinite(value):
        raise ValueError("value must be a finite number")
    return value


def _parse_int(raw: Any) -> int:
    return int(math.floor(_parse_float(raw)))


_TRUE = {"1", "true", "yes", "on", "enable", "enabled"}
_FALSE = {"0", "false", "no", "off", "disable", "disabled"}


def _parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    value = str(raw).strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError("value must be boolean (true/false)")


def _parse_str(raw: Any) -> str:
    return "" if raw is None else str(raw).strip()


# Validators: typed value -> accepted value (clamped) or ValueError


def _at_least(lower: float) -> Callable[[Any], Any]:
    def check(value: Any) -> Any:
        return max(type(value)(lower), value)

    return check


def _unit_interval(value: float) -> float:
    return max(0.0, min(1.0, value))


def _any(value: Any) -> Any:
    return value


def _absolute_url(value: str) -> str:
    normalized = value.rstrip("/")
    if not normalized:
        raise ValueError("cannot be empty")
    parsed = urlparse(normalized)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError("must be an absolute URL")
    return normalized


def _optional_url(value: str) -> str:
    return _absolute_url(value) if value else ""


class FieldSpec(NamedTuple):
    parse: Callable[[Any], Any]
    validate: Callable[[Any], Any]
    apply: Callable[[MonitorConfig, Any], MonitorConfig]


def _set(field: str) -> Callable[[MonitorConfig, Any], MonitorConfig]:
    def apply(config: MonitorConfig, value: Any) -> MonitorConfig:
        return config.model_copy(update={field: value})

    return apply


def _field(key: RuntimeKey, parse: Callable[[Any], Any], validate: Callable[[Any], Any]) -> FieldSpec:
    return FieldSpec(parse, validate, _set(key.value))


K = RuntimeKey

FIELDS: dict[RuntimeKey, FieldSpec] = {
    K.POLL_INTERVAL_SEC: _field(K.POLL_INTERVAL_SEC, _parse_float, _at_least(5.0)),
    K.REQUEST_TIMEOUT_SEC: _field(K.REQUEST_TIMEOUT_SEC, _parse_float, _at_least(5.0)),
    K.MAX_ALERTS_PER_CYCLE: _field(K.MAX_ALERTS_PER_CYCLE, _parse_int, _at_least(1)),
    K.ALERT_COOLDOWN_SEC: _field(K.ALERT_COOLDOWN_SEC, _parse_float, _at_least(60.0)),
    K.PROXY_URL: _field(K.PROXY_URL, _parse_str, _optional_url),
    K.GAMMA_API_BASE: _field(K.GAMMA_API_BASE, _parse_str, _absolute_url),
    K.CATEGORY: _field(K.CATEGORY, _parse_str, _any),
    K.EVENTS_LIMIT: _field(K.EVENTS_LIMIT, _parse_int, _at_least(1)),
    K.PAGE_SIZE: _field(K.PAGE_SIZE, _parse_int, _at_least(1)),
    K.PAGE_CONCURRENCY: _field(K.PAGE_CONCURRENCY, _parse_int, _at_least(1)),
    K.REQUEST_DELAY_MS: _field(K.REQUEST_DELAY_MS, _parse_int, _at_least(0)),
    K.MAX_RETRIES: _field(K.MAX_RETRIES, _parse_int, _at_least(0)),
    K.RETRY_BASE_DELAY_SEC: _field(K.RETRY_BASE_DELAY_SEC, _parse_float, _at_least(0.05)),
    K.MIN_LIQUIDITY: _field(K.MIN_LIQUIDITY, _parse_float, _at_least(0.0)),
    K.END_DATE_MAX_PAST_HOURS: _field(K.END_DATE_MAX_PAST_HOURS, _parse_float, _at_least(0.0)),
    K.ENABLE_VOLUME_SPIKE: _field(K.ENABLE_VOLUME_SPIKE, _parse_bool, _any),
    K.ENABLE_BIG_BUY: _field(K.ENABLE_BIG_BUY, _parse_bool, _any),
    K.ENABLE_PRICE_CHANGE: _field(K.ENABLE_PRICE_CHANGE, _parse_bool, _any),
    K.ENABLE_NEW_MARKET: _field(K.ENABLE_NEW_MARKET, _parse_bool, _any),
    K.VOLUME_SPIKE_USD_30M: _field(K.VOLUME_SPIKE_USD_30M, _parse_float, _at_least(0.0)),
    K.VOLUME_SPIKE_MIN_PCT_30M: _field(K.VOLUME_SPIKE_MIN_PCT_30M, _parse_float, _unit_interval),
    K.BIG_BUY_USD_10M: _field(K.BIG_BUY_USD_10M, _parse_float, _at_least(0.0)),
    K.BIG_BUY_MIN_PCT_10M: _field(K.BIG_BUY_MIN_PCT_10M, _parse_float, _unit_interval),
    K.PRICE_MOVE_ABS_10M: _field(K.PRICE_MOVE_ABS_10M, _parse_float, _unit_interval),
    K.PRICE_CHANGE_ABS_10M: _field(K.PRICE_CHANGE_ABS_10M, _parse_float, _unit_interval),
    K.PRICE_CHANGE_MIN_VOLUME_USD_10M: _field(K.PRICE_CHANGE_MIN_VOLUME_USD_10M, _parse_float, _at_least(0.0)),
    K.PRICE_CHANGE_SCORE_MULTIPLIER: _field(K.PRICE_CHANGE_SCORE_MULTIPLIER, _parse_float, _at_least(0.0)),
    K.NEW_MARKET_MIN_VOLUME_USD: _field(K.NEW_MARKET_MIN_VOLUME_USD, _parse_float, _at_least(0.0)),
    K.NEW_MARKET_MIN_LIQUIDITY_USD: _field(K.NEW_MARKET_MIN_LIQUIDITY_USD, _parse_float, _at_least(0.0)),
    K.NEW_MARKET_MAX_AGE_HOURS: _field(K.NEW_MARKET_MAX_AGE_HOURS, _parse_float, _at_least(0.0)),
    K.RETENTION_MINUTES: _field(K.RETENTION_MINUTES, _parse_float, _at_least(10.0)),
}

PRESETS: dict[str, dict[str, Any]] = {
    "conservative": {
        "volume_spike_usd_30m": 10000,
        "volume_spike_min_pct_30m": 0.02,
        "big_buy_usd_10m": 10000,
        "big_buy_min_pct_10m": 0.02,
        "price_move_abs_10m": 0.1,
        "new_market_min_volume_usd": 5000,
        "max_alerts_per_cycle": 6,
    },
    "balanced": {
        "volume_spike_usd_30m": 5000,
        "volume_spike_min_pct_30m": 0.01,
        "big_buy_usd_10m": 5000,
        "big_buy_min_pct_10m": 0.01,
        "price_move_abs_10m": 0.08,
        "new_market_min_volume_usd": 1000,
        "max_alerts_per_cycle": 10,
    },
    "aggressive": {
        "poll_interval_sec": 5,
        "request_delay_ms": 100,
        "volume_spike_usd_30m": 2500,
        "volume_spike_min_pct_30m": 0.01,
        "big_buy_usd_10m": 2500,
        "big_buy_min_pct_10m": 0.01,
        "price_move_abs_10m": 0.06,
        "new_market_min_volume_usd": 5000,
        "max_alerts_per_cycle": 15,
    },
}


def parse_value(key: RuntimeKey, raw: Any) -> Any:
    """Run parse + validate for one key; return the value that would be applied."""
    entry = FIELDS[key]
    try:
        return entry.validate(entry.parse(raw))
    except (TypeError, ValueError) as e:
        raise InvalidConfigValue(key.value, str(e)) from e


def apply_override(config: MonitorConfig, key: str | RuntimeKey, raw: Any) -> tuple[MonitorConfig, Any]:
    """Apply one override. Returns (new config, applied value)."""
    rkey = key if isinstance(key, RuntimeKey) else parse_key(key)
    value = parse_value(rkey, raw)
    return FIELDS[rkey].apply(config, value), value


def apply_overrides(config: MonitorConfig, overrides: dict[str, Any]) -> MonitorConfig:
    """Apply a stored override map, skipping (and logging) entries that no longer validate."""
    for key, raw in overrides.items():
        try:
            config, _ = apply_override(config, key, raw)
        except ConfigError as e:
            log.warning("runtime_override_rejected", key=key, error=str(e))
    return config


def effective_value(config: MonitorConfig, key: RuntimeKey) -> Any:
    return getattr(config, key.value)


def display_value(config: MonitorConfig, key: RuntimeKey) -> str:
    value = effective_value(config, key)
    if key in SENSITIVE_KEYS and value:
        return "***"
    return str(value)


def load_overrides(path: str | Path) -> dict[str, Any]:
    """Read persisted overrides; unknown keys are dropped, a missing/corrupt file reads as empty."""
    p = Path(path)
    if not p.exists():
        return {}
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        log.warning("runtime_overrides_unreadable", path=str(p), error=str(e))
        return {}
    if not isinstance(raw, dict):
        return {}
    known = {k.value for k in RuntimeKey}
    return {k: v for k, v in raw.items() if k in known}


def save_overrides(path: str | Path, overrides: dict[str, Any]) -> None:
    """Atomically replace the overrides file."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    known = {k.value for k in RuntimeKey}
    cleaned = {k: v for k, v in overrides.items() if k in known}
    fd, tmp = tempfile.mkstemp(dir=p.parent, prefix=p.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(cleaned, f, indent=2, sort_keys=True)
        os.replace(tmp, p)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
