"""Gamma API event/market records -> canonical Market, or the reason a record was dropped."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from polywatch.models import Market, Outcome

MARKET_URL_BASE = "https://polymarket.com/market/"


class RawGammaMarket(BaseModel):
    """Loosely-typed market object as served by Gamma; coercion happens in normalize_market."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Any = None
    slug: Any = None
    question: Any = None
    outcomes: Any = None
    outcome_names: Any = Field(None, alias="outcomeNames")
    outcome_prices: Any = Field(None, alias="outcomePrices")
    prices: Any = None
    liquidity_num: Any = Field(None, alias="liquidityNum")
    liquidity: Any = None
    volume_num: Any = Field(None, alias="volumeNum")
    volume: Any = None
    end_date: Any = Field(None, alias="endDate")
    created_at: Any = Field(None, alias="createdAt")
    creation_date: Any = Field(None, alias="creationDate")
    closed: Any = None
    active: Any = None


class RawGammaEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    title: Any = None
    end_date: Any = Field(None, alias="endDate")
    markets: Any = None


class SkipReason(str, Enum):
    INVALID_RECORD = "invalid_record"
    CLOSED = "closed"
    TOO_FEW_OUTCOMES = "too_few_outcomes"
    LOW_LIQUIDITY = "low_liquidity"
    ENDED = "ended"
    MISSING_ID = "missing_id"


@dataclass(frozen=True)
class CatalogFilters:
    min_liquidity: float = 0.0
    end_date_max_past_hours: float = 12.0


def _parse_array(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return []
        return parsed if isinstance(parsed, list) else []
    return []


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    return num if math.isfinite(num) else None


def _coalesce(*values: Any) -> Any:
    for v in values:
        if v is not None:
            return v
    return None


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def parse_timestamp_ms(value: Any) -> int | None:
    """ISO-8601 date or datetime -> ms epoch (naive values read as UTC). None if unparsable."""
    text = _text(value)
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def build_outcomes(raw: RawGammaMarket) -> list[Outcome]:
    """Pair outcome names with prices; keep only non-empty names priced in (0, 1]."""
    names = _parse_array(raw.outcomes or raw.outcome_names)
    prices = _parse_array(raw.outcome_prices or raw.prices)
    result = []
    for name_raw, price_raw in zip(names, prices):
        name = _text(name_raw)
        price = _to_number(price_raw)
        if not name or price is None or price <= 0 or price > 1:
            continue
        result.append(Outcome(name=name, price=price))
    return result


def is_recent_enough(end_date: str, max_past_hours: float, now_ms: int) -> bool:
    """Absent or unparsable end dates count as recent."""
    ts = parse_timestamp_ms(end_date)
    if ts is None:
        return True
    return ts >= now_ms - max_past_hours * 3_600_000


def normalize_market(
    event: RawGammaEvent,
    raw: RawGammaMarket,
    filters: CatalogFilters,
    now_ms: int,
) -> Market | SkipReason:
    """Pure normalization of one market record within its parent event."""
    if raw.closed is True or raw.active is False:
        return SkipReason.CLOSED

    outcomes = build_outcomes(raw)
    if len(outcomes) < 2:
        return SkipReason.TOO_FEW_OUTCOMES

    liquidity = _to_number(_coalesce(raw.liquidity_num, raw.liquidity)) or 0.0
    if liquidity < filters.min_liquidity:
        return SkipReason.LOW_LIQUIDITY

    end_date = _text(raw.end_date) or _text(event.end_date)
    if not is_recent_enough(end_date, filters.end_date_max_past_hours, now_ms):
        return SkipReason.ENDED

    market_id = _text(raw.id) or _text(raw.slug)
    if not market_id:
        return SkipReason.MISSING_ID

    slug = _text(raw.slug)
    event_title = _text(event.title)
    return Market(
        market_id=market_id,
        slug=slug,
        title=_text(raw.question) or event_title or slug,
        event_title=event_title,
        url=f"{MARKET_URL_BASE}{slug}" if slug else "",
        end_date=end_date,
        created_at=parse_timestamp_ms(_coalesce(raw.created_at, raw.creation_date)),
        liquidity_usd=liquidity,
        volume_usd=_to_number(_coalesce(raw.volume_num, raw.volume)) or 0.0,
        outcomes=outcomes,
    )


def normalize_event(
    payload: Any,
    filters: CatalogFilters,
    now_ms: int,
) -> tuple[list[Market], dict[SkipReason, int]]:
    """Normalize every market of one event object. Returns markets plus skip counts."""
    skipped: dict[SkipReason, int] = {}
    if not isinstance(payload, dict):
        return [], skipped
    event = RawGammaEvent.model_validate(payload)
    items = event.markets if isinstance(event.markets, list) else []
    markets = []
    for item in items:
        if not isinstance(item, dict):
            skipped[SkipReason.INVALID_RECORD] = skipped.get(SkipReason.INVALID_RECORD, 0) + 1
            continue
        result = normalize_market(event, RawGammaMarket.model_validate(item), filters, now_ms)
        if isinstance(result, SkipReason):
            skipped[result] = skipped.get(result, 0) + 1
        else:
            markets.append(result)
    return markets, skipped
