"""Signal candidates - tagged variants produced by the signal engine each cycle."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Literal

from pydantic import BaseModel


class SignalKind(str, Enum):
    VOLUME_SPIKE = "volume_spike"
    BIG_BUY = "big_buy"
    PRICE_CHANGE = "price_change"
    NEW_MARKET = "new_market"


class PriceMove(BaseModel):
    """Dominant outcome move between a past sample and the current one."""

    outcome_key: str
    delta: float
    prev_price: float
    curr_price: float

    @property
    def abs_delta(self) -> float:
        return abs(self.delta)


class SignalCandidate(BaseModel, ABC):
    """Base for all candidates. Subclasses fix `kind` and define `score`."""

    market_id: str
    kind: SignalKind

    @property
    @abstractmethod
    def score(self) -> float: ...

    @property
    def alert_key(self) -> str:
        """Cooldown key: the kind, qualified by outcome for per-outcome signals."""
        return self.kind.value


class VolumeSpike(SignalCandidate):
    kind: Literal[SignalKind.VOLUME_SPIKE] = SignalKind.VOLUME_SPIKE
    delta_usd: float
    pct_of_total: float
    from_ts: int
    from_volume_usd: float
    to_volume_usd: float
    move: PriceMove | None = None  # informational only

    @property
    def score(self) -> float:
        return self.delta_usd


class BigBuy(SignalCandidate):
    kind: Literal[SignalKind.BIG_BUY] = SignalKind.BIG_BUY
    volume_delta_usd: float
    pct_of_total: float
    from_ts: int
    from_volume_usd: float
    to_volume_usd: float
    outcome_key: str
    delta_price: float
    prev_price: float
    curr_price: float

    @property
    def score(self) -> float:
        return self.volume_delta_usd

    @property
    def alert_key(self) -> str:
        return f"{self.kind.value}:{self.outcome_key}"


class PriceChange(SignalCandidate):
    kind: Literal[SignalKind.PRICE_CHANGE] = SignalKind.PRICE_CHANGE
    volume_delta_usd: float
    from_ts: int
    outcome_key: str
    delta_price: float
    prev_price: float
    curr_price: float
    score_multiplier: float = 100_000.0

    @property
    def score(self) -> float:
        return abs(self.delta_price) * self.score_multiplier

    @property
    def alert_key(self) -> str:
        return f"{self.kind.value}:{self.outcome_key}"


class NewMarket(SignalCandidate):
    kind: Literal[SignalKind.NEW_MARKET] = SignalKind.NEW_MARKET
    volume_usd: float
    liquidity_usd: float
    age_hours: float

    @property
    def score(self) -> float:
        return self.volume_usd
