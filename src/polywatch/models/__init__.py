"""Canonical schema (Pydantic) - Market, state entries, signal candidates."""

from polywatch.models.market import Market, Outcome
from polywatch.models.signals import (
    BigBuy,
    NewMarket,
    PriceChange,
    PriceMove,
    SignalCandidate,
    SignalKind,
    VolumeSpike,
)
from polywatch.models.state import MarketEntry, MarketMeta, Sample, StateMeta, WatchState

__all__ = [
    "Market",
    "Outcome",
    "Sample",
    "MarketMeta",
    "MarketEntry",
    "StateMeta",
    "WatchState",
    "SignalKind",
    "SignalCandidate",
    "PriceMove",
    "VolumeSpike",
    "BigBuy",
    "PriceChange",
    "NewMarket",
]
