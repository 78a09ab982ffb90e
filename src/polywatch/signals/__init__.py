"""Signal engine - derives alert candidates from tracked state."""

from polywatch.signals.engine import (
    DetectedSignals,
    collect_candidates,
    detect,
    detect_new_market,
    dominant_move,
    nearest_at_or_before,
)

__all__ = [
    "DetectedSignals",
    "collect_candidates",
    "detect",
    "detect_new_market",
    "dominant_move",
    "nearest_at_or_before",
]
