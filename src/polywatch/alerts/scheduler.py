"""Rank, cap, de-duplicate and dispatch alert candidates for one cycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

import structlog

from polywatch.alerts.notify import Notifier, SinkFailure
from polywatch.alerts.render import render_alert
from polywatch.models import MarketMeta, SignalCandidate
from polywatch.storage.store import MarketStateStore

log = structlog.get_logger(__name__)


@dataclass
class DispatchReport:
    candidates: int = 0
    selected: int = 0
    sent: int = 0
    cooled_down: int = 0
    error: str | None = None
    sent_keys: list[tuple[str, str]] = field(default_factory=list)


def rank(candidates: list[SignalCandidate], max_alerts: int) -> list[SignalCandidate]:
    """Highest score first, at most max(1, max_alerts). Stable for equal scores."""
    ordered = sorted(candidates, key=lambda c: c.score, reverse=True)
    return ordered[: max(1, max_alerts)]


class AlertScheduler:
    def __init__(
        self,
        sink: Notifier,
        renderer: Callable[[MarketMeta, SignalCandidate], str] = render_alert,
    ) -> None:
        self.sink = sink
        self.renderer = renderer

    async def dispatch(
        self,
        store: MarketStateStore,
        candidates: list[SignalCandidate],
        now_ms: int,
        max_alerts: int,
        cooldown_ms: int,
    ) -> DispatchReport:
        """Send the top candidates not in cooldown. Any sink or render failure stops the rest of the cycle."""
        report = DispatchReport(candidates=len(candidates))
        selected = rank(candidates, max_alerts) if candidates else []
        report.selected = len(selected)

        for signal in selected:
            entry = store.get(signal.market_id)
            if entry is None:
                continue
            key = signal.alert_key
            if not store.should_alert(signal.market_id, key, now_ms, cooldown_ms):
                report.cooled_down += 1
                continue
            try:
                await self.sink.notify(self.renderer(entry.meta, signal))
            except Exception as e:
                message = str(e) if isinstance(e, SinkFailure) else f"{type(e).__name__}: {e}"
                store.record_error(now_ms, message)
                report.error = message
                log.error("alert_send_failed", market_id=signal.market_id, kind=signal.kind.value, error=message)
                break
            report.sent += 1
            report.sent_keys.append((signal.market_id, key))
            log.info("alert_sent", market_id=signal.market_id, kind=signal.kind.value, score=signal.score)

        return report
