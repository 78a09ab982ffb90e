"""Watcher orchestrator - sequential polling cycles with snapshot persistence."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Callable

import structlog

from polywatch.alerts.notify import LogNotifier, Notifier, TelegramNotifier
from polywatch.alerts.scheduler import AlertScheduler
from polywatch.config.monitor import MonitorConfig
from polywatch.config.runtime import apply_overrides, load_overrides
from polywatch.config.settings import Settings
from polywatch.ingestion.circuit import RouteFallbackCircuit
from polywatch.ingestion.http import FetchClient
from polywatch.ingestion.polymarket.gamma import GammaCatalog
from polywatch.ingestion.retry import RetryingFetcher, RetryPolicy
from polywatch.monitor.cycle import CycleReport, run_cycle
from polywatch.storage.snapshots import load_state, save_state
from polywatch.storage.store import MarketStateStore

log = structlog.get_logger(__name__)

MIN_WAIT_SEC = 1.0


def _now_ms() -> int:
    return int(time.time() * 1000)


class MonitorManager:
    """Runs cycles one at a time and persists state after each one."""

    def __init__(
        self,
        state_path: str | Path,
        config: MonitorConfig,
        sink: Notifier,
        *,
        runtime_config_path: str | Path | None = None,
        fetch_client: FetchClient | None = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self.state_path = Path(state_path)
        self.runtime_config_path = Path(runtime_config_path) if runtime_config_path else None
        self.base_config = config
        self.config = config
        self.sink = sink
        self._clock = clock
        self._fetch_client = fetch_client
        self._circuit: RouteFallbackCircuit | None = None
        self.store = MarketStateStore(load_state(self.state_path))
        self.scheduler = AlertScheduler(sink)
        self._cycle_count = 0
        self._start_ts: float | None = None
        self.last_report: CycleReport | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> MonitorManager:
        if settings.telegram_bot_token and settings.telegram_chat_id:
            sink: Notifier = TelegramNotifier(settings.telegram_bot_token, settings.telegram_chat_id)
        else:
            log.warning("telegram_not_configured", msg="Alerts will be written to the log only.")
            sink = LogNotifier()
        return cls(
            settings.state_file,
            settings.monitor_config(),
            sink,
            runtime_config_path=settings.runtime_config_file,
        )

    async def _refresh_config(self) -> None:
        """Re-apply persisted runtime overrides; rebuild the fetch stack if the route changed."""
        config = self.base_config
        if self.runtime_config_path is not None:
            config = apply_overrides(config, load_overrides(self.runtime_config_path))
        route_changed = config.proxy_url != self.config.proxy_url
        self.config = config
        if route_changed and self._fetch_client is not None:
            log.info("alternate_route_changed")
            await self._fetch_client.aclose()
            self._fetch_client = None
            self._circuit = None

    def _get_circuit(self) -> RouteFallbackCircuit:
        if self._fetch_client is None:
            self._fetch_client = FetchClient.create(self.config.proxy_url if self.config.has_alternate_route else "")
        policy = RetryPolicy(
            max_retries=self.config.max_retries,
            base_delay_sec=self.config.retry_base_delay_sec,
        )
        if self._circuit is None:
            self._circuit = RouteFallbackCircuit(RetryingFetcher(self._fetch_client, policy))
        else:
            # Keep the circuit (and its open window) across cycles; only the policy may change.
            self._circuit.fetcher.policy = policy
        return self._circuit

    def save(self) -> None:
        save_state(self.state_path, self.store.state)

    async def run_once(self) -> CycleReport | None:
        """One cycle. Failures are logged and recorded in state; state is saved either way."""
        started = time.monotonic()
        await self._refresh_config()
        catalog = GammaCatalog(self._get_circuit(), self.config)
        report = None
        try:
            report = await run_cycle(self.store, catalog, self.scheduler, self.config, self._clock())
            self.store.state.meta.last_cycle_ms = int((time.monotonic() - started) * 1000)
        except Exception as e:
            log.error("cycle_failed", error=str(e), exc_info=True)
            self.store.record_error(self._clock(), f"{type(e).__name__}: {e}")
        finally:
            self._cycle_count += 1
            self.save()
        self.last_report = report
        return report

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Run cycles until stop_event is set. Cycles never overlap."""
        stop = stop_event or asyncio.Event()
        self._start_ts = time.time()
        log.info("monitor_started", state_path=str(self.state_path), tracked=len(self.store))
        while not stop.is_set():
            started = time.monotonic()
            await self.run_once()
            elapsed = time.monotonic() - started
            wait = max(MIN_WAIT_SEC, self.config.poll_interval_sec - elapsed)
            try:
                await asyncio.wait_for(stop.wait(), timeout=wait)
            except asyncio.TimeoutError:
                pass
        log.info("monitor_stopped", cycles=self._cycle_count)

    def get_status(self) -> dict[str, Any]:
        """Return current status: cycle counters plus last-scan meta and route mode."""
        elapsed = (time.time() - self._start_ts) if self._start_ts else 0
        status = {
            "cycles": self._cycle_count,
            "elapsed_sec": round(elapsed, 1),
            "tracked_markets": len(self.store),
            "alternate_route": self.config.has_alternate_route,
        }
        status.update(self.store.state.meta.model_dump())
        if self._circuit is not None:
            status["route_mode"] = self._circuit.mode().value
        return status

    async def aclose(self) -> None:
        """Persist state synchronously, then release HTTP clients."""
        self.save()
        if self._fetch_client is not None:
            await self._fetch_client.aclose()
        self._fetch_client = None
        self._circuit = None
        if isinstance(self.sink, TelegramNotifier):
            await self.sink.aclose()
