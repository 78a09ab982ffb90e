"""State subcommand: status, reset-cooldowns."""

from __future__ import annotations

from datetime import datetime, timezone

import typer

from polywatch.storage.snapshots import load_state, save_state
from polywatch.storage.store import MarketStateStore

app = typer.Typer(help="Inspect or reset the persisted watcher state")


def _fmt_ts(ms: int | None) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@app.command("status")
def status(ctx: typer.Context) -> None:
    """Show last scan counters, tracked market count and the last recorded error."""
    settings = ctx.obj["settings"]
    state = load_state(settings.state_file)
    meta = state.meta
    typer.echo(f"Tracked markets: {len(state.markets)}")
    typer.echo(f"Bootstrapped: {meta.bootstrapped}")
    typer.echo(f"Last scan at: {_fmt_ts(meta.last_scan_at)}")
    if meta.last_cycle_ms is not None:
        typer.echo(f"Last cycle ms: {meta.last_cycle_ms}")
    for label, value in (
        ("Last scan markets", meta.last_scan_markets),
        ("New markets this scan", meta.last_scan_new_markets),
        ("Signals this scan", meta.last_scan_signals),
        ("Alerts sent this scan", meta.last_scan_alerts_sent),
        ("Pruned markets this scan", meta.last_scan_removed_markets),
    ):
        if value is not None:
            typer.echo(f"{label}: {value}")
    if meta.last_error_at is not None:
        typer.echo(f"Last error at: {_fmt_ts(meta.last_error_at)}")
        if meta.last_error:
            typer.echo(f"Last error: {meta.last_error[:300]}")


@app.command("reset-cooldowns")
def reset_cooldowns(ctx: typer.Context) -> None:
    """Clear every alert cooldown so the next cycle may re-alert. Stop the watcher first."""
    settings = ctx.obj["settings"]
    store = MarketStateStore(load_state(settings.state_file))
    cleared = store.reset_cooldowns()
    save_state(settings.state_file, store.state)
    typer.echo(f"Cleared {cleared} cooldown entries.")
