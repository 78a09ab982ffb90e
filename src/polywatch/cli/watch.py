"""Watch subcommand: run, once."""

from __future__ import annotations

import asyncio
import signal
import sys

import typer

from polywatch.monitor.manager import MonitorManager

app = typer.Typer(help="Run the watcher loop or a single cycle")


@app.command("run")
def run(ctx: typer.Context) -> None:
    """Poll the catalog every interval and send alerts until interrupted."""
    settings = ctx.obj["settings"]
    manager = MonitorManager.from_settings(settings)
    stop_event = asyncio.Event()
    loop = asyncio.new_event_loop()
    task = loop.create_task(manager.run(stop_event=stop_event))

    def shutdown() -> None:
        # Abandon the in-flight cycle; its state is saved on the way out.
        stop_event.set()
        task.cancel()

    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, shutdown)
        loop.add_signal_handler(signal.SIGTERM, shutdown)
    try:
        typer.echo("Watching Polymarket (Ctrl+C to stop)...")
        loop.run_until_complete(task)
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        loop.run_until_complete(manager.aclose())
        loop.close()
    typer.echo("Stopped, state saved.")


@app.command("once")
def once(ctx: typer.Context) -> None:
    """Run exactly one cycle, save state and exit."""
    settings = ctx.obj["settings"]
    manager = MonitorManager.from_settings(settings)

    async def _run():
        try:
            return await manager.run_once(), manager.get_status()
        finally:
            await manager.aclose()

    report, status = asyncio.run(_run())
    if report is None:
        typer.echo(f"Cycle failed: {manager.store.state.meta.last_error}")
        raise typer.Exit(1)
    typer.echo(
        f"Markets: {report.markets}  new: {report.new_markets}  signals: {report.signals}  "
        f"alerts sent: {report.alerts_sent}  pruned: {report.removed}"
    )
    if report.error:
        typer.echo(f"Alert delivery stopped: {report.error}")
    route = status.get("route_mode", "direct")
    alternate = "configured" if status["alternate_route"] else "none"
    typer.echo(f"Tracked: {status['tracked_markets']}  route: {route}  alternate: {alternate}")
