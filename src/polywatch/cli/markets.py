"""Markets subcommand: list."""

from __future__ import annotations

import asyncio

import typer

from polywatch.config.runtime import apply_overrides, load_overrides
from polywatch.ingestion.circuit import RouteFallbackCircuit
from polywatch.ingestion.http import FetchClient
from polywatch.ingestion.polymarket.gamma import GammaCatalog
from polywatch.ingestion.retry import RetryingFetcher, RetryPolicy

app = typer.Typer(help="Market catalog listing")


@app.command("list")
def list_markets(
    ctx: typer.Context,
    top: int = typer.Option(20, "--top", "-n", help="Show the N markets with the highest volume"),
) -> None:
    """Fetch the current catalog once (same filters as the watcher) and print it."""
    settings = ctx.obj["settings"]
    config = apply_overrides(settings.monitor_config(), load_overrides(settings.runtime_config_file))

    async def _fetch():
        client = FetchClient.create(config.proxy_url)
        try:
            fetcher = RetryingFetcher(
                client,
                RetryPolicy(max_retries=config.max_retries, base_delay_sec=config.retry_base_delay_sec),
            )
            return await GammaCatalog(RouteFallbackCircuit(fetcher), config).list_markets()
        finally:
            await client.aclose()

    markets = asyncio.run(_fetch())
    for m in sorted(markets, key=lambda m: m.volume_usd, reverse=True)[:top]:
        title = (m.title or "")[:60]
        typer.echo(f"  {m.market_id[:20]:<20}  {m.volume_usd:>14,.0f}  {m.liquidity_usd:>12,.0f}  {title}")
    typer.echo(f"Total: {len(markets)} markets")
