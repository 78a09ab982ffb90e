"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from polywatch.config import get_settings
from polywatch.config.settings import configure_logging

app = typer.Typer(
    name="polywatch",
    help="polywatch - Polymarket volume spikes, big moves, price changes and new markets.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from polywatch.cli import config_cmd, markets, state, watch  # noqa: E402

app.add_typer(watch.app, name="watch")
app.add_typer(markets.app, name="markets")
app.add_typer(state.app, name="state")
app.add_typer(config_cmd.app, name="config")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
