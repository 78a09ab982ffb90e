"""Config subcommand: show, keys, set, unset, preset (runtime overrides)."""

from __future__ import annotations

import typer

from polywatch.config.runtime import (
    PRESETS,
    ConfigError,
    RuntimeKey,
    apply_override,
    apply_overrides,
    display_value,
    load_overrides,
    parse_key,
    save_overrides,
)

app = typer.Typer(help="Runtime overrides, picked up by the watcher before each cycle")


@app.command("show")
def show(
    ctx: typer.Context,
    overrides_only: bool = typer.Option(False, "--overrides", help="Show only overridden keys"),
) -> None:
    """Print effective values (TOML + overrides)."""
    settings = ctx.obj["settings"]
    overrides = load_overrides(settings.runtime_config_file)
    config = apply_overrides(settings.monitor_config(), overrides)
    for key in RuntimeKey:
        if overrides_only and key.value not in overrides:
            continue
        marker = "*" if key.value in overrides else " "
        typer.echo(f"{marker} {key.value} = {display_value(config, key)}")


@app.command("keys")
def keys() -> None:
    """List every key that can be overridden."""
    for key in RuntimeKey:
        typer.echo(key.value)


@app.command("set")
def set_value(ctx: typer.Context, key: str, value: str) -> None:
    """Validate and persist one override."""
    settings = ctx.obj["settings"]
    overrides = load_overrides(settings.runtime_config_file)
    try:
        rkey = parse_key(key)
        config = apply_overrides(settings.monitor_config(), overrides)
        _, applied = apply_override(config, rkey, value)
    except ConfigError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
    overrides[rkey.value] = applied
    save_overrides(settings.runtime_config_file, overrides)
    typer.echo(f"OK {rkey.value} = {applied}")


@app.command("unset")
def unset(ctx: typer.Context, key: str) -> None:
    """Drop one override, falling back to the TOML value."""
    settings = ctx.obj["settings"]
    try:
        rkey = parse_key(key)
    except ConfigError as e:
        typer.echo(f"Error: {e}")
        raise typer.Exit(1)
    overrides = load_overrides(settings.runtime_config_file)
    if overrides.pop(rkey.value, None) is None:
        typer.echo(f"{rkey.value} was not overridden")
        return
    save_overrides(settings.runtime_config_file, overrides)
    typer.echo(f"OK {rkey.value} reset")


@app.command("preset")
def preset(ctx: typer.Context, name: str) -> None:
    """Apply a bundled preset: conservative, balanced or aggressive."""
    settings = ctx.obj["settings"]
    bundle = PRESETS.get(name.strip().lower())
    if bundle is None:
        typer.echo(f"Unknown preset. Choose one of: {', '.join(PRESETS)}")
        raise typer.Exit(1)
    overrides = load_overrides(settings.runtime_config_file)
    config = apply_overrides(settings.monitor_config(), overrides)
    for key, raw in bundle.items():
        try:
            config, applied = apply_override(config, key, raw)
        except ConfigError as e:
            typer.echo(f"- {key}: Error: {e}")
            continue
        overrides[key] = applied
        typer.echo(f"- {key}: OK")
    save_overrides(settings.runtime_config_file, overrides)
