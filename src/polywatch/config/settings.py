"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from polywatch.config.monitor import MonitorConfig

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = directory / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        polymarket: dict[str, Any] | None = None,
        signals: dict[str, Any] | None = None,
        alerts: dict[str, Any] | None = None,
        state: dict[str, Any] | None = None,
        telegram: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.polymarket = polymarket or {}
        self.signals = signals or {}
        self.alerts = alerts or {}
        self.state = state or {}
        self.telegram = telegram or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            polymarket=raw.get("polymarket"),
            signals=raw.get("signals"),
            alerts=raw.get("alerts"),
            state=raw.get("state"),
            telegram=raw.get("telegram"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def state_file(self) -> str:
        return self.state.get("state_file", "data/state.json")

    @property
    def runtime_config_file(self) -> str:
        return self.state.get("runtime_config_file", "data/runtime.json")

    @property
    def proxy_url(self) -> str:
        value = self.polymarket.get("proxy_url") or ""
        if not value:
            value = os.environ.get("PROXY_URL") or os.environ.get("HTTPS_PROXY") or ""
        return value.strip()

    @property
    def telegram_bot_token(self) -> str:
        return (self.telegram.get("bot_token") or os.environ.get("TG_BOT_TOKEN") or "").strip()

    @property
    def telegram_chat_id(self) -> str:
        return str(self.telegram.get("chat_id") or os.environ.get("TG_CHAT_ID") or "").strip()

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)

    def monitor_config(self) -> MonitorConfig:
        """Build the typed config for the core. Unknown TOML keys are ignored."""
        fields = MonitorConfig.model_fields
        values: dict[str, Any] = {}
        for section in (self.polymarket, self.signals, self.state):
            values.update({k: v for k, v in section.items() if k in fields})
        if "max_alerts_per_cycle" in self.alerts:
            values["max_alerts_per_cycle"] = self.alerts["max_alerts_per_cycle"]
        if "cooldown_sec" in self.alerts:
            values["alert_cooldown_sec"] = self.alerts["cooldown_sec"]
        values["proxy_url"] = self.proxy_url
        return MonitorConfig(**values)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
