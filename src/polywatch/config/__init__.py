"""Configuration - TOML settings, typed monitor config, runtime overrides."""

from polywatch.config.monitor import MonitorConfig
from polywatch.config.settings import Settings, configure_logging, get_settings

__all__ = ["MonitorConfig", "Settings", "configure_logging", "get_settings"]
