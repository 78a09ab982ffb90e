"""polywatch - Polymarket signal watcher."""

__version__ = "0.1.0"
