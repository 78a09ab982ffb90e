"""Persist the whole tracking state as one JSON document, replaced atomically."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import structlog
from pydantic import ValidationError

from polywatch.models import WatchState

log = structlog.get_logger(__name__)


def load_state(path: str | Path) -> WatchState:
    """Read a snapshot. A missing or corrupt file yields an empty state."""
    p = Path(path)
    if not p.exists():
        return WatchState()
    try:
        state = WatchState.model_validate_json(p.read_bytes())
    except (OSError, ValueError, ValidationError) as e:
        log.warning("state_load_failed", path=str(p), error=str(e))
        return WatchState()
    if "bootstrapped" not in state.meta.model_fields_set:
        # Older snapshots without the flag: an existing market map means we already ran.
        state.meta.bootstrapped = bool(state.markets)
    return state


def save_state(path: str | Path, state: WatchState) -> None:
    """Write to a temp file in the same directory, then rename over the target."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=p.parent, prefix=p.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(state.model_dump_json())
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, p)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
