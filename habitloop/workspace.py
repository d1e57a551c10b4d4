"""Workspace root, settings, timezone and path helpers for HabitLoop."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from habitloop.clock import SystemClock
from habitloop.const import DEFAULT_TICK_INTERVAL, DEFAULT_TIMEZONE, LOGGER
from habitloop.fileio import read_yaml


def workspace_root() -> Path:
    """Directory holding settings.yaml, hooks.yaml and data/."""
    return Path(
        os.environ.get("HABITLOOP_ROOT", str(Path.home() / "habitloop"))
    ).expanduser().resolve()


def _root(root: Path | None) -> Path:
    return workspace_root() if root is None else root


def load_settings(root: Path | None = None) -> dict[str, Any]:
    """Read settings.yaml and fill in defaults for missing keys."""
    data = read_yaml(settings_path(root))
    return {
        "timezone": str(data.get("timezone") or DEFAULT_TIMEZONE),
        "tick_interval_seconds": float(data.get("tick_interval_seconds", DEFAULT_TICK_INTERVAL)),
        "live_activity": bool(data.get("live_activity", True)),
    }


def get_user_timezone(root: Path | None = None) -> ZoneInfo:
    """User's timezone from settings.yaml, defaulting to UTC."""
    name = load_settings(root)["timezone"]
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        LOGGER.warning("Unknown timezone %r in settings.yaml, falling back to UTC", name)
        return ZoneInfo(DEFAULT_TIMEZONE)


def user_clock(root: Path | None = None) -> SystemClock:
    return SystemClock(get_user_timezone(root))


# ── Path helpers ──────────────────────────────────────────────

def settings_path(root: Path | None = None) -> Path:
    return _root(root) / "settings.yaml"


def hooks_config_path(root: Path | None = None) -> Path:
    return _root(root) / "hooks.yaml"


def store_path(root: Path | None = None) -> Path:
    return _root(root) / "data" / "habits.json"


def live_activity_path(root: Path | None = None) -> Path:
    return _root(root) / "data" / "live_activity.json"


def snapshots_path(root: Path | None = None) -> Path:
    return _root(root) / "data" / "widget_snapshots.json"
