"""Shared test fixtures for HabitLoop tests."""

from __future__ import annotations

import os
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo

import pytest
import yaml

from habitloop.clock import FrozenClock
from habitloop.models import Habit
from habitloop.store import HabitStore

UTC = ZoneInfo("UTC")

# Wednesday
START = datetime(2026, 3, 11, 9, 0, tzinfo=UTC)


class ManualTicker:
    """Ticker stand-in: tests call tick() themselves."""

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self.cancelled = False
        self.cancel_calls = 0

    def cancel(self) -> None:
        self.cancel_calls += 1
        self.cancelled = True


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with settings and an empty data dir."""
    root = tmp_path / "workspace"
    (root / "data").mkdir(parents=True)

    settings = {
        "timezone": "UTC",
        "tick_interval_seconds": 0.25,
        "live_activity": False,
    }
    (root / "settings.yaml").write_text(
        yaml.dump(settings, default_flow_style=False), encoding="utf-8"
    )

    # Set env var
    os.environ["HABITLOOP_ROOT"] = str(root)
    yield root
    # Cleanup
    if "HABITLOOP_ROOT" in os.environ:
        del os.environ["HABITLOOP_ROOT"]


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(START)


@pytest.fixture
def store(workspace: Path) -> HabitStore:
    return HabitStore.open(workspace)


@pytest.fixture
def make_habit(store: HabitStore, clock: FrozenClock) -> Callable[..., Habit]:
    """Add a habit straight to the store (no form validation)."""

    def _make(**fields: Any) -> Habit:
        fields.setdefault("name", "Drink water")
        fields.setdefault("created_date", clock.now())
        habit = Habit(**fields)
        with store.transaction():
            store.add_habit(habit)
        return habit

    return _make


@pytest.fixture
def tickers() -> list[ManualTicker]:
    return []


@pytest.fixture
def ticker_factory(tickers: list[ManualTicker]) -> Callable[[float, Callable[[], None]], ManualTicker]:
    def _factory(interval: float, callback: Callable[[], None]) -> ManualTicker:
        ticker = ManualTicker(interval, callback)
        tickers.append(ticker)
        return ticker

    return _factory
