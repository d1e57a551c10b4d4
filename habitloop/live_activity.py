"""External broadcast of running timer state (lock-screen style surfaces).

Sinks receive start/update/pause/stop calls. They are best-effort: the
timer never depends on a sink succeeding, or on a sink existing at all.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from habitloop.const import LOGGER
from habitloop.fileio import read_json, write_json_atomic
from habitloop.models import TimerAttributes, TimerContentState


class BroadcastSink(Protocol):
    def start(self, attributes: TimerAttributes, initial_state: TimerContentState) -> None: ...

    def update(self, habit_id: str, state: TimerContentState) -> None: ...

    def pause(self, habit_id: str, state: TimerContentState) -> None: ...

    def stop(self, habit_id: str, final_state: TimerContentState) -> None: ...


class NullSink:
    """Sink used when live activity broadcasting is disabled."""

    def start(self, attributes: TimerAttributes, initial_state: TimerContentState) -> None:
        pass

    def update(self, habit_id: str, state: TimerContentState) -> None:
        pass

    def pause(self, habit_id: str, state: TimerContentState) -> None:
        pass

    def stop(self, habit_id: str, final_state: TimerContentState) -> None:
        pass


class Broadcaster:
    """Fire-and-forget wrapper: sink errors are logged and dropped."""

    def __init__(self, sink: BroadcastSink | None = None) -> None:
        self.sink = sink if sink is not None else NullSink()

    def _send(self, method: str, *args: Any) -> None:
        try:
            getattr(self.sink, method)(*args)
        except Exception as err:  # noqa: BLE001 - a broken sink must not stop the timer
            LOGGER.warning("Live activity %s failed: %s", method, err)

    def start(self, attributes: TimerAttributes, initial_state: TimerContentState) -> None:
        self._send("start", attributes, initial_state)

    def update(self, habit_id: str, state: TimerContentState) -> None:
        self._send("update", habit_id, state)

    def pause(self, habit_id: str, state: TimerContentState) -> None:
        self._send("pause", habit_id, state)

    def stop(self, habit_id: str, final_state: TimerContentState) -> None:
        self._send("stop", habit_id, final_state)


class JsonSnapshotSink:
    """Keeps live_activity.json holding the latest state per habit.

    Updates are written only when the whole-second value changes, so a
    250 ms tick costs at most one write per second.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._activities: dict[str, dict[str, Any]] = {}
        self._last_written: dict[str, int] = {}

    def _write(self) -> None:
        write_json_atomic(self.path, {"activities": self._activities})

    def start(self, attributes: TimerAttributes, initial_state: TimerContentState) -> None:
        self._activities[attributes.id] = {
            "attributes": attributes.to_dict(),
            "state": initial_state.to_dict(),
        }
        self._last_written[attributes.id] = initial_state.elapsed_seconds
        self._write()

    def update(self, habit_id: str, state: TimerContentState) -> None:
        activity = self._activities.get(habit_id)
        if activity is None or self._last_written.get(habit_id) == state.elapsed_seconds:
            return
        activity["state"] = state.to_dict()
        self._last_written[habit_id] = state.elapsed_seconds
        self._write()

    def pause(self, habit_id: str, state: TimerContentState) -> None:
        activity = self._activities.get(habit_id)
        if activity is None:
            return
        activity["state"] = state.to_dict()
        self._last_written[habit_id] = state.elapsed_seconds
        self._write()

    def stop(self, habit_id: str, final_state: TimerContentState) -> None:
        if self._activities.pop(habit_id, None) is None:
            return
        self._last_written.pop(habit_id, None)
        self._write()

    def current(self) -> dict[str, Any]:
        return read_json(self.path).get("activities", {})
