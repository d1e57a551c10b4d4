"""Timer sessions for timer-type habits.

A session is Idle or Running. Starting records the start instant and a
baseline (minutes already logged today, in seconds); a background ticker
then checks for the goal and feeds the live-activity sink. Pausing
persists only the time since the last start as a new completion record,
so pause/resume cycles never double count.

Unsaved running time is lost if the process dies. That is accepted: the
store is only written on pause or auto-stop, never per tick.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from habitloop.clock import Clock
from habitloop.const import DEFAULT_TICK_INTERVAL, HABIT_TIMER, LOGGER
from habitloop.hooks import HookBatch, run_hooks
from habitloop.live_activity import Broadcaster, JsonSnapshotSink
from habitloop.models import CompletionRecord, Habit, TimerAttributes, TimerContentState, TimerSessionState
from habitloop.progress import ProgressResult, minutes_today, progress_on
from habitloop.store import HabitStore, StoreError
from habitloop.tracking import CompletionOutcome, append_progress
from habitloop.workspace import live_activity_path, load_settings, user_clock


class TickerHandle(Protocol):
    def cancel(self) -> None: ...


TickerFactory = Callable[[float, Callable[[], None]], TickerHandle]


class IntervalTicker:
    """Calls *callback* every *interval* seconds on a daemon thread.

    ``cancel()`` is idempotent and safe to call from inside the callback.
    """

    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name="habitloop-ticker", daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while not self._stopped.wait(self.interval):
            try:
                self.callback()
            except Exception:  # noqa: BLE001 - keep ticking; the session logs its own failures
                LOGGER.exception("Timer tick failed")

    def cancel(self) -> None:
        self._stopped.set()

    @property
    def cancelled(self) -> bool:
        return self._stopped.is_set()


# ── Session ───────────────────────────────────────────────────


class TimerSession:
    """The live session of one timer habit."""

    def __init__(
        self,
        store: HabitStore,
        habit_id: str,
        clock: Clock,
        broadcaster: Broadcaster | None = None,
        ticker_factory: TickerFactory | None = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        root: Path | None = None,
    ) -> None:
        self.store = store
        self.habit_id = habit_id
        self.clock = clock
        self.broadcaster = broadcaster or Broadcaster()
        self.ticker_factory: TickerFactory = ticker_factory or IntervalTicker
        self.tick_interval = tick_interval
        self.root = root

        self.state: TimerSessionState | None = None
        # Time paused with save whose segment could not be written yet.
        self.pending_seconds = 0.0
        self.auto_stop_count = 0

        self.on_tick: Callable[[int], None] | None = None
        self.on_running_changed: Callable[[bool], None] | None = None
        self.on_auto_stop: Callable[[], None] | None = None

        self._ticker: TickerHandle | None = None
        self._lock = threading.RLock()

    # ── Derived values ────────────────────────────────────────

    @property
    def habit(self) -> Habit:
        habit = self.store.get_habit(self.habit_id)
        if habit is None:
            raise ValueError(f"Habit not found: {self.habit_id}")
        return habit

    @property
    def is_running(self) -> bool:
        return self.state is not None and self.state.is_running

    def live_seconds(self) -> float:
        """Seconds since the current run started; zero when idle."""
        state = self.state
        if state is None or not state.is_running:
            return 0.0
        return max(0.0, (self.clock.now() - state.session_start).total_seconds())

    def elapsed_seconds(self) -> float:
        """What the stopwatch shows: baseline plus the live run."""
        base = self.state.base_elapsed_seconds if self.state else self.persisted_minutes() * 60 + self.pending_seconds
        return base + self.live_seconds()

    def persisted_minutes(self) -> float:
        return minutes_today(self.store.records_for(self.habit_id), self.clock.today())

    def unsaved_minutes(self) -> float:
        return (self.pending_seconds + self.live_seconds()) / 60.0

    def minutes_today(self) -> float:
        return self.persisted_minutes() + self.unsaved_minutes()

    def progress(self) -> ProgressResult:
        return progress_on(self.habit, self.store.records_for(self.habit_id), self.clock.today(), self.unsaved_minutes())

    def content_state(self, is_finished: bool = False) -> TimerContentState:
        return TimerContentState(
            elapsed_seconds=int(self.elapsed_seconds()),
            is_running=self.is_running,
            is_finished=is_finished,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "habitId": self.habit_id,
            "isRunning": self.is_running,
            "elapsedSeconds": int(self.elapsed_seconds()),
            "allowsOverrun": bool(self.state and self.state.allows_overrun),
            "pendingSeconds": round(self.pending_seconds, 1),
            "progress": self.progress().to_dict(),
        }

    # ── Transitions ───────────────────────────────────────────

    def start(self, allow_overrun: bool = False, initial_elapsed_seconds: float = 0.0) -> bool:
        """Begin running. A second start while running is ignored (returns False)."""
        with self._lock:
            if self.is_running:
                return False
            habit = self.habit
            self.state = TimerSessionState(
                habit_id=self.habit_id,
                session_start=self.clock.now(),
                base_elapsed_seconds=max(0.0, initial_elapsed_seconds),
                is_running=True,
                allows_overrun=allow_overrun,
            )
            self._ticker = self.ticker_factory(self.tick_interval, self.tick)
            self.broadcaster.start(TimerAttributes.for_habit(habit), self.content_state())
            LOGGER.debug("Timer started for habit %s (overrun=%s)", self.habit_id, allow_overrun)
            self._notify_running(True)

        run_hooks("on_timer_start", {"habit_id": habit.id, "name": habit.name}, self.root)
        return True

    def run(self) -> bool:
        """Start with the usual defaults: overrun only if the goal is already met."""
        goal_met = progress_on(
            self.habit, self.store.records_for(self.habit_id), self.clock.today(), self.pending_seconds / 60.0
        ).goal_met
        return self.start(
            allow_overrun=goal_met,
            initial_elapsed_seconds=self.persisted_minutes() * 60 + self.pending_seconds,
        )

    def tick(self) -> bool:
        """One cadence step. Does nothing unless running.

        Returns True when this tick auto-stopped the session. Callbacks and
        hooks run after the session lock is released.
        """
        hooks = HookBatch(self.root)
        with self._lock:
            state = self.state
            if state is None or not state.is_running:
                return False
            live = self.live_seconds()
            habit = self.habit
            reached = self.persisted_minutes() + (self.pending_seconds + live) / 60.0 >= habit.goal_value
            stopped = reached and not state.allows_overrun
            if stopped:
                self._auto_stop(hooks)
            else:
                elapsed = int(state.base_elapsed_seconds + live)
                self.broadcaster.update(self.habit_id, TimerContentState(elapsed, True, False))

        if not stopped:
            if self.on_tick is not None:
                self.on_tick(elapsed)
            return False
        if self.on_auto_stop is not None:
            self.on_auto_stop()
        hooks.fire()
        return True

    def _auto_stop(self, hooks: HookBatch) -> None:
        LOGGER.debug("Timer for habit %s reached its goal", self.habit_id)
        self.broadcaster.stop(self.habit_id, self.content_state(is_finished=True))
        outcome = self._pause(True, hooks)
        self.auto_stop_count += 1
        hooks.add(
            "on_timer_auto_stop",
            {
                "habit_id": self.habit_id,
                "minutes_today": round(self.persisted_minutes(), 2),
                "saved": outcome is not None,
            },
        )

    def pause(self, save_progress: bool = True) -> CompletionOutcome | None:
        """Stop running. With *save_progress* the time since start becomes a record.

        Returns the outcome of the saved segment, or None if nothing was saved.
        An idle session still broadcasts its paused snapshot.
        """
        hooks = HookBatch(self.root)
        with self._lock:
            outcome = self._pause(save_progress, hooks)
        hooks.fire()
        return outcome

    def _pause(self, save_progress: bool, hooks: HookBatch) -> CompletionOutcome | None:
        state = self.state
        if state is None or not state.is_running:
            self.broadcaster.pause(self.habit_id, self.content_state())
            return None
        now = self.clock.now()
        delta = max(0.0, (now - state.session_start).total_seconds())
        self._cancel_ticker()
        state.is_running = False

        outcome = None
        if save_progress:
            self.pending_seconds += delta
            outcome = self._flush(now, hooks)
        else:
            LOGGER.debug("Discarding %.1fs of timer time for habit %s", delta, self.habit_id)
        state.base_elapsed_seconds = self.persisted_minutes() * 60 + self.pending_seconds

        self.broadcaster.pause(self.habit_id, self.content_state())
        self._notify_running(False)
        hooks.add(
            "on_timer_stop",
            {"habit_id": self.habit_id, "seconds": round(delta, 1), "saved": outcome is not None},
        )
        return outcome

    def pause_and_save(self) -> CompletionOutcome | None:
        return self.pause(save_progress=True)

    def toggle(self, should_run: bool) -> None:
        if should_run:
            self.run()
        else:
            self.pause(save_progress=True)

    def flush_pending(self) -> CompletionOutcome | None:
        """Retry writing time kept after a failed save."""
        hooks = HookBatch(self.root)
        with self._lock:
            outcome = self._flush(self.clock.now(), hooks)
        hooks.fire()
        return outcome

    def _flush(self, now: datetime, hooks: HookBatch) -> CompletionOutcome | None:
        if self.pending_seconds <= 0:
            return None
        habit = self.habit
        record = CompletionRecord(
            habit_id=habit.id,
            completed_date=now,
            timer_duration=self.pending_seconds / 60.0,
        )
        try:
            outcome = append_progress(self.store, habit, record, now, self.root, hooks=hooks)
        except StoreError as err:
            LOGGER.warning(
                "Keeping %.1f unsaved timer seconds for habit %s: %s", self.pending_seconds, habit.id, err
            )
            return None
        self.pending_seconds = 0.0
        return outcome

    def _cancel_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _notify_running(self, running: bool) -> None:
        if self.on_running_changed is not None:
            self.on_running_changed(running)


# ── Manager ───────────────────────────────────────────────────


class TimerSessionManager:
    """Owns every timer session; at most one per habit id."""

    def __init__(
        self,
        store: HabitStore,
        clock: Clock,
        broadcaster: Broadcaster | None = None,
        ticker_factory: TickerFactory | None = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        root: Path | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.broadcaster = broadcaster or Broadcaster()
        self.ticker_factory = ticker_factory
        self.tick_interval = tick_interval
        self.root = root
        self._sessions: dict[str, TimerSession] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, store: HabitStore, root: Path | None = None) -> TimerSessionManager:
        """Build a manager from settings.yaml (timezone, tick cadence, live activity)."""
        settings = load_settings(root)
        sink = JsonSnapshotSink(live_activity_path(root)) if settings["live_activity"] else None
        return cls(
            store,
            user_clock(root),
            broadcaster=Broadcaster(sink),
            tick_interval=settings["tick_interval_seconds"],
            root=root,
        )

    def get_or_create(self, habit_id: str) -> TimerSession:
        with self._lock:
            session = self._sessions.get(habit_id)
            if session is not None:
                return session
            habit = self.store.get_habit(habit_id)
            if habit is None:
                raise ValueError(f"Habit not found: {habit_id}")
            if habit.habit_type != HABIT_TIMER:
                raise ValueError(f"Habit {habit_id} is not a timer habit")
            session = TimerSession(
                self.store,
                habit_id,
                self.clock,
                broadcaster=self.broadcaster,
                ticker_factory=self.ticker_factory,
                tick_interval=self.tick_interval,
                root=self.root,
            )
            self._sessions[habit_id] = session
            return session

    def get(self, habit_id: str) -> TimerSession | None:
        return self._sessions.get(habit_id)

    def release(self, habit_id: str) -> CompletionOutcome | None:
        """Forget a session, saving its running time first."""
        with self._lock:
            session = self._sessions.pop(habit_id, None)
        if session is None:
            return None
        outcome = session.pause(save_progress=True)
        if session.pending_seconds > 0:
            LOGGER.warning(
                "Released timer for habit %s with %.1f unsaved seconds", habit_id, session.pending_seconds
            )
        return outcome

    def running(self) -> list[TimerSession]:
        return [s for s in list(self._sessions.values()) if s.is_running]

    def live_minutes(self, habit_id: str) -> float:
        session = self._sessions.get(habit_id)
        return session.unsaved_minutes() if session else 0.0

    def shutdown(self) -> None:
        for habit_id in list(self._sessions):
            self.release(habit_id)
