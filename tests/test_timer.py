"""Tests for habitloop/timer.py — sessions, segments and auto-stop."""

import subprocess
import threading
import time

import pytest

from habitloop.live_activity import Broadcaster
from habitloop.store import StoreError
from habitloop.timer import IntervalTicker, TimerSession, TimerSessionManager


def _disk_full(path, data):
    raise OSError("disk full")


class RecordingSink:
    def __init__(self):
        self.calls = []

    def start(self, attributes, initial_state):
        self.calls.append(("start", attributes.id, initial_state))

    def update(self, habit_id, state):
        self.calls.append(("update", habit_id, state))

    def pause(self, habit_id, state):
        self.calls.append(("pause", habit_id, state))

    def stop(self, habit_id, final_state):
        self.calls.append(("stop", habit_id, final_state))

    def names(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def manager(store, clock, sink, ticker_factory, workspace):
    return TimerSessionManager(store, clock, broadcaster=Broadcaster(sink), ticker_factory=ticker_factory, root=workspace)


@pytest.fixture
def timer_habit(make_habit):
    return make_habit(name="Read", habit_type="timer", goal_value=30)


def _durations(store, habit):
    return [r.timer_duration for r in store.records_for(habit.id)]


def test_pause_persists_each_segment(store, clock, manager, timer_habit):
    session = manager.get_or_create(timer_habit.id)
    assert session.start(initial_elapsed_seconds=0)
    clock.advance(90)
    session.pause(save_progress=True)
    assert _durations(store, timer_habit) == [pytest.approx(1.5)]
    assert session.persisted_minutes() == pytest.approx(1.5)

    session.start(initial_elapsed_seconds=90)
    clock.advance(30)
    session.pause(save_progress=True)
    assert _durations(store, timer_habit) == [pytest.approx(1.5), pytest.approx(0.5)]
    assert session.minutes_today() == pytest.approx(2.0)


def test_pause_without_save_discards(store, clock, manager, timer_habit):
    session = manager.get_or_create(timer_habit.id)
    session.start()
    clock.advance(120)
    assert session.pause(save_progress=False) is None
    assert store.records_for(timer_habit.id) == []
    assert session.elapsed_seconds() == 0


def test_second_start_is_noop(clock, manager, timer_habit, tickers):
    session = manager.get_or_create(timer_habit.id)
    assert session.start() is True
    first_start = session.state.session_start
    clock.advance(10)
    assert session.start() is False
    assert session.state.session_start == first_start
    assert len(tickers) == 1


def test_auto_stop_exactly_once(store, clock, manager, make_habit, sink, tickers):
    habit = make_habit(name="Meditate", habit_type="timer", goal_value=1)
    session = manager.get_or_create(habit.id)
    stops = []
    session.on_auto_stop = lambda: stops.append(True)
    session.start(allow_overrun=False, initial_elapsed_seconds=0)

    clock.advance(30)
    session.tick()
    assert session.is_running
    assert stops == []

    clock.advance(31)
    session.tick()
    assert not session.is_running
    assert stops == [True]
    assert session.auto_stop_count == 1
    assert session.persisted_minutes() >= 1
    assert habit.current_streak == 1
    assert tickers[0].cancelled

    calls_before = len(sink.calls)
    clock.advance(5)
    session.tick()
    assert stops == [True]
    assert len(sink.calls) == calls_before
    assert len(store.records_for(habit.id)) == 1


def test_auto_stop_sends_finished_state_before_pause(clock, manager, make_habit, sink):
    habit = make_habit(habit_type="timer", goal_value=1)
    session = manager.get_or_create(habit.id)
    session.start()
    clock.advance(60)
    session.tick()
    names = sink.names()
    assert names[0] == "start"
    assert names[-2:] == ["stop", "pause"]
    final = sink.calls[-2][2]
    assert final.is_finished is True
    assert final.elapsed_seconds == 60


def test_overrun_keeps_running(store, clock, manager, make_habit):
    habit = make_habit(habit_type="timer", goal_value=1)
    session = manager.get_or_create(habit.id)
    session.start(allow_overrun=True)
    clock.advance(120)
    session.tick()
    assert session.is_running
    assert session.auto_stop_count == 0


def test_run_decides_overrun_from_goal(store, clock, manager, make_habit):
    habit = make_habit(habit_type="timer", goal_value=1)
    session = manager.get_or_create(habit.id)
    session.run()
    assert session.state.allows_overrun is False
    clock.advance(60)
    session.tick()
    assert not session.is_running

    session.run()
    assert session.state.allows_overrun is True
    assert session.state.base_elapsed_seconds == pytest.approx(60)


def test_goal_crossing_from_segments(store, clock, manager, timer_habit):
    session = manager.get_or_create(timer_habit.id)
    session.start(allow_overrun=True)
    clock.advance(20 * 60)
    first = session.pause()
    assert first.goal_crossed is False
    assert timer_habit.current_streak == 0

    session.start(allow_overrun=True, initial_elapsed_seconds=20 * 60)
    clock.advance(15 * 60)
    second = session.pause()
    assert second.goal_crossed is True
    assert timer_habit.current_streak == 1

    session.start(allow_overrun=True)
    clock.advance(60)
    third = session.pause()
    assert third.goal_crossed is False
    assert timer_habit.total_completions == 1


def test_tick_broadcasts_combined_elapsed(clock, manager, timer_habit, sink):
    session = manager.get_or_create(timer_habit.id)
    ticks = []
    session.on_tick = ticks.append
    session.start(initial_elapsed_seconds=300)
    clock.advance(2)
    session.tick()
    assert ticks == [302]
    assert sink.calls[-1][0] == "update"
    assert sink.calls[-1][2].elapsed_seconds == 302
    assert sink.calls[-1][2].is_running is True


def test_running_changed_callback(clock, manager, timer_habit):
    session = manager.get_or_create(timer_habit.id)
    changes = []
    session.on_running_changed = changes.append
    session.toggle(True)
    clock.advance(5)
    session.toggle(False)
    assert changes == [True, False]


def test_failed_segment_save_is_kept_and_retried(store, clock, manager, timer_habit, monkeypatch):
    session = manager.get_or_create(timer_habit.id)
    session.start()
    clock.advance(120)

    monkeypatch.setattr("habitloop.store.write_json_atomic", _disk_full)
    assert session.pause() is None
    assert session.pending_seconds == pytest.approx(120)
    assert store.records_for(timer_habit.id) == []
    assert session.minutes_today() == pytest.approx(2)

    monkeypatch.undo()
    outcome = session.flush_pending()
    assert outcome is not None
    assert session.pending_seconds == 0
    assert _durations(store, timer_habit) == [pytest.approx(2)]


def test_pending_merged_into_next_pause(store, clock, manager, timer_habit, monkeypatch):
    session = manager.get_or_create(timer_habit.id)
    session.start()
    clock.advance(60)
    monkeypatch.setattr("habitloop.store.write_json_atomic", _disk_full)
    session.pause()
    monkeypatch.undo()

    session.run()
    assert session.state.base_elapsed_seconds == pytest.approx(60)
    clock.advance(30)
    session.pause()
    assert _durations(store, timer_habit) == [pytest.approx(1.5)]


def test_broken_sink_does_not_break_timer(store, clock, make_habit, ticker_factory):
    class BrokenSink(RecordingSink):
        def update(self, habit_id, state):
            raise RuntimeError("surface gone")

        def start(self, attributes, initial_state):
            raise RuntimeError("surface gone")

    habit = make_habit(habit_type="timer", goal_value=10)
    manager = TimerSessionManager(store, clock, broadcaster=Broadcaster(BrokenSink()), ticker_factory=ticker_factory)
    session = manager.get_or_create(habit.id)
    session.start()
    clock.advance(30)
    session.tick()
    session.pause()
    assert _durations(store, habit) == [pytest.approx(0.5)]


def test_manager_one_session_per_habit(manager, timer_habit, make_habit):
    a = manager.get_or_create(timer_habit.id)
    assert manager.get_or_create(timer_habit.id) is a
    assert manager.get(timer_habit.id) is a
    frequency = make_habit()
    with pytest.raises(ValueError, match="not a timer"):
        manager.get_or_create(frequency.id)
    with pytest.raises(ValueError, match="not found"):
        manager.get_or_create("missing")


def test_release_saves_running_time(store, clock, manager, timer_habit):
    session = manager.get_or_create(timer_habit.id)
    session.start()
    clock.advance(45)
    assert manager.running() == [session]
    outcome = manager.release(timer_habit.id)
    assert outcome.record.timer_duration == pytest.approx(0.75)
    assert manager.get(timer_habit.id) is None
    assert manager.running() == []


def test_shutdown_releases_all(store, clock, manager, make_habit):
    a = make_habit(habit_type="timer", goal_value=30)
    b = make_habit(habit_type="timer", goal_value=30)
    manager.get_or_create(a.id).start()
    manager.get_or_create(b.id).start()
    clock.advance(60)
    manager.shutdown()
    assert len(store.records_for(a.id)) == 1
    assert len(store.records_for(b.id)) == 1
    assert manager.running() == []


def test_live_minutes(clock, manager, timer_habit):
    assert manager.live_minutes(timer_habit.id) == 0
    session = manager.get_or_create(timer_habit.id)
    session.start()
    clock.advance(90)
    assert manager.live_minutes(timer_habit.id) == pytest.approx(1.5)
    assert session.progress().value == pytest.approx(1.5)


def test_interval_ticker_cancel_is_idempotent():
    calls = []
    ticker = IntervalTicker(60.0, lambda: calls.append(1))
    ticker.cancel()
    ticker.cancel()
    assert ticker.cancelled
    assert calls == []


def test_session_without_manager_uses_defaults(store, clock, make_habit, ticker_factory):
    habit = make_habit(habit_type="timer", goal_value=5)
    session = TimerSession(store, habit.id, clock, ticker_factory=ticker_factory)
    session.start()
    clock.advance(60)
    session.pause()
    assert session.persisted_minutes() == pytest.approx(1)


def test_manual_minutes_save_failure_propagates(store, make_habit, clock, monkeypatch):
    from habitloop.tracking import log_minutes

    habit = make_habit(habit_type="timer", goal_value=5)
    monkeypatch.setattr("habitloop.store.write_json_atomic", _disk_full)
    with pytest.raises(StoreError):
        log_minutes(store, habit.id, 3, clock)


def test_idle_pause_still_broadcasts_snapshot(manager, timer_habit, sink):
    session = manager.get_or_create(timer_habit.id)
    assert session.pause(save_progress=True) is None
    assert sink.names() == ["pause"]
    assert sink.calls[0][2].is_running is False


def test_auto_stop_hook_runs_outside_session_lock(store, clock, manager, make_habit, workspace):
    (workspace / "hooks.yaml").write_text(
        'on_timer_auto_stop:\n  - "sleep 2 && cat > auto_stop.json"\n', encoding="utf-8"
    )
    habit = make_habit(habit_type="timer", goal_value=1)
    session = manager.get_or_create(habit.id)
    session.start()
    clock.advance(61)

    ticker = threading.Thread(target=session.tick)
    ticker.start()
    deadline = time.monotonic() + 5
    while session.is_running and time.monotonic() < deadline:
        time.sleep(0.01)
    assert not session.is_running

    began = time.monotonic()
    assert session.start(allow_overrun=True) is True
    session.pause(save_progress=False)
    assert time.monotonic() - began < 0.5

    ticker.join(timeout=10)
    assert (workspace / "auto_stop.json").exists()
    assert session.auto_stop_count == 1


def test_goal_hook_runs_after_pause_releases_lock(clock, manager, timer_habit, workspace, monkeypatch):
    (workspace / "hooks.yaml").write_text('post_goal_met:\n  - "true"\n', encoding="utf-8")
    session = manager.get_or_create(timer_habit.id)
    lock_free = []

    def _try_lock():
        if session._lock.acquire(timeout=0.5):
            session._lock.release()
            lock_free.append(True)
        else:
            lock_free.append(False)

    def _fake_run(*args, **kwargs):
        other = threading.Thread(target=_try_lock)
        other.start()
        other.join()
        return subprocess.CompletedProcess(args, 0, "", "")

    session.start(allow_overrun=True)
    clock.advance(30 * 60)
    monkeypatch.setattr("habitloop.hooks.subprocess.run", _fake_run)
    outcome = session.pause()
    assert outcome.goal_crossed is True
    assert lock_free == [True]


def test_tick_callback_runs_after_lock_released(clock, manager, timer_habit):
    session = manager.get_or_create(timer_habit.id)
    lock_free = []

    def _on_tick(elapsed):
        other = threading.Thread(target=lambda: lock_free.append(session.pause(save_progress=False) is None))
        other.start()
        other.join(timeout=2)

    session.on_tick = _on_tick
    session.start()
    clock.advance(5)
    assert session.tick() is False
    assert lock_free == [True]
    assert not session.is_running
