"""Chart data, summary stats and widget snapshots for HabitLoop."""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any

from habitloop.const import LOGGER
from habitloop.fileio import write_json_atomic
from habitloop.models import ChartPoint, CompletionRecord, Habit, HabitSnapshot
from habitloop.progress import minutes_in, parse_completed_steps, progress_on, qualifying_records
from habitloop.store import HabitStore
from habitloop.streaks import calculate_scheduled_streak
from habitloop.workspace import snapshots_path

if TYPE_CHECKING:
    from habitloop.timer import TimerSessionManager


Y_MINUTES = "minutes"
Y_STEPS = "steps"
Y_COMPLETIONS = "completions"


# ── Chart data ────────────────────────────────────────────────


def chart_axis(habit: Habit) -> str:
    if habit.is_timer:
        return Y_MINUTES
    if habit.is_routine:
        return Y_STEPS
    return Y_COMPLETIONS


def _day_value(habit: Habit, records: list[CompletionRecord]) -> float:
    if habit.is_timer:
        return minutes_in(records)
    if habit.is_routine:
        steps: set[int] = set()
        for r in records:
            steps |= parse_completed_steps(r.completed_steps)
        return float(len(steps))
    return float(len(records))


def daily_points(
    habit: Habit,
    records: list[CompletionRecord],
    days: int | None,
    today: date,
) -> tuple[list[ChartPoint], str]:
    """One point per day up to *today*, ascending, plus the y-axis label.

    With *days* unset the range starts at the habit's creation or its first
    record, whichever is earlier.
    """
    qualifying = [r for r in qualifying_records(records) if r.day is not None]
    if days and days > 0:
        start = today - timedelta(days=days - 1)
    else:
        candidates = [r.day for r in qualifying]
        if habit.created_date is not None:
            candidates.append(habit.created_date.date())
        start = min(candidates + [today])

    per_day: dict[date, list[CompletionRecord]] = defaultdict(list)
    for r in qualifying:
        if start <= r.day <= today:
            per_day[r.day].append(r)

    points = []
    d = start
    while d <= today:
        points.append(ChartPoint(day=d, value=_day_value(habit, per_day.get(d, []))))
        d += timedelta(days=1)
    return points, chart_axis(habit)


# ── Summary stats ─────────────────────────────────────────────


def habit_stats(habit: Habit, records: list[CompletionRecord], today: date) -> dict[str, Any]:
    """Headline numbers for a habit detail view. Weeks start on Monday."""
    week_start = today - timedelta(days=today.weekday())
    qualifying = qualifying_records(records)
    this_week = [r for r in qualifying if r.day is not None and week_start <= r.day <= today]
    moods = [r.mood_score for r in records if r.mood_score is not None]
    return {
        "completionsThisWeek": len(this_week),
        "totalMinutes": round(minutes_in(qualifying), 2),
        "currentStreak": habit.current_streak,
        "longestStreak": habit.longest_streak,
        "totalCompletions": habit.total_completions,
        "scheduledStreak": calculate_scheduled_streak(habit, records, today),
        "averageMood": round(sum(moods) / len(moods), 2) if moods else None,
    }


# ── Widget snapshots ──────────────────────────────────────────


def snapshot_for(
    habit: Habit,
    records: list[CompletionRecord],
    today: date,
    now: datetime,
    live_minutes: float = 0.0,
    is_running: bool = False,
) -> HabitSnapshot:
    progress = progress_on(habit, records, today, live_minutes)
    goal = max(habit.goal_value, 0.0)
    if habit.is_timer:
        return HabitSnapshot(
            id=habit.id,
            name=habit.name or "Habit",
            icon=habit.icon,
            color_hex=habit.color_hex,
            mode="timer",
            value=progress.value,
            goal=max(goal, 0.01),
            unit_label=habit.metric_unit,
            is_timer_running=is_running,
            last_updated=now,
        )
    return HabitSnapshot(
        id=habit.id,
        name=habit.name or "Habit",
        icon=habit.icon,
        color_hex=habit.color_hex,
        mode="count",
        value=progress.value,
        goal=max(progress.goal, 1.0),
        unit_label=habit.metric_unit,
        last_updated=now,
    )


def build_snapshots(
    store: HabitStore,
    now: datetime,
    manager: TimerSessionManager | None = None,
) -> list[HabitSnapshot]:
    """Snapshots of every active habit, including unsaved running timer time."""
    snapshots = []
    for habit in store.habits(active_only=True):
        session = manager.get(habit.id) if manager is not None else None
        snapshots.append(
            snapshot_for(
                habit,
                store.records_for(habit.id),
                now.date(),
                now,
                live_minutes=session.unsaved_minutes() if session else 0.0,
                is_running=bool(session and session.is_running),
            )
        )
    return snapshots


def export_snapshots(
    store: HabitStore,
    now: datetime,
    manager: TimerSessionManager | None = None,
    root: Path | None = None,
) -> Path:
    """Write widget_snapshots.json and return its path."""
    path = snapshots_path(root)
    snapshots = build_snapshots(store, now, manager)
    write_json_atomic(path, {"snapshots": [s.to_dict() for s in snapshots]})
    LOGGER.debug("Exported %d widget snapshots to %s", len(snapshots), path)
    return path
