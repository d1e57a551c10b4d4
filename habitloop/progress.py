"""Daily progress computation for HabitLoop.

Each habit type has one branch function; ``compute_progress`` is the only
dispatch point, so adding a habit type means adding one entry to
``_BRANCHES``.

Same-day math reads only the day's non-journal records. The cumulative
fields on ``Habit`` are for lifetime stats and streaks.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import date

from habitloop.const import HABIT_ETHEREAL, HABIT_FREQUENCY, HABIT_ROUTINE, HABIT_TIMER
from habitloop.models import CompletionRecord, Habit
from habitloop.schedule import is_scheduled_for_date


@dataclass
class ProgressResult:
    habit_type: str
    value: float  # metric sum, steps done, minutes, or completions
    goal: float
    percentage: float  # 0.0 - 1.0
    goal_met: bool
    completion_count: int = 0
    completed_steps: set[int] = field(default_factory=set)
    unit: str = ""

    @property
    def progress_text(self) -> str:
        if self.habit_type == HABIT_TIMER:
            return f"{format_minutes(self.value)} / {format_minutes(self.goal)}"
        if self.habit_type == HABIT_ROUTINE:
            return f"{int(self.value)}/{int(self.goal)} steps"
        if self.habit_type == HABIT_ETHEREAL:
            return "Done" if self.goal_met else "Not done"
        text = f"{self.value:g}/{self.goal:g}"
        return f"{text} {self.unit}" if self.unit else text

    def to_dict(self) -> dict[str, object]:
        return {
            "habitType": self.habit_type,
            "value": round(self.value, 3),
            "goal": self.goal,
            "percentage": round(self.percentage, 3),
            "goalMet": self.goal_met,
            "completionCount": self.completion_count,
            "completedSteps": sorted(self.completed_steps),
            "progressText": self.progress_text,
        }


# ── Record filters ────────────────────────────────────────────


def qualifying_records(records: Iterable[CompletionRecord]) -> list[CompletionRecord]:
    """Records that count toward progress (journal-only entries never do)."""
    return [r for r in records if not r.is_journal_only]


def records_for_day(records: Iterable[CompletionRecord], day: date) -> list[CompletionRecord]:
    """Qualifying records whose local timestamp falls on *day*."""
    return [r for r in qualifying_records(records) if r.day == day]


def parse_completed_steps(text: str) -> set[int]:
    steps = set()
    for part in (text or "").split(","):
        part = part.strip()
        if part.lstrip("-").isdigit():
            steps.add(int(part))
    return steps


def record_amount(habit: Habit, record: CompletionRecord) -> float:
    """A record's metric contribution; zero means "one unit of the habit's metric"."""
    if record.is_journal_only:
        return 0.0
    return record.metric_amount if record.metric_amount else habit.metric_value


def minutes_in(records: Iterable[CompletionRecord]) -> float:
    return sum(r.timer_duration for r in qualifying_records(records))


def minutes_today(records: Iterable[CompletionRecord], day: date) -> float:
    """Persisted timer minutes logged on *day*."""
    return minutes_in(records_for_day(records, day))


def target_frequency_for(goal_value: float, metric_value: float) -> int:
    """Completions per day needed to reach the goal. Display value only."""
    if metric_value <= 0:
        return 1
    return max(1, math.ceil(goal_value / metric_value))


# ── Branches ──────────────────────────────────────────────────


def _ratio(value: float, goal: float) -> float:
    if goal <= 0:
        return 0.0
    return min(value / goal, 1.0)


def _frequency_progress(habit: Habit, records: list[CompletionRecord], live_minutes: float) -> ProgressResult:
    value = sum(record_amount(habit, r) for r in records)
    return ProgressResult(
        habit_type=HABIT_FREQUENCY,
        value=value,
        goal=habit.goal_value,
        percentage=_ratio(value, habit.goal_value),
        goal_met=value >= habit.goal_value,
        completion_count=len(records),
        unit=habit.metric_unit,
    )


def _routine_progress(habit: Habit, records: list[CompletionRecord], live_minutes: float) -> ProgressResult:
    total = len(habit.routine_steps)
    done: set[int] = set()
    for r in records:
        done |= parse_completed_steps(r.completed_steps)
    done = {i for i in done if 0 <= i < total}
    return ProgressResult(
        habit_type=HABIT_ROUTINE,
        value=float(len(done)),
        goal=float(total),
        percentage=len(done) / total if total else 0.0,
        goal_met=total > 0 and len(done) >= total,
        completion_count=len(records),
        completed_steps=done,
    )


def _timer_progress(habit: Habit, records: list[CompletionRecord], live_minutes: float) -> ProgressResult:
    minutes = minutes_in(records) + max(0.0, live_minutes)
    return ProgressResult(
        habit_type=HABIT_TIMER,
        value=minutes,
        goal=habit.goal_value,
        percentage=_ratio(minutes, habit.goal_value),
        goal_met=minutes >= habit.goal_value,
        completion_count=len(records),
        unit="minutes",
    )


def _ethereal_progress(habit: Habit, records: list[CompletionRecord], live_minutes: float) -> ProgressResult:
    done = len(records) > 0
    return ProgressResult(
        habit_type=HABIT_ETHEREAL,
        value=float(len(records)),
        goal=1.0,
        percentage=1.0 if done else 0.0,
        goal_met=done,
        completion_count=len(records),
        unit=habit.metric_unit,
    )


_BRANCHES: dict[str, Callable[[Habit, list[CompletionRecord], float], ProgressResult]] = {
    HABIT_FREQUENCY: _frequency_progress,
    HABIT_ROUTINE: _routine_progress,
    HABIT_TIMER: _timer_progress,
    HABIT_ETHEREAL: _ethereal_progress,
}


def compute_progress(
    habit: Habit,
    records_today: Iterable[CompletionRecord],
    live_minutes: float = 0.0,
) -> ProgressResult:
    """Progress for one day from that day's records.

    *live_minutes* is the unsaved time of a running timer session; it only
    affects timer habits.
    """
    records = qualifying_records(records_today)
    branch = _BRANCHES.get(habit.habit_type)
    if branch is None:
        raise ValueError(f"Unknown habit type: {habit.habit_type}")
    return branch(habit, records, live_minutes)


def progress_on(habit: Habit, records: Iterable[CompletionRecord], day: date, live_minutes: float = 0.0) -> ProgressResult:
    return compute_progress(habit, records_for_day(records, day), live_minutes)


def completed_for_display(habit: Habit, records_today: Iterable[CompletionRecord], day: date) -> bool:
    """Whether to show the habit as done on *day*.

    Off-schedule days never block logging: any qualifying record shows as done.
    """
    records = qualifying_records(records_today)
    if not is_scheduled_for_date(habit, day):
        return len(records) > 0
    return compute_progress(habit, records).goal_met


# ── Display helpers ───────────────────────────────────────────


def format_minutes(minutes: float) -> str:
    """75 -> '1h 15m', 60 -> '1h', 12.5 -> '12m'."""
    hours = int(minutes // 60)
    mins = int(minutes % 60)
    if hours > 0:
        return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
    return f"{mins}m"


def format_elapsed(seconds: float) -> str:
    """Stopwatch style: 'H:MM:SS' or 'M:SS'."""
    total = int(seconds)
    hours, minutes, secs = total // 3600, (total % 3600) // 60, total % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def timer_remaining_text(goal_minutes: float, elapsed_seconds: float) -> str:
    remaining = max(0.0, max(goal_minutes * 60.0, 0.0) - elapsed_seconds)
    whole = int(remaining)
    if remaining >= 3600:
        return f"{whole // 3600}h {(whole % 3600) // 60}m left"
    if remaining >= 60:
        return f"{(whole % 3600) // 60}m left"
    return f"{whole % 60}s left"


def overrun_text(goal_minutes: float, elapsed_seconds: float) -> str | None:
    """Whole minutes beyond the goal, e.g. '+5m', or None."""
    extra = max(0.0, elapsed_seconds - max(goal_minutes * 60.0, 0.0))
    minutes = int(extra / 60.0)
    return f"+{minutes}m" if minutes > 0 else None
