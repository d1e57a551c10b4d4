"""Discrete completion operations for HabitLoop.

Every operation appends its record and any statistics change inside one
store transaction, so a failed save leaves neither behind. Hooks run only
after the commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from habitloop.clock import Clock
from habitloop.const import HABIT_ETHEREAL, HABIT_FREQUENCY, HABIT_ROUTINE, HABIT_TIMER, LOGGER, MOOD_MAX, MOOD_MIN
from habitloop.hooks import HookBatch, run_hooks
from habitloop.models import CompletionRecord, Habit
from habitloop.progress import ProgressResult, compute_progress
from habitloop.store import HabitStore
from habitloop.streaks import (
    apply_goal_crossing,
    calculate_scheduled_streak,
    can_use_coping_plan,
    mark_coping_used,
)


@dataclass
class CompletionOutcome:
    habit: Habit
    record: CompletionRecord
    progress: ProgressResult
    goal_crossed: bool = False
    streak: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "habit": self.habit.to_dict(),
            "record": self.record.to_dict(),
            "progress": self.progress.to_dict(),
            "goalCrossed": self.goal_crossed,
            "streak": self.streak,
        }


def _require(store: HabitStore, habit_id: str, *types: str) -> Habit:
    habit = store.get_habit(habit_id)
    if habit is None:
        raise ValueError(f"Habit not found: {habit_id}")
    if types and habit.habit_type not in types:
        raise ValueError(f"Operation not supported for {habit.habit_type} habit {habit_id}")
    return habit


# ── Shared append path ────────────────────────────────────────


def append_progress(
    store: HabitStore,
    habit: Habit,
    record: CompletionRecord,
    now: datetime,
    root: Path | None = None,
    hooks: HookBatch | None = None,
) -> CompletionOutcome:
    """Append *record* and run the goal-crossing update if it met today's goal.

    Goal-met is checked before the append, so repeated completions on a day
    that already met its goal never touch the streak.

    With *hooks* given, the ``post_goal_met`` event is added to that batch
    for the caller to fire; otherwise it runs before returning.
    """
    today = now.date()
    met_before = compute_progress(habit, store.records_on(habit.id, today)).goal_met

    with store.transaction():
        store.append_record(record)
        progress = compute_progress(habit, store.records_on(habit.id, today))
        crossed = progress.goal_met and not met_before
        if crossed:
            apply_goal_crossing(habit, now)
            if habit.is_ethereal:
                habit.is_active = False

    if crossed:
        LOGGER.debug("Habit %s met its goal, streak now %d", habit.id, habit.current_streak)
        batch = hooks if hooks is not None else HookBatch(root)
        batch.add(
            "post_goal_met",
            {
                "habit_id": habit.id,
                "name": habit.name,
                "habit_type": habit.habit_type,
                "current_streak": habit.current_streak,
                "longest_streak": habit.longest_streak,
                "date": today.isoformat(),
            },
        )
        if hooks is None:
            batch.fire()
    return CompletionOutcome(
        habit=habit,
        record=record,
        progress=progress,
        goal_crossed=crossed,
        streak=habit.current_streak,
    )


# ── Operations ────────────────────────────────────────────────


def record_completion(
    store: HabitStore,
    habit_id: str,
    clock: Clock,
    amount: float | None = None,
    notes: str = "",
    root: Path | None = None,
) -> CompletionOutcome:
    """Log one completion of a frequency or ethereal habit.

    *amount* defaults to the habit's metric value. Completing an ethereal
    habit retires it.
    """
    habit = _require(store, habit_id, HABIT_FREQUENCY, HABIT_ETHEREAL)
    if not habit.is_active:
        raise ValueError(f"Habit is not active: {habit_id}")
    if amount is not None and amount <= 0:
        raise ValueError("amount must be positive")
    now = clock.now()
    record = CompletionRecord(
        habit_id=habit.id,
        completed_date=now,
        metric_amount=float(amount if amount is not None else habit.metric_value),
        notes=notes,
    )
    return append_progress(store, habit, record, now, root)


def complete_step(
    store: HabitStore,
    habit_id: str,
    step_index: int,
    clock: Clock,
    root: Path | None = None,
) -> CompletionOutcome:
    """Mark one routine step done for today. Repeating a step is harmless."""
    habit = _require(store, habit_id, HABIT_ROUTINE)
    if not 0 <= step_index < len(habit.routine_steps):
        raise ValueError(f"Step {step_index} out of range for habit {habit_id}")
    now = clock.now()
    record = CompletionRecord(habit_id=habit.id, completed_date=now, completed_steps=str(step_index))
    return append_progress(store, habit, record, now, root)


def log_minutes(
    store: HabitStore,
    habit_id: str,
    minutes: float,
    clock: Clock,
    root: Path | None = None,
) -> CompletionOutcome:
    """Log timer minutes by hand, without running a session."""
    habit = _require(store, habit_id, HABIT_TIMER)
    if minutes <= 0:
        raise ValueError("minutes must be positive")
    now = clock.now()
    record = CompletionRecord(habit_id=habit.id, completed_date=now, timer_duration=float(minutes))
    return append_progress(store, habit, record, now, root)


def log_journal(
    store: HabitStore,
    habit_id: str,
    clock: Clock,
    mood_score: int | None = None,
    notes: str = "",
) -> CompletionRecord:
    """Attach a reflection to today. Journal entries never count as progress."""
    habit = _require(store, habit_id)
    if mood_score is not None and not MOOD_MIN <= mood_score <= MOOD_MAX:
        raise ValueError(f"moodScore must be {MOOD_MIN}-{MOOD_MAX}")
    if mood_score is None and not notes.strip():
        raise ValueError("A journal entry needs a mood score or notes")
    record = CompletionRecord(
        habit_id=habit.id,
        completed_date=clock.now(),
        is_journal_only=True,
        mood_score=mood_score,
        notes=notes.strip(),
    )
    with store.transaction():
        store.append_record(record)
    return record


def use_coping_plan(
    store: HabitStore,
    habit_id: str,
    clock: Clock,
    root: Path | None = None,
) -> bool:
    """Use the coping plan to cover yesterday's miss. Returns False if not eligible."""
    habit = _require(store, habit_id)
    now = clock.now()
    if not can_use_coping_plan(habit, store.records_for(habit.id), now.date()):
        return False
    with store.transaction():
        mark_coping_used(habit, now)
    run_hooks(
        "on_coping_plan",
        {"habit_id": habit.id, "name": habit.name, "coping_plan": habit.coping_plan, "date": now.date().isoformat()},
        root,
    )
    return True


def recalculate_streak(store: HabitStore, habit_id: str, clock: Clock) -> int:
    """Rebuild currentStreak from the record log. Returns the new value."""
    habit = _require(store, habit_id)
    streak = calculate_scheduled_streak(habit, store.records_for(habit.id), clock.today())
    if streak != habit.current_streak:
        LOGGER.info("Repairing streak for habit %s: %d -> %d", habit.id, habit.current_streak, streak)
    with store.transaction():
        habit.current_streak = streak
        habit.longest_streak = max(habit.longest_streak, streak)
    return streak
