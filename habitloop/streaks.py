"""Streak counting and coping-plan policy for HabitLoop.

The incremental update runs only at a goal-crossing. ``calculate_scheduled_streak``
rebuilds the streak from the record log and is what repair tools should trust.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta

from habitloop.clock import days_between
from habitloop.const import LOGGER, STREAK_LOOKBACK_DAYS
from habitloop.models import CompletionRecord, Habit
from habitloop.progress import qualifying_records, records_for_day
from habitloop.schedule import is_scheduled_for_date


def coping_used_on(habit: Habit, day: date) -> bool:
    return habit.last_coping_date is not None and habit.last_coping_date.date() == day


def can_use_coping_plan(habit: Habit, records: Iterable[CompletionRecord], day: date) -> bool:
    """Eligible when yesterday was scheduled, nothing was logged for it,
    and the plan has not been used yet today."""
    if not habit.has_coping_plan:
        return False
    yesterday = day - timedelta(days=1)
    if not is_scheduled_for_date(habit, yesterday):
        return False
    if records_for_day(records, yesterday):
        return False
    return not coping_used_on(habit, day)


def mark_coping_used(habit: Habit, now: datetime) -> None:
    """Mark the coping plan used. Streak counters are left alone on purpose:
    this is a grace for yesterday, not a completion for today."""
    habit.last_coping_date = now
    LOGGER.debug("Coping plan used for habit %s at %s", habit.id, now.isoformat())


def apply_goal_crossing(habit: Habit, now: datetime) -> int:
    """Update streak and lifetime counters when today's goal is first met.

    Must be called once per day per habit, inside the same store transaction
    as the record that crossed the goal. Returns the new current streak.
    """
    today = now.date()
    last = habit.last_completed_date
    if last is None:
        habit.current_streak = 1
    else:
        gap = days_between(last.date(), today)
        if gap == 0:
            return habit.current_streak
        if gap == 1:
            habit.current_streak += 1
        else:
            LOGGER.debug("Habit %s streak reset after %d day gap", habit.id, gap)
            habit.current_streak = 1

    habit.longest_streak = max(habit.longest_streak, habit.current_streak)
    habit.last_completed_date = now
    habit.total_completions += 1
    return habit.current_streak


def _held(habit: Habit, records: list[CompletionRecord], day: date) -> bool:
    return bool(records_for_day(records, day)) or coping_used_on(habit, day + timedelta(days=1))


def calculate_scheduled_streak(habit: Habit, records: Iterable[CompletionRecord], today: date) -> int:
    """Count consecutive held scheduled days walking back from *today*.

    A scheduled day is held if something was logged for it or the coping
    plan was used the following day. Unscheduled days are skipped. Today is
    still in progress, so an unheld today is skipped rather than ending the
    streak.
    """
    qualifying = qualifying_records(records)
    streak = 0
    day = today
    for offset in range(STREAK_LOOKBACK_DAYS):
        if is_scheduled_for_date(habit, day):
            if _held(habit, qualifying, day):
                streak += 1
            elif offset > 0:
                break
        day -= timedelta(days=1)
    return streak
