"""Schedule evaluation for HabitLoop.

Decides whether a habit is due on a calendar date. Weekly and monthly
schedules are packed into ``Habit.schedule_value``:

    weekly   bit i (0-6)  -> calendar weekday i+1 (1=Sunday .. 7=Saturday)
    monthly  bit i (0-30) -> day of month i+1

A monthly mask naming day 31 is simply never due in shorter months.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta

from habitloop.const import (
    MONTHLY_MASK_WIDTH,
    NEXT_SCHEDULED_LOOKAHEAD_DAYS,
    SATURDAY,
    SCHEDULE_DAILY,
    SCHEDULE_DISPLAY_NAMES,
    SCHEDULE_MONTHLY,
    SCHEDULE_WEEKDAYS_ONLY,
    SCHEDULE_WEEKENDS_ONLY,
    SCHEDULE_WEEKLY,
    SUNDAY,
    WEEKLY_MASK_WIDTH,
)
from habitloop.models import Habit


# ── Bitmask helpers ───────────────────────────────────────────


def is_bit_set(mask: int, index: int) -> bool:
    return index >= 0 and (mask >> index) & 1 == 1


def set_bits(indices: Iterable[int]) -> int:
    mask = 0
    for i in indices:
        mask |= 1 << i
    return mask


def bits_in(mask: int, width: int) -> list[int]:
    """Indices of set bits below *width*, ascending."""
    return [i for i in range(width) if is_bit_set(mask, i)]


def calendar_weekday(d: date) -> int:
    """Weekday in the 1=Sunday .. 7=Saturday convention."""
    return d.isoweekday() % 7 + 1


# ── Evaluation ────────────────────────────────────────────────


def is_scheduled_for_date(habit: Habit, d: date) -> bool:
    schedule = habit.schedule_type
    if schedule == SCHEDULE_WEEKLY:
        return is_bit_set(habit.schedule_value, calendar_weekday(d) - 1)
    if schedule == SCHEDULE_MONTHLY:
        return d.day <= MONTHLY_MASK_WIDTH and is_bit_set(habit.schedule_value, d.day - 1)
    if schedule == SCHEDULE_WEEKENDS_ONLY:
        return calendar_weekday(d) in (SUNDAY, SATURDAY)
    if schedule == SCHEDULE_WEEKDAYS_ONLY:
        return SUNDAY < calendar_weekday(d) < SATURDAY
    # daily, and anything unrecognised
    return True


def next_scheduled_date(habit: Habit, after: date) -> date | None:
    """First due date strictly after *after*, or None if nothing matches within 60 days.

    None means "effectively unscheduled"; callers must not retry in a loop.
    """
    candidate = after
    for _ in range(NEXT_SCHEDULED_LOOKAHEAD_DAYS):
        candidate += timedelta(days=1)
        if is_scheduled_for_date(habit, candidate):
            return candidate
    return None


def is_due(habit: Habit, d: date) -> bool:
    """Active and scheduled. Retired habits are never due."""
    return habit.is_active and is_scheduled_for_date(habit, d)


def due_habits(habits: Iterable[Habit], d: date) -> list[Habit]:
    return [h for h in habits if is_due(h, d)]


# ── Schedule configuration ────────────────────────────────────


def set_weekly_schedule(habit: Habit, weekdays: Iterable[int]) -> None:
    """Schedule on calendar weekdays (1=Sunday .. 7=Saturday); others are ignored."""
    habit.schedule_type = SCHEDULE_WEEKLY
    habit.schedule_value = set_bits(w - 1 for w in weekdays if 1 <= w <= WEEKLY_MASK_WIDTH)


def weekly_schedule_days(habit: Habit) -> list[int]:
    if habit.schedule_type != SCHEDULE_WEEKLY:
        return []
    return [i + 1 for i in bits_in(habit.schedule_value, WEEKLY_MASK_WIDTH)]


def set_monthly_schedule(habit: Habit, days: Iterable[int]) -> None:
    """Schedule on days of the month (1..31); others are ignored."""
    habit.schedule_type = SCHEDULE_MONTHLY
    habit.schedule_value = set_bits(day - 1 for day in days if 1 <= day <= MONTHLY_MASK_WIDTH)


def monthly_schedule_days(habit: Habit) -> list[int]:
    if habit.schedule_type != SCHEDULE_MONTHLY:
        return []
    return [i + 1 for i in bits_in(habit.schedule_value, MONTHLY_MASK_WIDTH)]


def schedule_display_name(schedule_type: str) -> str:
    return SCHEDULE_DISPLAY_NAMES.get(schedule_type, SCHEDULE_DISPLAY_NAMES[SCHEDULE_DAILY])
