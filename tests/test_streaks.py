"""Tests for habitloop/streaks.py — goal-crossing updates and coping plans."""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from habitloop.models import CompletionRecord, Habit
from habitloop.streaks import (
    apply_goal_crossing,
    calculate_scheduled_streak,
    can_use_coping_plan,
    coping_used_on,
    mark_coping_used,
)

UTC = ZoneInfo("UTC")
D = date(2026, 3, 2)  # Monday


def _at(day: date, hour: int = 9) -> datetime:
    return datetime(day.year, day.month, day.day, hour, 0, tzinfo=UTC)


def _done(habit: Habit, day: date) -> CompletionRecord:
    return CompletionRecord(habit_id=habit.id, completed_date=_at(day))


# ── Incremental update ────────────────────────────────────────


def test_first_crossing_starts_streak():
    habit = Habit()
    assert apply_goal_crossing(habit, _at(D)) == 1
    assert habit.longest_streak == 1
    assert habit.total_completions == 1
    assert habit.last_completed_date == _at(D)


def test_consecutive_days_increment():
    habit = Habit()
    for offset in range(3):
        apply_goal_crossing(habit, _at(D + timedelta(days=offset)))
    assert habit.current_streak == 3
    assert habit.longest_streak == 3
    assert habit.total_completions == 3


def test_same_day_is_noop():
    habit = Habit()
    apply_goal_crossing(habit, _at(D, 8))
    apply_goal_crossing(habit, _at(D, 20))
    assert habit.current_streak == 1
    assert habit.total_completions == 1
    assert habit.last_completed_date == _at(D, 8)


def test_two_day_gap_resets_but_keeps_longest():
    habit = Habit()
    for offset in range(3):
        apply_goal_crossing(habit, _at(D + timedelta(days=offset)))
    apply_goal_crossing(habit, _at(D + timedelta(days=4)))
    assert habit.current_streak == 1
    assert habit.longest_streak == 3
    assert habit.total_completions == 4


def test_late_night_then_early_morning_counts_as_consecutive():
    habit = Habit()
    apply_goal_crossing(habit, _at(D, 23))
    apply_goal_crossing(habit, _at(D + timedelta(days=1), 0))
    assert habit.current_streak == 2


# ── Coping plan ───────────────────────────────────────────────


def test_coping_requires_plan():
    habit = Habit(coping_plan=None)
    assert can_use_coping_plan(habit, [], D) is False
    habit.coping_plan = "   "
    assert can_use_coping_plan(habit, [], D) is False


def test_coping_eligible_after_missed_scheduled_day():
    habit = Habit(coping_plan="Drink one glass")
    assert can_use_coping_plan(habit, [], D + timedelta(days=1)) is True


def test_coping_not_eligible_if_yesterday_done():
    habit = Habit(coping_plan="Drink one glass")
    assert can_use_coping_plan(habit, [_done(habit, D)], D + timedelta(days=1)) is False


def test_coping_journal_entry_yesterday_does_not_block():
    habit = Habit(coping_plan="Drink one glass")
    journal = CompletionRecord(habit_id=habit.id, completed_date=_at(D), is_journal_only=True, notes="tired")
    assert can_use_coping_plan(habit, [journal], D + timedelta(days=1)) is True


def test_coping_not_eligible_if_yesterday_unscheduled():
    habit = Habit(coping_plan="Stretch", schedule_type="weekdaysOnly")
    sunday = date(2026, 3, 8)
    monday = date(2026, 3, 9)
    # Yesterday was Saturday
    assert can_use_coping_plan(habit, [], sunday) is False
    # Yesterday was Sunday
    assert can_use_coping_plan(habit, [], monday) is False
    assert can_use_coping_plan(habit, [], monday + timedelta(days=1)) is True


def test_coping_once_per_day():
    habit = Habit(coping_plan="Stretch")
    today = D + timedelta(days=1)
    mark_coping_used(habit, _at(today, 7))
    assert coping_used_on(habit, today)
    assert can_use_coping_plan(habit, [], today) is False
    assert can_use_coping_plan(habit, [], today + timedelta(days=1)) is True


def test_coping_does_not_touch_streak():
    habit = Habit(coping_plan="Stretch", current_streak=4, last_completed_date=_at(D - timedelta(days=1)))
    mark_coping_used(habit, _at(D + timedelta(days=1)))
    assert habit.current_streak == 4
    assert habit.last_completed_date == _at(D - timedelta(days=1))
    assert habit.total_completions == 0


# ── Scheduled streak ──────────────────────────────────────────


def test_scheduled_streak_counts_consecutive_days():
    habit = Habit()
    records = [_done(habit, D + timedelta(days=i)) for i in range(3)]
    assert calculate_scheduled_streak(habit, records, D + timedelta(days=2)) == 3


def test_scheduled_streak_skips_unheld_today():
    habit = Habit()
    records = [_done(habit, D + timedelta(days=i)) for i in range(3)]
    assert calculate_scheduled_streak(habit, records, D + timedelta(days=3)) == 3


def test_scheduled_streak_stops_at_first_miss():
    habit = Habit()
    records = [_done(habit, D), _done(habit, D + timedelta(days=2)), _done(habit, D + timedelta(days=3))]
    assert calculate_scheduled_streak(habit, records, D + timedelta(days=3)) == 2


def test_scheduled_streak_skips_unscheduled_days():
    habit = Habit(schedule_type="weekdaysOnly")
    friday = date(2026, 3, 6)
    monday = date(2026, 3, 9)
    records = [_done(habit, friday - timedelta(days=1)), _done(habit, friday), _done(habit, monday)]
    assert calculate_scheduled_streak(habit, records, monday) == 3


def test_coping_plan_saves_missed_day():
    habit = Habit(coping_plan="One push-up")
    # Done D-2, D-1; missed D; coping plan used on D+1, then done D+1
    records = [_done(habit, D - timedelta(days=2)), _done(habit, D - timedelta(days=1)), _done(habit, D + timedelta(days=1))]
    mark_coping_used(habit, _at(D + timedelta(days=1), 7))
    assert calculate_scheduled_streak(habit, records, D + timedelta(days=1)) == 4


def test_scheduled_streak_ignores_journal_records():
    habit = Habit()
    journal = CompletionRecord(habit_id=habit.id, completed_date=_at(D - timedelta(days=1)), is_journal_only=True)
    records = [_done(habit, D), journal, _done(habit, D - timedelta(days=2))]
    assert calculate_scheduled_streak(habit, records, D) == 1


def test_scheduled_streak_empty():
    assert calculate_scheduled_streak(Habit(), [], D) == 0
