"""Tests for habitloop/models.py — serialization and snapshot formatting."""

from datetime import datetime
from zoneinfo import ZoneInfo

from habitloop.models import CompletionRecord, Habit, HabitSnapshot, TimerContentState, parse_datetime

TZ = ZoneInfo("Europe/Berlin")


def test_habit_from_dict_defaults():
    habit = Habit.from_dict({"name": "Walk"})
    assert habit.id
    assert habit.icon == "star"
    assert habit.color_hex == "#007AFF"
    assert habit.habit_type == "frequency"
    assert habit.schedule_type == "daily"
    assert habit.is_active is True
    assert habit.coping_plan is None
    assert habit.has_coping_plan is False


def test_habit_uses_camel_case_keys():
    habit = Habit(
        id="h1",
        name="Piano",
        habit_type="timer",
        goal_value=20,
        coping_plan="Play one scale",
        last_completed_date=datetime(2026, 3, 10, 21, 15, tzinfo=TZ),
    )
    data = habit.to_dict()
    assert data["habitType"] == "timer"
    assert data["goalValue"] == 20
    assert data["copingPlan"] == "Play one scale"
    assert data["lastCompletedDate"] == "2026-03-10T21:15:00+01:00"
    assert "routineSteps" not in data

    restored = Habit.from_dict(data)
    assert restored.last_completed_date == habit.last_completed_date
    assert restored.is_timer
    assert restored.has_coping_plan


def test_unknown_keys_ignored():
    habit = Habit.from_dict({"name": "x", "somethingNew": 1})
    assert habit.name == "x"


def test_record_day_is_local_date():
    record = CompletionRecord(habit_id="h1", completed_date=datetime(2026, 3, 11, 0, 30, tzinfo=TZ))
    assert record.day.isoformat() == "2026-03-11"


def test_record_to_dict_omits_empty_payload():
    record = CompletionRecord(id="r1", habit_id="h1", completed_date=datetime(2026, 3, 11, 9, 0, tzinfo=TZ))
    assert record.to_dict() == {"id": "r1", "habitId": "h1", "completedDate": "2026-03-11T09:00:00+01:00"}

    journal = CompletionRecord.from_dict(
        {"habitId": "h1", "completedDate": "2026-03-11T09:00:00+01:00", "isJournalOnly": True, "moodScore": 2, "notes": "meh"}
    )
    assert journal.is_journal_only
    assert journal.mood_score == 2


def test_parse_datetime_bad_value():
    assert parse_datetime("not a date") is None
    assert parse_datetime(None) is None


def test_content_state_dict():
    assert TimerContentState(12, True, False).to_dict() == {"elapsedSeconds": 12, "isRunning": True, "isFinished": False}


def test_snapshot_timer_formatting():
    snap = HabitSnapshot(id="h1", name="Read", icon="book", color_hex="#000000", mode="timer", value=65.5, goal=30)
    assert snap.formatted_progress() == "1:05:30"
    assert snap.progress == 1.0
    assert HabitSnapshot(id="h", name="", icon="", color_hex="", mode="timer", value=2.5, goal=30).formatted_progress() == "2:30"
    assert HabitSnapshot(id="h", name="", icon="", color_hex="", mode="timer", value=0.5, goal=30).formatted_progress() == "30s"


def test_snapshot_count_formatting():
    snap = HabitSnapshot(id="h1", name="Water", icon="drop", color_hex="#000000", mode="count", value=3, goal=8, unit_label="glasses")
    assert snap.formatted_progress() == "3/8 glasses"
    assert snap.progress == 3 / 8
    assert snap.to_dict()["formattedProgress"] == "3/8 glasses"
