"""Habit validation and CRUD for HabitLoop.

This is the form boundary: input is validated here so the engine can
assume positive goals and metrics. Payloads use the same camelCase keys
as the stored JSON, plus two conveniences for schedules:

    weekdays:  [2, 4]     -> weekly mask (1=Sunday .. 7=Saturday)
    monthDays: [1, 15]    -> monthly mask
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from habitloop.const import (
    DEFAULT_TIMER_ICON,
    HABIT_ETHEREAL,
    HABIT_ROUTINE,
    HABIT_TIMER,
    LOGGER,
    SCHEDULE_DAILY,
    SCHEDULE_MONTHLY,
    SCHEDULE_WEEKLY,
    VALID_HABIT_TYPES,
    VALID_SCHEDULE_TYPES,
)
from habitloop.hooks import run_hooks
from habitloop.models import Habit
from habitloop.progress import target_frequency_for
from habitloop.schedule import set_monthly_schedule, set_weekly_schedule
from habitloop.store import HabitStore

# Only the streak policy and completion operations may write these.
STATISTICS_KEYS = {
    "currentStreak",
    "longestStreak",
    "totalCompletions",
    "lastCompletedDate",
    "lastCopingDate",
    "createdDate",
    "isActive",
    "id",
}

TYPE_DEFAULTS = {
    HABIT_ETHEREAL: {"icon": "sparkles", "colorHex": "#8E8CF2"},
    HABIT_TIMER: {"icon": DEFAULT_TIMER_ICON, "metricUnit": "minutes"},
}

# One-shot tasks always count a single unit against a goal of one.
ETHEREAL_FIXED = {
    "metricValue": 1,
    "metricUnit": "task",
    "goalValue": 1,
    "scheduleType": SCHEDULE_DAILY,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_habit(data: dict[str, Any]) -> list[str]:
    """Validate a habit payload and return a list of errors (empty if valid)."""
    errors = []
    if not str(data.get("name", "")).strip():
        errors.append("Missing required field: name")

    habit_type = data.get("habitType", "frequency")
    if habit_type not in VALID_HABIT_TYPES:
        errors.append(f"Invalid habit type: {habit_type}")

    schedule_type = data.get("scheduleType", SCHEDULE_DAILY)
    if schedule_type not in VALID_SCHEDULE_TYPES:
        errors.append(f"Invalid schedule type: {schedule_type}")

    for key in ("metricValue", "goalValue"):
        if key in data:
            if not _is_number(data[key]):
                errors.append(f"{key} must be numeric")
            elif data[key] <= 0:
                errors.append(f"{key} must be positive")

    if habit_type == HABIT_ROUTINE:
        steps = data.get("routineSteps") or []
        if not isinstance(steps, list) or not [s for s in steps if str(s).strip()]:
            errors.append("Routine habits need at least one step")

    if schedule_type == SCHEDULE_WEEKLY:
        days = data.get("weekdays")
        if days is not None and (not days or not all(isinstance(d, int) and 1 <= d <= 7 for d in days)):
            errors.append("weekdays must be integers 1-7 (1=Sunday)")
        if days is None and not data.get("scheduleValue"):
            errors.append("Weekly schedules need at least one weekday")
    elif schedule_type == SCHEDULE_MONTHLY:
        days = data.get("monthDays")
        if days is not None and (not days or not all(isinstance(d, int) and 1 <= d <= 31 for d in days)):
            errors.append("monthDays must be integers 1-31")
        if days is None and not data.get("scheduleValue"):
            errors.append("Monthly schedules need at least one day")

    return errors


def _normalize(data: dict[str, Any]) -> dict[str, Any]:
    """Trim text fields and apply per-type defaults."""
    out = dict(data)
    habit_type = out.get("habitType", "frequency")
    for key, value in TYPE_DEFAULTS.get(habit_type, {}).items():
        out.setdefault(key, value)
    if habit_type == HABIT_ETHEREAL:
        out.update(ETHEREAL_FIXED)
    out["name"] = str(out.get("name", "")).strip()
    if "description" in out:
        out["description"] = str(out.get("description") or "").strip()
    if "copingPlan" in out:
        plan = str(out.get("copingPlan") or "").strip()
        out["copingPlan"] = plan or None
    if "routineSteps" in out and isinstance(out["routineSteps"], list):
        out["routineSteps"] = [str(s).strip() for s in out["routineSteps"] if str(s).strip()]
    return out


def _apply_schedule(habit: Habit, data: dict[str, Any]) -> None:
    if habit.schedule_type == SCHEDULE_WEEKLY and data.get("weekdays") is not None:
        set_weekly_schedule(habit, data["weekdays"])
    elif habit.schedule_type == SCHEDULE_MONTHLY and data.get("monthDays") is not None:
        set_monthly_schedule(habit, data["monthDays"])
    elif habit.schedule_type not in (SCHEDULE_WEEKLY, SCHEDULE_MONTHLY):
        habit.schedule_value = 0


# ── CRUD ──────────────────────────────────────────────────────


def find_habit(store: HabitStore, habit_id: str) -> Habit | None:
    return store.get_habit(habit_id)


def create_habit(store: HabitStore, data: dict[str, Any], now: datetime) -> tuple[Habit | None, list[str]]:
    """Validate and persist a new habit. Returns (habit, errors)."""
    data = _normalize(data)
    errors = validate_habit(data)
    if errors:
        return None, errors
    if data.get("id") and store.get_habit(str(data["id"])):
        return None, [f"Habit ID already exists: {data['id']}"]

    fields = {k: v for k, v in data.items() if k not in STATISTICS_KEYS}
    if data.get("id"):
        fields["id"] = data["id"]
    habit = Habit.from_dict(fields)
    _apply_schedule(habit, data)
    habit.target_frequency = target_frequency_for(habit.goal_value, habit.metric_value)
    habit.created_date = now
    habit.is_active = True

    with store.transaction():
        store.add_habit(habit)
    LOGGER.debug("Created %s habit %s (%s)", habit.habit_type, habit.id, habit.name)
    return habit, []


def update_habit(store: HabitStore, habit_id: str, updates: dict[str, Any]) -> tuple[Habit | None, list[str]]:
    """Apply configuration changes. Statistics fields in *updates* are ignored."""
    habit = store.get_habit(habit_id)
    if habit is None:
        return None, [f"Habit not found: {habit_id}"]
    if "habitType" in updates and updates["habitType"] != habit.habit_type:
        return None, ["habitType cannot be changed after creation"]

    merged = habit.to_dict()
    merged.update({k: v for k, v in updates.items() if k not in STATISTICS_KEYS})
    if updates.get("scheduleType", habit.schedule_type) != habit.schedule_type and "scheduleValue" not in updates:
        merged["scheduleValue"] = 0
    merged = _normalize(merged)
    errors = validate_habit(merged)
    if errors:
        return None, errors

    configured = Habit.from_dict(merged)
    _apply_schedule(configured, merged)
    with store.transaction():
        for key in (
            "name", "description", "icon", "color_hex", "schedule_type", "schedule_value",
            "metric_value", "metric_unit", "goal_value", "routine_steps", "coping_plan",
        ):
            setattr(habit, key, getattr(configured, key))
        habit.target_frequency = target_frequency_for(habit.goal_value, habit.metric_value)
    return habit, []


def retire_habit(store: HabitStore, habit_id: str, root: Path | None = None) -> Habit | None:
    """Soft delete: the habit leaves every due list but its history stays."""
    habit = store.get_habit(habit_id)
    if habit is None:
        return None
    if habit.is_active:
        with store.transaction():
            habit.is_active = False
        run_hooks("on_habit_retired", {"habit_id": habit.id, "name": habit.name}, root)
    return habit


def restore_habit(store: HabitStore, habit_id: str) -> Habit | None:
    habit = store.get_habit(habit_id)
    if habit is None:
        return None
    with store.transaction():
        habit.is_active = True
    return habit
