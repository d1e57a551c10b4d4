"""Typed dataclasses for the HabitLoop data model.

All persisted models use from_dict/to_dict for JSON serialization.
camelCase in JSON is mapped to snake_case in Python.
Unknown keys are ignored; missing keys use defaults.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from habitloop.const import (
    DEFAULT_COLOR_HEX,
    DEFAULT_ICON,
    DEFAULT_METRIC_UNIT,
    DEFAULT_TIMER_ICON,
    HABIT_ETHEREAL,
    HABIT_FREQUENCY,
    HABIT_ROUTINE,
    HABIT_TIMER,
    LEGACY_STEP_SEPARATOR,
    SCHEDULE_DAILY,
)


def new_id() -> str:
    return str(uuid.uuid4())


def parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def format_datetime(value: datetime | None) -> str | None:
    return value.isoformat(timespec="seconds") if value else None


def _parse_steps(value: Any) -> list[str]:
    if isinstance(value, str):
        return [s for s in value.split(LEGACY_STEP_SEPARATOR) if s]
    return [str(s) for s in (value or []) if str(s)]


# ── Habit ─────────────────────────────────────────────────────


@dataclass
class Habit:
    id: str = field(default_factory=new_id)
    name: str = ""
    description: str = ""
    icon: str = DEFAULT_ICON
    color_hex: str = DEFAULT_COLOR_HEX
    habit_type: str = HABIT_FREQUENCY  # frequency, routine, timer, ethereal
    schedule_type: str = SCHEDULE_DAILY  # daily, weekly, monthly, weekdaysOnly, weekendsOnly
    schedule_value: int = 0  # weekday or day-of-month bitmask
    metric_value: float = 1.0
    metric_unit: str = DEFAULT_METRIC_UNIT
    goal_value: float = 1.0  # timer habits: minutes
    target_frequency: int = 1
    routine_steps: list[str] = field(default_factory=list)
    coping_plan: str | None = None
    # running statistics
    current_streak: int = 0
    longest_streak: int = 0
    total_completions: int = 0
    last_completed_date: datetime | None = None
    last_coping_date: datetime | None = None
    created_date: datetime | None = None
    is_active: bool = True

    @property
    def is_frequency(self) -> bool:
        return self.habit_type == HABIT_FREQUENCY

    @property
    def is_routine(self) -> bool:
        return self.habit_type == HABIT_ROUTINE

    @property
    def is_timer(self) -> bool:
        return self.habit_type == HABIT_TIMER

    @property
    def is_ethereal(self) -> bool:
        return self.habit_type == HABIT_ETHEREAL

    @property
    def has_coping_plan(self) -> bool:
        return bool(self.coping_plan and self.coping_plan.strip())

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Habit:
        coping = d.get("copingPlan")
        return cls(
            id=str(d.get("id") or new_id()),
            name=str(d.get("name", "")),
            description=str(d.get("description", "") or ""),
            icon=str(d.get("icon") or DEFAULT_ICON),
            color_hex=str(d.get("colorHex") or DEFAULT_COLOR_HEX),
            habit_type=str(d.get("habitType") or HABIT_FREQUENCY),
            schedule_type=str(d.get("scheduleType") or SCHEDULE_DAILY),
            schedule_value=int(d.get("scheduleValue", 0) or 0),
            metric_value=float(d.get("metricValue", 1.0)),
            metric_unit=str(d.get("metricUnit") or DEFAULT_METRIC_UNIT),
            goal_value=float(d.get("goalValue", 1.0)),
            target_frequency=int(d.get("targetFrequency", 1) or 1),
            routine_steps=_parse_steps(d.get("routineSteps")),
            coping_plan=str(coping) if coping else None,
            current_streak=int(d.get("currentStreak", 0) or 0),
            longest_streak=int(d.get("longestStreak", 0) or 0),
            total_completions=int(d.get("totalCompletions", 0) or 0),
            last_completed_date=parse_datetime(d.get("lastCompletedDate")),
            last_coping_date=parse_datetime(d.get("lastCopingDate")),
            created_date=parse_datetime(d.get("createdDate")),
            is_active=bool(d.get("isActive", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "colorHex": self.color_hex,
            "habitType": self.habit_type,
            "scheduleType": self.schedule_type,
            "scheduleValue": self.schedule_value,
            "metricValue": self.metric_value,
            "metricUnit": self.metric_unit,
            "goalValue": self.goal_value,
            "targetFrequency": self.target_frequency,
            "currentStreak": self.current_streak,
            "longestStreak": self.longest_streak,
            "totalCompletions": self.total_completions,
            "lastCompletedDate": format_datetime(self.last_completed_date),
            "lastCopingDate": format_datetime(self.last_coping_date),
            "createdDate": format_datetime(self.created_date),
            "isActive": self.is_active,
        }
        if self.description:
            d["description"] = self.description
        if self.routine_steps:
            d["routineSteps"] = list(self.routine_steps)
        if self.coping_plan:
            d["copingPlan"] = self.coping_plan
        return d


# ── Completion records ────────────────────────────────────────


@dataclass
class CompletionRecord:
    habit_id: str = ""
    completed_date: datetime | None = None
    id: str = field(default_factory=new_id)
    metric_amount: float = 0.0
    timer_duration: float = 0.0  # minutes
    completed_steps: str = ""  # comma-separated step indices
    is_journal_only: bool = False
    mood_score: int | None = None
    notes: str = ""

    @property
    def day(self) -> date | None:
        return self.completed_date.date() if self.completed_date else None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> CompletionRecord:
        mood = d.get("moodScore")
        return cls(
            id=str(d.get("id") or new_id()),
            habit_id=str(d.get("habitId", "")),
            completed_date=parse_datetime(d.get("completedDate")),
            metric_amount=float(d.get("metricAmount", 0.0) or 0.0),
            timer_duration=float(d.get("timerDuration", 0.0) or 0.0),
            completed_steps=str(d.get("completedSteps", "") or ""),
            is_journal_only=bool(d.get("isJournalOnly", False)),
            mood_score=int(mood) if mood is not None else None,
            notes=str(d.get("notes", "") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "habitId": self.habit_id,
            "completedDate": format_datetime(self.completed_date),
        }
        if self.metric_amount:
            d["metricAmount"] = self.metric_amount
        if self.timer_duration:
            d["timerDuration"] = self.timer_duration
        if self.completed_steps:
            d["completedSteps"] = self.completed_steps
        if self.is_journal_only:
            d["isJournalOnly"] = True
        if self.mood_score is not None:
            d["moodScore"] = self.mood_score
        if self.notes:
            d["notes"] = self.notes
        return d


# ── Timer session ─────────────────────────────────────────────


@dataclass
class TimerSessionState:
    """In-memory state of one running timer session. Never persisted."""

    habit_id: str
    session_start: datetime
    base_elapsed_seconds: float = 0.0
    is_running: bool = True
    allows_overrun: bool = False


@dataclass
class TimerContentState:
    elapsed_seconds: int = 0
    is_running: bool = False
    is_finished: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "elapsedSeconds": self.elapsed_seconds,
            "isRunning": self.is_running,
            "isFinished": self.is_finished,
        }


@dataclass
class TimerAttributes:
    id: str
    name: str
    icon: str
    color_hex: str
    target_goal_seconds: int

    @classmethod
    def for_habit(cls, habit: Habit) -> TimerAttributes:
        return cls(
            id=habit.id,
            name=habit.name or "Habit",
            icon=habit.icon or DEFAULT_TIMER_ICON,
            color_hex=habit.color_hex or DEFAULT_COLOR_HEX,
            target_goal_seconds=int(max(0.0, habit.goal_value) * 60),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "colorHex": self.color_hex,
            "targetGoalSeconds": self.target_goal_seconds,
        }


# ── Analytics / export ────────────────────────────────────────


@dataclass
class ChartPoint:
    day: date
    value: float

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.day.isoformat(), "value": round(self.value, 3)}


@dataclass
class HabitSnapshot:
    id: str
    name: str
    icon: str
    color_hex: str
    mode: str  # count, timer
    value: float
    goal: float
    unit_label: str | None = None
    is_timer_running: bool | None = None
    last_updated: datetime | None = None

    @property
    def progress(self) -> float:
        if self.goal <= 0:
            return 0.0
        return min(max(self.value / self.goal, 0.0), 1.0)

    def formatted_progress(self) -> str:
        if self.mode == "timer":
            total = int(self.value * 60)
            hours, minutes, seconds = total // 3600, (total % 3600) // 60, total % 60
            if hours > 0:
                return f"{hours}:{minutes:02d}:{seconds:02d}"
            if minutes > 0:
                return f"{minutes}:{seconds:02d}"
            return f"{seconds}s"
        text = f"{round(self.value, 1):g}/{round(self.goal, 1):g}"
        if self.unit_label:
            text += f" {self.unit_label}"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "colorHex": self.color_hex,
            "mode": self.mode,
            "value": round(self.value, 3),
            "goal": self.goal,
            "unitLabel": self.unit_label,
            "isTimerRunning": self.is_timer_running,
            "lastUpdated": format_datetime(self.last_updated),
            "progress": round(self.progress, 3),
            "formattedProgress": self.formatted_progress(),
        }
