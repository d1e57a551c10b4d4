"""Shared constants and the package logger for HabitLoop."""

from __future__ import annotations

import logging

LOGGER = logging.getLogger(__package__)

# ── Habit vocabulary ──────────────────────────────────────────

HABIT_FREQUENCY = "frequency"
HABIT_ROUTINE = "routine"
HABIT_TIMER = "timer"
HABIT_ETHEREAL = "ethereal"

VALID_HABIT_TYPES = {HABIT_FREQUENCY, HABIT_ROUTINE, HABIT_TIMER, HABIT_ETHEREAL}

SCHEDULE_DAILY = "daily"
SCHEDULE_WEEKLY = "weekly"
SCHEDULE_MONTHLY = "monthly"
SCHEDULE_WEEKDAYS_ONLY = "weekdaysOnly"
SCHEDULE_WEEKENDS_ONLY = "weekendsOnly"

VALID_SCHEDULE_TYPES = {
    SCHEDULE_DAILY,
    SCHEDULE_WEEKLY,
    SCHEDULE_MONTHLY,
    SCHEDULE_WEEKDAYS_ONLY,
    SCHEDULE_WEEKENDS_ONLY,
}

SCHEDULE_DISPLAY_NAMES = {
    SCHEDULE_DAILY: "Every Day",
    SCHEDULE_WEEKLY: "Weekly",
    SCHEDULE_MONTHLY: "Monthly",
    SCHEDULE_WEEKENDS_ONLY: "Weekends Only",
    SCHEDULE_WEEKDAYS_ONLY: "Weekdays Only",
}

# Calendar weekdays use 1=Sunday .. 7=Saturday
SUNDAY = 1
SATURDAY = 7

# ── Engine limits ─────────────────────────────────────────────

NEXT_SCHEDULED_LOOKAHEAD_DAYS = 60
STREAK_LOOKBACK_DAYS = 365
WEEKLY_MASK_WIDTH = 7
MONTHLY_MASK_WIDTH = 31

DEFAULT_TICK_INTERVAL = 0.25

# ── Defaults ──────────────────────────────────────────────────

DEFAULT_ICON = "star"
DEFAULT_TIMER_ICON = "timer"
DEFAULT_COLOR_HEX = "#007AFF"
DEFAULT_METRIC_UNIT = "times"
DEFAULT_TIMEZONE = "UTC"
LEGACY_STEP_SEPARATOR = "|||"

MOOD_MIN = 1
MOOD_MAX = 5
