"""HabitLoop core library: habit scheduling, progress, streaks and timers.

Public API re-exports for convenient imports:
    from habitloop import HabitStore, compute_progress, TimerSessionManager, ...
"""

# Clock, workspace & settings
from habitloop.clock import Clock, FrozenClock, SystemClock
from habitloop.workspace import (
    workspace_root,
    load_settings,
    get_user_timezone,
    user_clock,
    settings_path,
    hooks_config_path,
    store_path,
    live_activity_path,
    snapshots_path,
)

# File I/O
from habitloop.fileio import (
    read_json,
    read_yaml,
    write_json_atomic,
)

# Models
from habitloop.models import (
    Habit,
    CompletionRecord,
    TimerSessionState,
    TimerContentState,
    TimerAttributes,
    ChartPoint,
    HabitSnapshot,
)

# Schedule
from habitloop.schedule import (
    is_scheduled_for_date,
    next_scheduled_date,
    is_due,
    due_habits,
    set_weekly_schedule,
    weekly_schedule_days,
    set_monthly_schedule,
    monthly_schedule_days,
    schedule_display_name,
)

# Progress
from habitloop.progress import (
    ProgressResult,
    compute_progress,
    progress_on,
    completed_for_display,
    minutes_today,
    target_frequency_for,
    format_minutes,
    format_elapsed,
    timer_remaining_text,
    overrun_text,
)

# Streaks & coping plan
from habitloop.streaks import (
    can_use_coping_plan,
    apply_goal_crossing,
    calculate_scheduled_streak,
)

# Store
from habitloop.store import HabitStore, StoreError

# Habit CRUD
from habitloop.habits import (
    validate_habit,
    find_habit,
    create_habit,
    update_habit,
    retire_habit,
    restore_habit,
)

# Completion operations
from habitloop.tracking import (
    CompletionOutcome,
    record_completion,
    complete_step,
    log_minutes,
    log_journal,
    use_coping_plan,
    recalculate_streak,
)

# Live activity & timers
from habitloop.live_activity import BroadcastSink, NullSink, Broadcaster, JsonSnapshotSink
from habitloop.timer import IntervalTicker, TimerSession, TimerSessionManager

# Analytics
from habitloop.analytics import daily_points, habit_stats, build_snapshots, export_snapshots

# Hooks
from habitloop.hooks import HookBatch, run_hooks
