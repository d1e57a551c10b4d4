from __future__ import annotations

import os
import secrets
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from habitloop import (
    Clock,
    HabitStore,
    StoreError,
    TimerSessionManager,
    can_use_coping_plan,
    complete_step,
    completed_for_display,
    create_habit,
    daily_points,
    due_habits,
    export_snapshots,
    habit_stats,
    log_journal,
    log_minutes,
    next_scheduled_date,
    progress_on,
    recalculate_streak,
    record_completion,
    restore_habit,
    retire_habit,
    schedule_display_name,
    update_habit,
    use_coping_plan,
    workspace_root,
)
from habitloop.const import LOGGER
from habitloop.models import Habit


# ── Composition root ──────────────────────────────────────────


@dataclass
class Engine:
    """Everything a request needs: one store, one clock, one timer manager."""

    root: Path
    store: HabitStore
    clock: Clock
    timers: TimerSessionManager


_engine: Engine | None = None
_engine_lock = threading.Lock()


def get_engine() -> Engine:
    """The engine for the current workspace, rebuilt if HABITLOOP_ROOT changed."""
    global _engine
    root = workspace_root()
    with _engine_lock:
        if _engine is None or _engine.root != root:
            if _engine is not None:
                _engine.timers.shutdown()
            store = HabitStore.open(root)
            timers = TimerSessionManager.from_settings(store, root)
            _engine = Engine(root=root, store=store, clock=timers.clock, timers=timers)
            LOGGER.info("HabitLoop engine opened for %s", root)
        return _engine


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Save running timers; unsaved seconds would otherwise be lost.
    if _engine is not None:
        _engine.timers.shutdown()


app = FastAPI(title="HabitLoop API", version="0.1.0", lifespan=lifespan)


# ── Auth ──────────────────────────────────────────────────────

security = HTTPBasic(auto_error=False)


def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    expected_username = os.environ.get("HABITLOOP_USERNAME", "")
    expected_password = os.environ.get("HABITLOOP_PASSWORD", "")

    if credentials is None:
        if not expected_username or not expected_password:
            return "guest"
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    if not expected_username or not expected_password:
        return "guest"

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


# ── Helpers ───────────────────────────────────────────────────


def _habit_or_404(engine: Engine, habit_id: str) -> Habit:
    habit = engine.store.get_habit(habit_id)
    if habit is None:
        raise HTTPException(status_code=404, detail=f"Habit not found: {habit_id}")
    return habit


def _bad_request(err: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(err))


def _store_failure(err: StoreError) -> HTTPException:
    return HTTPException(status_code=503, detail=str(err))


def _habit_view(engine: Engine, habit: Habit) -> dict[str, Any]:
    """Habit plus today's progress, including unsaved running timer time."""
    today = engine.clock.today()
    records = engine.store.records_for(habit.id)
    progress = progress_on(habit, records, today, engine.timers.live_minutes(habit.id))
    next_date = next_scheduled_date(habit, today)
    session = engine.timers.get(habit.id)
    return {
        **habit.to_dict(),
        "scheduleName": schedule_display_name(habit.schedule_type),
        "progress": progress.to_dict(),
        "completedToday": completed_for_display(habit, engine.store.records_on(habit.id, today), today),
        "canUseCopingPlan": can_use_coping_plan(habit, records, today),
        "nextScheduledDate": next_date.isoformat() if next_date else None,
        "timerRunning": bool(session and session.is_running),
    }


# ── Endpoints ─────────────────────────────────────────────────

@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


@app.get("/api/habits")
def api_list_habits(
    include_inactive: bool = False,
    username: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> dict[str, Any]:
    habits = engine.store.habits(active_only=not include_inactive)
    return {"habits": [_habit_view(engine, h) for h in habits]}


@app.get("/api/today")
def api_today(username: str = Depends(get_current_user), engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    """Habits due today with their progress."""
    today = engine.clock.today()
    due = due_habits(engine.store.habits(active_only=True), today)
    return {"date": today.isoformat(), "habits": [_habit_view(engine, h) for h in due]}


@app.post("/api/habits")
def api_create_habit(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> dict[str, Any]:
    try:
        habit, errors = create_habit(engine.store, payload, engine.clock.now())
    except StoreError as err:
        raise _store_failure(err)
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))
    return {"ok": True, "habit": _habit_view(engine, habit)}


@app.get("/api/habits/{habit_id}")
def api_get_habit(habit_id: str, username: str = Depends(get_current_user), engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    habit = _habit_or_404(engine, habit_id)
    view = _habit_view(engine, habit)
    view["stats"] = habit_stats(habit, engine.store.records_for(habit.id), engine.clock.today())
    return view


@app.put("/api/habits/{habit_id}")
def api_update_habit(
    habit_id: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> dict[str, Any]:
    _habit_or_404(engine, habit_id)
    try:
        habit, errors = update_habit(engine.store, habit_id, payload)
    except StoreError as err:
        raise _store_failure(err)
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))
    return {"ok": True, "habit": _habit_view(engine, habit)}


@app.delete("/api/habits/{habit_id}")
def api_retire_habit(habit_id: str, username: str = Depends(get_current_user), engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    """Retire a habit (soft delete; history is kept)."""
    engine.timers.release(habit_id)
    try:
        habit = retire_habit(engine.store, habit_id, engine.root)
    except StoreError as err:
        raise _store_failure(err)
    if habit is None:
        raise HTTPException(status_code=404, detail=f"Habit not found: {habit_id}")
    return {"ok": True, "habit_id": habit_id}


@app.post("/api/habits/{habit_id}/restore")
def api_restore_habit(habit_id: str, username: str = Depends(get_current_user), engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    try:
        habit = restore_habit(engine.store, habit_id)
    except StoreError as err:
        raise _store_failure(err)
    if habit is None:
        raise HTTPException(status_code=404, detail=f"Habit not found: {habit_id}")
    return {"ok": True, "habit": _habit_view(engine, habit)}


# ── Logging progress ──────────────────────────────────────────

@app.post("/api/habits/{habit_id}/complete")
def api_complete(
    habit_id: str,
    payload: dict[str, Any] = Body(default={}),
    username: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> dict[str, Any]:
    """Log a completion of a frequency or ethereal habit."""
    _habit_or_404(engine, habit_id)
    amount = payload.get("amount")
    try:
        outcome = record_completion(
            engine.store,
            habit_id,
            engine.clock,
            amount=float(amount) if amount is not None else None,
            notes=str(payload.get("notes", "")),
            root=engine.root,
        )
    except ValueError as err:
        raise _bad_request(err)
    except StoreError as err:
        raise _store_failure(err)
    return {"ok": True, **outcome.to_dict()}


@app.post("/api/habits/{habit_id}/steps/{step_index}")
def api_complete_step(
    habit_id: str,
    step_index: int,
    username: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> dict[str, Any]:
    _habit_or_404(engine, habit_id)
    try:
        outcome = complete_step(engine.store, habit_id, step_index, engine.clock, engine.root)
    except ValueError as err:
        raise _bad_request(err)
    except StoreError as err:
        raise _store_failure(err)
    return {"ok": True, **outcome.to_dict()}


@app.post("/api/habits/{habit_id}/minutes")
def api_log_minutes(
    habit_id: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> dict[str, Any]:
    """Add timer minutes by hand."""
    _habit_or_404(engine, habit_id)
    try:
        outcome = log_minutes(engine.store, habit_id, float(payload.get("minutes", 0)), engine.clock, engine.root)
    except ValueError as err:
        raise _bad_request(err)
    except StoreError as err:
        raise _store_failure(err)
    return {"ok": True, **outcome.to_dict()}


@app.post("/api/habits/{habit_id}/journal")
def api_journal(
    habit_id: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> dict[str, Any]:
    _habit_or_404(engine, habit_id)
    mood = payload.get("moodScore")
    try:
        record = log_journal(
            engine.store,
            habit_id,
            engine.clock,
            mood_score=int(mood) if mood is not None else None,
            notes=str(payload.get("notes", "")),
        )
    except ValueError as err:
        raise _bad_request(err)
    except StoreError as err:
        raise _store_failure(err)
    return {"ok": True, "record": record.to_dict()}


@app.post("/api/habits/{habit_id}/coping")
def api_use_coping_plan(habit_id: str, username: str = Depends(get_current_user), engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    habit = _habit_or_404(engine, habit_id)
    try:
        used = use_coping_plan(engine.store, habit_id, engine.clock, engine.root)
    except StoreError as err:
        raise _store_failure(err)
    if not used:
        raise HTTPException(status_code=409, detail="Coping plan is not available today")
    return {"ok": True, "copingPlan": habit.coping_plan, "habit": _habit_view(engine, habit)}


@app.post("/api/habits/{habit_id}/streak/recalculate")
def api_recalculate_streak(habit_id: str, username: str = Depends(get_current_user), engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    habit = _habit_or_404(engine, habit_id)
    try:
        streak = recalculate_streak(engine.store, habit_id, engine.clock)
    except StoreError as err:
        raise _store_failure(err)
    return {"ok": True, "currentStreak": streak, "longestStreak": habit.longest_streak}


@app.get("/api/habits/{habit_id}/chart")
def api_chart(
    habit_id: str,
    days: int | None = 7,
    username: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> dict[str, Any]:
    """Daily chart points. days=0 means all time."""
    habit = _habit_or_404(engine, habit_id)
    points, y_label = daily_points(habit, engine.store.records_for(habit.id), days, engine.clock.today())
    return {"yLabel": y_label, "points": [p.to_dict() for p in points]}


# ── Timers ────────────────────────────────────────────────────

@app.post("/api/timers/{habit_id}/start")
def api_timer_start(habit_id: str, username: str = Depends(get_current_user), engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    _habit_or_404(engine, habit_id)
    try:
        session = engine.timers.get_or_create(habit_id)
    except ValueError as err:
        raise _bad_request(err)
    started = session.run()
    return {"ok": True, "started": started, "session": session.to_dict()}


@app.post("/api/timers/{habit_id}/pause")
def api_timer_pause(
    habit_id: str,
    payload: dict[str, Any] = Body(default={}),
    username: str = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
) -> dict[str, Any]:
    session = engine.timers.get(habit_id)
    if session is None or not session.is_running:
        raise HTTPException(status_code=409, detail="No running timer for this habit")
    outcome = session.pause(save_progress=bool(payload.get("save", True)))
    return {
        "ok": True,
        "session": session.to_dict(),
        "outcome": outcome.to_dict() if outcome else None,
    }


@app.get("/api/timers/current")
def api_timers_current(username: str = Depends(get_current_user), engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    return {"running": [s.to_dict() for s in engine.timers.running()]}


@app.post("/api/snapshots/export")
def api_export_snapshots(username: str = Depends(get_current_user), engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    """Write widget_snapshots.json."""
    path = export_snapshots(engine.store, engine.clock.now(), engine.timers, engine.root)
    return {"ok": True, "path": str(path)}
