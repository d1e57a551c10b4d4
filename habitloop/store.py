"""Habit and completion-record persistence for HabitLoop.

A single JSON document holds every habit and the append-only completion
log. ``transaction()`` is the save point: everything mutated inside it is
written by one atomic file replace, or rolled back in memory if anything
(including the write) fails.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import fields
from datetime import date
from pathlib import Path
from typing import Any

from habitloop.const import LOGGER
from habitloop.fileio import read_json, write_json_atomic
from habitloop.models import CompletionRecord, Habit
from habitloop.workspace import store_path


class StoreError(RuntimeError):
    """The store could not be read or written."""


class HabitStore:
    """In-memory habits and records backed by one JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._habits: dict[str, Habit] = {}
        self._records: list[CompletionRecord] = []
        self._depth = 0
        self._lock = threading.RLock()
        self.load()

    @classmethod
    def open(cls, root: Path | None = None) -> HabitStore:
        return cls(store_path(root))

    # ── Loading & saving ──────────────────────────────────────

    def load(self) -> None:
        try:
            data = read_json(self.path)
        except (OSError, ValueError) as err:
            raise StoreError(f"Cannot read {self.path}: {err}") from err
        habits = [Habit.from_dict(h) for h in (data.get("habits") or []) if isinstance(h, dict)]
        self._habits = {h.id: h for h in habits}
        self._records = [
            CompletionRecord.from_dict(r) for r in (data.get("completions") or []) if isinstance(r, dict)
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "habits": [h.to_dict() for h in self._habits.values()],
            "completions": [r.to_dict() for r in self._records],
        }

    def save(self) -> None:
        """Write everything to disk atomically. Raises StoreError on failure."""
        try:
            write_json_atomic(self.path, self.to_dict())
        except OSError as err:
            LOGGER.error("Failed to save habit store %s: %s", self.path, err)
            raise StoreError(f"Cannot write {self.path}: {err}") from err

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def transaction(self) -> Iterator[HabitStore]:
        """Group mutations into one commit. Nested blocks join the outer one.

        The store lock is held for the whole block, so the timer's tick thread
        and request handlers never interleave their writes.
        """
        with self._lock:
            if self._depth:
                yield self
                return

            habit_snapshot = {hid: h.to_dict() for hid, h in self._habits.items()}
            record_count = len(self._records)
            self._depth += 1
            try:
                yield self
                self.save()
            except BaseException:
                self._rollback(habit_snapshot, record_count)
                raise
            finally:
                self._depth -= 1

    def _rollback(self, habit_snapshot: dict[str, dict[str, Any]], record_count: int) -> None:
        # Restore in place so callers holding Habit references see the old values.
        for hid in list(self._habits):
            if hid not in habit_snapshot:
                del self._habits[hid]
        for hid, data in habit_snapshot.items():
            restored = Habit.from_dict(data)
            current = self._habits.get(hid)
            if current is None:
                self._habits[hid] = restored
                continue
            for f in fields(Habit):
                setattr(current, f.name, getattr(restored, f.name))
        del self._records[record_count:]
        LOGGER.debug("Rolled back habit store transaction")

    # ── Habits ────────────────────────────────────────────────

    def habits(self, active_only: bool = False) -> list[Habit]:
        return [h for h in self._habits.values() if h.is_active or not active_only]

    def get_habit(self, habit_id: str) -> Habit | None:
        return self._habits.get(habit_id)

    def add_habit(self, habit: Habit) -> Habit:
        if habit.id in self._habits:
            raise ValueError(f"Habit ID already exists: {habit.id}")
        self._habits[habit.id] = habit
        return habit

    # ── Records ───────────────────────────────────────────────

    def append_record(self, record: CompletionRecord) -> CompletionRecord:
        if record.habit_id not in self._habits:
            raise ValueError(f"Habit not found: {record.habit_id}")
        self._records.append(record)
        return record

    def records_for(self, habit_id: str) -> list[CompletionRecord]:
        return [r for r in self._records if r.habit_id == habit_id]

    def records_on(self, habit_id: str, day: date) -> list[CompletionRecord]:
        """All records (journal entries included) for a habit on one local day."""
        return [r for r in self._records if r.habit_id == habit_id and r.day == day]
