#!/usr/bin/env python3
"""HabitLoop TUI: today's habits, completions and timers, powered by Textual."""

from __future__ import annotations

import sys

from textual import work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.reactive import reactive
from textual.widgets import DataTable, Footer, Header, Label, Static

from habitloop import (
    HabitStore,
    StoreError,
    TimerSession,
    TimerSessionManager,
    can_use_coping_plan,
    complete_step,
    completed_for_display,
    due_habits,
    format_elapsed,
    next_scheduled_date,
    progress_on,
    recalculate_streak,
    record_completion,
    schedule_display_name,
    timer_remaining_text,
    use_coping_plan,
    workspace_root,
)
from habitloop.models import Habit


CSS = """
Screen {
    background: $surface;
}

#habits-table {
    height: 1fr;
}

#detail {
    height: auto;
    min-height: 5;
    border-top: tall $primary-background-darken-2;
    padding: 0 1;
}

#timer-line {
    color: $warning;
    text-style: bold;
}

.section-title {
    text-style: bold;
    color: $accent;
    padding: 1 0 0 0;
}
"""


# ── Main app ───────────────────────────────────────────────────


class HabitLoopApp(App):
    """HabitLoop: interactive habit tracker."""

    TITLE = "HabitLoop"
    CSS = CSS

    BINDINGS = [
        Binding("c", "complete", "Complete"),
        Binding("t", "toggle_timer", "Timer"),
        Binding("p", "coping_plan", "Coping plan"),
        Binding("x", "repair_streak", "Repair streak"),
        Binding("a", "toggle_all", "All/Due"),
        Binding("r", "refresh", "Refresh"),
        Binding("q", "quit_app", "Quit"),
    ]

    show_all: reactive[bool] = reactive(False)

    def __init__(self) -> None:
        super().__init__()
        self.root_path = workspace_root()
        self.store = HabitStore.open(self.root_path)
        # Ticks run on the manager's own ticker thread, off the event loop
        self.timers = TimerSessionManager.from_settings(self.store, self.root_path)
        self.clock = self.timers.clock
        self._rows: list[str] = []

    def compose(self) -> ComposeResult:
        yield Header()
        yield Vertical(
            Label("Today", classes="section-title", id="list-title"),
            DataTable(id="habits-table", cursor_type="row"),
            Vertical(
                Static(id="detail-info"),
                Static(id="timer-line"),
                id="detail",
            ),
        )
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#habits-table", DataTable)
        table.add_columns("Habit", "Type", "Schedule", "Progress", "Streak", "Done")
        self._load_data()

    # ── Data ──────────────────────────────────────────────────

    def _visible_habits(self) -> list[Habit]:
        today = self.clock.today()
        if self.show_all:
            return self.store.habits(active_only=True)
        return due_habits(self.store.habits(active_only=True), today)

    def _load_data(self) -> None:
        table = self.query_one("#habits-table", DataTable)
        cursor = table.cursor_row
        table.clear()
        self._rows = []
        today = self.clock.today()
        for habit in self._visible_habits():
            records = self.store.records_for(habit.id)
            progress = progress_on(habit, records, today, self.timers.live_minutes(habit.id))
            done = completed_for_display(habit, self.store.records_on(habit.id, today), today)
            table.add_row(
                habit.name,
                habit.habit_type,
                schedule_display_name(habit.schedule_type),
                progress.progress_text,
                f"{habit.current_streak} (best {habit.longest_streak})",
                "yes" if done else "",
                key=habit.id,
            )
            self._rows.append(habit.id)
        self.query_one("#list-title", Label).update("All habits" if self.show_all else f"Due {today.isoformat()}")
        if self._rows:
            table.move_cursor(row=min(cursor, len(self._rows) - 1))
        self._update_detail()

    def _selected(self) -> Habit | None:
        table = self.query_one("#habits-table", DataTable)
        if not self._rows or table.cursor_row < 0 or table.cursor_row >= len(self._rows):
            return None
        return self.store.get_habit(self._rows[table.cursor_row])

    def _update_detail(self) -> None:
        info = self.query_one("#detail-info", Static)
        habit = self._selected()
        if habit is None:
            info.update("No habits due. Press 'a' to show all habits.")
            self.query_one("#timer-line", Static).update("")
            return
        today = self.clock.today()
        lines = [habit.name]
        if habit.description:
            lines.append(habit.description)
        if habit.is_routine:
            progress = progress_on(habit, self.store.records_for(habit.id), today)
            for i, step in enumerate(habit.routine_steps):
                mark = "x" if i in progress.completed_steps else " "
                lines.append(f"  [{mark}] {step}")
        next_date = next_scheduled_date(habit, today)
        lines.append(f"Next: {next_date.isoformat() if next_date else 'not within 60 days'}")
        if can_use_coping_plan(habit, self.store.records_for(habit.id), today):
            lines.append(f"Coping plan available: {habit.coping_plan}")
        info.update("\n".join(lines))
        self._update_timer_line(habit)

    def _update_timer_line(self, habit: Habit) -> None:
        line = self.query_one("#timer-line", Static)
        session = self.timers.get(habit.id)
        if not habit.is_timer or session is None:
            line.update("")
            return
        elapsed = session.elapsed_seconds()
        state = "running" if session.is_running else "paused"
        line.update(f"{format_elapsed(elapsed)} {state}, {timer_remaining_text(habit.goal_value, elapsed)}")

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        self._update_detail()

    # ── Timer callbacks ───────────────────────────────────────
    # Ticks arrive on the ticker thread; UI work is handed back to the app.

    def _session_for(self, habit: Habit) -> TimerSession:
        session = self.timers.get(habit.id)
        if session is None:
            session = self.timers.get_or_create(habit.id)
            session.on_tick = lambda _elapsed: self.call_from_thread(self._on_timer_tick, habit.id)
            session.on_auto_stop = lambda: self.call_from_thread(self._on_auto_stop, habit.id)
        return session

    def _on_timer_tick(self, habit_id: str) -> None:
        selected = self._selected()
        if selected is not None and selected.id == habit_id:
            self._update_timer_line(selected)

    def _on_auto_stop(self, habit_id: str) -> None:
        habit = self.store.get_habit(habit_id)
        name = habit.name if habit else habit_id
        self.notify(f"{name}: goal reached, timer stopped", title="Timer", severity="information")
        self._load_data()

    def _report_error(self, e: Exception) -> None:
        self.call_from_thread(self.notify, f"Error: {e}", title="Error", severity="error")

    # ── Actions ───────────────────────────────────────────────
    # Anything that can save or fire hooks runs in a worker thread.

    def action_complete(self) -> None:
        habit = self._selected()
        if habit is None:
            return
        if habit.is_timer:
            self.action_toggle_timer()
            return
        step = None
        if habit.is_routine:
            done = progress_on(habit, self.store.records_for(habit.id), self.clock.today()).completed_steps
            remaining = [i for i in range(len(habit.routine_steps)) if i not in done]
            if not remaining:
                self.notify("All steps already done today")
                return
            step = remaining[0]
        self._do_complete(habit.id, step)

    @work(thread=True)
    def _do_complete(self, habit_id: str, step: int | None) -> None:
        try:
            if step is not None:
                outcome = complete_step(self.store, habit_id, step, self.clock, self.root_path)
            else:
                outcome = record_completion(self.store, habit_id, self.clock, root=self.root_path)
        except (ValueError, StoreError) as e:
            self._report_error(e)
            return
        if outcome.goal_crossed:
            self.call_from_thread(self.notify,
                f"{outcome.habit.name} done! Streak: {outcome.streak}",
                title="Goal met", severity="information")
        self.call_from_thread(self._load_data)

    def action_toggle_timer(self) -> None:
        habit = self._selected()
        if habit is None or not habit.is_timer:
            return
        session = self._session_for(habit)
        self._do_toggle_timer(session, not session.is_running)

    @work(thread=True)
    def _do_toggle_timer(self, session: TimerSession, should_run: bool) -> None:
        session.toggle(should_run)
        if session.pending_seconds > 0:
            self.call_from_thread(self.notify, "Could not save timer time; it will be retried", severity="warning")
        self.call_from_thread(self._load_data)

    def action_coping_plan(self) -> None:
        habit = self._selected()
        if habit is not None:
            self._do_coping_plan(habit.id, habit.coping_plan or "")

    @work(thread=True)
    def _do_coping_plan(self, habit_id: str, plan: str) -> None:
        try:
            used = use_coping_plan(self.store, habit_id, self.clock, self.root_path)
        except StoreError as e:
            self._report_error(e)
            return
        if used:
            self.call_from_thread(self.notify, plan, title="Coping plan used")
        else:
            self.call_from_thread(self.notify, "Coping plan is not available today", severity="warning")
        self.call_from_thread(self._load_data)

    def action_repair_streak(self) -> None:
        habit = self._selected()
        if habit is None:
            return
        try:
            streak = recalculate_streak(self.store, habit.id, self.clock)
        except StoreError as e:
            self.notify(f"Error: {e}", title="Error", severity="error")
            return
        self.notify(f"Streak recalculated: {streak}")
        self._load_data()

    def action_toggle_all(self) -> None:
        self.show_all = not self.show_all
        self._load_data()

    def action_refresh(self) -> None:
        self._load_data()

    def action_quit_app(self) -> None:
        # Save running timers before exit
        self.timers.shutdown()
        self.exit()


# ── Entry point ────────────────────────────────────────────────


def main() -> None:
    root = workspace_root()
    if not root.exists():
        print(f"Workspace not found: {root}")
        print("Set HABITLOOP_ROOT or create the directory first.")
        sys.exit(1)

    app = HabitLoopApp()
    app.run()


if __name__ == "__main__":
    main()
