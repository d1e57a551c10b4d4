"""Lifecycle hooks for HabitLoop.

Hooks run shell commands when something noteworthy happens to a habit.
Configured via hooks.yaml at the workspace root:

    post_goal_met:
      - "notify-send 'Goal met'"
    on_timer_stop:
      - command: ./scripts/log_session.sh
        timeout: 10

The event context is passed as JSON on stdin. Hooks only run after the
store committed, and their failures never propagate.

A hook may block for up to its timeout, so code holding a lock collects
its hooks in a ``HookBatch`` and fires the batch once the lock is released.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

import yaml

from habitloop.const import LOGGER
from habitloop.fileio import read_yaml
from habitloop.workspace import hooks_config_path, workspace_root


VALID_HOOK_POINTS = {
    "post_goal_met",
    "on_timer_start",
    "on_timer_stop",
    "on_timer_auto_stop",
    "on_coping_plan",
    "on_habit_retired",
}

DEFAULT_TIMEOUT = 30
OUTPUT_CAP = 4096


def load_hooks_config(root: Path | None = None) -> dict[str, Any]:
    return read_yaml(hooks_config_path(root))


def _hook_entries(hook_point: str, root: Path) -> list[tuple[str, float]]:
    """(command, timeout) pairs registered for *hook_point*; malformed entries are skipped."""
    try:
        config = load_hooks_config(root)
    except (OSError, yaml.YAMLError) as err:
        LOGGER.warning("Ignoring unreadable hooks.yaml: %s", err)
        return []

    hooks = config.get(hook_point, [])
    if not isinstance(hooks, list):
        return []

    entries = []
    for hook in hooks:
        if isinstance(hook, str):
            command, timeout = hook, DEFAULT_TIMEOUT
        elif isinstance(hook, dict):
            command = hook.get("command", "")
            timeout = hook.get("timeout", DEFAULT_TIMEOUT)
        else:
            continue
        if command:
            entries.append((str(command), timeout))
    return entries


def _run_one(hook_point: str, command: str, timeout: float, payload: str, root: Path) -> dict[str, Any]:
    result: dict[str, Any] = {"command": command, "hook_point": hook_point}
    try:
        proc = subprocess.run(
            command,
            shell=True,
            input=payload,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=str(root),
        )
        result["exit_code"] = proc.returncode
        result["stdout"] = proc.stdout[:OUTPUT_CAP]
        result["stderr"] = proc.stderr[:OUTPUT_CAP]
    except subprocess.TimeoutExpired:
        result["exit_code"] = -1
        result["error"] = f"Hook timed out after {timeout}s"
    except OSError as err:
        result["exit_code"] = -1
        result["error"] = str(err)

    if result["exit_code"] != 0:
        LOGGER.warning("Hook %r for %s failed: %s", command, hook_point, result.get("error") or result.get("stderr"))
    return result


def run_hooks(
    hook_point: str,
    context: dict[str, Any],
    root: Path | None = None,
) -> list[dict[str, Any]]:
    """Run every hook registered for *hook_point*, one after another.

    Returns one result dict per hook with exit_code and captured output.
    """
    if hook_point not in VALID_HOOK_POINTS:
        return []
    if root is None:
        root = workspace_root()

    entries = _hook_entries(hook_point, root)
    if not entries:
        return []
    payload = json.dumps(context, ensure_ascii=False, default=str)
    return [_run_one(hook_point, command, timeout, payload, root) for command, timeout in entries]


class HookBatch:
    """Hook events collected under a lock, fired after it is released."""

    def __init__(self, root: Path | None = None) -> None:
        self.root = root
        self._events: list[tuple[str, dict[str, Any]]] = []

    def __len__(self) -> int:
        return len(self._events)

    def add(self, hook_point: str, context: dict[str, Any]) -> None:
        self._events.append((hook_point, context))

    def fire(self) -> list[dict[str, Any]]:
        """Run the collected events in order. The batch is empty afterwards."""
        events, self._events = self._events, []
        results = []
        for hook_point, context in events:
            results.extend(run_hooks(hook_point, context, self.root))
        return results
