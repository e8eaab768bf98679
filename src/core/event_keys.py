"""Event keys — deterministic identities for reminder occurrences.

A key names one reminder for one calendar day on one channel:

    {localDate}|{kind}|{scopeId}|{channel}

`scopeId` is the user id for user-scoped kinds and the task id for task
kinds. Regenerating the same key from the same inputs is what makes
retries and overlapping scheduler ticks safe.
"""

from __future__ import annotations

from enum import Enum


class ReminderKind(str, Enum):
    HABIT = "habit-reminder"
    GOAL = "goal-reminder"
    DAILY_SUMMARY = "daily-summary"
    TASK_BEFORE = "task-before"
    TASK_NOW = "task-now"


class Channel(str, Enum):
    TELEGRAM = "telegram"
    BROWSER = "browser"


def derive_key(
    local_date: str,
    kind: ReminderKind | str,
    scope_id: str,
    channel: Channel | str,
) -> str:
    """Build the event key. `local_date` must be in the user's timezone."""
    kind_value = kind.value if isinstance(kind, ReminderKind) else str(kind)
    channel_value = channel.value if isinstance(channel, Channel) else str(channel)
    return f"{local_date}|{kind_value}|{scope_id}|{channel_value}"
