"""
FocusBoard Notifier — Data Models.

Rows read from and written to the SQLite row store. Notification settings
and the dedup ledger are owned by this service; tasks, habits and habit logs
belong to the dashboard and are only read here.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class NotificationSettings:
    """A user's resolved notification configuration.

    Always fully populated: the resolver substitutes defaults for any
    missing or malformed stored value.
    """

    user_id: str
    enabled: bool = False
    habit_reminder: bool = True
    habit_reminder_time: str = "09:00"     # HH:MM local
    task_reminder: bool = True
    task_reminder_minutes: int = 15        # minutes before scheduled time
    goal_reminder: bool = True
    goal_reminder_time: str = "20:00"
    daily_summary: bool = True
    daily_summary_time: str = "21:00"
    telegram_enabled: bool = False
    telegram_chat_id: str = ""
    timezone: str = "UTC"                  # IANA zone name


@dataclass
class DedupEvent:
    """One sent reminder occurrence. Append-only, unique per event_key."""

    event_key: str
    user_id: str
    channel: str
    sent_at: str                           # ISO datetime (UTC)


@dataclass
class Task:
    """A dashboard task, read-only from the notifier's perspective."""

    id: str
    user_id: str
    title: str
    completed: bool = False
    scheduled_time: str = ""               # HH:MM or ""
    deadline: str = ""                     # YYYY-MM-DD or ""


@dataclass
class Habit:
    """A tracked habit."""

    id: str
    user_id: str
    name: str
    is_active: bool = True


@dataclass
class HabitLog:
    """A single day's check-in for a habit."""

    id: str
    habit_id: str
    user_id: str
    date: str                              # YYYY-MM-DD
    completed: bool = False


@dataclass
class TelegramLinkToken:
    """One-time token binding a dashboard user to a Telegram chat."""

    token: str
    user_id: str
    status: str = "pending"                # pending | used | expired
    chat_id: str = ""
    created_at: str = ""
    expires_at: str = ""
    used_at: str = ""


@dataclass
class PushSubscription:
    """A browser push subscription — the stored notification permission."""

    user_id: str
    endpoint: str
    p256dh: str
    auth: str
