"""
FocusBoard Notifier — SQLite row store.

Each collection the notifier touches lives in its own table. Settings rows
are kept as raw text (the same shape the dashboard's spreadsheet export
uses) and normalized by the settings resolver; the dedup ledger enforces
one row per event key with a UNIQUE index.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from src.data.models import (
    DedupEvent,
    Habit,
    HabitLog,
    PushSubscription,
    Task,
    TelegramLinkToken,
)
from src.ports.store_port import DataError

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "enabled",
    "habit_reminder",
    "habit_reminder_time",
    "task_reminder",
    "task_reminder_minutes",
    "goal_reminder",
    "goal_reminder_time",
    "daily_summary",
    "daily_summary_time",
    "telegram_enabled",
    "telegram_chat_id",
    "timezone",
)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _SQLiteTable:
    """Connection handling shared by every table wrapper."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        raise NotImplementedError


class NotificationSettingsDB(_SQLiteTable):
    """Raw per-user notification settings rows."""

    def _init_db(self) -> None:
        """Create the settings table if it doesn't exist, and migrate schema."""
        columns = ",\n".join(f"{name} TEXT" for name in SETTINGS_FIELDS)
        with self._connect() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS notification_settings (
                    id         TEXT PRIMARY KEY,
                    user_id    TEXT NOT NULL UNIQUE,
                    {columns},
                    updated_at TEXT
                )
            """)
            # Rows written before per-user timezones existed have no column
            existing_cols = {
                row[1]
                for row in conn.execute("PRAGMA table_info(notification_settings)").fetchall()
            }
            if "timezone" not in existing_cols:
                conn.execute("ALTER TABLE notification_settings ADD COLUMN timezone TEXT")
        logger.debug("Notification settings table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> dict[str, str]:
        data = {"user_id": row["user_id"]}
        for name in SETTINGS_FIELDS:
            value = row[name]
            if value is not None:
                data[name] = value
        return data

    def get(self, user_id: str) -> dict[str, str] | None:
        """Return the stored row for a user, or None if never written."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM notification_settings WHERE user_id = ?", (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_dict(row)

    def list_all(self) -> list[dict[str, str]]:
        """Return every stored settings row."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM notification_settings ORDER BY user_id"
            ).fetchall()
        return [self._row_to_dict(r) for r in rows]

    def upsert(self, user_id: str, values: dict[str, str]) -> None:
        """Insert or overwrite the given fields for a user."""
        fields = [name for name in SETTINGS_FIELDS if name in values]
        now = _utc_now_iso()
        with self._connect() as conn:
            exists = conn.execute(
                "SELECT 1 FROM notification_settings WHERE user_id = ?", (user_id,),
            ).fetchone()
            if exists is None:
                cols = ", ".join(["id", "user_id", *fields, "updated_at"])
                marks = ", ".join("?" for _ in range(len(fields) + 3))
                conn.execute(
                    f"INSERT INTO notification_settings ({cols}) VALUES ({marks})",
                    (uuid.uuid4().hex, user_id, *(values[f] for f in fields), now),
                )
            else:
                assignments = ", ".join(f"{f} = ?" for f in [*fields, "updated_at"])
                conn.execute(
                    f"UPDATE notification_settings SET {assignments} WHERE user_id = ?",
                    (*(values[f] for f in fields), now, user_id),
                )
        logger.info("Notification settings saved for user %s", user_id)


class NotificationEventDB(_SQLiteTable):
    """Append-only ledger of sent reminder events."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS notification_events (
                    id        TEXT PRIMARY KEY,
                    event_key TEXT NOT NULL UNIQUE,
                    user_id   TEXT NOT NULL,
                    channel   TEXT NOT NULL,
                    sent_at   TEXT NOT NULL
                )
            """)
        logger.debug("Notification events table initialized at %s", self._db_path)

    def exists(self, event_key: str) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM notification_events WHERE event_key = ?", (event_key,),
            ).fetchone()
        return row is not None

    def append(self, event: DedupEvent) -> bool:
        """Record an event. Returns False if the key was already present."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO notification_events
                    (id, event_key, user_id, channel, sent_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (uuid.uuid4().hex, event.event_key, event.user_id, event.channel, event.sent_at),
            )
        return cursor.rowcount > 0

    def count(self, event_key: str | None = None) -> int:
        query = "SELECT COUNT(*) FROM notification_events"
        params: list = []
        if event_key is not None:
            query += " WHERE event_key = ?"
            params.append(event_key)
        with self._connect() as conn:
            return conn.execute(query, params).fetchone()[0]


class TaskDB(_SQLiteTable):
    """Dashboard tasks."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id             TEXT PRIMARY KEY,
                    user_id        TEXT    NOT NULL,
                    title          TEXT    NOT NULL,
                    completed      INTEGER NOT NULL DEFAULT 0,
                    scheduled_time TEXT    NOT NULL DEFAULT '',
                    deadline       TEXT    NOT NULL DEFAULT ''
                )
            """)
        logger.debug("Tasks table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            completed=bool(row["completed"]),
            scheduled_time=row["scheduled_time"] or "",
            deadline=row["deadline"] or "",
        )

    def add_task(
        self,
        user_id: str,
        title: str,
        scheduled_time: str = "",
        deadline: str = "",
        completed: bool = False,
        task_id: str | None = None,
    ) -> Task:
        task = Task(
            id=task_id or uuid.uuid4().hex,
            user_id=user_id,
            title=title,
            completed=completed,
            scheduled_time=scheduled_time,
            deadline=deadline,
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tasks (id, user_id, title, completed, scheduled_time, deadline)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (task.id, user_id, title, int(completed), scheduled_time, deadline),
            )
        return task

    def set_completed(self, task_id: str, completed: bool = True) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE tasks SET completed = ? WHERE id = ?", (int(completed), task_id),
            )

    def list_for_user(self, user_id: str) -> list[Task]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM tasks WHERE user_id = ? ORDER BY scheduled_time, id",
                    (user_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise DataError(f"Failed to read tasks for user {user_id}: {exc}") from exc
        return [self._row_to_task(r) for r in rows]


class HabitDB(_SQLiteTable):
    """Habits and their daily logs."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS habits (
                    id        TEXT PRIMARY KEY,
                    user_id   TEXT    NOT NULL,
                    name      TEXT    NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS habit_logs (
                    id        TEXT PRIMARY KEY,
                    habit_id  TEXT    NOT NULL,
                    user_id   TEXT    NOT NULL,
                    date      TEXT    NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0
                )
            """)
        logger.debug("Habit tables initialized at %s", self._db_path)

    def add_habit(self, user_id: str, name: str, is_active: bool = True) -> Habit:
        habit = Habit(id=uuid.uuid4().hex, user_id=user_id, name=name, is_active=is_active)
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO habits (id, user_id, name, is_active) VALUES (?, ?, ?, ?)",
                (habit.id, user_id, name, int(is_active)),
            )
        return habit

    def log_habit(
        self, habit_id: str, user_id: str, date: str, completed: bool = True,
    ) -> HabitLog:
        log = HabitLog(
            id=uuid.uuid4().hex, habit_id=habit_id, user_id=user_id,
            date=date, completed=completed,
        )
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO habit_logs (id, habit_id, user_id, date, completed)
                VALUES (?, ?, ?, ?, ?)
                """,
                (log.id, habit_id, user_id, date, int(completed)),
            )
        return log

    def list_habits(self, user_id: str) -> list[Habit]:
        try:
            with self._connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM habits WHERE user_id = ? ORDER BY name", (user_id,),
                ).fetchall()
        except sqlite3.Error as exc:
            raise DataError(f"Failed to read habits for user {user_id}: {exc}") from exc
        return [
            Habit(
                id=r["id"], user_id=r["user_id"], name=r["name"],
                is_active=bool(r["is_active"]),
            )
            for r in rows
        ]

    def list_logs(self, user_id: str, date: str | None = None) -> list[HabitLog]:
        query = "SELECT * FROM habit_logs WHERE user_id = ?"
        params: list = [user_id]
        if date is not None:
            query += " AND date = ?"
            params.append(date)
        try:
            with self._connect() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as exc:
            raise DataError(f"Failed to read habit logs for user {user_id}: {exc}") from exc
        return [
            HabitLog(
                id=r["id"], habit_id=r["habit_id"], user_id=r["user_id"],
                date=r["date"], completed=bool(r["completed"]),
            )
            for r in rows
        ]


class LinkTokenDB(_SQLiteTable):
    """One-time Telegram link tokens."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS telegram_link_tokens (
                    token      TEXT PRIMARY KEY,
                    user_id    TEXT NOT NULL,
                    status     TEXT NOT NULL DEFAULT 'pending',
                    chat_id    TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    used_at    TEXT NOT NULL DEFAULT ''
                )
            """)
        logger.debug("Telegram link token table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_token(row: sqlite3.Row) -> TelegramLinkToken:
        return TelegramLinkToken(
            token=row["token"],
            user_id=row["user_id"],
            status=row["status"],
            chat_id=row["chat_id"],
            created_at=row["created_at"],
            expires_at=row["expires_at"],
            used_at=row["used_at"],
        )

    def add(self, token: TelegramLinkToken) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO telegram_link_tokens
                    (token, user_id, status, chat_id, created_at, expires_at, used_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    token.token, token.user_id, token.status, token.chat_id,
                    token.created_at, token.expires_at, token.used_at,
                ),
            )

    def get(self, token: str) -> TelegramLinkToken | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM telegram_link_tokens WHERE token = ?", (token,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_token(row)

    def list_for_user(self, user_id: str) -> list[TelegramLinkToken]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM telegram_link_tokens WHERE user_id = ? ORDER BY created_at",
                (user_id,),
            ).fetchall()
        return [self._row_to_token(r) for r in rows]

    def update(self, token: TelegramLinkToken) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                UPDATE telegram_link_tokens
                SET status = ?, chat_id = ?, used_at = ?
                WHERE token = ?
                """,
                (token.status, token.chat_id, token.used_at, token.token),
            )


class PushSubscriptionDB(_SQLiteTable):
    """Browser push subscriptions, one per user."""

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS push_subscriptions (
                    user_id  TEXT PRIMARY KEY,
                    endpoint TEXT NOT NULL,
                    p256dh   TEXT NOT NULL,
                    auth     TEXT NOT NULL
                )
            """)
        logger.debug("Push subscription table initialized at %s", self._db_path)

    def upsert(self, subscription: PushSubscription) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO push_subscriptions (user_id, endpoint, p256dh, auth)
                VALUES (?, ?, ?, ?)
                """,
                (
                    subscription.user_id, subscription.endpoint,
                    subscription.p256dh, subscription.auth,
                ),
            )
        logger.info("Push subscription stored for user %s", subscription.user_id)

    def get(self, user_id: str) -> PushSubscription | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM push_subscriptions WHERE user_id = ?", (user_id,),
            ).fetchone()
        if row is None:
            return None
        return PushSubscription(
            user_id=row["user_id"], endpoint=row["endpoint"],
            p256dh=row["p256dh"], auth=row["auth"],
        )

    def delete(self, user_id: str) -> bool:
        """Drop a subscription (e.g. the push service reported it gone)."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM push_subscriptions WHERE user_id = ?", (user_id,),
            )
        return cursor.rowcount > 0
