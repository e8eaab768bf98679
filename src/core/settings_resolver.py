"""Settings resolver — loads and normalizes per-user notification settings.

Stored rows are loosely typed text (they may come from older clients or a
hand-edited sheet). Resolution never rejects a row: each field that is
missing or unparsable falls back to its default on its own.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, fields
from typing import TYPE_CHECKING, Any

from src.core.clock import DEFAULT_TIMEZONE, is_valid_timezone
from src.core.time_window import minutes_to_hhmm, to_minutes
from src.data.models import NotificationSettings

if TYPE_CHECKING:
    from src.ports.store_port import SettingsStore

logger = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off"})

_BOOL_FIELDS = (
    "enabled",
    "habit_reminder",
    "task_reminder",
    "goal_reminder",
    "daily_summary",
    "telegram_enabled",
)
_TIME_FIELDS = ("habit_reminder_time", "goal_reminder_time", "daily_summary_time")


def default_settings(user_id: str) -> NotificationSettings:
    return NotificationSettings(user_id=user_id)


def parse_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return default


def parse_non_negative_int(value: Any, default: int) -> int:
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    return number if number >= 0 else default


def parse_hhmm(value: Any, default: str) -> str:
    minutes = to_minutes(value) if isinstance(value, str) else None
    if minutes is None:
        return default
    return minutes_to_hhmm(minutes)


def parse_timezone(value: Any, default: str) -> str:
    text = str(value).strip() if value is not None else ""
    return text if is_valid_timezone(text) else default


def normalize(raw: dict[str, Any], base: NotificationSettings) -> NotificationSettings:
    """Overlay the fields present in `raw` onto `base`, field by field.

    Values that don't parse keep the base value.
    """
    merged = asdict(base)
    for name in _BOOL_FIELDS:
        if name in raw:
            merged[name] = parse_bool(raw[name], merged[name])
    for name in _TIME_FIELDS:
        if name in raw:
            merged[name] = parse_hhmm(raw[name], merged[name])
    if "task_reminder_minutes" in raw:
        merged["task_reminder_minutes"] = parse_non_negative_int(
            raw["task_reminder_minutes"], merged["task_reminder_minutes"],
        )
    if "telegram_chat_id" in raw and raw["telegram_chat_id"] is not None:
        merged["telegram_chat_id"] = str(raw["telegram_chat_id"]).strip()
    if "timezone" in raw:
        merged["timezone"] = parse_timezone(raw["timezone"], merged["timezone"] or DEFAULT_TIMEZONE)
    return NotificationSettings(**merged)


def to_row(settings: NotificationSettings) -> dict[str, str]:
    """Serialize settings to the text row shape used by the store."""
    row: dict[str, str] = {}
    for f in fields(settings):
        if f.name == "user_id":
            continue
        value = getattr(settings, f.name)
        row[f.name] = str(value).lower() if isinstance(value, bool) else str(value)
    return row


class SettingsResolver:
    """Resolve, update and list notification settings over a SettingsStore."""

    def __init__(self, store: SettingsStore) -> None:
        self._store = store

    def resolve(self, user_id: str) -> NotificationSettings:
        """Return the user's settings, or defaults if none are stored."""
        raw = self._store.get(user_id)
        if raw is None:
            return default_settings(user_id)
        return normalize(raw, default_settings(user_id))

    def update(self, user_id: str, updates: dict[str, Any]) -> NotificationSettings:
        """Merge a partial update over the current settings and persist.

        Fields not present in `updates` are kept as they are.
        """
        current = self.resolve(user_id)
        merged = normalize(updates, current)
        self._store.upsert(user_id, to_row(merged))
        logger.info(
            "Settings updated for user %s (fields: %s)",
            user_id, ", ".join(sorted(updates)) or "none",
        )
        return merged

    def link_telegram(self, user_id: str, chat_id: str) -> NotificationSettings:
        """Bind a Telegram chat to the user and switch notifications on."""
        return self.update(
            user_id,
            {"enabled": True, "telegram_enabled": True, "telegram_chat_id": chat_id},
        )

    def list_sweep_candidates(self) -> list[NotificationSettings]:
        """All users the server-side sweep should evaluate (Telegram only)."""
        candidates = []
        for raw in self._store.list_all():
            user_id = str(raw.get("user_id") or "").strip()
            if not user_id:
                continue
            resolved = normalize(raw, default_settings(user_id))
            if resolved.enabled and resolved.telegram_enabled and resolved.telegram_chat_id:
                candidates.append(resolved)
        return candidates
