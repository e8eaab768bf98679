"""Request/response bodies for the HTTP surface (camelCase on the wire)."""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.data.models import NotificationSettings


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SettingsUpdate(CamelModel):
    """Partial settings update. Omitted fields keep their current value."""

    enabled: Optional[bool] = None
    habit_reminder: Optional[bool] = None
    habit_reminder_time: Optional[str] = None
    task_reminder: Optional[bool] = None
    task_reminder_minutes: Optional[int] = None
    goal_reminder: Optional[bool] = None
    goal_reminder_time: Optional[str] = None
    daily_summary: Optional[bool] = None
    daily_summary_time: Optional[str] = None
    telegram_enabled: Optional[bool] = None
    telegram_chat_id: Optional[str] = None
    timezone: Optional[str] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class TelegramSendRequest(CamelModel):
    chat_id: str = ""
    title: str = ""
    body: str = ""


class PushTestRequest(CamelModel):
    title: str = "🔔 Test notification"
    body: str = "Browser notifications from FocusBoard are working."


class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionBody(BaseModel):
    endpoint: str
    keys: PushKeys


def settings_to_json(settings: NotificationSettings) -> dict:
    """Serialize resolved settings the way the dashboard expects them."""
    data = asdict(settings)
    data.pop("user_id", None)
    return {to_camel(key): value for key, value in data.items()}
