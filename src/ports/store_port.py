"""Store ports — abstract interfaces over the row store.

The reminder engine reads dashboard data (tasks, habits, habit logs) and
reads/writes its own settings and ledger rows through these protocols,
so tests and alternative backends can be injected freely.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from src.data.models import DedupEvent, Habit, HabitLog, PushSubscription, Task


class DataError(Exception):
    """Raised when a user's dashboard data cannot be read."""


class SettingsStore(Protocol):
    """Raw notification-settings rows, keyed by user id."""

    def get(self, user_id: str) -> dict[str, str] | None: ...

    def list_all(self) -> list[dict[str, str]]: ...

    def upsert(self, user_id: str, values: dict[str, str]) -> None: ...


class EventStore(Protocol):
    """Append-only ledger of sent reminder events."""

    def exists(self, event_key: str) -> bool: ...

    def append(self, event: DedupEvent) -> bool: ...


class TaskStore(Protocol):
    def list_for_user(self, user_id: str) -> list[Task]: ...


class HabitStore(Protocol):
    def list_habits(self, user_id: str) -> list[Habit]: ...

    def list_logs(self, user_id: str, date: str | None = None) -> list[HabitLog]: ...


class PushSubscriptionStore(Protocol):
    def get(self, user_id: str) -> PushSubscription | None: ...

    def delete(self, user_id: str) -> bool: ...
