"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides common fixtures like temp DBs and a recording notifier.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("TELEGRAM_BOT_USERNAME", "focusboard_test_bot")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("RUN_SWEEP_IN_BOT", "false")

from datetime import datetime, timezone

import pytest


class RecordingNotifier:
    """NotificationPort double that records sends and can be told to fail."""

    def __init__(self, fail_with: Exception | None = None):
        self.calls: list[tuple[str, str, str]] = []
        self.fail_with = fail_with

    async def send(self, recipient, title, body):
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append((recipient, title, body))


def utc(year, month, day, hour, minute):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_focusboard.db")


@pytest.fixture
def settings_db(tmp_db_path):
    from src.data.db import NotificationSettingsDB
    return NotificationSettingsDB(db_path=tmp_db_path)


@pytest.fixture
def events_db(tmp_db_path):
    from src.data.db import NotificationEventDB
    return NotificationEventDB(db_path=tmp_db_path)


@pytest.fixture
def task_db(tmp_db_path):
    from src.data.db import TaskDB
    return TaskDB(db_path=tmp_db_path)


@pytest.fixture
def habit_db(tmp_db_path):
    from src.data.db import HabitDB
    return HabitDB(db_path=tmp_db_path)


@pytest.fixture
def link_db(tmp_db_path):
    from src.data.db import LinkTokenDB
    return LinkTokenDB(db_path=tmp_db_path)


@pytest.fixture
def push_db(tmp_db_path):
    from src.data.db import PushSubscriptionDB
    return PushSubscriptionDB(db_path=tmp_db_path)


@pytest.fixture
def resolver(settings_db):
    from src.core.settings_resolver import SettingsResolver
    return SettingsResolver(settings_db)


@pytest.fixture
def ledger(events_db):
    from src.core.ledger import DedupLedger
    return DedupLedger(events_db)


@pytest.fixture
def telegram_notifier():
    return RecordingNotifier()


@pytest.fixture
def browser_notifier():
    return RecordingNotifier()


@pytest.fixture
def rule_set(task_db, habit_db, ledger, telegram_notifier, browser_notifier):
    from src.core.event_keys import Channel
    from src.core.reminders import ReminderRuleSet
    return ReminderRuleSet(
        task_db,
        habit_db,
        ledger,
        {Channel.TELEGRAM: telegram_notifier, Channel.BROWSER: browser_notifier},
        send_timeout=1.0,
    )
