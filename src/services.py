"""Service wiring — builds the stores, engine and drivers for an entry point.

The Telegram bot process and the HTTP process each call `build_services`
once at startup; tests build their own with temp databases and fake
notifiers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.core.clock import SystemClock
from src.core.ledger import DedupLedger
from src.core.reminders import ReminderRuleSet
from src.core.scheduler import ClientPollDriver, PollRegistry, SweepDriver
from src.core.settings_resolver import SettingsResolver
from src.core.telegram_link import TelegramLinker
from src.data.db import (
    HabitDB,
    LinkTokenDB,
    NotificationEventDB,
    NotificationSettingsDB,
    PushSubscriptionDB,
    TaskDB,
)

if TYPE_CHECKING:
    from telegram import Bot

    from src.core.clock import Clock
    from src.core.event_keys import Channel
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings_db: NotificationSettingsDB
    events_db: NotificationEventDB
    task_db: TaskDB
    habit_db: HabitDB
    link_db: LinkTokenDB
    push_db: PushSubscriptionDB
    resolver: SettingsResolver
    ledger: DedupLedger
    rule_set: ReminderRuleSet
    sweep: SweepDriver
    polls: PollRegistry
    linker: TelegramLinker
    notifiers: dict[Channel, NotificationPort]
    bot: Bot | None = None


def build_services(
    db_path: str | None = None,
    bot: Bot | None = None,
    notifiers: dict[Channel, NotificationPort] | None = None,
    clock: Clock | None = None,
) -> Services:
    """Create every store and driver over one SQLite database.

    Args:
        db_path: SQLite file; defaults to DATABASE_PATH.
        bot: Telegram bot used for direct sends and the link handshake.
        notifiers: Channel → notifier override (tests).
        clock: Clock override (tests).
    """
    clock = clock or SystemClock()
    settings_db = NotificationSettingsDB(db_path)
    events_db = NotificationEventDB(db_path)
    task_db = TaskDB(db_path)
    habit_db = HabitDB(db_path)
    link_db = LinkTokenDB(db_path)
    push_db = PushSubscriptionDB(db_path)

    if notifiers is None:
        from src.adapters.notifier_factory import create_notifiers

        notifiers = create_notifiers(bot=bot, subscriptions=push_db)

    resolver = SettingsResolver(settings_db)
    ledger = DedupLedger(events_db)
    rule_set = ReminderRuleSet(task_db, habit_db, ledger, notifiers)

    def _poll_driver(user_id: str) -> ClientPollDriver:
        return ClientPollDriver(user_id, resolver, rule_set, subscriptions=push_db, clock=clock)

    services = Services(
        settings_db=settings_db,
        events_db=events_db,
        task_db=task_db,
        habit_db=habit_db,
        link_db=link_db,
        push_db=push_db,
        resolver=resolver,
        ledger=ledger,
        rule_set=rule_set,
        sweep=SweepDriver(resolver, rule_set, clock=clock),
        polls=PollRegistry(_poll_driver),
        linker=TelegramLinker(link_db, resolver, clock=clock),
        notifiers=notifiers,
        bot=bot,
    )
    logger.info("Services built with channels: %s", ", ".join(c.value for c in notifiers))
    return services
