"""Notifier factory — wires one NotificationPort per delivery channel."""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.config import settings
from src.core.event_keys import Channel

if TYPE_CHECKING:
    from telegram import Bot

    from src.ports.notification_port import NotificationPort
    from src.ports.store_port import PushSubscriptionStore


def create_notifiers(
    bot: Bot | None = None,
    subscriptions: PushSubscriptionStore | None = None,
) -> dict[Channel, NotificationPort]:
    """Return the channel → notifier map for a driver.

    Args:
        bot: Telegram bot for direct sends (server side).
        subscriptions: Push subscription store; enables the browser channel.
    """
    notifiers: dict[Channel, NotificationPort] = {}

    if bot is not None:
        from src.adapters.telegram_notifier import TelegramNotifier

        notifiers[Channel.TELEGRAM] = TelegramNotifier(bot)

    if subscriptions is not None:
        from src.adapters.webpush_notifier import WebPushNotifier

        notifiers[Channel.BROWSER] = WebPushNotifier(
            subscriptions,
            vapid_private_key=settings.VAPID_PRIVATE_KEY,
            vapid_claims_email=settings.VAPID_CLAIMS_EMAIL,
        )

    return notifiers
