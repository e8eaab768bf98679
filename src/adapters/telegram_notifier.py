"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance to satisfy the NotificationPort protocol.
"""

from __future__ import annotations

import logging

from telegram import Bot, LinkPreviewOptions
from telegram.error import TelegramError

from src.ports.notification_port import TransportError

logger = logging.getLogger(__name__)


def format_message(title: str, body: str) -> str:
    return f"{title}\n{body}"


class TelegramNotifier:
    """Telegram implementation of NotificationPort. Recipient is a chat id."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send(self, recipient: str, title: str, body: str) -> None:
        if not str(recipient).strip():
            raise TransportError("Telegram chat_id is empty")
        try:
            await self._bot.send_message(
                chat_id=recipient,
                text=format_message(title, body),
                link_preview_options=LinkPreviewOptions(is_disabled=True),
            )
        except TelegramError as exc:
            raise TransportError(f"Telegram API error: {exc}") from exc
