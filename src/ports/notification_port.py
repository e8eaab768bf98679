"""Notification port — abstract interface for sending messages to users.

Core modules depend on this protocol, never on a specific messaging provider.
One implementation exists per delivery channel (Telegram, browser push).
"""

from __future__ import annotations

from typing import Protocol


class TransportError(Exception):
    """Raised when a channel send fails or times out."""


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules.

    `recipient` is channel-specific: a Telegram chat id, or the user id whose
    stored push subscription should be used.
    """

    async def send(self, recipient: str, title: str, body: str) -> None: ...
