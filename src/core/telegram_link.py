"""Telegram link handshake.

The dashboard hands the user a one-time deep link (t.me/<bot>?start=<token>).
When the user presses Start, the bot receives `/start <token>` and binds
that chat to the dashboard user, which also switches Telegram delivery on.
Tokens expire after LINK_TTL_MINUTES and can be used once.
"""

from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import quote

from src.core.clock import SystemClock
from src.data.models import TelegramLinkToken

if TYPE_CHECKING:
    from src.core.clock import Clock
    from src.core.settings_resolver import SettingsResolver
    from src.data.db import LinkTokenDB

logger = logging.getLogger(__name__)

_START_RE = re.compile(r"^/start(?:@\w+)?(?:\s+(.+))?$", re.IGNORECASE)


class LinkOutcome(str, Enum):
    LINKED = "linked"
    UNKNOWN = "unknown"
    USED = "used"
    EXPIRED = "expired"


@dataclass
class LinkOffer:
    token: str
    deep_link: str
    app_deep_link: str
    bot_username: str
    expires_at: str


def extract_start_token(text: str) -> str:
    """Return the payload of a `/start <token>` message, or ""."""
    match = _START_RE.match((text or "").strip())
    if match is None:
        return ""
    return (match.group(1) or "").strip()


def _parse_iso(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def welcome_text(outcome: LinkOutcome | None) -> str:
    if outcome is LinkOutcome.LINKED:
        return (
            "✅ Telegram is now connected to FocusBoard.\n\n"
            "You'll get:\n"
            "• reminders for habits, tasks and goals\n"
            "• a daily progress summary\n\n"
            "Set reminder times under Notifications in the dashboard."
        )
    if outcome is LinkOutcome.USED:
        return "This link has already been used. Create a new one in FocusBoard."
    if outcome is LinkOutcome.EXPIRED:
        return "This link has expired. Create a new one in FocusBoard."
    return (
        "👋 Welcome to FocusBoard!\n\n"
        "This bot sends reminders for your tasks, habits and goals, plus a daily summary.\n"
        "To connect it to your account, open the dashboard and press "
        "\"Connect Telegram\" in the notification settings."
    )


class TelegramLinker:
    """Issue and redeem one-time Telegram link tokens."""

    def __init__(
        self,
        tokens: LinkTokenDB,
        resolver: SettingsResolver,
        clock: Clock | None = None,
        ttl_minutes: int | None = None,
    ) -> None:
        if ttl_minutes is None:
            from src.config import settings
            ttl_minutes = settings.LINK_TTL_MINUTES
        self._tokens = tokens
        self._resolver = resolver
        self._clock = clock or SystemClock()
        self._ttl = timedelta(minutes=ttl_minutes)

    def _is_expired(self, token: TelegramLinkToken, now: datetime) -> bool:
        expires = _parse_iso(token.expires_at)
        return expires is not None and expires <= now

    def create_link(self, user_id: str, bot_username: str) -> LinkOffer:
        """Reuse a pending, unexpired token for the user or issue a new one."""
        now = self._clock.now()
        active = next(
            (
                t for t in self._tokens.list_for_user(user_id)
                if t.status == "pending" and not t.used_at and not self._is_expired(t, now)
            ),
            None,
        )
        if active is None:
            active = TelegramLinkToken(
                token=secrets.token_urlsafe(24),
                user_id=user_id,
                created_at=now.isoformat(),
                expires_at=(now + self._ttl).isoformat(),
            )
            self._tokens.add(active)
            logger.info("Issued Telegram link token for user %s", user_id)

        username = bot_username.lstrip("@")
        return LinkOffer(
            token=active.token,
            deep_link=f"https://t.me/{username}?start={quote(active.token)}",
            app_deep_link=f"tg://resolve?domain={quote(username)}&start={quote(active.token)}",
            bot_username=f"@{username}",
            expires_at=active.expires_at,
        )

    def consume(self, token: str, chat_id: str) -> LinkOutcome:
        """Redeem a token from a `/start <token>` message."""
        record = self._tokens.get(token)
        if record is None or not record.user_id:
            return LinkOutcome.UNKNOWN
        if record.status == "used" or record.used_at:
            return LinkOutcome.USED

        now = self._clock.now()
        if self._is_expired(record, now):
            record.status = "expired"
            self._tokens.update(record)
            return LinkOutcome.EXPIRED

        self._resolver.link_telegram(record.user_id, chat_id)
        record.status = "used"
        record.chat_id = chat_id
        record.used_at = now.isoformat()
        self._tokens.update(record)
        logger.info("Telegram chat %s linked to user %s", chat_id, record.user_id)
        return LinkOutcome.LINKED
