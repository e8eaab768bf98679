"""Tests for the NotificationPort adapters and the notifier factory."""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from telegram.error import BadRequest
from pywebpush import WebPushException

from src.adapters.notifier_factory import create_notifiers
from src.adapters.telegram_notifier import TelegramNotifier, format_message
from src.adapters.webpush_notifier import WebPushNotifier
from src.core.event_keys import Channel
from src.data.models import PushSubscription
from src.ports.notification_port import TransportError


# ---------------------------------------------------------------------------
# Telegram
# ---------------------------------------------------------------------------


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_sends_title_and_body(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        await TelegramNotifier(bot).send("123", "Title", "Body")

        kwargs = bot.send_message.call_args.kwargs
        assert kwargs["chat_id"] == "123"
        assert kwargs["text"] == format_message("Title", "Body") == "Title\nBody"
        assert kwargs["link_preview_options"].is_disabled is True

    @pytest.mark.asyncio
    async def test_api_error_becomes_transport_error(self):
        bot = MagicMock()
        bot.send_message = AsyncMock(side_effect=BadRequest("Chat not found"))
        with pytest.raises(TransportError, match="Chat not found"):
            await TelegramNotifier(bot).send("123", "t", "b")

    @pytest.mark.asyncio
    async def test_empty_chat_id_rejected(self):
        bot = MagicMock()
        bot.send_message = AsyncMock()
        with pytest.raises(TransportError):
            await TelegramNotifier(bot).send("  ", "t", "b")
        bot.send_message.assert_not_called()


# ---------------------------------------------------------------------------
# Web push
# ---------------------------------------------------------------------------


class TestWebPushNotifier:
    def _subscribed(self, push_db):
        push_db.upsert(PushSubscription("u1", "https://push.example/abc", "p-key", "a-key"))
        return push_db

    @pytest.mark.asyncio
    async def test_sends_to_stored_subscription(self, push_db):
        notifier = WebPushNotifier(self._subscribed(push_db), "vapid-key", "ops@example.com")
        with patch("src.adapters.webpush_notifier.webpush") as mock_push:
            await notifier.send("u1", "Title", "Body")

        kwargs = mock_push.call_args.kwargs
        assert kwargs["subscription_info"] == {
            "endpoint": "https://push.example/abc",
            "keys": {"p256dh": "p-key", "auth": "a-key"},
        }
        assert kwargs["vapid_claims"] == {"sub": "mailto:ops@example.com"}
        payload = json.loads(kwargs["data"])
        assert payload["title"] == "Title"
        assert payload["options"]["body"] == "Body"

    @pytest.mark.asyncio
    async def test_no_subscription_is_failure(self, push_db):
        notifier = WebPushNotifier(push_db, "vapid-key", "ops@example.com")
        with pytest.raises(TransportError, match="No push subscription"):
            await notifier.send("u1", "t", "b")

    @pytest.mark.asyncio
    async def test_missing_vapid_key(self, push_db):
        notifier = WebPushNotifier(self._subscribed(push_db), "", "ops@example.com")
        with pytest.raises(TransportError, match="VAPID"):
            await notifier.send("u1", "t", "b")

    @pytest.mark.asyncio
    async def test_push_error_wrapped(self, push_db):
        notifier = WebPushNotifier(self._subscribed(push_db), "vapid-key", "ops@example.com")
        with patch(
            "src.adapters.webpush_notifier.webpush",
            side_effect=WebPushException("Push failed: 410 Gone"),
        ):
            with pytest.raises(TransportError, match="Web push failed"):
                await notifier.send("u1", "t", "b")
        # No response status: the subscription may still be valid
        assert push_db.get("u1") is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 410])
    async def test_gone_subscription_is_removed(self, push_db, status):
        notifier = WebPushNotifier(self._subscribed(push_db), "vapid-key", "ops@example.com")
        gone = WebPushException("Push failed", response=MagicMock(status_code=status))
        with patch("src.adapters.webpush_notifier.webpush", side_effect=gone):
            with pytest.raises(TransportError):
                await notifier.send("u1", "t", "b")
        assert push_db.get("u1") is None

    @pytest.mark.asyncio
    async def test_server_error_keeps_subscription(self, push_db):
        notifier = WebPushNotifier(self._subscribed(push_db), "vapid-key", "ops@example.com")
        flaky = WebPushException("Push failed", response=MagicMock(status_code=503))
        with patch("src.adapters.webpush_notifier.webpush", side_effect=flaky):
            with pytest.raises(TransportError):
                await notifier.send("u1", "t", "b")
        assert push_db.get("u1") is not None


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestCreateNotifiers:
    def test_bot_and_subscriptions(self, push_db):
        notifiers = create_notifiers(bot=MagicMock(), subscriptions=push_db)
        assert isinstance(notifiers[Channel.TELEGRAM], TelegramNotifier)
        assert isinstance(notifiers[Channel.BROWSER], WebPushNotifier)

    def test_nothing_configured(self):
        assert create_notifiers() == {}
