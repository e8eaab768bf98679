"""Browser push adapter — implements NotificationPort via pywebpush.

The recipient is a user id; the user's stored push subscription is the
permission grant. No subscription means no permission, which is a send
failure rather than a silent success. A subscription the push service
reports as gone (404/410) is deleted, so the browser channel stops being
offered to that user's poll loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING

from pywebpush import WebPushException, webpush

from src.ports.notification_port import TransportError

if TYPE_CHECKING:
    from src.data.models import PushSubscription
    from src.ports.store_port import PushSubscriptionStore

logger = logging.getLogger(__name__)

_PUSH_TTL_SECONDS = 86400


class WebPushNotifier:
    """Send notifications to a user's registered browser."""

    def __init__(
        self,
        subscriptions: PushSubscriptionStore,
        vapid_private_key: str,
        vapid_claims_email: str,
        click_url: str = "/dashboard",
    ) -> None:
        self._subscriptions = subscriptions
        self._vapid_private_key = vapid_private_key
        self._vapid_claims = {"sub": f"mailto:{vapid_claims_email}"}
        self._click_url = click_url

    async def send(self, recipient: str, title: str, body: str) -> None:
        subscription = self._subscriptions.get(recipient)
        if subscription is None:
            raise TransportError(f"No push subscription for user {recipient}")
        if not self._vapid_private_key:
            raise TransportError("VAPID_PRIVATE_KEY is not configured")

        payload = json.dumps({
            "type": "SHOW_NOTIFICATION",
            "title": title,
            "options": {"body": body, "data": {"url": self._click_url}, "renotify": False},
        })
        # pywebpush is blocking
        await asyncio.to_thread(self._push, subscription, payload)

    def _push(self, subscription: PushSubscription, payload: str) -> None:
        try:
            webpush(
                subscription_info={
                    "endpoint": subscription.endpoint,
                    "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
                },
                data=payload,
                vapid_private_key=self._vapid_private_key,
                vapid_claims=dict(self._vapid_claims),
                ttl=_PUSH_TTL_SECONDS,
            )
        except WebPushException as exc:
            response = getattr(exc, "response", None)
            if response is not None and response.status_code in (404, 410):
                # Expired or unsubscribed: the browser grant no longer exists
                logger.info("Push subscription for user %s is gone, removing", subscription.user_id)
                self._subscriptions.delete(subscription.user_id)
            raise TransportError(f"Web push failed: {exc}") from exc
