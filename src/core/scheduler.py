"""
FocusBoard Notifier — Scheduler drivers.

Sweep: a periodic, externally triggered pass over every user who linked
Telegram. Browser push needs an open client, so the sweep only drives the
Telegram channel.

Client poll: runs while a user's dashboard session is open, once
immediately and then every POLL_INTERVAL_SECONDS, over whichever channels
that user can currently receive (browser push if subscribed, Telegram if
linked).

Both drivers call the same ReminderRuleSet; the dedup ledger reconciles
them into at most one delivery per event key.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from src.core.clock import SystemClock
from src.core.event_keys import Channel
from src.core.reminders import EvaluationResult

if TYPE_CHECKING:
    from src.core.clock import Clock
    from src.core.reminders import ReminderRuleSet
    from src.core.settings_resolver import SettingsResolver
    from src.data.models import NotificationSettings
    from src.ports.store_port import PushSubscriptionStore

logger = logging.getLogger(__name__)

MAX_REPORTED_ERRORS = 20


# ---------------------------------------------------------------------------
# Server-side sweep
# ---------------------------------------------------------------------------


@dataclass
class SweepSummary:
    """Batch outcome of one sweep."""

    checked_users: int = 0
    sent_count: int = 0
    errors: list[str] = field(default_factory=list)

    def as_response(self) -> dict:
        return {
            "success": True,
            "checkedUsers": self.checked_users,
            "sentCount": self.sent_count,
            "errorsCount": len(self.errors),
            "errors": self.errors[:MAX_REPORTED_ERRORS],
        }


class SweepDriver:
    """Evaluate reminders for every Telegram-linked user."""

    def __init__(
        self,
        resolver: SettingsResolver,
        rule_set: ReminderRuleSet,
        clock: Clock | None = None,
        window_minutes: int | None = None,
    ) -> None:
        if window_minutes is None:
            from src.config import settings
            window_minutes = settings.SWEEP_WINDOW_MINUTES
        self._resolver = resolver
        self._rule_set = rule_set
        self._clock = clock or SystemClock()
        self._window = window_minutes

    async def run(self) -> SweepSummary:
        """Run one sweep. One user's failure never aborts the others."""
        summary = SweepSummary()
        now = self._clock.now()

        for user_settings in self._resolver.list_sweep_candidates():
            summary.checked_users += 1
            try:
                result = await self._rule_set.evaluate(
                    user_settings,
                    now,
                    self._window,
                    {Channel.TELEGRAM: user_settings.telegram_chat_id},
                )
            except Exception as exc:
                logger.error("Sweep failed for user %s: %s", user_settings.user_id, exc)
                summary.errors.append(f"user:{user_settings.user_id} {exc}")
                continue
            summary.sent_count += result.sent_count
            summary.errors.extend(result.errors)

        logger.info(
            "Sweep finished: %d users checked, %d sent, %d errors",
            summary.checked_users, summary.sent_count, len(summary.errors),
        )
        return summary


# ---------------------------------------------------------------------------
# Per-session client poll
# ---------------------------------------------------------------------------


class ClientPollDriver:
    """Poll loop for a single active user session."""

    def __init__(
        self,
        user_id: str,
        resolver: SettingsResolver,
        rule_set: ReminderRuleSet,
        subscriptions: PushSubscriptionStore | None = None,
        clock: Clock | None = None,
        window_minutes: int | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        if window_minutes is None or interval_seconds is None:
            from src.config import settings
            if window_minutes is None:
                window_minutes = settings.POLL_WINDOW_MINUTES
            if interval_seconds is None:
                interval_seconds = settings.POLL_INTERVAL_SECONDS
        self.user_id = user_id
        self._resolver = resolver
        self._rule_set = rule_set
        self._subscriptions = subscriptions
        self._clock = clock or SystemClock()
        self._window = window_minutes
        self._interval = interval_seconds
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def usable_channels(self, user_settings: NotificationSettings) -> dict[Channel, str]:
        """Channels this session can deliver on right now, with recipients."""
        channels: dict[Channel, str] = {}
        if self._subscriptions is not None and self._subscriptions.get(self.user_id) is not None:
            channels[Channel.BROWSER] = self.user_id
        chat_id = user_settings.telegram_chat_id.strip()
        if user_settings.telegram_enabled and chat_id:
            channels[Channel.TELEGRAM] = chat_id
        return channels

    async def poll_once(self) -> EvaluationResult:
        """Re-read settings and evaluate once."""
        user_settings = self._resolver.resolve(self.user_id)
        if not user_settings.enabled:
            return EvaluationResult()

        channels = self.usable_channels(user_settings)
        if not channels:
            logger.debug("No usable channel for user %s, skipping poll", self.user_id)
            return EvaluationResult()

        result = await self._rule_set.evaluate(
            user_settings, self._clock.now(), self._window, channels,
        )
        if result.errors:
            logger.warning(
                "Poll for user %s finished with %d errors", self.user_id, len(result.errors),
            )
        return result

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Poll failed for user %s", self.user_id)
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        """Start polling: one evaluation right away, then every interval."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"client-poll:{self.user_id}")
        logger.info("Client poll started for user %s", self.user_id)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Client poll stopped for user %s", self.user_id)


class PollRegistry:
    """At most one running ClientPollDriver per user."""

    def __init__(self, factory: Callable[[str], ClientPollDriver]) -> None:
        self._factory = factory
        self._drivers: dict[str, ClientPollDriver] = {}

    def is_active(self, user_id: str) -> bool:
        driver = self._drivers.get(user_id)
        return driver is not None and driver.running

    def activate(self, user_id: str) -> ClientPollDriver:
        driver = self._drivers.get(user_id)
        if driver is None:
            driver = self._factory(user_id)
            self._drivers[user_id] = driver
        driver.start()
        return driver

    async def deactivate(self, user_id: str) -> bool:
        driver = self._drivers.pop(user_id, None)
        if driver is None:
            return False
        await driver.stop()
        return True

    async def shutdown(self) -> None:
        """Stop every driver (process teardown)."""
        for user_id in list(self._drivers):
            await self.deactivate(user_id)
