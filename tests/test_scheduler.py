"""Tests for src.core.scheduler — sweep and client poll drivers."""

import asyncio

import pytest

from conftest import utc
from src.core.clock import FixedClock
from src.core.event_keys import Channel
from src.core.scheduler import ClientPollDriver, PollRegistry, SweepDriver, SweepSummary
from src.data.models import PushSubscription


class TestSweepSummary:
    def test_response_shape_caps_errors(self):
        summary = SweepSummary(checked_users=3, sent_count=2, errors=[f"e{i}" for i in range(25)])
        response = summary.as_response()
        assert response["success"] is True
        assert response["checkedUsers"] == 3
        assert response["sentCount"] == 2
        assert response["errorsCount"] == 25
        assert len(response["errors"]) == 20


class TestSweepDriver:
    @pytest.mark.asyncio
    async def test_sweeps_only_linked_users(self, resolver, rule_set, telegram_notifier, browser_notifier):
        resolver.link_telegram("alice", "100")
        resolver.update("alice", {"habit_reminder_time": "09:00"})
        resolver.update("bob", {"enabled": True, "habit_reminder_time": "09:00"})

        sweep = SweepDriver(resolver, rule_set, clock=FixedClock(utc(2026, 3, 1, 9, 4)), window_minutes=5)
        summary = await sweep.run()

        assert summary.checked_users == 1
        assert summary.sent_count == 1
        assert telegram_notifier.calls[0][0] == "100"
        assert browser_notifier.calls == []

    @pytest.mark.asyncio
    async def test_second_sweep_in_same_window_sends_nothing(self, resolver, rule_set, telegram_notifier):
        resolver.link_telegram("alice", "100")
        resolver.update("alice", {"habit_reminder_time": "09:00"})
        clock = FixedClock(utc(2026, 3, 1, 9, 0))
        sweep = SweepDriver(resolver, rule_set, clock=clock, window_minutes=5)

        await sweep.run()
        clock.set(utc(2026, 3, 1, 9, 5))
        summary = await sweep.run()

        assert summary.sent_count == 0
        assert len(telegram_notifier.calls) == 1

    @pytest.mark.asyncio
    async def test_one_user_failure_does_not_abort_sweep(self, resolver, telegram_notifier):
        resolver.link_telegram("alice", "100")
        resolver.link_telegram("bob", "200")

        class ExplodingRuleSet:
            def __init__(self):
                self.seen = []

            async def evaluate(self, settings, now, window, channels):
                self.seen.append(settings.user_id)
                if settings.user_id == "alice":
                    raise RuntimeError("boom")
                from src.core.reminders import EvaluationResult
                return EvaluationResult(sent=["k"])

        rule_set = ExplodingRuleSet()
        sweep = SweepDriver(resolver, rule_set, clock=FixedClock(utc(2026, 3, 1, 9, 0)), window_minutes=5)
        summary = await sweep.run()

        assert rule_set.seen == ["alice", "bob"]
        assert summary.checked_users == 2
        assert summary.sent_count == 1
        assert summary.errors == ["user:alice boom"]

    @pytest.mark.asyncio
    async def test_no_users(self, resolver, rule_set):
        summary = await SweepDriver(resolver, rule_set, window_minutes=5).run()
        assert summary.as_response()["checkedUsers"] == 0


class TestClientPollDriver:
    def _driver(self, resolver, rule_set, push_db, instant, **kwargs):
        return ClientPollDriver(
            "u1", resolver, rule_set,
            subscriptions=push_db,
            clock=FixedClock(instant),
            window_minutes=2,
            interval_seconds=kwargs.pop("interval_seconds", 60),
        )

    def test_usable_channels(self, resolver, rule_set, push_db):
        driver = self._driver(resolver, rule_set, push_db, utc(2026, 3, 1, 9, 0))
        settings = resolver.update("u1", {"enabled": True})
        assert driver.usable_channels(settings) == {}

        push_db.upsert(PushSubscription("u1", "https://push", "k", "a"))
        assert driver.usable_channels(settings) == {Channel.BROWSER: "u1"}

        linked = resolver.link_telegram("u1", "555")
        assert driver.usable_channels(linked) == {Channel.BROWSER: "u1", Channel.TELEGRAM: "555"}

    @pytest.mark.asyncio
    async def test_poll_once_delivers_to_browser(self, resolver, rule_set, push_db, browser_notifier):
        push_db.upsert(PushSubscription("u1", "https://push", "k", "a"))
        resolver.update("u1", {"enabled": True, "goal_reminder_time": "20:00"})
        driver = self._driver(resolver, rule_set, push_db, utc(2026, 3, 1, 20, 2))

        result = await driver.poll_once()

        assert result.sent == ["2026-03-01|goal-reminder|u1|browser"]
        assert browser_notifier.calls[0][0] == "u1"

    @pytest.mark.asyncio
    async def test_poll_window_is_narrower_than_sweep(self, resolver, rule_set, push_db):
        push_db.upsert(PushSubscription("u1", "https://push", "k", "a"))
        resolver.update("u1", {"enabled": True, "goal_reminder_time": "20:00"})
        driver = self._driver(resolver, rule_set, push_db, utc(2026, 3, 1, 20, 3))
        assert (await driver.poll_once()).sent == []

    @pytest.mark.asyncio
    async def test_poll_once_disabled_user(self, resolver, rule_set, push_db, browser_notifier):
        push_db.upsert(PushSubscription("u1", "https://push", "k", "a"))
        resolver.update("u1", {"enabled": False, "goal_reminder_time": "20:00"})
        driver = self._driver(resolver, rule_set, push_db, utc(2026, 3, 1, 20, 0))
        result = await driver.poll_once()
        assert result.sent == []
        assert browser_notifier.calls == []

    @pytest.mark.asyncio
    async def test_poll_and_sweep_share_ledger(self, resolver, rule_set, push_db, telegram_notifier):
        resolver.link_telegram("u1", "555")
        resolver.update("u1", {"habit_reminder_time": "09:00"})
        instant = utc(2026, 3, 1, 9, 1)

        await SweepDriver(resolver, rule_set, clock=FixedClock(instant), window_minutes=5).run()
        result = await self._driver(resolver, rule_set, push_db, instant).poll_once()

        assert result.sent == []
        assert result.skipped == ["2026-03-01|habit-reminder|u1|telegram"]
        assert len(telegram_notifier.calls) == 1

    @pytest.mark.asyncio
    async def test_start_runs_immediately_and_stop_cancels(self, resolver, rule_set, push_db, browser_notifier):
        push_db.upsert(PushSubscription("u1", "https://push", "k", "a"))
        resolver.update("u1", {"enabled": True, "habit_reminder_time": "09:00"})
        driver = self._driver(resolver, rule_set, push_db, utc(2026, 3, 1, 9, 0), interval_seconds=3600)

        driver.start()
        assert driver.running is True
        for _ in range(50):
            if browser_notifier.calls:
                break
            await asyncio.sleep(0.01)
        assert len(browser_notifier.calls) == 1

        await driver.stop()
        assert driver.running is False

    @pytest.mark.asyncio
    async def test_loop_survives_poll_errors(self, resolver, rule_set, push_db):
        driver = self._driver(resolver, rule_set, push_db, utc(2026, 3, 1, 9, 0), interval_seconds=0)
        calls = []

        async def failing_poll():
            calls.append(1)
            raise RuntimeError("db locked")

        driver.poll_once = failing_poll
        driver.start()
        for _ in range(50):
            if len(calls) >= 3:
                break
            await asyncio.sleep(0.01)
        await driver.stop()
        assert len(calls) >= 3


class TestPollRegistry:
    @pytest.mark.asyncio
    async def test_one_driver_per_user(self, resolver, rule_set, push_db):
        created = []

        def factory(user_id):
            driver = ClientPollDriver(
                user_id, resolver, rule_set, subscriptions=push_db,
                clock=FixedClock(utc(2026, 3, 1, 0, 0)), window_minutes=2, interval_seconds=3600,
            )
            created.append(driver)
            return driver

        registry = PollRegistry(factory)
        first = registry.activate("u1")
        second = registry.activate("u1")

        assert first is second
        assert len(created) == 1
        assert registry.is_active("u1") is True

        assert await registry.deactivate("u1") is True
        assert registry.is_active("u1") is False
        assert await registry.deactivate("u1") is False

    @pytest.mark.asyncio
    async def test_shutdown_stops_all(self, resolver, rule_set, push_db):
        registry = PollRegistry(lambda uid: ClientPollDriver(
            uid, resolver, rule_set, subscriptions=push_db,
            clock=FixedClock(utc(2026, 3, 1, 0, 0)), window_minutes=2, interval_seconds=3600,
        ))
        drivers = [registry.activate("a"), registry.activate("b")]
        await registry.shutdown()
        assert not any(d.running for d in drivers)
