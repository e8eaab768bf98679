"""
FocusBoard Notifier — Reminder rule set.

One rule engine shared by the server-side sweep and the client poll loop.
Given a user's resolved settings and the current instant it decides which
reminders are due, renders their text and delivers each one at most once
per channel per local calendar day:

    eligible rule -> event key -> ledger check -> send -> ledger record

Rules are evaluated in a fixed order (habit, tasks, goal, summary) so logs
and tests are deterministic. A failure in one rule or on one channel never
blocks the others.

Dependencies (stores, ledger, notifiers) are injected, so both drivers and
the tests exercise exactly the same code.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from src.core.clock import local_date_and_time
from src.core.event_keys import Channel, ReminderKind, derive_key
from src.core.time_window import is_due, minutes_to_hhmm, to_minutes
from src.ports.notification_port import TransportError

if TYPE_CHECKING:
    from datetime import datetime

    from src.core.ledger import DedupLedger
    from src.data.models import Habit, HabitLog, NotificationSettings, Task
    from src.ports.notification_port import NotificationPort
    from src.ports.store_port import HabitStore, TaskStore

logger = logging.getLogger(__name__)

HABIT_TITLE = "🎯 Time to check in on your habits!"
HABIT_BODY = "Open the dashboard and mark the habits you completed today."
GOAL_TITLE = "🌟 Check in on your goals!"
GOAL_BODY = "Take a minute to revisit your goals and dreams."
SUMMARY_TITLE = "📊 Daily summary"
TASK_NOW_TITLE = "🔔 Task time!"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class Reminder:
    """A rendered, eligible reminder awaiting delivery."""

    kind: ReminderKind
    scope_id: str
    title: str
    body: str


@dataclass
class EvaluationResult:
    """Outcome of one evaluation pass for one user."""

    sent: list[str] = field(default_factory=list)      # event keys delivered now
    skipped: list[str] = field(default_factory=list)   # already in the ledger
    errors: list[str] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return len(self.sent)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def is_task_due_today(task: Task, today: str) -> bool:
    """A task is due today if it has no deadline or the deadline is today.

    Tasks with a future deadline only remind on the deadline day itself.
    """
    return not task.deadline or task.deadline == today


def task_reminder_time(scheduled_time: str, minutes_before: int) -> str | None:
    """Return the "remind before" time, or None if it would fall before midnight."""
    scheduled = to_minutes(scheduled_time)
    if scheduled is None:
        return None
    reminder = scheduled - minutes_before
    if reminder < 0:
        return None
    return minutes_to_hhmm(reminder)


def build_summary_body(
    habits: list[Habit], logs: list[HabitLog], tasks: list[Task], today: str,
) -> str:
    """Render the daily summary line from live aggregates."""
    active = [h for h in habits if h.is_active]
    done_ids = {log.habit_id for log in logs if log.date == today and log.completed}
    completed_habits = sum(1 for h in active if h.id in done_ids)
    completed_tasks = sum(1 for t in tasks if t.completed)
    pending_tasks = len(tasks) - completed_tasks
    return (
        f"Habits: {completed_habits}/{len(active)} ✓ | "
        f"Tasks completed: {completed_tasks} | Remaining: {pending_tasks}"
    )


# ---------------------------------------------------------------------------
# Rule set
# ---------------------------------------------------------------------------


class ReminderRuleSet:
    """Eligibility rules plus dedup-gated delivery."""

    def __init__(
        self,
        tasks: TaskStore,
        habits: HabitStore,
        ledger: DedupLedger,
        notifiers: dict[Channel, NotificationPort],
        send_timeout: float | None = None,
    ) -> None:
        self._tasks = tasks
        self._habits = habits
        self._ledger = ledger
        self._notifiers = notifiers
        if send_timeout is None:
            from src.config import settings
            send_timeout = settings.SEND_TIMEOUT_SECONDS
        self._send_timeout = send_timeout

    # -- eligibility --------------------------------------------------------

    def collect(
        self,
        settings: NotificationSettings,
        today: str,
        now_hhmm: str,
        window_minutes: int,
        errors: list[str] | None = None,
    ) -> list[Reminder]:
        """Return every reminder due for this user right now, in rule order.

        Failures inside one rule are appended to `errors` and the remaining
        rules still run.
        """
        if errors is None:
            errors = []
        if not settings.enabled:
            return []

        task_cache: list[list[Task]] = []

        def load_tasks() -> list[Task]:
            if not task_cache:
                task_cache.append(self._tasks.list_for_user(settings.user_id))
            return task_cache[0]

        rules: list[tuple[str, Callable[[], list[Reminder]]]] = [
            ("habit-reminder", lambda: self._habit_rule(settings, now_hhmm, window_minutes)),
            ("task", lambda: self._task_rules(
                settings, today, now_hhmm, window_minutes, load_tasks,
            )),
            ("goal-reminder", lambda: self._goal_rule(settings, now_hhmm, window_minutes)),
            ("daily-summary", lambda: self._summary_rule(
                settings, today, now_hhmm, window_minutes, load_tasks,
            )),
        ]

        reminders: list[Reminder] = []
        for name, rule in rules:
            try:
                reminders.extend(rule())
            except Exception as exc:
                logger.error("Rule %s failed for user %s: %s", name, settings.user_id, exc)
                errors.append(f"user:{settings.user_id} {name}: {exc}")
        return reminders

    @staticmethod
    def _habit_rule(
        settings: NotificationSettings, now_hhmm: str, window: int,
    ) -> list[Reminder]:
        if not (settings.habit_reminder and is_due(now_hhmm, settings.habit_reminder_time, window)):
            return []
        return [Reminder(ReminderKind.HABIT, settings.user_id, HABIT_TITLE, HABIT_BODY)]

    @staticmethod
    def _goal_rule(
        settings: NotificationSettings, now_hhmm: str, window: int,
    ) -> list[Reminder]:
        if not (settings.goal_reminder and is_due(now_hhmm, settings.goal_reminder_time, window)):
            return []
        return [Reminder(ReminderKind.GOAL, settings.user_id, GOAL_TITLE, GOAL_BODY)]

    @staticmethod
    def _task_rules(
        settings: NotificationSettings,
        today: str,
        now_hhmm: str,
        window: int,
        load_tasks: Callable[[], list[Task]],
    ) -> list[Reminder]:
        if not settings.task_reminder:
            return []

        reminders: list[Reminder] = []
        minutes_before = settings.task_reminder_minutes
        for task in load_tasks():
            if task.completed or not task.scheduled_time:
                continue
            if not is_task_due_today(task, today):
                continue
            if to_minutes(task.scheduled_time) is None:
                logger.debug("Task %s has malformed scheduled time %r", task.id, task.scheduled_time)
                continue

            before = task_reminder_time(task.scheduled_time, minutes_before)
            if before is not None and is_due(now_hhmm, before, window):
                reminders.append(Reminder(
                    ReminderKind.TASK_BEFORE,
                    task.id,
                    f"⏰ Task in {minutes_before} min",
                    f"{task.title} — scheduled for {task.scheduled_time}",
                ))

            # Independent of the "before" reminder; both can fire for one task
            if is_due(now_hhmm, task.scheduled_time, window):
                reminders.append(Reminder(
                    ReminderKind.TASK_NOW,
                    task.id,
                    TASK_NOW_TITLE,
                    f"{task.title} — now, at {task.scheduled_time}",
                ))
        return reminders

    def _summary_rule(
        self,
        settings: NotificationSettings,
        today: str,
        now_hhmm: str,
        window: int,
        load_tasks: Callable[[], list[Task]],
    ) -> list[Reminder]:
        if not (settings.daily_summary and is_due(now_hhmm, settings.daily_summary_time, window)):
            return []
        habits = self._habits.list_habits(settings.user_id)
        logs = self._habits.list_logs(settings.user_id, date=today)
        body = build_summary_body(habits, logs, load_tasks(), today)
        return [Reminder(ReminderKind.DAILY_SUMMARY, settings.user_id, SUMMARY_TITLE, body)]

    # -- delivery -----------------------------------------------------------

    async def evaluate(
        self,
        settings: NotificationSettings,
        now: datetime,
        window_minutes: int,
        channels: dict[Channel, str],
    ) -> EvaluationResult:
        """Evaluate all rules for one user and deliver what is due.

        Args:
            settings: The user's resolved settings.
            now: Current instant (timezone-aware).
            window_minutes: How long after a target time it still counts as due.
            channels: Usable channels for this pass, mapped to their recipient
                (Telegram chat id, or the user id for browser push).
        """
        result = EvaluationResult()
        today, now_hhmm = local_date_and_time(now, settings.timezone)

        reminders = self.collect(settings, today, now_hhmm, window_minutes, result.errors)
        if not reminders:
            return result

        for reminder in reminders:
            for channel, recipient in channels.items():
                await self._deliver(settings.user_id, reminder, today, channel, recipient, now, result)
        return result

    async def _deliver(
        self,
        user_id: str,
        reminder: Reminder,
        today: str,
        channel: Channel,
        recipient: str,
        now: datetime,
        result: EvaluationResult,
    ) -> None:
        notifier = self._notifiers.get(channel)
        if notifier is None:
            result.errors.append(f"user:{user_id} no notifier configured for {channel.value}")
            return

        event_key = derive_key(today, reminder.kind, reminder.scope_id, channel)
        try:
            if self._ledger.has_sent(event_key):
                logger.debug("Skipping %s: already sent", event_key)
                result.skipped.append(event_key)
                return

            await asyncio.wait_for(
                notifier.send(recipient, reminder.title, reminder.body),
                timeout=self._send_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Send timed out for %s after %ss", event_key, self._send_timeout)
            result.errors.append(f"user:{user_id} {event_key}: send timed out")
            return
        except TransportError as exc:
            logger.warning("Send failed for %s: %s", event_key, exc)
            result.errors.append(f"user:{user_id} {event_key}: {exc}")
            return
        except Exception as exc:
            logger.exception("Unexpected error delivering %s", event_key)
            result.errors.append(f"user:{user_id} {event_key}: {exc}")
            return

        result.sent.append(event_key)
        logger.info("Sent %s to user %s", event_key, user_id)

        # The message already went out; a failed write only risks a repeat later
        try:
            self._ledger.record_sent(event_key, user_id, channel.value, now)
        except Exception as exc:
            logger.error("Failed to record %s in the ledger: %s", event_key, exc)
            result.errors.append(f"user:{user_id} {event_key}: ledger write failed: {exc}")
