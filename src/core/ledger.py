"""Dedup ledger — the at-most-once gate in front of every send.

The ledger is the single source of truth for "already sent". Callers check
`has_sent` immediately before sending and call `record_sent` only after the
transport accepted the message, so a failed send is retried naturally on
the next tick.

This is not transactional: two drivers evaluating the same key at the same
moment can both pass the check and both send. That rare duplicate is
tolerated; same-driver repeats are eliminated.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from src.data.models import DedupEvent

if TYPE_CHECKING:
    from src.ports.store_port import EventStore

logger = logging.getLogger(__name__)


class DedupLedger:
    """Query-before-send / record-after-send wrapper over an EventStore."""

    def __init__(self, store: EventStore) -> None:
        self._store = store

    def has_sent(self, event_key: str) -> bool:
        return self._store.exists(event_key)

    def record_sent(
        self,
        event_key: str,
        user_id: str,
        channel: str,
        sent_at: datetime | str,
    ) -> bool:
        """Record a send. Returns False if another writer recorded it first."""
        stamp = sent_at.isoformat() if isinstance(sent_at, datetime) else sent_at
        recorded = self._store.append(DedupEvent(event_key, user_id, channel, stamp))
        if not recorded:
            logger.info("Event %s was already recorded by another sender", event_key)
        return recorded
