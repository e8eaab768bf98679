"""Time window evaluation — pure business logic.

Decides whether a reminder target time of day is "due" at a given local
wall-clock time. The window is forward-only: a reminder is due from its
target minute until `window_minutes` later, never before. Any poll cadence
up to the window width therefore sees every target at least once.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import re

_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

MINUTES_PER_DAY = 24 * 60


def to_minutes(hhmm: str) -> int | None:
    """Convert "HH:MM" to minutes since midnight, or None if malformed."""
    if not isinstance(hhmm, str):
        return None
    match = _HHMM_RE.match(hhmm.strip())
    if match is None:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return hour * 60 + minute


def is_valid_hhmm(hhmm: str) -> bool:
    return to_minutes(hhmm) is not None


def minutes_to_hhmm(minutes: int) -> str:
    """Format minutes since midnight as zero-padded "HH:MM"."""
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range for a single day: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def is_due(now_hhmm: str, target_hhmm: str, window_minutes: int) -> bool:
    """Return True iff `now` falls in [target, target + window] (inclusive).

    Malformed input on either side is never due.
    """
    now_min = to_minutes(now_hhmm)
    target_min = to_minutes(target_hhmm)
    if now_min is None or target_min is None:
        return False
    diff = now_min - target_min
    return 0 <= diff <= window_minutes
