"""Epoch-second time helpers for cache validity decisions.

Every predicate takes ``now`` explicitly so that the silent flow evaluates
one request against one instant, and tests can pin the clock.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, Optional

Clock = Callable[[], float]
"""A zero-argument callable returning the current time in epoch seconds."""


def now_seconds(clock: Clock = time.time) -> int:
    """Current time in whole epoch seconds."""
    return int(clock())


def is_token_expired(expires_on: int, now: int, offset_seconds: int) -> bool:
    """Return ``True`` once *now* is within *offset_seconds* of *expires_on*."""
    return now >= expires_on - offset_seconds


def was_clock_turned_back(cached_at: int, now: int) -> bool:
    """Return ``True`` when an entry claims to have been cached in the future."""
    return cached_at > now


def is_refresh_due(refresh_on: Optional[int], now: int) -> bool:
    """Return ``True`` once the soft refresh threshold has been reached."""
    return refresh_on is not None and now >= refresh_on


def is_max_age_transpired(auth_time: int, max_age_ms: int, now: int) -> bool:
    """Return ``True`` when *max_age_ms* has elapsed since *auth_time*.

    ``auth_time`` is in epoch seconds as issued in id tokens; ``max_age_ms``
    is in milliseconds.  A ``max_age`` of zero always demands fresh
    authentication.
    """
    if max_age_ms == 0:
        return True
    return (now - auth_time) * 1000 >= max_age_ms


def to_datetime(epoch_seconds: Optional[int]) -> Optional[datetime]:
    """Convert epoch seconds to an aware UTC datetime."""
    if epoch_seconds is None:
        return None
    return datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
