"""Cache hit/miss telemetry.

:class:`TelemetryHook` keeps running counters and forwards every event to
registered callbacks.  Telemetry must never change the outcome of a token
request, so a failing callback is logged at debug level and otherwise
ignored.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import Callable, Optional

from silentflow.models import CacheOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TelemetryEvent:
    """One cache lookup as seen by telemetry callbacks.

    Attributes:
        cache_hit: Whether the request was served from the cache.
        outcome: Why the cache did or did not serve the request.
        correlation_id: Correlation id of the request.
    """

    cache_hit: bool
    outcome: CacheOutcome
    correlation_id: Optional[str] = None


TelemetryCallback = Callable[[TelemetryEvent], None]


class TelemetryHook:
    """Counts cache hits and misses and fans events out to callbacks.

    Example::

        hook = TelemetryHook()
        callback_id = hook.add_callback(lambda event: print(event.outcome))
        hook.record_cache_hit()
        assert hook.cache_hits == 1
        hook.remove_callback(callback_id)
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cache_hits = 0
        self._cache_misses = 0
        self._outcomes: Counter[CacheOutcome] = Counter()
        self._callbacks: dict[str, TelemetryCallback] = {}

    @property
    def cache_hits(self) -> int:
        return self._cache_hits

    @property
    def cache_misses(self) -> int:
        return self._cache_misses

    def outcome_counts(self) -> dict[CacheOutcome, int]:
        """Return how often each outcome was recorded."""
        with self._lock:
            return dict(self._outcomes)

    def add_callback(self, callback: TelemetryCallback) -> str:
        """Register *callback* and return an id for :meth:`remove_callback`."""
        callback_id = str(uuid.uuid4())
        with self._lock:
            self._callbacks[callback_id] = callback
        return callback_id

    def remove_callback(self, callback_id: str) -> bool:
        """Unregister a callback.  Returns ``False`` if the id is unknown."""
        with self._lock:
            return self._callbacks.pop(callback_id, None) is not None

    def record_cache_hit(
        self,
        outcome: CacheOutcome = CacheOutcome.NOT_APPLICABLE,
        correlation_id: Optional[str] = None,
    ) -> None:
        """Record a request served from the cache."""
        with self._lock:
            self._cache_hits += 1
            self._outcomes[outcome] += 1
        self._emit(TelemetryEvent(cache_hit=True, outcome=outcome, correlation_id=correlation_id))

    def record_cache_miss(self, outcome: CacheOutcome, correlation_id: Optional[str] = None) -> None:
        """Record a request the cache could not serve."""
        with self._lock:
            self._cache_misses += 1
            self._outcomes[outcome] += 1
        self._emit(TelemetryEvent(cache_hit=False, outcome=outcome, correlation_id=correlation_id))

    def _emit(self, event: TelemetryEvent) -> None:
        with self._lock:
            callbacks = list(self._callbacks.values())
        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.debug("Telemetry callback failed", exc_info=True)
