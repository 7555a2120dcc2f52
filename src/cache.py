"""Process-local TTL cache for narrative responses.

Entries are full-value replacements keyed by facility or violation
identity. Concurrent requests for the same key may both compute and both
store; the last write wins and nothing is ever half-written. The clock is
injectable so expiry can be tested without sleeping.
"""

import logging
import os
import threading
import time

logger = logging.getLogger(__name__)

URGENT_ACTION_TTL_SECS = float(os.environ.get("URGENT_ACTION_CACHE_SECS", str(30 * 60)))
FACILITY_SUMMARY_TTL_SECS = float(os.environ.get("FACILITY_SUMMARY_CACHE_SECS", str(60 * 60)))


class TTLCache:
    """Key/value store whose entries expire ``ttl_seconds`` after being set.

    ``ttl_seconds=None`` keeps entries for the life of the process.
    """

    def __init__(self, ttl_seconds: float | None, clock=time.monotonic, name: str = "cache"):
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: dict[str, tuple[float, object]] = {}
        self._lock = threading.Lock()

    def get(self, key: str):
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self.ttl_seconds is not None and self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                logger.debug("%s: expired %s", self.name, key)
                return None
            return value

    def set(self, key: str, value) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def evict(self, key: str) -> bool:
        """Drop one entry. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# Module-level singletons
urgent_action_cache = TTLCache(URGENT_ACTION_TTL_SECS, name="urgent_action")
facility_summary_cache = TTLCache(FACILITY_SUMMARY_TTL_SECS, name="facility_summary")
violation_explanation_cache = TTLCache(None, name="violation_explanation")
