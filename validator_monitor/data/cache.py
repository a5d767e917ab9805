"""In-memory TTL cache with LRU eviction for validator detail lookups."""

import logging
import time
from collections import OrderedDict
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Default maximum cache entries to prevent unbounded memory growth
DEFAULT_MAX_SIZE = 500


class TTLCache:
    """
    Small TTL cache keyed by strings.

    Not thread-safe; it lives inside a single event loop. The clock is
    injectable so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._entries: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        self._entries.pop(key, None)
        while len(self._entries) >= self._max_size:
            oldest, _ = self._entries.popitem(last=False)
            logger.debug(f"Cache eviction: {oldest}")
        self._entries[key] = (value, self._clock() + (ttl if ttl is not None else self._ttl))

    def invalidate(self, prefix: str = "") -> int:
        """Drop entries whose key starts with ``prefix`` (all when empty)."""
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    @property
    def size(self) -> int:
        return len(self._entries)
