"""Thread-safe in-memory LRU cache with per-entry expiry.

Used by the search client so that the model re-issuing the same query
within a turn (or across nearby turns) does not hit the paid search API
again.  Search results go stale, so every entry carries a deadline;
expired entries are dropped lazily on read and eagerly when evicting.

>>> cache = TTLCache(max_entries=256, ttl_seconds=600)
>>> cache.put("brave:5:sushi near me", [{"title": "..."}])
>>> cache.get("brave:5:sushi near me")
[{'title': '...'}]
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 512
DEFAULT_TTL_SECONDS = 600.0


class TTLCache:
    """Least-recently-used cache bounded by entry count and entry age."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._clock = clock
        # key → (value, expires_at)
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the cached value (promoting it to MRU) or ``None``."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._store[key]
                logger.debug("Cache: expired %s", key)
                return None
            self._store.move_to_end(key)
            return value

    def put(self, key: str, value: Any) -> None:
        """Insert or overwrite *key*, evicting expired then LRU entries."""
        with self._lock:
            now = self._clock()
            self._store.pop(key, None)
            if len(self._store) >= self._max_entries:
                self._purge_expired(now)
            while len(self._store) >= self._max_entries:
                evicted, _ = self._store.popitem(last=False)
                logger.debug("Cache: evicted %s", evicted)
            self._store[key] = (value, now + self._ttl)

    def invalidate(self, key: str) -> bool:
        """Remove a single key.  Returns ``True`` if the key existed."""
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def _purge_expired(self, now: float) -> None:
        stale = [k for k, (_, expires_at) in self._store.items() if expires_at <= now]
        for key in stale:
            del self._store[key]
