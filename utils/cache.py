"""
Bounded time-to-live cache.
Entries are stored as (value, expires_at) and evicted least-recently-used first
once the cache is full. The clock is injectable so tests control expiry.
"""

import time
from collections import OrderedDict
from collections.abc import Callable, Hashable
from typing import Any

_MISSING = object()


class TTLCache:
    """
    Bounded map keyed by request shape, carrying ``(value, expires_at)`` per entry.
    """

    def __init__(
        self,
        max_entries: int = 256,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: OrderedDict[Hashable, tuple[Any, float]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the cached value, or ``default`` if absent or expired."""
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            self.misses += 1
            return default
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self._entries[key]
            self.misses += 1
            return default
        self._entries.move_to_end(key)
        self.hits += 1
        return value

    def set(self, key: Hashable, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = (value, self.clock() + ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, key: Hashable) -> bool:
        """Drop a single key. Returns True if something was removed."""
        return self._entries.pop(key, _MISSING) is not _MISSING

    def invalidate_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every key matching ``predicate``; returns the number removed."""
        doomed = [key for key in self._entries if predicate(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        now = self.clock()
        return self.invalidate_where(lambda key: self._entries[key][1] <= now)

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self.clock() < entry[1]

    def __len__(self) -> int:
        return len(self._entries)
