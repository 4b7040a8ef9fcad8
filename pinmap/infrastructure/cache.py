"""
Short-TTL, process-wide cache for expensive list queries.

Entries are keyed by opaque strings and expire lazily: staleness is checked on
read and size-based cleanup on write, so no background timer runs. The size
bound is soft; between writes the cache may hold more than the high-water mark.
The cache is advisory and never a source of truth: a lost race on it costs at
most an extra backend read.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

HIGH_WATER_MARK = 1000
MAX_ENTRY_AGE_MS = 60_000


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class CacheEntry:
    value: Any
    stored_at_ms: float


class TTLCache:
    """
    Key/value store with per-read TTL checks and prefix invalidation.

    Parameters
    ----------
    clock : callable, optional
        Returns the current time in milliseconds. Defaults to a monotonic clock.
    high_water_mark : int
        Entry count above which a write sweeps out entries older than `max_age_ms`.
    max_age_ms : float
        Absolute age used by the sweep.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], float]] = None,
        high_water_mark: int = HIGH_WATER_MARK,
        max_age_ms: float = MAX_ENTRY_AGE_MS,
    ) -> None:
        self._clock = clock or _monotonic_ms
        self._entries: Dict[str, CacheEntry] = {}
        self._generation = 0
        self.high_water_mark = high_water_mark
        self.max_age_ms = max_age_ms

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str, ttl_ms: float) -> Optional[Any]:
        """Return the value stored under `key` if it is at most `ttl_ms` old."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at_ms > ttl_ms:
            self._entries.pop(key, None)
            return None
        return entry.value

    @property
    def generation(self) -> int:
        """Counter bumped by every invalidation; lets a reader detect a write that raced it."""
        return self._generation

    def set(self, key: str, value: Any, generation: Optional[int] = None) -> bool:
        """
        Store `value` under `key`.

        With `generation` (read from `self.generation` before computing the
        value), the write is dropped if any invalidation happened since, so a
        slow reader cannot put pre-write data back. Returns whether it stored.
        """
        if generation is not None and generation != self._generation:
            return False
        self._entries[key] = CacheEntry(value=value, stored_at_ms=self._clock())
        if len(self._entries) > self.high_water_mark:
            self._evict_older_than(self.max_age_ms)
        return True

    def invalidate_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with `prefix`; returns how many went."""
        self._generation += 1
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            self._entries.pop(key, None)
        return len(doomed)

    def clear(self) -> None:
        self._generation += 1
        self._entries.clear()

    def _evict_older_than(self, age_ms: float) -> None:
        now = self._clock()
        stale = [key for key, entry in self._entries.items() if now - entry.stored_at_ms > age_ms]
        for key in stale:
            self._entries.pop(key, None)


_default_cache = TTLCache()


def default_cache() -> TTLCache:
    """The process-wide cache instance."""
    return _default_cache


def get_cached(key: str, ttl_ms: float) -> Optional[Any]:
    return _default_cache.get(key, ttl_ms)


def set_cached(key: str, value: Any, generation: Optional[int] = None) -> bool:
    return _default_cache.set(key, value, generation)


def invalidate_cache_prefix(prefix: str) -> int:
    return _default_cache.invalidate_prefix(prefix)


def clear_cache() -> None:
    _default_cache.clear()


__all__ = [
    "HIGH_WATER_MARK",
    "MAX_ENTRY_AGE_MS",
    "TTLCache",
    "clear_cache",
    "default_cache",
    "get_cached",
    "invalidate_cache_prefix",
    "set_cached",
]
