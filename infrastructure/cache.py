# ============================================================================
# TTL CACHE
# ============================================================================
# STATUS: Infrastructure - Read-through cache with expiry
# PURPOSE: Cache persisted task metadata and metrics for short windows
# CREATED: 19 OCT 2026
# ============================================================================
"""
TTL Cache

Small read-through cache keyed by string. Each entry carries its own
expiry, so one cache can hold values with different windows (task
metadata vs metrics).

- None results are cached too ("task not found" is a valid answer)
- Concurrent misses for the same key share one fetch
- Invalidation is time-based; invalidate()/clear() exist for tests
- Expired entries and idle per-key locks are dropped after each fetch

Usage:
    cache = TTLCache()
    task = await cache.get_or_fetch(f"task:{slug}", 60, lambda: repo.get(slug))
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional


@dataclass
class CacheEntry:
    """A cached value with its expiry time (clock units)."""
    value: Any
    expires_at: float

    def is_valid(self, now: float) -> bool:
        return now < self.expires_at


class TTLCache:
    """Read-through async cache with per-entry time-to-live."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Returns current time in seconds; injectable for tests
        """
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def get_if_valid(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None or not entry.is_valid(self._clock()):
            return None
        return entry

    async def get_or_fetch(
        self,
        key: str,
        ttl_seconds: float,
        fetch: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached value for key, calling fetch on a miss.

        Args:
            key: Cache key
            ttl_seconds: Window for a freshly fetched value
            fetch: Zero-arg coroutine function producing the value

        Returns:
            Cached or freshly fetched value

        Raises:
            Whatever fetch raises; failures are not cached
        """
        entry = self.get_if_valid(key)
        if entry is not None:
            return entry.value

        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                # Another waiter may have filled it
                entry = self.get_if_valid(key)
                if entry is not None:
                    return entry.value

                value = await fetch()
                self._entries[key] = CacheEntry(
                    value=value,
                    expires_at=self._clock() + ttl_seconds,
                )
                return value
        finally:
            self._release(key)

    def _release(self, key: str) -> None:
        """Drop the key's lock once nobody waits on it, then prune expired entries."""
        self._lock_users[key] -= 1
        if self._lock_users[key] == 0:
            del self._lock_users[key]
            self._locks.pop(key, None)

        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_valid(now)]
        for k in expired:
            del self._entries[k]

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["CacheEntry", "TTLCache"]
