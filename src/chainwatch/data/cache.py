"""
TTL read-through cache for fetch results.

An entry is valid while now - fetched_at < ttl. The cache is an ordinary
object owned by its caller (one per runner/service), never module state.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Hashable, Optional

from loguru import logger

DEFAULT_TTL_SECONDS = 300.0


@dataclass(slots=True)
class CacheEntry:
    value: Any
    fetched_at: float


class ResultCache:
    """
    Read-through cache keyed by request fingerprint.

    Attributes:
        ttl: Seconds an entry stays valid
        hits: Number of reads served from cache
        misses: Number of reads that went to the fetch function

    Example:
        ```python
        cache = ResultCache(ttl=300)
        chain = await cache.get_or_fetch(
            ("nse", "NIFTY", expiry),
            lambda: client.fetch_option_chain(security, expiry),
        )
        ```
    """

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        if ttl < 0:
            raise ValueError(f"ttl cannot be negative, got {ttl}")
        self.ttl = ttl
        self.hits = 0
        self.misses = 0
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry] = {}
        self._locks: dict[Hashable, asyncio.Lock] = {}

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the cached value if still valid, else None (expired entries are evicted)."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at < self.ttl:
            return entry.value
        del self._entries[key]
        self._locks.pop(key, None)
        return None

    def put(self, key: Hashable, value: Any) -> None:
        self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())

    async def get_or_fetch(self, key: Hashable, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return a valid cached value or fetch fresh, caching successes only.

        Concurrent callers for the same key share one fetch.
        """
        value = self.get(key)
        if value is not None:
            self.hits += 1
            return value

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            value = self.get(key)
            if value is not None:
                self.hits += 1
                return value

            self.misses += 1
            value = await fetch()
            self.put(key, value)
            logger.debug(f"Cached {key!r} for {self.ttl:.0f}s")
            return value

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)
        self._locks.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._locks.clear()

    def __len__(self) -> int:
        return len(self._entries)
