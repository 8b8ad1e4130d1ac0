#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
In-memory implementations of the storage capabilities used by the scraper engine.

State lives in the process, so it is lost on restart and not shared between
workers. Good enough for a single uvicorn worker and tests; ``sqlite_stores``
keeps cache and statistics across processes.
"""

import asyncio
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from config import config
from logging_config import StructuredLogger
from services.interfaces import CacheStore, RateLimitStore, StatisticsStore
from utils import LRUCache

logger = StructuredLogger(__name__)

STATISTICS_COUNTERS = (
    "total_requests",
    "successful_scrapes",
    "failed_scrapes",
    "cache_hits",
    "rate_limit_hits",
)


class InMemoryCacheStore(CacheStore):
    """CacheStore backed by the async ``LRUCache``."""

    def __init__(self, maxsize: int = config.CACHE_MAX_ENTRIES,
                 time_func: Callable[[], float] = time.monotonic):
        self._cache = LRUCache(maxsize=maxsize, ttl_seconds=None, time_func=time_func)

    async def get(self, key: str) -> Optional[bytes]:
        return await self._cache.get(key)

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        await self._cache.put(key, value, ttl_seconds=ttl_seconds)

    async def forget(self, key: str) -> bool:
        return await self._cache.remove(key)

    async def flush_namespace(self, prefix: str) -> int:
        removed = await self._cache.remove_prefix(prefix)
        logger.debug(f"Flushed {removed} cache entries with prefix '{prefix}'", prefix=prefix, removed=removed)
        return removed

    async def get_stats(self) -> Dict[str, Any]:
        return await self._cache.get_stats()


class InMemoryRateLimitStore(RateLimitStore):
    """RateLimitStore keeping ``(attempts, reset_at)`` per key.

    Windows are measured on a monotonic clock, which tests can replace.
    Elapsed windows of other keys are swept from ``hit`` at most once every
    ``sweep_interval`` seconds, so keys that are never seen again do not pile up.
    """

    def __init__(self, time_func: Callable[[], float] = time.monotonic, sweep_interval: float = 60.0):
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._time = time_func
        self._sweep_interval = sweep_interval
        self._next_sweep = time_func() + sweep_interval

    def _active_window(self, key: str) -> Optional[Tuple[int, float]]:
        window = self._windows.get(key)
        if window is None:
            return None
        if self._time() >= window[1]:
            # Window elapsed
            del self._windows[key]
            return None
        return window

    def _sweep_expired(self) -> None:
        now = self._time()
        if now < self._next_sweep:
            return
        self._next_sweep = now + self._sweep_interval
        expired = [key for key, (_, reset_at) in self._windows.items() if now >= reset_at]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit windows", removed=len(expired))

    async def too_many_attempts(self, key: str, max_attempts: int) -> bool:
        window = self._active_window(key)
        return window is not None and window[0] >= max_attempts

    async def hit(self, key: str, decay_seconds: int) -> int:
        self._sweep_expired()
        window = self._active_window(key)
        if window is None:
            window = (0, self._time() + decay_seconds)
        count = window[0] + 1
        self._windows[key] = (count, window[1])
        return count

    async def attempts(self, key: str) -> int:
        window = self._active_window(key)
        return window[0] if window else 0

    async def retries_left(self, key: str, max_attempts: int) -> int:
        return max(0, max_attempts - await self.attempts(key))

    async def available_in(self, key: str) -> float:
        window = self._active_window(key)
        if window is None:
            return 0.0
        return max(0.0, window[1] - self._time())

    async def clear(self, key: str) -> None:
        self._windows.pop(key, None)


class InMemoryStatisticsStore(StatisticsStore):
    """StatisticsStore with a counter dict and a bounded deque, guarded by one lock."""

    def __init__(self, activity_size: int = config.RECENT_ACTIVITY_SIZE):
        self._lock = asyncio.Lock()
        self._counters: Dict[str, int] = {name: 0 for name in STATISTICS_COUNTERS}
        self._activity: Deque[Dict[str, Any]] = deque(maxlen=max(1, activity_size))

    async def increment(self, name: str, amount: int = 1) -> int:
        async with self._lock:
            self._counters[name] = self._counters.get(name, 0) + amount
            return self._counters[name]

    async def get(self, name: str) -> int:
        async with self._lock:
            return self._counters.get(name, 0)

    async def get_all(self) -> Dict[str, int]:
        async with self._lock:
            return dict(self._counters)

    async def append_activity(self, entry: Dict[str, Any]) -> None:
        async with self._lock:
            self._activity.append(dict(entry))

    async def recent_activity(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        async with self._lock:
            entries = list(reversed(self._activity))
        return entries[:limit] if limit is not None else entries

    async def reset(self) -> None:
        async with self._lock:
            self._counters = {name: 0 for name in STATISTICS_COUNTERS}
            self._activity.clear()
        logger.info("Scraper statistics reset.")
