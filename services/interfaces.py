#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Storage capabilities the scraper engine depends on.

The engine only talks to these abstract classes, so the in-memory versions in
``stores.py`` can be swapped for Redis or database backed ones, and tests can
pass their own fakes.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class CacheStore(ABC):
    """Key-value store for serialized video records with per-entry TTL."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored value, or None if missing or expired."""

    @abstractmethod
    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        """Store ``value`` under ``key``, replacing any previous value.

        Args:
            key: Cache key
            value: Serialized record
            ttl_seconds: Seconds until the entry expires
        """

    @abstractmethod
    async def forget(self, key: str) -> bool:
        """Remove one entry. Returns True if an entry was removed."""

    @abstractmethod
    async def flush_namespace(self, prefix: str) -> int:
        """Remove every entry whose key starts with ``prefix``.

        Returns:
            int: Number of entries removed
        """


class RateLimitStore(ABC):
    """Attempt counters for fixed rate-limit windows.

    A window starts with the first ``hit`` for a key and lasts ``decay_seconds``.
    Callers that need check-then-hit to be atomic must serialize per key
    themselves (see ``RateLimitGate``).
    """

    @abstractmethod
    async def too_many_attempts(self, key: str, max_attempts: int) -> bool:
        """True when the current window for ``key`` has no attempts left."""

    @abstractmethod
    async def hit(self, key: str, decay_seconds: int) -> int:
        """Record one attempt, opening a window if none is active.

        Returns:
            int: Attempts counted in the current window
        """

    @abstractmethod
    async def attempts(self, key: str) -> int:
        """Attempts counted in the current window (0 when no window is active)."""

    @abstractmethod
    async def retries_left(self, key: str, max_attempts: int) -> int:
        """Attempts still allowed in the current window."""

    @abstractmethod
    async def available_in(self, key: str) -> float:
        """Seconds until the current window resets (0 when no window is active)."""

    @abstractmethod
    async def clear(self, key: str) -> None:
        """Drop the window for ``key``."""


class StatisticsStore(ABC):
    """Monotonic counters plus a bounded ring of recent activity."""

    @abstractmethod
    async def increment(self, name: str, amount: int = 1) -> int:
        """Atomically add ``amount`` to counter ``name`` and return the new value."""

    @abstractmethod
    async def get(self, name: str) -> int:
        """Current value of counter ``name`` (0 if never incremented)."""

    @abstractmethod
    async def get_all(self) -> Dict[str, int]:
        """Snapshot of every counter."""

    @abstractmethod
    async def append_activity(self, entry: Dict[str, Any]) -> None:
        """Add an entry to the ring, dropping the oldest when full."""

    @abstractmethod
    async def recent_activity(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Entries in the ring, newest first."""

    @abstractmethod
    async def reset(self) -> None:
        """Zero every counter and empty the ring."""
