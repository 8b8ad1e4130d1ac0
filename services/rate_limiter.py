#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Fixed-window rate limit gate.

A window opens with the first admitted attempt for a key and resets
``window_seconds`` later. The check and the increment happen under a lock
held per key, so two concurrent callers can never both take the last slot.
"""

import asyncio
import math
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Dict

from logging_config import StructuredLogger
from services.interfaces import RateLimitStore

logger = StructuredLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one admission check."""

    admitted: bool
    retry_after: int = 0  # seconds until the window resets, set on rejection
    remaining: int = 0


class RateLimitGate:
    """Admits or rejects attempts against a ``RateLimitStore``."""

    def __init__(self, store: RateLimitStore):
        self.store = store
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def _key_lock(self, key: str):
        # A key's lock lives only while someone holds or waits for it
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]

    async def admit(self, key: str, max_attempts: int, window_seconds: int) -> RateLimitDecision:
        """Count one attempt for ``key`` if the window still has room.

        Args:
            key: Rate limit key (global, per client or per user)
            max_attempts: Attempts allowed per window
            window_seconds: Window length in seconds

        Returns:
            RateLimitDecision: ``admitted`` False means nothing was counted and
            ``retry_after`` (1..window_seconds) says when to try again.
        """
        async with self._key_lock(key):
            if await self.store.too_many_attempts(key, max_attempts):
                available_in = await self.store.available_in(key)
                retry_after = min(max(1, math.ceil(available_in)), max(1, window_seconds))
                logger.debug(f"Rate limit reached for '{key}', retry in {retry_after}s",
                             key=key, retry_after=retry_after)
                return RateLimitDecision(admitted=False, retry_after=retry_after, remaining=0)

            await self.store.hit(key, window_seconds)
            remaining = await self.store.retries_left(key, max_attempts)
            return RateLimitDecision(admitted=True, remaining=remaining)

    async def reset(self, key: str) -> None:
        """Forget the current window for ``key``."""
        async with self._key_lock(key):
            await self.store.clear(key)
