#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
General utilities and helper classes for Tokscrape.

Includes Retry Logic, Performance Timer and an async LRU Cache with TTL.
"""

import asyncio
import random
import time
from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional, Tuple, Type

from config import config
from exceptions import TransientError
from logging_config import StructuredLogger

logger = StructuredLogger(__name__)


# --- Retry Logic ---

class RetryableRequest:
    """Handles requests with retry logic, optional backoff, and jitter.

    Provides static methods to execute async functions with automatic
    retries for specified exceptions.
    """

    @staticmethod
    async def execute_with_retry(
        func: Callable[..., Any],
        *args: Any,
        max_attempts: int = config.HTTP_RETRY_ATTEMPTS,
        delay_ms: int = config.HTTP_RETRY_DELAY_MS,
        backoff_factor: float = config.HTTP_RETRY_BACKOFF_FACTOR,
        retry_on_exceptions: Tuple[Type[BaseException], ...] = (TransientError,),
        should_retry: Optional[Callable[[BaseException], bool]] = None,
        jitter_factor: float = 0.0,
        operation_name: Optional[str] = None,
        **kwargs: Any
    ) -> Any:
        """Execute an async function, retrying on the given exceptions.

        The delay before attempt ``n + 1`` is ``delay_ms * backoff_factor ** (n - 1)``,
        so a factor of 1.0 gives a fixed delay.

        Args:
            func: The async function to execute.
            *args: Positional arguments for the function.
            max_attempts: Total number of attempts, including the first one.
            delay_ms: Base delay between attempts in milliseconds.
            backoff_factor: Multiplier applied to the delay after each failed attempt.
            retry_on_exceptions: Exception types that should trigger a retry.
            should_retry: Optional predicate that can veto a retry for a caught exception.
            jitter_factor: Factor for randomizing delay (0.0 to 1.0). 0 = no jitter.
            operation_name: Optional name for logging purposes. Defaults to func name.
            **kwargs: Keyword arguments for the function.

        Returns:
            The result of the function if successful.

        Raises:
            The last exception encountered after all attempts failed, or the first
            exception that is not retryable.
        """
        op_name = operation_name or getattr(func, '__name__', 'unknown_operation')
        attempts = max(1, int(max_attempts))

        for attempt in range(1, attempts + 1):
            try:
                logger.debug(f"Attempt {attempt}/{attempts} for operation '{op_name}'")
                return await func(*args, **kwargs)

            except retry_on_exceptions as e:
                if should_retry is not None and not should_retry(e):
                    logger.warning(
                        f"Non-retryable error in '{op_name}': {type(e).__name__}",
                        operation=op_name,
                        attempt=attempt,
                        error_type=type(e).__name__,
                        error_details=str(e)
                    )
                    raise

                if attempt >= attempts:
                    logger.error(
                        f"Operation '{op_name}' failed after {attempts} attempts.",
                        exc_info=False,
                        operation=op_name,
                        final_error_type=type(e).__name__,
                        final_error=str(e)
                    )
                    raise

                delay_seconds = (delay_ms / 1000.0) * (backoff_factor ** (attempt - 1))
                if jitter_factor:
                    delay_seconds *= 1 + (random.random() * 2 - 1) * jitter_factor
                # Clamp delay to a reasonable maximum
                actual_delay = max(0.0, min(delay_seconds, 60.0))

                logger.info(
                    f"Retrying '{op_name}' in {actual_delay:.2f} seconds (attempt {attempt + 1}/{attempts})",
                    operation=op_name,
                    delay_seconds=actual_delay,
                    next_attempt=attempt + 1,
                    total_attempts=attempts,
                    error_type=type(e).__name__
                )
                if actual_delay > 0:
                    await asyncio.sleep(actual_delay)

        # Unreachable: the loop either returns or raises
        raise RuntimeError(f"Retry logic exited unexpectedly for operation '{op_name}'.")


# --- Performance Timer ---

@contextmanager
def performance_timer(operation_name: str, threshold_ms: float = 100.0):
    """Context manager for timing operations with threshold-based logging.

    Logs the duration of the enclosed code block. Logs at INFO level if duration
    exceeds threshold_ms, WARNING if it significantly exceeds it, otherwise DEBUG.

    Args:
        operation_name: A descriptive name for the operation being timed.
        threshold_ms: Threshold in milliseconds. Defaults to 100ms.

    Yields:
        dict: Filled with ``duration_ms`` when the block exits.
    """
    timing: Dict[str, float] = {}
    start_time = time.monotonic()
    try:
        yield timing
    finally:
        duration_ms = (time.monotonic() - start_time) * 1000
        timing["duration_ms"] = duration_ms

        log_data = {
            "operation": operation_name,
            "duration_ms": round(duration_ms, 2),
            "threshold_ms": threshold_ms
        }

        if duration_ms > threshold_ms * 10:
            logger.warning(f"SLOW OPERATION: '{operation_name}' took {duration_ms:.2f}ms", **log_data)
        elif duration_ms > threshold_ms:
            logger.info(f"Performance watch: '{operation_name}' took {duration_ms:.2f}ms", **log_data)
        else:
            logger.debug(f"Performance: '{operation_name}' completed in {duration_ms:.2f}ms", **log_data)


# --- LRU Cache ---

class LRUCache:
    """Least Recently Used (LRU) Cache with Time-To-Live (TTL) support.

    When the cache is full, it discards a percentage of the least recently used
    items. A default TTL applies to every item and can be overridden per ``put``.
    Designed for use with asyncio (uses asyncio.Lock); every operation replaces
    or reads whole values under the lock.
    """

    def __init__(self, maxsize: int = 128, ttl_seconds: Optional[float] = None,
                 eviction_percent: int = config.CACHE_EVICTION_PERCENT,
                 time_func: Callable[[], float] = time.monotonic):
        """Initialize the LRU cache.

        Args:
            maxsize: The maximum number of items to store in the cache. Must be > 0.
            ttl_seconds: Default time-to-live in seconds for cached items.
                         If None, items do not expire unless a TTL is given to ``put``.
            eviction_percent: Percentage (1-100) of cache to evict when full.
            time_func: Monotonic clock, replaceable in tests.
        """
        if maxsize <= 0:
            raise ValueError("LRUCache maxsize must be greater than 0")
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self.eviction_percent = max(1, min(int(eviction_percent), 100))
        self._num_to_evict = max(1, int(self.maxsize * (self.eviction_percent / 100.0)))
        self._time = time_func

        self._cache: "OrderedDict[Any, Any]" = OrderedDict()
        self._expiry: Dict[Any, float] = {}
        self._lock = asyncio.Lock()

        self._stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "ttl_expirations": 0,
        }
        logger.debug(f"LRUCache initialized: maxsize={maxsize}, ttl={ttl_seconds}s")

    def _is_expired(self, key: Any) -> bool:
        expiry_time = self._expiry.get(key)
        return expiry_time is not None and self._time() >= expiry_time

    def _drop(self, key: Any) -> None:
        self._cache.pop(key, None)
        self._expiry.pop(key, None)

    async def get(self, key: Any) -> Optional[Any]:
        """Retrieve an item from the cache. Returns None if not found or expired."""
        async with self._lock:
            if key not in self._cache:
                self._stats["misses"] += 1
                return None

            if self._is_expired(key):
                self._stats["ttl_expirations"] += 1
                self._stats["misses"] += 1
                self._drop(key)
                return None

            value = self._cache[key]
            self._cache.move_to_end(key)
            self._stats["hits"] += 1
            return value

    async def put(self, key: Any, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Add or update an item in the cache.

        Args:
            key: The key of the item to store.
            value: The value to store.
            ttl_seconds: TTL for this item; falls back to the cache default.
        """
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        async with self._lock:
            if key not in self._cache and len(self._cache) >= self.maxsize:
                self._evict_lru_items()

            self._cache[key] = value
            self._cache.move_to_end(key)

            if ttl is not None:
                self._expiry[key] = self._time() + ttl
            else:
                self._expiry.pop(key, None)

    def _evict_lru_items(self) -> None:
        """Evict the oldest ``eviction_percent`` of items (at least one)."""
        for _ in range(self._num_to_evict):
            if not self._cache:
                break
            # popitem(last=False) removes the first (oldest) item
            old_key, _ = self._cache.popitem(last=False)
            self._expiry.pop(old_key, None)
            self._stats["evictions"] += 1

    async def remove(self, key: Any) -> bool:
        """Remove a specific item from the cache by key.

        Returns:
            bool: True if the item was found and removed, False otherwise.
        """
        async with self._lock:
            if key in self._cache:
                self._drop(key)
                return True
            return False

    async def remove_prefix(self, prefix: str) -> int:
        """Remove every item whose (string) key starts with ``prefix``.

        Returns:
            int: The number of items removed.
        """
        async with self._lock:
            doomed = [k for k in self._cache if isinstance(k, str) and k.startswith(prefix)]
            for key in doomed:
                self._drop(key)
            return len(doomed)

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache usage statistics.

        Returns:
            dict: A dictionary containing cache statistics.
        """
        async with self._lock:
            stats: Dict[str, Any] = dict(self._stats)
            stats["size"] = len(self._cache)
            stats["maxsize"] = self.maxsize
            stats["ttl_enabled"] = self.ttl_seconds is not None
            total_lookups = stats["hits"] + stats["misses"]
            stats["hit_ratio"] = (stats["hits"] / total_lookups) if total_lookups > 0 else 0.0
            return stats
