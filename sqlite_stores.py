#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
SQLite backed cache and statistics stores.

Unlike the in-memory stores, state survives restarts and is shared by every
process that opens the same database file, so a CLI run sees what the server
(or an earlier CLI run) cached and counted. Queries run in the default
executor to keep the event loop free.
"""

import asyncio
import functools
import json
import os
import sqlite3
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, List, Optional

from config import config
from logging_config import StructuredLogger
from services.interfaces import CacheStore, StatisticsStore
from stores import STATISTICS_COUNTERS

logger = StructuredLogger(__name__)

DEFAULT_STATE_DB = os.path.join(os.path.expanduser("~"), ".tokscrape", "state.db")


class SqliteDatabase:
    """Opens short-lived connections to one database file and creates the schema."""

    SCHEMA = (
        """
        CREATE TABLE IF NOT EXISTS cache (
            key TEXT PRIMARY KEY,
            value BLOB NOT NULL,
            expires_at REAL NOT NULL,
            stored_at REAL NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS cache_expires_at ON cache (expires_at)",
        """
        CREATE TABLE IF NOT EXISTS counters (
            name TEXT PRIMARY KEY,
            value INTEGER NOT NULL DEFAULT 0
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS activity (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            entry TEXT NOT NULL
        )
        """,
    )

    def __init__(self, path: str = DEFAULT_STATE_DB):
        self.path = path
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
        with self.connection() as conn:
            for statement in self.SCHEMA:
                conn.execute(statement)
        logger.debug(f"State database ready at {path}", path=path)

    @contextmanager
    def connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Yield a connection that commits on success and rolls back on error."""
        conn = sqlite3.connect(self.path, timeout=30.0)
        try:
            conn.execute("PRAGMA busy_timeout=30000")
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    async def run(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))


class SqliteCacheStore(CacheStore):
    """CacheStore keeping serialized records in the ``cache`` table.

    Expired rows are dropped lazily on read and swept on every write. When the
    table holds more than ``maxsize`` rows the oldest writes are evicted.
    Expiry uses wall-clock time, since it has to mean the same thing across processes.
    """

    def __init__(self, database: SqliteDatabase, maxsize: int = config.CACHE_MAX_ENTRIES,
                 time_func: Callable[[], float] = time.time):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self.database = database
        self.maxsize = maxsize
        self._time = time_func

    def _get(self, key: str) -> Optional[bytes]:
        with self.database.connection() as conn:
            row = conn.execute("SELECT value, expires_at FROM cache WHERE key = ?", (key,)).fetchone()
            if row is None:
                return None
            if self._time() >= row[1]:
                conn.execute("DELETE FROM cache WHERE key = ?", (key,))
                return None
            return bytes(row[0])

    def _put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        now = self._time()
        with self.database.connection() as conn:
            conn.execute("DELETE FROM cache WHERE expires_at <= ?", (now,))
            conn.execute(
                "INSERT OR REPLACE INTO cache (key, value, expires_at, stored_at) VALUES (?, ?, ?, ?)",
                (key, sqlite3.Binary(value), now + ttl_seconds, now),
            )
            overflow = conn.execute("SELECT COUNT(*) FROM cache").fetchone()[0] - self.maxsize
            if overflow > 0:
                conn.execute(
                    "DELETE FROM cache WHERE key IN (SELECT key FROM cache ORDER BY stored_at, rowid LIMIT ?)",
                    (overflow,),
                )
                logger.debug(f"Evicted {overflow} cache rows over the size limit", evicted=overflow)

    def _forget(self, key: str) -> bool:
        with self.database.connection() as conn:
            return conn.execute("DELETE FROM cache WHERE key = ?", (key,)).rowcount > 0

    def _flush_namespace(self, prefix: str) -> int:
        with self.database.connection() as conn:
            # substr avoids LIKE wildcards in the prefix
            return conn.execute(
                "DELETE FROM cache WHERE substr(key, 1, ?) = ?", (len(prefix), prefix)
            ).rowcount

    def _get_stats(self) -> Dict[str, Any]:
        with self.database.connection() as conn:
            size = conn.execute("SELECT COUNT(*) FROM cache WHERE expires_at > ?", (self._time(),)).fetchone()[0]
        return {"backend": "sqlite", "path": self.database.path, "size": size, "maxsize": self.maxsize}

    async def get(self, key: str) -> Optional[bytes]:
        return await self.database.run(self._get, key)

    async def put(self, key: str, value: bytes, ttl_seconds: int) -> None:
        await self.database.run(self._put, key, value, ttl_seconds)

    async def forget(self, key: str) -> bool:
        return await self.database.run(self._forget, key)

    async def flush_namespace(self, prefix: str) -> int:
        removed = await self.database.run(self._flush_namespace, prefix)
        logger.debug(f"Flushed {removed} cache rows with prefix '{prefix}'", prefix=prefix, removed=removed)
        return removed

    async def get_stats(self) -> Dict[str, Any]:
        return await self.database.run(self._get_stats)


class SqliteStatisticsStore(StatisticsStore):
    """StatisticsStore with one row per counter and an ``activity`` table trimmed to ``activity_size``."""

    def __init__(self, database: SqliteDatabase, activity_size: int = config.RECENT_ACTIVITY_SIZE):
        self.database = database
        self.activity_size = max(1, activity_size)

    def _increment(self, name: str, amount: int) -> int:
        with self.database.connection() as conn:
            conn.execute(
                "INSERT INTO counters (name, value) VALUES (?, ?) "
                "ON CONFLICT(name) DO UPDATE SET value = value + excluded.value",
                (name, amount),
            )
            return conn.execute("SELECT value FROM counters WHERE name = ?", (name,)).fetchone()[0]

    def _get_all(self) -> Dict[str, int]:
        counters = {name: 0 for name in STATISTICS_COUNTERS}
        with self.database.connection() as conn:
            counters.update(conn.execute("SELECT name, value FROM counters").fetchall())
        return counters

    def _append_activity(self, entry: Dict[str, Any]) -> None:
        with self.database.connection() as conn:
            cursor = conn.execute("INSERT INTO activity (entry) VALUES (?)", (json.dumps(entry, default=str),))
            conn.execute("DELETE FROM activity WHERE id <= ?", (cursor.lastrowid - self.activity_size,))

    def _recent_activity(self, limit: Optional[int]) -> List[Dict[str, Any]]:
        limit = self.activity_size if limit is None else max(0, min(limit, self.activity_size))
        with self.database.connection() as conn:
            rows = conn.execute("SELECT entry FROM activity ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [json.loads(row[0]) for row in rows]

    def _reset(self) -> None:
        with self.database.connection() as conn:
            conn.execute("DELETE FROM counters")
            conn.execute("DELETE FROM activity")

    async def increment(self, name: str, amount: int = 1) -> int:
        return await self.database.run(self._increment, name, amount)

    async def get(self, name: str) -> int:
        return (await self.get_all()).get(name, 0)

    async def get_all(self) -> Dict[str, int]:
        return await self.database.run(self._get_all)

    async def append_activity(self, entry: Dict[str, Any]) -> None:
        await self.database.run(self._append_activity, dict(entry))

    async def recent_activity(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self.database.run(self._recent_activity, limit)

    async def reset(self) -> None:
        await self.database.run(self._reset)
        logger.info("Scraper statistics reset.", path=self.database.path)
