"""
Tests for the SQLite backed cache and statistics stores.
"""
import asyncio
import tempfile
import unittest
import sys
import os
from pathlib import Path

# Add the parent directory to the path so we can import the application modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlite_stores import SqliteCacheStore, SqliteDatabase, SqliteStatisticsStore
from stores import STATISTICS_COUNTERS


class SqliteTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.db_path = str(Path(tmp.name) / "nested" / "state.db")
        self.database = SqliteDatabase(self.db_path)


class TestSqliteCacheStore(SqliteTestCase):
    """Test cases for SqliteCacheStore."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.now = 1000.0
        self.store = SqliteCacheStore(self.database, maxsize=3, time_func=lambda: self.now)

    async def test_put_get_forget(self):
        await self.store.put("ns:a", b"value", 60)

        self.assertEqual(await self.store.get("ns:a"), b"value")
        self.assertTrue(await self.store.forget("ns:a"))
        self.assertIsNone(await self.store.get("ns:a"))
        self.assertFalse(await self.store.forget("ns:a"))

    async def test_put_replaces(self):
        await self.store.put("ns:a", b"old", 60)
        await self.store.put("ns:a", b"new", 60)

        self.assertEqual(await self.store.get("ns:a"), b"new")
        self.assertEqual((await self.store.get_stats())["size"], 1)

    async def test_ttl(self):
        await self.store.put("ns:a", b"value", 60)

        self.now += 60

        self.assertIsNone(await self.store.get("ns:a"))

    async def test_evicts_oldest_over_maxsize(self):
        for n in range(4):
            self.now += 1
            await self.store.put(f"ns:{n}", str(n).encode(), 60)

        self.assertIsNone(await self.store.get("ns:0"))
        self.assertEqual(await self.store.get("ns:3"), b"3")
        self.assertEqual((await self.store.get_stats())["size"], 3)

    async def test_flush_namespace(self):
        await self.store.put("ns:a", b"1", 60)
        await self.store.put("ns:b", b"2", 60)
        await self.store.put("nsx:c", b"3", 60)

        self.assertEqual(await self.store.flush_namespace("ns:"), 2)
        self.assertEqual(await self.store.get("nsx:c"), b"3")

    async def test_flush_namespace_is_literal(self):
        """Percent and underscore in a prefix are not wildcards."""
        await self.store.put("n_:a", b"1", 60)
        await self.store.put("ns:a", b"2", 60)

        self.assertEqual(await self.store.flush_namespace("n_:"), 1)
        self.assertEqual(await self.store.get("ns:a"), b"2")
        self.assertEqual(await self.store.flush_namespace("%"), 0)

    async def test_shared_between_instances(self):
        await self.store.put("ns:a", b"value", 60)

        other = SqliteCacheStore(SqliteDatabase(self.db_path), time_func=lambda: self.now)

        self.assertEqual(await other.get("ns:a"), b"value")


class TestSqliteStatisticsStore(SqliteTestCase):
    """Test cases for SqliteStatisticsStore."""

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.store = SqliteStatisticsStore(self.database, activity_size=3)

    async def test_counters_start_at_zero(self):
        counters = await self.store.get_all()
        self.assertEqual(set(counters), set(STATISTICS_COUNTERS))
        self.assertTrue(all(value == 0 for value in counters.values()))

    async def test_increment(self):
        self.assertEqual(await self.store.increment("total_requests"), 1)
        self.assertEqual(await self.store.increment("total_requests", 4), 5)
        self.assertEqual(await self.store.get("total_requests"), 5)
        self.assertEqual(await self.store.get("cache_hits"), 0)

    async def test_concurrent_increments(self):
        await asyncio.gather(*(self.store.increment("total_requests") for _ in range(20)))
        self.assertEqual(await self.store.get("total_requests"), 20)

    async def test_activity_ring(self):
        for n in range(5):
            await self.store.append_activity({"n": n, "outcome": "success"})

        self.assertEqual([entry["n"] for entry in await self.store.recent_activity()], [4, 3, 2])
        self.assertEqual([entry["n"] for entry in await self.store.recent_activity(limit=2)], [4, 3])

    async def test_reset(self):
        await self.store.increment("failed_scrapes")
        await self.store.append_activity({"n": 1})

        await self.store.reset()

        self.assertEqual(await self.store.get("failed_scrapes"), 0)
        self.assertEqual(await self.store.recent_activity(), [])

    async def test_shared_between_instances(self):
        await self.store.increment("successful_scrapes", 2)
        await self.store.append_activity({"n": 1})

        other = SqliteStatisticsStore(SqliteDatabase(self.db_path), activity_size=3)

        self.assertEqual(await other.get("successful_scrapes"), 2)
        self.assertEqual(await other.recent_activity(), [{"n": 1}])


if __name__ == '__main__':
    unittest.main()
