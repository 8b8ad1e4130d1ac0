"""
Tests for the LRUCache class.
"""
import unittest
import sys
import os

# Add the parent directory to the path so we can import the application modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from utils import LRUCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class TestLRUCache(unittest.IsolatedAsyncioTestCase):
    """Test cases for the LRUCache class."""

    async def asyncSetUp(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        # eviction_percent=1 evicts a single item when full
        self.cache = LRUCache(maxsize=3, ttl_seconds=10, eviction_percent=1, time_func=self.clock)

    async def test_put_and_get(self):
        """Test putting and getting items from the cache."""
        await self.cache.put("key1", "value1")

        self.assertEqual(await self.cache.get("key1"), "value1")
        self.assertIsNone(await self.cache.get("non-existent-key"))

    async def test_invalid_maxsize(self):
        with self.assertRaises(ValueError):
            LRUCache(maxsize=0)

    async def test_maxsize(self):
        """Test that the cache respects the maxsize limit."""
        await self.cache.put("key1", "value1")
        await self.cache.put("key2", "value2")
        await self.cache.put("key3", "value3")
        await self.cache.put("key4", "value4")  # This should evict key1

        self.assertIsNone(await self.cache.get("key1"))
        self.assertEqual(await self.cache.get("key2"), "value2")
        self.assertEqual(await self.cache.get("key3"), "value3")
        self.assertEqual(await self.cache.get("key4"), "value4")

    async def test_lru_policy(self):
        """Test that the cache follows the Least Recently Used policy."""
        await self.cache.put("key1", "value1")
        await self.cache.put("key2", "value2")
        await self.cache.put("key3", "value3")

        # Access key1 to make it the most recently used
        await self.cache.get("key1")

        # Put a new item, which should evict key2 (the least recently used)
        await self.cache.put("key4", "value4")

        self.assertIsNone(await self.cache.get("key2"))
        self.assertEqual(await self.cache.get("key1"), "value1")
        self.assertEqual(await self.cache.get("key3"), "value3")
        self.assertEqual(await self.cache.get("key4"), "value4")

    async def test_eviction_percent(self):
        """A full cache evicts the configured share of its oldest items."""
        cache = LRUCache(maxsize=10, eviction_percent=30)
        for i in range(10):
            await cache.put(f"key{i}", i)

        await cache.put("key10", 10)

        self.assertEqual((await cache.get_stats())["size"], 8)
        for i in range(3):
            self.assertIsNone(await cache.get(f"key{i}"))
        self.assertEqual(await cache.get("key3"), 3)
        self.assertEqual((await cache.get_stats())["evictions"], 3)

    async def test_ttl(self):
        """Test that items expire after the TTL."""
        await self.cache.put("key1", "value1")
        self.assertEqual(await self.cache.get("key1"), "value1")

        self.clock.advance(10)

        self.assertIsNone(await self.cache.get("key1"))
        stats = await self.cache.get_stats()
        self.assertEqual(stats["ttl_expirations"], 1)
        self.assertEqual(stats["size"], 0)

    async def test_ttl_per_item(self):
        """A TTL given to put overrides the default."""
        await self.cache.put("short", "value", ttl_seconds=1)
        await self.cache.put("default", "value")

        self.clock.advance(2)

        self.assertIsNone(await self.cache.get("short"))
        self.assertEqual(await self.cache.get("default"), "value")

    async def test_no_ttl(self):
        cache = LRUCache(maxsize=3, ttl_seconds=None, time_func=self.clock)
        await cache.put("key1", "value1")

        self.clock.advance(10 ** 6)

        self.assertEqual(await cache.get("key1"), "value1")
        self.assertFalse((await cache.get_stats())["ttl_enabled"])

    async def test_put_refreshes_ttl(self):
        await self.cache.put("key1", "value1")
        self.clock.advance(8)
        await self.cache.put("key1", "value2")
        self.clock.advance(8)

        self.assertEqual(await self.cache.get("key1"), "value2")

    async def test_remove(self):
        await self.cache.put("key1", "value1")

        self.assertTrue(await self.cache.remove("key1"))
        self.assertFalse(await self.cache.remove("key1"))
        self.assertIsNone(await self.cache.get("key1"))

    async def test_remove_prefix(self):
        """Only keys starting with the prefix are removed."""
        cache = LRUCache(maxsize=10)
        await cache.put("videos:a", 1)
        await cache.put("videos:b", 2)
        await cache.put("other:a", 3)
        await cache.put(42, 4)

        removed = await cache.remove_prefix("videos:")

        self.assertEqual(removed, 2)
        self.assertIsNone(await cache.get("videos:a"))
        self.assertEqual(await cache.get("other:a"), 3)
        self.assertEqual(await cache.get(42), 4)

    async def test_get_stats(self):
        """Test getting cache statistics."""
        await self.cache.put("key1", "value1")
        await self.cache.put("key2", "value2")

        await self.cache.get("key1")
        await self.cache.get("non-existent-key")

        stats = await self.cache.get_stats()

        self.assertEqual(stats["size"], 2)
        self.assertEqual(stats["maxsize"], 3)
        self.assertEqual(stats["hits"], 1)
        self.assertEqual(stats["misses"], 1)
        self.assertTrue(stats["ttl_enabled"])
        self.assertEqual(stats["hit_ratio"], 0.5)

    async def test_update_existing_item(self):
        """Updating a key in a full cache evicts nothing."""
        await self.cache.put("key1", "value1")
        await self.cache.put("key2", "value2")
        await self.cache.put("key3", "value3")

        await self.cache.put("key1", "updated-value")

        self.assertEqual(await self.cache.get("key1"), "updated-value")
        self.assertEqual((await self.cache.get_stats())["size"], 3)


if __name__ == '__main__':
    unittest.main()
