#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Cache Manager for Tokscrape.

Stores serialized ``VideoRecord`` objects in a ``CacheStore`` under keys derived
from the request URL.

Keys are derived from the URL exactly as the caller passed it. No normalization
is applied, so ``.../video/1`` and ``.../video/1/`` (or the same query
parameters in a different order) are cached separately. Callers that want
shared entries must normalize URLs themselves before scraping.
"""

import hashlib
import json
from typing import Any, Dict, Optional

from config import config
from logging_config import StructuredLogger
from models import VideoRecord
from services.interfaces import CacheStore

logger = StructuredLogger(__name__)


def derive_cache_key(prefix: str, url: str) -> str:
    """Build the cache key ``{prefix}:{md5(url)}``.

    Args:
        prefix: Cache namespace
        url: Request URL, used byte-for-byte

    Returns:
        str: Deterministic cache key
    """
    digest = hashlib.md5(url.encode("utf-8"), usedforsecurity=False).hexdigest()
    return f"{prefix}:{digest}"


class VideoCacheManager:
    """Reads and writes video records through a ``CacheStore``.

    A corrupt entry (undecodable JSON, missing video id) is treated as a miss
    and removed from the store.
    """

    def __init__(self, store: CacheStore, prefix: str = config.CACHE_PREFIX,
                 ttl_seconds: int = config.CACHE_TTL_SECONDS):
        """Initialize the cache manager.

        Args:
            store: Backing key-value store
            prefix: Namespace for every key written by this manager
            ttl_seconds: Lifetime of a cached record
        """
        self.store = store
        self.prefix = prefix
        self.ttl_seconds = ttl_seconds

    def cache_key(self, url: str) -> str:
        return derive_cache_key(self.prefix, url)

    async def get(self, url: str) -> Optional[VideoRecord]:
        """Return the cached record for ``url``, or None."""
        key = self.cache_key(url)
        raw = await self.store.get(key)
        if raw is None:
            return None

        try:
            return VideoRecord.from_dict(json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.warning(f"Discarding corrupt cache entry for {url}: {e}", url=url, cache_key=key)
            await self.store.forget(key)
            return None

    async def put(self, url: str, record: VideoRecord) -> None:
        """Cache ``record`` under the key for ``url``, replacing any previous entry."""
        key = self.cache_key(url)
        payload = json.dumps(record.to_dict(include_raw=True), ensure_ascii=False).encode("utf-8")
        await self.store.put(key, payload, self.ttl_seconds)
        logger.debug(f"Cached record {record.video_id} for {self.ttl_seconds}s", url=url, cache_key=key)

    async def forget(self, url: str) -> bool:
        """Remove the entry for ``url``. Returns True if one was present."""
        return await self.store.forget(self.cache_key(url))

    async def flush(self) -> int:
        """Remove every entry in this manager's namespace."""
        removed = await self.store.flush_namespace(f"{self.prefix}:")
        logger.info(f"Cleared {removed} cached video records", prefix=self.prefix, removed=removed)
        return removed

    async def get_stats(self) -> Dict[str, Any]:
        """Statistics from the backing store, when it provides any."""
        stats: Dict[str, Any] = {"prefix": self.prefix, "ttl_seconds": self.ttl_seconds}
        get_store_stats = getattr(self.store, "get_stats", None)
        if get_store_stats is not None:
            stats["store"] = await get_store_stats()
        return stats
