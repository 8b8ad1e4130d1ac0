#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
TikTok Scraper Engine for Tokscrape.

Orchestrates a scrape: URL validation, rate limiting, cache lookup, page fetch,
payload location and decoding, metadata extraction, caching of the result, and
the statistics, activity and event bookkeeping around all of it.
"""

import asyncio
import functools
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

import httpx

from cache_manager import VideoCacheManager
from config import Config, config
from events import EventDispatcher, RateLimitHit, ScrapingFailed, VideoScraped
from exceptions import InvalidUrlError, NetworkError, RateLimitError, ScraperError
from logging_config import StructuredLogger
from models import ActivityEntry, VideoRecord
from services.extractor import MetadataExtractor
from services.fetcher import PageFetcher, RetryingPageFetcher
from services.interfaces import CacheStore, StatisticsStore
from services.payload import PayloadLocator, PayloadParser
from services.rate_limiter import RateLimitGate
from services.url_classifier import is_valid_tiktok_url
from sqlite_stores import SqliteCacheStore, SqliteDatabase, SqliteStatisticsStore
from stores import InMemoryCacheStore, InMemoryRateLimitStore, InMemoryStatisticsStore
from utils import performance_timer

logger = StructuredLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TikTokScraperEngine:
    """Scrapes TikTok video pages into ``VideoRecord`` objects.

    Collaborators are injected so each can be replaced independently; use
    ``from_config`` for the in-memory defaults. One instance is meant to live
    for the whole application and is safe to share between concurrent tasks.
    """

    def __init__(self,
                 fetcher: RetryingPageFetcher,
                 cache: VideoCacheManager,
                 rate_limit_gate: RateLimitGate,
                 statistics: StatisticsStore,
                 events: Optional[EventDispatcher] = None,
                 locator: Optional[PayloadLocator] = None,
                 parser: Optional[PayloadParser] = None,
                 extractor: Optional[MetadataExtractor] = None,
                 cache_enabled: bool = config.CACHE_ENABLED,
                 rate_limit_enabled: bool = config.RATE_LIMIT_ENABLED,
                 rate_limit_max_attempts: int = config.RATE_LIMIT_MAX_ATTEMPTS,
                 rate_limit_window_seconds: int = config.RATE_LIMIT_WINDOW_SECONDS,
                 rate_limit_prefix: str = config.RATE_LIMIT_PREFIX,
                 batch_concurrency: int = config.BATCH_CONCURRENCY,
                 logging_enabled: bool = config.LOGGING_ENABLED,
                 clock: Callable[[], datetime] = _utcnow):
        """Initialize the scraper engine.

        Args:
            fetcher: Page fetcher (with retries).
            cache: Video record cache.
            rate_limit_gate: Gate consulted before every scrape.
            statistics: Counter and activity store.
            events: Event dispatcher. A disabled one is used if omitted.
            locator: Payload locator.
            parser: Payload parser.
            extractor: Metadata extractor.
            cache_enabled: Whether results are read from and written to the cache.
            rate_limit_enabled: Whether the rate limit gate is consulted.
            rate_limit_max_attempts: Scrapes allowed per window.
            rate_limit_window_seconds: Rate limit window length.
            rate_limit_prefix: Rate limit key (and prefix of per-caller keys).
            batch_concurrency: Concurrent scrapes in ``scrape_multiple``.
            logging_enabled: Whether scrape outcomes are logged.
            clock: Source of activity timestamps.
        """
        self.fetcher = fetcher
        self.cache = cache
        self.rate_limit_gate = rate_limit_gate
        self.statistics = statistics
        self.events = events or EventDispatcher(enabled=False)
        self.locator = locator or PayloadLocator()
        self.parser = parser or PayloadParser()
        self.extractor = extractor or MetadataExtractor(clock=clock)

        self.cache_enabled = cache_enabled
        self.rate_limit_enabled = rate_limit_enabled
        self.rate_limit_max_attempts = rate_limit_max_attempts
        self.rate_limit_window_seconds = rate_limit_window_seconds
        self.rate_limit_prefix = rate_limit_prefix
        self.batch_concurrency = max(1, batch_concurrency)
        self.clock = clock

        self.log = StructuredLogger(__name__, enabled=logging_enabled)

        self._in_flight: Set["asyncio.Future[str]"] = set()
        self._closing = False
        logger.info("TikTokScraperEngine initialized.")

    @classmethod
    def from_config(cls, cfg: Config = config, client: Optional[httpx.AsyncClient] = None,
                    clock: Callable[[], datetime] = _utcnow,
                    state_db_path: Optional[str] = None) -> "TikTokScraperEngine":
        """Build an engine from configuration.

        Cache and statistics live in memory unless a state database is given
        (``state_db_path`` or the STATE_DB_PATH setting), in which case they are
        kept in SQLite and shared with every process using the same file.
        Rate limit windows always stay in memory.

        Args:
            cfg: Configuration to read settings from.
            client: Optional HTTP client for the page fetcher.
            clock: Source of capture and activity timestamps.
            state_db_path: Overrides STATE_DB_PATH.
        """
        page_fetcher = PageFetcher(
            client=client,
            headers=cfg.http_headers(),
            timeout=cfg.HTTP_TIMEOUT_SECONDS,
            connect_timeout=cfg.HTTP_CONNECT_TIMEOUT_SECONDS,
        )
        fetcher = RetryingPageFetcher(
            page_fetcher,
            max_attempts=cfg.HTTP_RETRY_ATTEMPTS,
            delay_ms=cfg.HTTP_RETRY_DELAY_MS,
            backoff_factor=cfg.HTTP_RETRY_BACKOFF_FACTOR,
            jitter_factor=cfg.HTTP_RETRY_JITTER_FACTOR,
            retry_on_empty_body=cfg.RETRY_ON_EMPTY_BODY,
        )
        state_db_path = cfg.STATE_DB_PATH if state_db_path is None else state_db_path
        if state_db_path:
            database = SqliteDatabase(state_db_path)
            cache_store: CacheStore = SqliteCacheStore(database, maxsize=cfg.CACHE_MAX_ENTRIES)
            statistics: StatisticsStore = SqliteStatisticsStore(database, activity_size=cfg.RECENT_ACTIVITY_SIZE)
        else:
            cache_store = InMemoryCacheStore(maxsize=cfg.CACHE_MAX_ENTRIES)
            statistics = InMemoryStatisticsStore(activity_size=cfg.RECENT_ACTIVITY_SIZE)
        cache = VideoCacheManager(
            cache_store,
            prefix=cfg.CACHE_PREFIX,
            ttl_seconds=cfg.CACHE_TTL_SECONDS,
        )
        return cls(
            fetcher=fetcher,
            cache=cache,
            rate_limit_gate=RateLimitGate(InMemoryRateLimitStore()),
            statistics=statistics,
            events=EventDispatcher(enabled=cfg.EVENTS_ENABLED),
            extractor=MetadataExtractor(clock=clock),
            cache_enabled=cfg.CACHE_ENABLED,
            rate_limit_enabled=cfg.RATE_LIMIT_ENABLED,
            rate_limit_max_attempts=cfg.RATE_LIMIT_MAX_ATTEMPTS,
            rate_limit_window_seconds=cfg.RATE_LIMIT_WINDOW_SECONDS,
            rate_limit_prefix=cfg.RATE_LIMIT_PREFIX,
            batch_concurrency=cfg.BATCH_CONCURRENCY,
            logging_enabled=cfg.LOGGING_ENABLED,
            clock=clock,
        )

    # --- Public API ---

    @staticmethod
    def is_valid_tiktok_url(url: Any) -> bool:
        """Check whether ``url`` is a TikTok URL this engine accepts."""
        return is_valid_tiktok_url(url)

    async def scrape(self, url: str, use_cache: bool = True, caller: Optional[str] = None,
                     deadline: Optional[float] = None) -> VideoRecord:
        """Scrape one TikTok video page.

        Args:
            url: TikTok video URL.
            use_cache: Return a cached record when one is available.
            caller: Optional caller identity; gives the caller its own rate limit window.
            deadline: Optional limit in seconds for the page fetch, retries included.

        Returns:
            VideoRecord: The extracted (or cached) video metadata.

        Raises:
            InvalidUrlError: If ``url`` is not a TikTok URL.
            RateLimitError: If the rate limit window is exhausted.
            NetworkError: If the page could not be fetched.
            EmptyBodyError: If TikTok answered with an empty body.
            PayloadNotFoundError: If the page carries no rehydration payload.
            PayloadDecodeError: If the payload is not valid JSON.
            StructureError: If the payload does not describe a video.
        """
        start_time = time.monotonic()
        await self.statistics.increment("total_requests")

        try:
            if not self.is_valid_tiktok_url(url):
                raise InvalidUrlError(url)

            if self.rate_limit_enabled:
                await self._check_rate_limit(url, caller)

            if self.cache_enabled and use_cache:
                cached = await self.cache.get(url)
                if cached is not None:
                    await self._record_cache_hit(url, cached, start_time)
                    return cached

            record = await self._scrape_page(url, deadline)

            if self.cache_enabled:
                await self._store_in_cache(url, record)

        except Exception as e:
            await self._record_failure(url, e, start_time)
            raise

        await self._record_success(url, record, start_time)
        return record

    async def scrape_multiple(self, urls: List[str], use_cache: bool = True,
                              caller: Optional[str] = None) -> List[VideoRecord]:
        """Scrape several URLs, skipping the ones that fail.

        At most ``batch_concurrency`` scrapes run at a time.

        Returns:
            list: Records for the successful URLs, in input order.
        """
        semaphore = asyncio.Semaphore(self.batch_concurrency)

        async def _scrape_one(url: str) -> Optional[VideoRecord]:
            async with semaphore:
                try:
                    return await self.scrape(url, use_cache=use_cache, caller=caller)
                except ScraperError as e:
                    logger.warning(f"Skipping {url} in batch: {e.message}", url=url, error_code=e.error_code)
                except Exception as e:
                    logger.error(f"Unexpected error scraping {url} in batch: {e}", url=url)
                return None

        results = await asyncio.gather(*(_scrape_one(url) for url in urls))
        records = [record for record in results if record is not None]
        logger.info(f"Batch scrape finished: {len(records)}/{len(urls)} succeeded",
                    total=len(urls), succeeded=len(records))
        return records

    async def get_cached_details(self, url: str) -> Optional[VideoRecord]:
        """Return the cached record for ``url`` without scraping, or None."""
        if not self.cache_enabled or not self.is_valid_tiktok_url(url):
            return None
        return await self.cache.get(url)

    async def has_cached_result(self, url: str) -> bool:
        return await self.get_cached_details(url) is not None

    async def clear_cache(self, url: Optional[str] = None) -> bool:
        """Clear the cached record for ``url``, or the whole cache namespace.

        Returns:
            bool: False if ``url`` is not a valid TikTok URL or caching is
            disabled (the store is not touched), True otherwise.
        """
        if url is not None:
            if not self.is_valid_tiktok_url(url):
                logger.warning(f"Refusing to clear cache for invalid URL: {url}", url=url)
                return False
            if not self.cache_enabled:
                return False
            removed = await self.cache.forget(url)
            logger.info(f"Cache cleared for {url}", url=url, removed=removed)
            return True

        if not self.cache_enabled:
            return False
        await self.cache.flush()
        return True

    async def get_statistics(self) -> Dict[str, int]:
        """Current counter values."""
        return await self.statistics.get_all()

    async def get_recent_activity(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Most recent outcomes, newest first."""
        return await self.statistics.recent_activity(limit)

    async def reset_statistics(self) -> None:
        await self.statistics.reset()

    async def record_rate_limit_hit(self, key: str, retry_after: int) -> None:
        """Count a rejection made outside the engine (e.g. by the HTTP middleware)."""
        await self.statistics.increment("rate_limit_hits")
        self.events.emit(RateLimitHit(key=key, retry_after=retry_after))

    async def shutdown(self):
        """Cancel in-flight fetches and close the HTTP client."""
        logger.info("Shutting down TikTokScraperEngine...")
        self._closing = True

        pending = [task for task in self._in_flight if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info(f"Cancelled {len(pending)} in-flight fetch(es).")

        await self.fetcher.aclose()
        await self.events.drain()
        logger.info("TikTokScraperEngine shut down complete.")

    # --- Pipeline ---

    def _rate_limit_key(self, caller: Optional[str]) -> str:
        return f"{self.rate_limit_prefix}:{caller}" if caller else self.rate_limit_prefix

    async def _check_rate_limit(self, url: str, caller: Optional[str]) -> None:
        key = self._rate_limit_key(caller)
        decision = await self.rate_limit_gate.admit(
            key, self.rate_limit_max_attempts, self.rate_limit_window_seconds
        )
        if decision.admitted:
            return

        await self.statistics.increment("rate_limit_hits")
        self.events.emit(RateLimitHit(key=key, retry_after=decision.retry_after, url=url))
        self.log.warning(f"Rate limit exceeded, retry in {decision.retry_after}s",
                         url=url, key=key, retry_after=decision.retry_after)
        raise RateLimitError(retry_after=decision.retry_after, url=url)

    async def _scrape_page(self, url: str, deadline: Optional[float]) -> VideoRecord:
        """Fetch, locate, parse and extract. The first failing stage raises."""
        with performance_timer("fetch_page", threshold_ms=2000):
            html = await self._fetch(url, deadline)

        loop = asyncio.get_running_loop()
        with performance_timer("parse_page"):
            return await loop.run_in_executor(None, functools.partial(self._parse_page, html, url))

    async def _fetch(self, url: str, deadline: Optional[float]) -> str:
        if self._closing:
            raise NetworkError("Scraper is shutting down", url=url)

        task = asyncio.ensure_future(self.fetcher.fetch(url))
        self._in_flight.add(task)
        try:
            if deadline is not None:
                return await asyncio.wait_for(task, timeout=deadline)
            return await task
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Fetch deadline of {deadline}s exceeded", url=url, cause=e) from e
        except asyncio.CancelledError:
            if self._closing:
                raise NetworkError("Fetch cancelled: scraper is shutting down", url=url)
            raise
        finally:
            self._in_flight.discard(task)

    def _parse_page(self, html: str, url: str) -> VideoRecord:
        payload = self.locator.locate(html, url=url)
        tree = self.parser.parse(payload, url=url)
        return self.extractor.extract(tree, url)

    async def _store_in_cache(self, url: str, record: VideoRecord) -> None:
        try:
            await self.cache.put(url, record)
        except Exception as e:
            # Cache failures never fail a scrape
            logger.error(f"Failed to cache record for {url}: {e}", url=url)

    # --- Bookkeeping ---

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return round((time.monotonic() - start_time) * 1000, 2)

    async def _record_success(self, url: str, record: VideoRecord, start_time: float) -> None:
        response_time_ms = self._elapsed_ms(start_time)
        await self.statistics.increment("successful_scrapes")
        await self.statistics.append_activity(ActivityEntry(
            url=url, outcome="success", timestamp=self.clock(),
            response_time_ms=response_time_ms, video_id=record.video_id,
            username=record.username,
        ).to_dict())
        self.events.emit(VideoScraped(url=url, video=record, response_time_ms=response_time_ms))
        self.log.info("Successfully scraped TikTok video", url=url, video_id=record.video_id,
                      username=record.username, response_time_ms=response_time_ms)

    async def _record_cache_hit(self, url: str, record: VideoRecord, start_time: float) -> None:
        response_time_ms = self._elapsed_ms(start_time)
        await self.statistics.increment("cache_hits")
        await self.statistics.append_activity(ActivityEntry(
            url=url, outcome="cache_hit", timestamp=self.clock(),
            response_time_ms=response_time_ms, from_cache=True,
            video_id=record.video_id, username=record.username,
        ).to_dict())
        self.log.debug("Served TikTok video from cache", url=url, video_id=record.video_id)

    async def _record_failure(self, url: str, error: Exception, start_time: float) -> None:
        response_time_ms = self._elapsed_ms(start_time)
        await self.statistics.increment("failed_scrapes")

        if isinstance(error, ScraperError):
            error_code: Optional[str] = error.error_code
            message = error.message
        else:
            error_code = "INTERNAL_ERROR"
            message = str(error) or type(error).__name__

        await self.statistics.append_activity(ActivityEntry(
            url=str(url), outcome="rate_limited" if isinstance(error, RateLimitError) else "failed",
            timestamp=self.clock(), response_time_ms=response_time_ms,
            error_code=error_code, error_message=message,
        ).to_dict())
        self.events.emit(ScrapingFailed(url=str(url), error=error, response_time_ms=response_time_ms))

        if isinstance(error, ScraperError):
            self.log.error(f"Failed to scrape TikTok video: {message}", exc_info=False,
                           response_time_ms=response_time_ms, **error.to_log_context())
        else:
            self.log.critical(f"Unexpected error scraping TikTok video: {error}",
                              url=str(url), response_time_ms=response_time_ms)
