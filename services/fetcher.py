#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
HTTP retrieval of TikTok video pages.

``PageFetcher`` performs exactly one GET per call. ``RetryingPageFetcher`` wraps
any fetcher with bounded retries for transient failures.
"""

from typing import Dict, Optional, Tuple, Type

import httpx

from config import config
from exceptions import EmptyBodyError, NetworkError
from logging_config import StructuredLogger
from utils import RetryableRequest

logger = StructuredLogger(__name__)


class PageFetcher:
    """Fetches page HTML with a shared ``httpx.AsyncClient``.

    Redirects are followed so short links resolve to the video page. The
    client is created on first use unless one is injected (tests pass a client
    built on ``httpx.MockTransport``).
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 headers: Optional[Dict[str, str]] = None,
                 timeout: float = config.HTTP_TIMEOUT_SECONDS,
                 connect_timeout: float = config.HTTP_CONNECT_TIMEOUT_SECONDS):
        """Initialize the fetcher.

        Args:
            client: Optional preconfigured HTTP client. Closed by ``aclose``.
            headers: Default request headers. Defaults to the configured browser-like set.
            timeout: Default total timeout in seconds.
            connect_timeout: Default connection timeout in seconds.
        """
        self._client = client
        self.headers = dict(headers) if headers is not None else config.http_headers()
        self.timeout = timeout
        self.connect_timeout = connect_timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(follow_redirects=True)
        return self._client

    async def fetch(self, url: str, timeout: Optional[float] = None,
                    connect_timeout: Optional[float] = None,
                    headers: Optional[Dict[str, str]] = None) -> str:
        """Retrieve the page body for ``url``.

        Args:
            url: Page URL
            timeout: Total timeout override in seconds
            connect_timeout: Connection timeout override in seconds
            headers: Headers merged over the default set

        Returns:
            str: The response body

        Raises:
            NetworkError: On transport failure or a non-2xx status
            EmptyBodyError: When the response body is empty
        """
        request_headers = {**self.headers, **(headers or {})}
        request_timeout = httpx.Timeout(
            timeout if timeout is not None else self.timeout,
            connect=connect_timeout if connect_timeout is not None else self.connect_timeout,
        )

        try:
            response = await self._get_client().get(
                url,
                headers=request_headers,
                timeout=request_timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise NetworkError(
                f"Network error fetching page: HTTP {status_code}",
                url=url, cause=e, status_code=status_code
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                f"Network error fetching page: {type(e).__name__}: {e}",
                url=url, cause=e
            ) from e

        html = response.text
        if not html:
            raise EmptyBodyError(url=url)

        logger.debug(f"Fetched {len(html)} characters from {url}", url=url,
                     status_code=response.status_code, final_url=str(response.url))
        return html

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()


class RetryingPageFetcher:
    """Adds bounded retries to a ``PageFetcher``.

    ``NetworkError`` is retried unless it carries an HTTP 4xx status other than
    429. ``EmptyBodyError`` is retried when ``retry_on_empty_body`` is set.
    After the last attempt the last error is raised unchanged.
    """

    def __init__(self, fetcher: PageFetcher,
                 max_attempts: int = config.HTTP_RETRY_ATTEMPTS,
                 delay_ms: int = config.HTTP_RETRY_DELAY_MS,
                 backoff_factor: float = config.HTTP_RETRY_BACKOFF_FACTOR,
                 jitter_factor: float = config.HTTP_RETRY_JITTER_FACTOR,
                 retry_on_empty_body: bool = config.RETRY_ON_EMPTY_BODY):
        self.fetcher = fetcher
        self.max_attempts = max(1, max_attempts)
        self.delay_ms = delay_ms
        self.backoff_factor = backoff_factor
        self.jitter_factor = jitter_factor
        self.retry_on_empty_body = retry_on_empty_body

    @property
    def _retryable(self) -> Tuple[Type[BaseException], ...]:
        if self.retry_on_empty_body:
            return (NetworkError, EmptyBodyError)
        return (NetworkError,)

    @staticmethod
    def _should_retry(error: BaseException) -> bool:
        return not (isinstance(error, NetworkError) and error.is_client_error)

    async def fetch(self, url: str, timeout: Optional[float] = None,
                    connect_timeout: Optional[float] = None,
                    headers: Optional[Dict[str, str]] = None) -> str:
        return await RetryableRequest.execute_with_retry(
            self.fetcher.fetch,
            url,
            timeout=timeout,
            connect_timeout=connect_timeout,
            headers=headers,
            max_attempts=self.max_attempts,
            delay_ms=self.delay_ms,
            backoff_factor=self.backoff_factor,
            jitter_factor=self.jitter_factor,
            retry_on_exceptions=self._retryable,
            should_retry=self._should_retry,
            operation_name="fetch_page",
        )

    async def aclose(self) -> None:
        await self.fetcher.aclose()
