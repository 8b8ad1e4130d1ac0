"""
Tests for the page fetchers.
"""
import unittest
from unittest.mock import AsyncMock, patch
import sys
import os

import httpx

# Add the parent directory to the path so we can import the application modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from exceptions import EmptyBodyError, NetworkError
from services.fetcher import PageFetcher, RetryingPageFetcher

URL = "https://www.tiktok.com/@john.doe/video/7123456789012345678"
SHORT_URL = "https://vm.tiktok.com/ZMeABC123/"


class MockTikTok:
    """Serves queued responses and records the requests it receives."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        # Fresh copy, a response object is bound to one request
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    def client(self):
        return httpx.AsyncClient(transport=httpx.MockTransport(self), follow_redirects=True)


class TestPageFetcher(unittest.IsolatedAsyncioTestCase):
    """Test cases for PageFetcher."""

    async def test_fetch(self):
        server = MockTikTok(httpx.Response(200, text="<html>ok</html>"))
        fetcher = PageFetcher(client=server.client(), headers={"User-Agent": "test-agent"})

        html = await fetcher.fetch(URL, headers={"Accept-Language": "fr"})

        self.assertEqual(html, "<html>ok</html>")
        self.assertEqual(server.requests[0].headers["User-Agent"], "test-agent")
        self.assertEqual(server.requests[0].headers["Accept-Language"], "fr")
        await fetcher.aclose()

    async def test_default_headers(self):
        server = MockTikTok(httpx.Response(200, text="ok"))
        fetcher = PageFetcher(client=server.client())

        await fetcher.fetch(URL)

        self.assertIn("Mozilla", server.requests[0].headers["User-Agent"])
        await fetcher.aclose()

    async def test_follows_redirects(self):
        """Short links resolve to the canonical page."""

        def handler(request):
            if request.url.host == "vm.tiktok.com":
                return httpx.Response(301, headers={"Location": URL})
            return httpx.Response(200, text="<html>video</html>")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
        fetcher = PageFetcher(client=client)

        self.assertEqual(await fetcher.fetch(SHORT_URL), "<html>video</html>")
        await fetcher.aclose()

    async def test_empty_body(self):
        server = MockTikTok(httpx.Response(200, text=""))
        fetcher = PageFetcher(client=server.client())

        with self.assertRaises(EmptyBodyError) as ctx:
            await fetcher.fetch(URL)
        self.assertEqual(ctx.exception.error_code, "EMPTY_RESPONSE")
        await fetcher.aclose()

    async def test_http_error_status(self):
        server = MockTikTok(httpx.Response(404, text="not found"))
        fetcher = PageFetcher(client=server.client())

        with self.assertRaises(NetworkError) as ctx:
            await fetcher.fetch(URL)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertTrue(ctx.exception.is_client_error)
        self.assertEqual(ctx.exception.url, URL)
        await fetcher.aclose()

    async def test_transport_error(self):
        server = MockTikTok(httpx.ConnectError("connection refused"))
        fetcher = PageFetcher(client=server.client())

        with self.assertRaises(NetworkError) as ctx:
            await fetcher.fetch(URL)
        self.assertIsNone(ctx.exception.status_code)
        self.assertIsInstance(ctx.exception.cause, httpx.ConnectError)
        await fetcher.aclose()

    async def test_aclose(self):
        client = MockTikTok(httpx.Response(200, text="ok")).client()
        fetcher = PageFetcher(client=client)

        await fetcher.aclose()
        await fetcher.aclose()

        self.assertTrue(client.is_closed)


class TestRetryingPageFetcher(unittest.IsolatedAsyncioTestCase):
    """Test cases for RetryingPageFetcher."""

    def make_fetcher(self, server, max_attempts=3, retry_on_empty_body=True):
        return RetryingPageFetcher(
            PageFetcher(client=server.client()),
            max_attempts=max_attempts,
            delay_ms=0,
            retry_on_empty_body=retry_on_empty_body,
        )

    async def test_retries_until_success(self):
        server = MockTikTok(
            httpx.ConnectError("reset"),
            httpx.Response(503, text="busy"),
            httpx.Response(200, text="<html>ok</html>"),
        )
        fetcher = self.make_fetcher(server)

        self.assertEqual(await fetcher.fetch(URL), "<html>ok</html>")
        self.assertEqual(len(server.requests), 3)
        await fetcher.aclose()

    async def test_gives_up_after_max_attempts(self):
        server = MockTikTok(httpx.Response(500, text="error"))
        fetcher = self.make_fetcher(server)

        with self.assertRaises(NetworkError) as ctx:
            await fetcher.fetch(URL)
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(len(server.requests), 3)
        await fetcher.aclose()

    async def test_client_error_not_retried(self):
        server = MockTikTok(httpx.Response(404, text="not found"))
        fetcher = self.make_fetcher(server)

        with self.assertRaises(NetworkError):
            await fetcher.fetch(URL)
        self.assertEqual(len(server.requests), 1)
        await fetcher.aclose()

    async def test_too_many_requests_retried(self):
        server = MockTikTok(httpx.Response(429, text="slow down"), httpx.Response(200, text="ok"))
        fetcher = self.make_fetcher(server)

        self.assertEqual(await fetcher.fetch(URL), "ok")
        self.assertEqual(len(server.requests), 2)
        await fetcher.aclose()

    async def test_empty_body_retry_switch(self):
        server = MockTikTok(httpx.Response(200, text=""), httpx.Response(200, text="ok"))
        self.assertEqual(await self.make_fetcher(server).fetch(URL), "ok")

        server = MockTikTok(httpx.Response(200, text=""), httpx.Response(200, text="ok"))
        fetcher = self.make_fetcher(server, retry_on_empty_body=False)
        with self.assertRaises(EmptyBodyError):
            await fetcher.fetch(URL)
        self.assertEqual(len(server.requests), 1)

    async def test_single_attempt(self):
        server = MockTikTok(httpx.ConnectError("down"))
        fetcher = self.make_fetcher(server, max_attempts=1)

        with self.assertRaises(NetworkError):
            await fetcher.fetch(URL)
        self.assertEqual(len(server.requests), 1)

    async def test_jitter_spreads_delay(self):
        server = MockTikTok(httpx.Response(503, text="busy"), httpx.Response(200, text="ok"))
        fetcher = RetryingPageFetcher(PageFetcher(client=server.client()), max_attempts=2,
                                      delay_ms=100, jitter_factor=0.5)

        with patch("utils.random.random", return_value=1.0), \
                patch("utils.asyncio.sleep", new_callable=AsyncMock) as sleep:
            self.assertEqual(await fetcher.fetch(URL), "ok")

        sleep.assert_awaited_once()
        self.assertAlmostEqual(sleep.await_args.args[0], 0.15)
        await fetcher.aclose()


if __name__ == '__main__':
    unittest.main()
