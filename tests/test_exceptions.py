"""
Tests for the exceptions module.
"""
import unittest
import sys
import os
from fastapi import HTTPException

# Add the parent directory to the path so we can import the application modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from exceptions import (
    ScraperError, TransientError, PageParseError, InvalidUrlError, RateLimitError,
    NetworkError, EmptyBodyError, PayloadNotFoundError, PayloadDecodeError,
    StructureError, handle_exception
)

URL = "https://www.tiktok.com/@john.doe/video/1"


class TestScraperError(unittest.TestCase):
    """Test cases for the ScraperError class."""

    def test_scraper_error_defaults(self):
        """Test the default values of ScraperError."""
        error = ScraperError("Test error")
        self.assertEqual(str(error), "Test error")
        self.assertEqual(error.error_code, "SCRAPERERROR")
        self.assertEqual(error.http_status_code, 500)
        self.assertIsNone(error.retry_after)
        self.assertIsNone(error.url)

    def test_cause_is_chained(self):
        cause = ValueError("bad")
        error = ScraperError("Wrapped", cause=cause)
        self.assertIs(error.__cause__, cause)

    def test_to_log_context(self):
        error = PayloadDecodeError(url=URL, cause=ValueError("Expecting value"))
        context = error.to_log_context()
        self.assertEqual(context["exception"], "PayloadDecodeError")
        self.assertEqual(context["error_code"], "PAYLOAD_DECODE_ERROR")
        self.assertEqual(context["stage"], "parse")
        self.assertEqual(context["url"], URL)
        self.assertEqual(context["cause"], "ValueError: Expecting value")

    def test_to_log_context_without_url(self):
        self.assertNotIn("url", StructureError().to_log_context())


class TestSpecificErrors(unittest.TestCase):
    """Test cases for specific error classes."""

    def test_error_table(self):
        """Each failure kind has a stable code, status and stage."""
        cases = [
            (InvalidUrlError(URL), "INVALID_URL", 400, "validate"),
            (RateLimitError(30), "RATE_LIMITED", 429, "rate_limit"),
            (NetworkError(url=URL), "NETWORK_ERROR", 502, "fetch"),
            (EmptyBodyError(url=URL), "EMPTY_RESPONSE", 502, "fetch"),
            (PayloadNotFoundError(url=URL), "PAYLOAD_NOT_FOUND", 422, "locate"),
            (PayloadDecodeError(url=URL), "PAYLOAD_DECODE_ERROR", 422, "parse"),
            (StructureError(url=URL), "INVALID_STRUCTURE", 422, "extract"),
        ]
        for error, code, http_status, stage in cases:
            with self.subTest(error=type(error).__name__):
                self.assertEqual(error.error_code, code)
                self.assertEqual(error.http_status_code, http_status)
                self.assertEqual(error.stage, stage)

    def test_hierarchy(self):
        self.assertTrue(issubclass(RateLimitError, TransientError))
        self.assertTrue(issubclass(NetworkError, TransientError))
        self.assertTrue(issubclass(EmptyBodyError, TransientError))
        self.assertTrue(issubclass(StructureError, PageParseError))
        self.assertFalse(issubclass(PageParseError, TransientError))
        self.assertFalse(issubclass(InvalidUrlError, TransientError))

    def test_rate_limit_error(self):
        """Test RateLimitError."""
        error = RateLimitError(retry_after=30)
        self.assertEqual(error.retry_after, 30)
        self.assertIn("30 seconds", error.message)

    def test_invalid_url_message(self):
        self.assertEqual(InvalidUrlError("nope").message, "Invalid TikTok URL provided: nope")

    def test_network_error_client_error(self):
        self.assertTrue(NetworkError(status_code=404).is_client_error)
        self.assertFalse(NetworkError(status_code=429).is_client_error)
        self.assertFalse(NetworkError(status_code=503).is_client_error)
        self.assertFalse(NetworkError().is_client_error)


class TestHandleException(unittest.TestCase):
    """Test cases for the handle_exception function."""

    def test_handle_scraper_error(self):
        """Test handling a ScraperError."""
        http_exception = handle_exception(RateLimitError(retry_after=30))
        self.assertIsInstance(http_exception, HTTPException)
        self.assertEqual(http_exception.status_code, 429)
        self.assertEqual(http_exception.headers["X-Error-Code"], "RATE_LIMITED")
        self.assertEqual(http_exception.headers["Retry-After"], "30")

    def test_handle_parse_error(self):
        http_exception = handle_exception(StructureError("Not a valid TikTok video page."))
        self.assertEqual(http_exception.status_code, 422)
        self.assertEqual(http_exception.detail, "Not a valid TikTok video page.")
        self.assertNotIn("Retry-After", http_exception.headers)

    def test_handle_value_error(self):
        """Test handling a ValueError."""
        http_exception = handle_exception(ValueError("Invalid value"))
        self.assertEqual(http_exception.status_code, 400)
        self.assertEqual(http_exception.detail, "Invalid value")
        self.assertEqual(http_exception.headers["X-Error-Code"], "INVALID_INPUT")

    def test_handle_http_exception(self):
        """Test handling an HTTPException."""
        original = HTTPException(status_code=404, detail="Not found")
        self.assertIs(handle_exception(original), original)

    def test_handle_generic_exception(self):
        """Test handling a generic Exception."""
        http_exception = handle_exception(Exception("Generic error"))
        self.assertEqual(http_exception.status_code, 500)
        self.assertEqual(http_exception.detail, "Internal server error: Exception")
        self.assertEqual(http_exception.headers["X-Error-Code"], "INTERNAL_SERVER_ERROR")


if __name__ == '__main__':
    unittest.main()
