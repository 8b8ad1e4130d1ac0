#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Custom exception classes and error handling utilities for Tokscrape.

Every terminal scrape failure maps to one exception class with a stable
``error_code`` so HTTP and CLI callers can branch on the kind of failure
without parsing message text.
"""

from typing import Any, Dict, Optional
from fastapi import HTTPException, status


# --- Base Exception Classes ---

class ScraperError(Exception):
    """Base class for all scraper exceptions.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        http_status_code: HTTP status code to use in API responses
        retry_after: Optional seconds to wait before retrying (for rate limits)
        url: The URL being scraped when the error occurred
        stage: Pipeline stage that failed (validate, rate_limit, fetch, locate, parse, extract)
        cause: The underlying exception, if any
    """

    stage: str = "scrape"

    def __init__(self, message: str, error_code: Optional[str] = None,
                 http_status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
                 retry_after: Optional[int] = None, url: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            http_status_code: HTTP status code to use in API responses
            retry_after: Optional seconds to wait before retrying
            url: The URL being scraped
            cause: The underlying exception, if any
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.http_status_code = http_status_code
        self.retry_after = retry_after
        self.url = url
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def to_http_exception(self) -> HTTPException:
        """Convert this exception to a FastAPI HTTPException.

        Returns:
            HTTPException: FastAPI exception with appropriate status and headers
        """
        headers = {"X-Error-Code": self.error_code}
        if self.retry_after:
            headers["Retry-After"] = str(self.retry_after)

        return HTTPException(
            status_code=self.http_status_code,
            detail=self.message,
            headers=headers
        )

    def to_log_context(self) -> Dict[str, Any]:
        """Context fields for structured logging."""
        context: Dict[str, Any] = {
            "exception": type(self).__name__,
            "error": self.message,
            "error_code": self.error_code,
            "stage": self.stage,
        }
        if self.url:
            context["url"] = self.url
        if self.cause is not None:
            context["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return context


class TransientError(ScraperError):
    """Base class for errors that might go away when the request is repeated."""
    pass


class PageParseError(ScraperError):
    """Base class for "page fetched but not a usable video page" errors.

    Never retried: fetching the same page again will not fix a structural mismatch.
    """

    def __init__(self, message: str, error_code: str, url: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            http_status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            url=url,
            cause=cause
        )


# --- Input & Gate Exceptions ---

class InvalidUrlError(ScraperError):
    """Raised when the input is not a scrapeable TikTok URL."""

    stage = "validate"

    def __init__(self, url: Optional[str] = None, message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid TikTok URL provided: {url}",
            error_code="INVALID_URL",
            http_status_code=status.HTTP_400_BAD_REQUEST,
            url=url
        )


class RateLimitError(TransientError):
    """Raised when the rate limit gate rejects a scrape."""

    stage = "rate_limit"

    def __init__(self, retry_after: int = 60, url: Optional[str] = None,
                 message: Optional[str] = None):
        super().__init__(
            message=message or f"Rate limit exceeded. Please try again in {retry_after} seconds.",
            error_code="RATE_LIMITED",
            http_status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            retry_after=retry_after,
            url=url
        )


# --- Fetch Exceptions ---

class NetworkError(TransientError):
    """Raised when the page could not be retrieved (DNS, TLS, timeout, HTTP error status)."""

    stage = "fetch"

    def __init__(self, message: str = "Network error fetching page", url: Optional[str] = None,
                 cause: Optional[BaseException] = None, status_code: Optional[int] = None):
        super().__init__(
            message=message,
            error_code="NETWORK_ERROR",
            http_status_code=status.HTTP_502_BAD_GATEWAY,
            url=url,
            cause=cause
        )
        self.status_code = status_code

    @property
    def is_client_error(self) -> bool:
        """True for HTTP 4xx responses other than 429, which repeating will not fix."""
        return self.status_code is not None and 400 <= self.status_code < 500 and self.status_code != 429


class EmptyBodyError(TransientError):
    """Raised when the server answered with an empty body."""

    stage = "fetch"

    def __init__(self, url: Optional[str] = None, message: str = "Empty response body from TikTok."):
        super().__init__(
            message=message,
            error_code="EMPTY_RESPONSE",
            http_status_code=status.HTTP_502_BAD_GATEWAY,
            url=url
        )


# --- Page Exceptions ---

class PayloadNotFoundError(PageParseError):
    """Raised when the rehydration script tag is missing from the page."""

    stage = "locate"

    def __init__(self, url: Optional[str] = None,
                 message: str = "Unable to locate embedded data on the page."):
        super().__init__(message=message, error_code="PAYLOAD_NOT_FOUND", url=url)


class PayloadDecodeError(PageParseError):
    """Raised when the embedded payload is not valid JSON."""

    stage = "parse"

    def __init__(self, url: Optional[str] = None, cause: Optional[BaseException] = None,
                 message: str = "Failed to decode embedded JSON."):
        super().__init__(message=message, error_code="PAYLOAD_DECODE_ERROR", url=url, cause=cause)


class StructureError(PageParseError):
    """Raised when the decoded payload does not describe a video."""

    stage = "extract"

    def __init__(self, message: str = "Video information not found in the data structure.",
                 url: Optional[str] = None):
        super().__init__(message=message, error_code="INVALID_STRUCTURE", url=url)


# --- Error Handling Utilities ---

def handle_exception(exception: Exception) -> HTTPException:
    """Convert any exception to an appropriate HTTPException.

    Args:
        exception: The exception to handle

    Returns:
        HTTPException: FastAPI exception with appropriate status and headers
    """
    if isinstance(exception, ScraperError):
        # Our custom exceptions already know how to convert themselves
        return exception.to_http_exception()

    elif isinstance(exception, ValueError):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exception),
            headers={"X-Error-Code": "INVALID_INPUT"}
        )

    elif isinstance(exception, HTTPException):
        # Already a FastAPI HTTPException, just return it
        return exception

    else:
        # Unknown exception, treat as internal server error
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Internal server error: {type(exception).__name__}",
            headers={"X-Error-Code": "INTERNAL_SERVER_ERROR"}
        )
