#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI Middleware classes for Tokscrape.

Includes per-client rate limiting of the scraper API.
"""

from typing import Optional

from fastapi import FastAPI, Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from api import dependencies
from config import config
from logging_config import StructuredLogger
from services.interfaces import RateLimitStore
from services.rate_limiter import RateLimitGate
from stores import InMemoryRateLimitStore

logger = StructuredLogger(__name__)

API_PREFIX = "/api/tiktok-scraper"
KEY_PREFIX = "tiktok-scraper"


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """Middleware for rate limiting scraper API requests per client.

    Uses a fixed window per client key (``tiktok-scraper:ip:{ip}``) through the
    same ``RateLimitGate`` the engine uses. Rejections are counted in the
    engine's ``rate_limit_hits`` statistic.
    """

    def __init__(self, app: FastAPI,
                 requests_limit: int = config.API_RATE_LIMIT_REQUESTS,
                 window_seconds: int = config.API_RATE_LIMIT_WINDOW_SECONDS,
                 store: Optional[RateLimitStore] = None):
        """Initialize the rate limiter middleware.

        Args:
            app: The FastAPI application instance.
            requests_limit: Maximum number of requests allowed per client within the window.
            window_seconds: The time window duration in seconds.
            store: Rate limit store. Defaults to a process-local in-memory store.
        """
        super().__init__(app)
        self.requests_limit = requests_limit
        self.window_seconds = window_seconds
        self.gate = RateLimitGate(store or InMemoryRateLimitStore())

        logger.info(
            f"Rate limiter initialized: {requests_limit} req / {window_seconds}s per client.",
            limit=requests_limit,
            window=window_seconds
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process the request, applying rate limiting logic.

        Args:
            request: The incoming FastAPI request.
            call_next: The next middleware or endpoint handler in the chain.

        Returns:
            Response: Either the response from the next handler or a 429 error response.
        """
        path = request.url.path

        # Only the scraper API is limited; health checks stay reachable
        if not path.startswith(API_PREFIX) or path.startswith(f"{API_PREFIX}/health"):
            return await call_next(request)

        key = self._resolve_key(request)
        decision = await self.gate.admit(key, self.requests_limit, self.window_seconds)

        if not decision.admitted:
            logger.warning(
                f"Rate limit exceeded for {key}",
                key=key,
                limit=self.requests_limit,
                path=path,
                retry_after=decision.retry_after
            )
            await self._record_hit(key, decision.retry_after)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "success": False,
                    "detail": "Too many requests. Please try again later.",
                    "error_code": "RATE_LIMITED",
                    "retry_after": decision.retry_after,
                },
                headers={
                    "Retry-After": str(decision.retry_after),
                    "X-RateLimit-Limit": str(self.requests_limit),
                    "X-RateLimit-Remaining": "0",
                }
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.requests_limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response

    @staticmethod
    async def _record_hit(key: str, retry_after: int) -> None:
        engine = dependencies.scraper_engine
        if engine is not None:
            await engine.record_rate_limit_hit(key, retry_after)

    def _resolve_key(self, request: Request) -> str:
        return f"{KEY_PREFIX}:ip:{self._get_client_ip(request)}"

    def _get_client_ip(self, request: Request) -> str:
        """Extract the client IP address from the request.

        Considers proxy headers like 'X-Forwarded-For' and 'X-Real-IP'.

        Args:
            request: The FastAPI request object.

        Returns:
            str: The determined client IP address, or "unknown".
        """
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            # Take the first IP in the list (client's original IP)
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()

        if request.client and request.client.host:
            return request.client.host

        return "unknown"

