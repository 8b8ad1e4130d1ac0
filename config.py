#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Configuration module for Tokscrape.

Defines configuration parameters and loads values from environment variables.
"""

import os
import logging
from typing import Dict, Any

# Initialize a basic logger for config loading issues
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Default configuration values
_CONFIG_DEFAULTS: Dict[str, Any] = {
    # HTTP Client
    "HTTP_TIMEOUT_SECONDS": 30.0,  # Total timeout for a single page fetch
    "HTTP_CONNECT_TIMEOUT_SECONDS": 10.0,
    "HTTP_RETRY_ATTEMPTS": 3,  # Total attempts, including the first one
    "HTTP_RETRY_DELAY_MS": 1000,
    "HTTP_RETRY_BACKOFF_FACTOR": 1.0,  # 1.0 = fixed delay, 2.0 = doubling
    "HTTP_RETRY_JITTER_FACTOR": 0.0,  # 0.25 = each delay varies by up to 25%
    "RETRY_ON_EMPTY_BODY": True,
    "USER_AGENT": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "ACCEPT_HEADER": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "ACCEPT_LANGUAGE": "en-US,en;q=0.9",

    # Caching
    "CACHE_ENABLED": True,
    "CACHE_TTL_SECONDS": 3600,  # 1 hour
    "CACHE_PREFIX": "tiktok_scraper",
    "CACHE_MAX_ENTRIES": 1024,
    "CACHE_EVICTION_PERCENT": 20,  # Percentage of entries to evict when cache is full

    # Persistent state (cache and statistics); empty keeps both in memory
    "STATE_DB_PATH": "",

    # Scrape rate limiting (shared by every caller of the engine)
    "RATE_LIMIT_ENABLED": True,
    "RATE_LIMIT_MAX_ATTEMPTS": 60,
    "RATE_LIMIT_WINDOW_SECONDS": 60,
    "RATE_LIMIT_PREFIX": "tiktok_scraper_rate_limit",

    # Web Server
    "API_RATE_LIMIT_REQUESTS": 60,  # Max requests per IP per window
    "API_RATE_LIMIT_WINDOW_SECONDS": 60,
    "MAX_BULK_URLS": 10,
    "MAX_URL_LENGTH": 500,

    # Engine behaviour
    "LOGGING_ENABLED": True,
    "EVENTS_ENABLED": True,
    "INCLUDE_RAW_DATA": False,  # Expose the raw item struct in API responses
    "RECENT_ACTIVITY_SIZE": 50,
    "BATCH_CONCURRENCY": 3,  # Concurrent scrapes in scrape_multiple
    "HIGH_ENGAGEMENT_THRESHOLD": 10000,

    # CORS
    "ALLOWED_ORIGINS": [
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ],
}

_INT_KEYS = (
    "HTTP_RETRY_ATTEMPTS", "HTTP_RETRY_DELAY_MS", "CACHE_TTL_SECONDS",
    "CACHE_MAX_ENTRIES", "CACHE_EVICTION_PERCENT", "RATE_LIMIT_MAX_ATTEMPTS",
    "RATE_LIMIT_WINDOW_SECONDS", "API_RATE_LIMIT_REQUESTS",
    "API_RATE_LIMIT_WINDOW_SECONDS", "MAX_BULK_URLS", "MAX_URL_LENGTH",
    "RECENT_ACTIVITY_SIZE", "BATCH_CONCURRENCY", "HIGH_ENGAGEMENT_THRESHOLD",
)
_FLOAT_KEYS = (
    "HTTP_TIMEOUT_SECONDS", "HTTP_CONNECT_TIMEOUT_SECONDS", "HTTP_RETRY_BACKOFF_FACTOR",
    "HTTP_RETRY_JITTER_FACTOR",
)
_BOOL_KEYS = (
    "RETRY_ON_EMPTY_BODY", "CACHE_ENABLED", "RATE_LIMIT_ENABLED",
    "LOGGING_ENABLED", "EVENTS_ENABLED", "INCLUDE_RAW_DATA",
)
_STR_KEYS = (
    "USER_AGENT", "ACCEPT_HEADER", "ACCEPT_LANGUAGE", "CACHE_PREFIX", "RATE_LIMIT_PREFIX",
    "STATE_DB_PATH",
)


class Config:
    """Configuration class that loads values from environment variables."""

    def __init__(self, load_from_env=True):
        """Initialize configuration with default values and optionally from environment.

        Args:
            load_from_env: Whether to load values from environment variables
        """
        # Set all default values as attributes
        for key, value in _CONFIG_DEFAULTS.items():
            setattr(self, key, list(value) if isinstance(value, list) else value)

        # Load from environment if requested
        if load_from_env:
            self.load_from_env()

    def load_from_env(self):
        """Load configuration values from environment variables."""
        # Load CORS origins
        env_origins = os.environ.get("ALLOWED_ORIGINS", "")
        if env_origins:
            origins = [origin.strip() for origin in env_origins.split(",")]
            self.ALLOWED_ORIGINS = [o for o in origins if o]
            logger.info(f"CORS origins set from environment: {self.ALLOWED_ORIGINS}")

        for key in _INT_KEYS:
            self._load_int_from_env(key)
        for key in _FLOAT_KEYS:
            self._load_float_from_env(key)
        for key in _BOOL_KEYS:
            self._load_bool_from_env(key)
        for key in _STR_KEYS:
            env_value = os.environ.get(key)
            if env_value:
                setattr(self, key, env_value)

        if self.HTTP_RETRY_ATTEMPTS < 1:
            logger.warning(f"HTTP_RETRY_ATTEMPTS must be at least 1, got {self.HTTP_RETRY_ATTEMPTS}. Using 1.")
            self.HTTP_RETRY_ATTEMPTS = 1
        if not 0.0 <= self.HTTP_RETRY_JITTER_FACTOR <= 1.0:
            logger.warning(f"HTTP_RETRY_JITTER_FACTOR must be between 0 and 1, got {self.HTTP_RETRY_JITTER_FACTOR}. Using 0.")
            self.HTTP_RETRY_JITTER_FACTOR = 0.0

    def http_headers(self) -> Dict[str, str]:
        """Browser-like header set attached to every page fetch."""
        return {
            "User-Agent": self.USER_AGENT,
            "Accept": self.ACCEPT_HEADER,
            "Accept-Language": self.ACCEPT_LANGUAGE,
        }

    def _load_int_from_env(self, key):
        """Load an integer value from environment variable.

        Args:
            key: The configuration key to load

        Returns:
            bool: True if the value was loaded, False otherwise
        """
        env_value = os.environ.get(key)
        if env_value is not None:
            try:
                setattr(self, key, int(env_value))
                return True
            except ValueError:
                logger.warning(f"Invalid integer value for {key}: {env_value}")
        return False

    def _load_float_from_env(self, key):
        """Load a float value from environment variable.

        Args:
            key: The configuration key to load

        Returns:
            bool: True if the value was loaded, False otherwise
        """
        env_value = os.environ.get(key)
        if env_value is not None:
            try:
                setattr(self, key, float(env_value))
                return True
            except ValueError:
                logger.warning(f"Invalid float value for {key}: {env_value}")
        return False

    def _load_bool_from_env(self, key):
        """Load a boolean value from environment variable.

        Accepts true/false, 1/0, yes/no, on/off (case-insensitive).

        Returns:
            bool: True if the value was loaded, False otherwise
        """
        env_value = os.environ.get(key)
        if env_value is None:
            return False
        normalized = env_value.strip().lower()
        if normalized in ("true", "1", "yes", "y", "on"):
            setattr(self, key, True)
            return True
        if normalized in ("false", "0", "no", "n", "off"):
            setattr(self, key, False)
            return True
        logger.warning(f"Invalid boolean value for {key}: {env_value}")
        return False


# Create a single instance of Config to be imported by other modules
config = Config(load_from_env=True)
