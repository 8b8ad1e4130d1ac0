#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI dependency injection functions for Tokscrape services.

Provides the application-lifetime scraper engine to the API route handlers
and the rate limiting middleware.
"""

from typing import Optional

from fastapi import HTTPException, status

from logging_config import StructuredLogger
from services.engine import TikTokScraperEngine

logger = StructuredLogger(__name__)

# --- Global Service Instances ---
# Populated during the application lifespan startup.
scraper_engine: Optional[TikTokScraperEngine] = None


# --- Dependency Injection Functions ---

def get_scraper_engine() -> TikTokScraperEngine:
    """Dependency function to get the initialized TikTokScraperEngine instance.

    Raises:
        HTTPException: 503 Service Unavailable if the engine is not initialized.

    Returns:
        The singleton TikTokScraperEngine instance.
    """
    if not scraper_engine:
        logger.critical("Dependency Error: TikTok Scraper Engine not initialized.")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service Initialization Error: Scraper Engine is not available.",
            headers={"X-Error-Code": "SERVICE_UNAVAILABLE_SCRAPER_ENGINE"}
        )
    return scraper_engine
