#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
API Routes for the Tokscrape application using FastAPI.

Defines endpoints for scraping TikTok videos, URL validation, statistics,
cache management and health checks.
"""

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

import psutil
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from api.dependencies import get_scraper_engine
from exceptions import InvalidUrlError, handle_exception
from logging_config import StructuredLogger
from models import (BulkScrapeRequest, BulkScrapeResponse, ErrorResponse,
                    ScrapeRequest, ScrapeResponse, StatisticsResponse,
                    ValidateUrlRequest, ValidateUrlResponse)
from services.engine import TikTokScraperEngine

# Import version directly from root __init__.py
from __init__ import __version__ as app_version


logger = StructuredLogger(__name__)

router = APIRouter(prefix="/api/tiktok-scraper", tags=["tiktok-scraper"])

# Define common error responses for OpenAPI documentation
ERROR_RESPONSES: Dict[Union[int, str], Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid TikTok URL"},
    422: {"model": ErrorResponse, "description": "Page is not a usable TikTok video page"},
    429: {"model": ErrorResponse, "description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
    502: {"model": ErrorResponse, "description": "TikTok could not be reached"},
    503: {"model": ErrorResponse, "description": "Service unavailable (initialization failed)"}
}


def _format_bytes(num_bytes: float, precision: int = 2) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while num_bytes > 1024 and i < len(units) - 1:
        num_bytes /= 1024
        i += 1
    return f"{round(num_bytes, precision)} {units[i]}"


# --- Scraping Endpoints ---

@router.post(
    "/scrape",
    response_model=ScrapeResponse,
    responses=ERROR_RESPONSES,
    summary="Scrape a TikTok video",
    description="Fetches a TikTok video page and returns its metadata (author, statistics, media URLs)."
)
async def scrape_video(
    request: ScrapeRequest,
    scraper: TikTokScraperEngine = Depends(get_scraper_engine)
):
    """API endpoint to scrape a single TikTok video."""
    logger.info(f"Received /scrape request for: {request.url[:100]}", use_cache=request.use_cache)
    try:
        record = await scraper.scrape(request.url, use_cache=request.use_cache)
        return ScrapeResponse(success=True, data=record.to_response())
    except Exception as e:
        raise handle_exception(e)


@router.post(
    "/bulk-scrape",
    response_model=BulkScrapeResponse,
    responses=ERROR_RESPONSES,
    summary="Scrape several TikTok videos",
    description="Scrapes up to MAX_BULK_URLS videos. Failed URLs are left out of the result."
)
async def bulk_scrape_videos(
    request: BulkScrapeRequest,
    scraper: TikTokScraperEngine = Depends(get_scraper_engine)
):
    """API endpoint to scrape a batch of TikTok videos."""
    logger.info(f"Received /bulk-scrape request for {len(request.urls)} URL(s)")
    try:
        records = await scraper.scrape_multiple(request.urls, use_cache=request.use_cache)
        return BulkScrapeResponse(
            success=True,
            data=[record.to_response() for record in records],
            total=len(records),
        )
    except Exception as e:
        raise handle_exception(e)


@router.post(
    "/validate",
    response_model=ValidateUrlResponse,
    summary="Validate a TikTok URL",
)
async def validate_url(
    request: ValidateUrlRequest,
    scraper: TikTokScraperEngine = Depends(get_scraper_engine)
):
    """Check whether a URL is a TikTok video URL, without fetching it."""
    return ValidateUrlResponse(success=True, valid=scraper.is_valid_tiktok_url(request.url), url=request.url)


# --- Statistics & Cache Endpoints ---

@router.get(
    "/stats",
    response_model=StatisticsResponse,
    summary="Scraper statistics",
    description="Request counters with success rate, cache efficiency and failure rate (percent), plus recent activity."
)
async def get_statistics(scraper: TikTokScraperEngine = Depends(get_scraper_engine)):
    counters = await scraper.get_statistics()
    recent = await scraper.get_recent_activity(limit=10)
    return StatisticsResponse.from_counters(counters, recent)


@router.get(
    "/cache",
    response_model=ScrapeResponse,
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse, "description": "No cached record"}},
    summary="Get a cached record",
)
async def get_cached_video(
    url: str = Query(..., description="TikTok video URL, exactly as it was scraped."),
    scraper: TikTokScraperEngine = Depends(get_scraper_engine)
):
    """Return the cached record for a URL without scraping it."""
    if not scraper.is_valid_tiktok_url(url):
        raise handle_exception(InvalidUrlError(url))

    record = await scraper.get_cached_details(url)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No cached record for this URL.",
            headers={"X-Error-Code": "NOT_CACHED"}
        )
    return ScrapeResponse(success=True, data=record.to_response())


@router.delete(
    "/cache",
    responses={400: {"model": ErrorResponse, "description": "Invalid TikTok URL"}},
    summary="Clear the video cache",
)
async def clear_cache(
    url: Optional[str] = Query(None, description="Clear only this URL, exactly as it was scraped."),
    scraper: TikTokScraperEngine = Depends(get_scraper_engine)
):
    """Remove the cached record for one URL, or every cached record when no URL is given."""
    if url is None:
        logger.warning("Received request to clear the video cache via /cache endpoint.")
    elif not scraper.is_valid_tiktok_url(url):
        raise handle_exception(InvalidUrlError(url))

    try:
        cleared = await scraper.clear_cache(url)
    except Exception as e:
        logger.error(f"Error occurred during cache clearing via endpoint: {e}", url=url)
        raise handle_exception(e)

    if url is None:
        return {
            "success": cleared,
            "message": "Cache cleared successfully" if cleared else "Caching is disabled",
        }
    return {
        "success": cleared,
        "message": "URL cache cleared successfully" if cleared else "Caching is disabled",
        "url": url,
    }


# --- Health ---

@router.get(
    "/health",
    summary="Health Check",
    description="Provides the operational status of the Tokscrape service.",
    response_description="JSON object containing the health status."
)
async def health_check(scraper: TikTokScraperEngine = Depends(get_scraper_engine)):
    """Endpoint to check system health."""
    logger.debug("Health check endpoint requested.")

    health_data: Dict[str, Any] = {
        "success": True,
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service_version": app_version,
        "scraper": {
            "service_status": "operational",
            "cache_status": "enabled" if scraper.cache_enabled else "disabled",
            "rate_limit_status": "enabled" if scraper.rate_limit_enabled else "disabled",
        },
    }

    try:
        memory = psutil.Process(os.getpid()).memory_info()
        health_data["system"] = {"memory_usage": _format_bytes(memory.rss)}
    except psutil.Error as e:
        logger.warning(f"Could not read process memory for /health: {e}")
        health_data["system"] = {"memory_usage": None}

    return Response(
        content=json.dumps(health_data, default=str),
        status_code=status.HTTP_200_OK,
        media_type="application/json"
    )
