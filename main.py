#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Main FastAPI application setup for Tokscrape.

Initializes the FastAPI application, sets up lifespan management for the
scraper engine, registers middleware, and includes API routes.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Import version directly from __init__.py
from __init__ import __version__

from api import dependencies, routes
from config import config
from logging_config import StructuredLogger
from middleware import RateLimiterMiddleware
from services.engine import TikTokScraperEngine

logger = StructuredLogger(__name__)

# --- Lifespan Management ---

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Builds the scraper engine on startup and shuts it down on exit.
    Populates the global engine instance defined in api.dependencies.
    """
    logger.info("Starting Tokscrape FastAPI application lifespan...")

    try:
        dependencies.scraper_engine = TikTokScraperEngine.from_config(config)
        logger.info("Tokscrape services initialized successfully.")
    except Exception as e:
        logger.critical(f"Critical unexpected error during service initialization: {e}")
        dependencies.scraper_engine = None

    yield

    # --- Shutdown ---
    logger.info("Shutting down Tokscrape FastAPI application lifespan...")
    if dependencies.scraper_engine:
        try:
            await dependencies.scraper_engine.shutdown()
        except Exception as e:
            logger.error(f"Error during scraper engine shutdown: {e}")
        dependencies.scraper_engine = None
    else:
        logger.info("Scraper engine was not initialized, skipping shutdown.")

    logger.info("Lifespan cleanup finished.")


# --- FastAPI Application Instantiation ---

app = FastAPI(
    lifespan=lifespan,
    title="Tokscrape API",
    description="API to scrape public TikTok video pages into structured metadata.",
    version=__version__
)

# --- Middleware Registration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"]
)
logger.debug(f"CORS Middleware added. Allowed origins: {config.ALLOWED_ORIGINS}")

app.add_middleware(RateLimiterMiddleware)

# --- API Router Inclusion ---
app.include_router(routes.router)
logger.info("FastAPI application setup complete.")
