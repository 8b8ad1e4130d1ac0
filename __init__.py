"""Tokscrape: scrape public TikTok video pages into structured metadata."""

__version__ = "1.0.0"
