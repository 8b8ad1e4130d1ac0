#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Pydantic models and Dataclasses for Tokscrape API requests, responses,
and internal data structures.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from config import config
from logging_config import StructuredLogger

logger = StructuredLogger(__name__)

EMBED_URL_TEMPLATE = "https://www.tiktok.com/embed/v2/{video_id}"
PROFILE_URL_TEMPLATE = "https://www.tiktok.com/@{username}"

_MAGNITUDES = (
    (1_000_000_000, "B"),
    (1_000_000, "M"),
    (1_000, "K"),
)


def format_count(number: int) -> str:
    """Format a counter in a human-readable way (K, M, B).

    Rounded to one decimal place, with a trailing ".0" dropped:
    950 -> "950", 1000 -> "1K", 1500 -> "1.5K", 2_340_000 -> "2.3M".
    """
    for threshold, suffix in _MAGNITUDES:
        if number >= threshold:
            value = round(number / threshold, 1)
            text = f"{value:.1f}"
            if text.endswith(".0"):
                text = text[:-2]
            return f"{text}{suffix}"
    return str(number)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        dt = datetime.fromisoformat(str(value))
    except ValueError:
        logger.warning(f"Invalid datetime in cached record: {value}", value=str(value))
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class VideoRecord:
    """Metadata extracted from one TikTok video page.

    Produced once per successful scrape and never mutated afterwards. Counters
    are zero when the page does not carry them and never negative.
    """

    video_id: str
    canonical_url: str
    source_url: str = ""
    description: str = ""
    username: str = ""
    user_nickname: str = ""
    user_id: str = ""
    avatar_url: str = ""
    thumbnail: str = ""
    play_url: str = ""
    duration: int = 0
    music_title: str = ""
    music_author: str = ""
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    favorites: int = 0
    created_at: Optional[datetime] = None
    scraped_at: Optional[datetime] = None
    raw_data: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # Derived values, not persisted

    @property
    def embed_url(self) -> str:
        """URL of the embeddable player for this video."""
        return EMBED_URL_TEMPLATE.format(video_id=self.video_id)

    @property
    def profile_url(self) -> str:
        """URL of the author's profile page."""
        return PROFILE_URL_TEMPLATE.format(username=self.username)

    @property
    def total_engagement(self) -> int:
        return self.likes + self.comments + self.shares

    @property
    def engagement_rate(self) -> float:
        """Engagement as a percentage of views; 0.0 for a video without views."""
        if self.views == 0:
            return 0.0
        return (self.total_engagement / self.views) * 100

    def has_high_engagement(self, threshold: int = config.HIGH_ENGAGEMENT_THRESHOLD) -> bool:
        """Check whether likes + comments + shares reach ``threshold``."""
        return self.total_engagement >= threshold

    @property
    def formatted_views(self) -> str:
        return format_count(self.views)

    @property
    def formatted_likes(self) -> str:
        return format_count(self.likes)

    # Serialization

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        """Convert the record to a JSON-compatible dictionary.

        Args:
            include_raw: Whether to include the raw item struct snapshot

        Returns:
            dict: Record fields, datetimes as ISO 8601 strings
        """
        data = asdict(self)
        raw = data.pop("raw_data")
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["scraped_at"] = self.scraped_at.isoformat() if self.scraped_at else None
        if include_raw:
            data["raw_data"] = raw
        return data

    def to_response(self, include_raw: bool = config.INCLUDE_RAW_DATA) -> Dict[str, Any]:
        """API representation: the stored fields plus derived values."""
        data = self.to_dict(include_raw=include_raw)
        data.update({
            "embed_url": self.embed_url,
            "profile_url": self.profile_url,
            "engagement_rate": round(self.engagement_rate, 2),
            "formatted_views": self.formatted_views,
            "formatted_likes": self.formatted_likes,
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VideoRecord":
        """Rebuild a record from ``to_dict`` output (e.g. a cache entry).

        Raises:
            ValueError: If the data has no video id
        """
        video_id = str(data.get("video_id") or "")
        if not video_id:
            raise ValueError("Cached record has no video_id")

        def _int(key: str) -> int:
            try:
                return max(0, int(data.get(key) or 0))
            except (TypeError, ValueError):
                return 0

        return cls(
            video_id=video_id,
            canonical_url=str(data.get("canonical_url") or ""),
            source_url=str(data.get("source_url") or ""),
            description=str(data.get("description") or ""),
            username=str(data.get("username") or ""),
            user_nickname=str(data.get("user_nickname") or ""),
            user_id=str(data.get("user_id") or ""),
            avatar_url=str(data.get("avatar_url") or ""),
            thumbnail=str(data.get("thumbnail") or ""),
            play_url=str(data.get("play_url") or ""),
            duration=_int("duration"),
            music_title=str(data.get("music_title") or ""),
            music_author=str(data.get("music_author") or ""),
            views=_int("views"),
            likes=_int("likes"),
            comments=_int("comments"),
            shares=_int("shares"),
            favorites=_int("favorites"),
            created_at=_parse_datetime(data.get("created_at")),
            scraped_at=_parse_datetime(data.get("scraped_at")),
            raw_data=dict(data.get("raw_data") or {}),
        )


@dataclass(frozen=True)
class ActivityEntry:
    """One terminal outcome in the recent-activity ring."""

    url: str
    outcome: str  # success | cache_hit | failed | rate_limited
    timestamp: datetime
    response_time_ms: float = 0.0
    from_cache: bool = False
    video_id: Optional[str] = None
    username: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


# --- API Models ---

def _validate_url_field(v: str) -> str:
    if not v or not isinstance(v, str) or not v.strip():
        raise ValueError("URL is required")
    cleaned = v.strip()
    if len(cleaned) > config.MAX_URL_LENGTH:
        raise ValueError(f"URL too long (max {config.MAX_URL_LENGTH} characters)")
    return cleaned


class ScrapeRequest(BaseModel):
    """Body of the /scrape endpoint."""

    url: str = Field(..., description="TikTok video URL (canonical, short link or mobile form).")
    use_cache: bool = Field(True, description="Return a cached record when one is available.")

    @field_validator("url")
    @classmethod
    def url_must_be_present(cls, v: str) -> str:
        """Strip the URL and enforce the length limit."""
        return _validate_url_field(v)


class BulkScrapeRequest(BaseModel):
    """Body of the /bulk-scrape endpoint."""

    urls: List[str] = Field(..., min_length=1, description="TikTok video URLs to scrape.")
    use_cache: bool = Field(True, description="Return cached records when available.")

    @field_validator("urls")
    @classmethod
    def validate_urls(cls, v: List[str]) -> List[str]:
        """Enforce the batch size limit and clean each URL."""
        if len(v) > config.MAX_BULK_URLS:
            raise ValueError(f"Too many URLs (max {config.MAX_BULK_URLS} per request)")
        return [_validate_url_field(u) for u in v]


class ValidateUrlRequest(BaseModel):
    """Body of the /validate endpoint. Any string is accepted."""

    url: str = Field(..., description="String to check.")


class ScrapeResponse(BaseModel):
    success: bool = True
    data: Dict[str, Any]


class BulkScrapeResponse(BaseModel):
    success: bool = True
    data: List[Dict[str, Any]]
    total: int = Field(..., description="Number of videos scraped successfully.")


class ValidateUrlResponse(BaseModel):
    success: bool = True
    valid: bool
    url: str


class StatisticsResponse(BaseModel):
    """Counters plus the percentages derived from them."""

    total_requests: int = 0
    successful_scrapes: int = 0
    failed_scrapes: int = 0
    cache_hits: int = 0
    rate_limit_hits: int = 0
    success_rate: float = 0.0
    cache_efficiency: float = 0.0
    failure_rate: float = 0.0
    recent_activity: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_counters(cls, counters: Dict[str, int],
                      recent_activity: Optional[List[Dict[str, Any]]] = None) -> "StatisticsResponse":
        total = counters.get("total_requests", 0)

        def _pct(name: str) -> float:
            return round(counters.get(name, 0) / total * 100, 2) if total > 0 else 0.0

        return cls(
            **{name: counters.get(name, 0) for name in (
                "total_requests", "successful_scrapes", "failed_scrapes",
                "cache_hits", "rate_limit_hits")},
            success_rate=_pct("successful_scrapes"),
            cache_efficiency=_pct("cache_hits"),
            failure_rate=_pct("failed_scrapes"),
            recent_activity=recent_activity or [],
        )


class ErrorResponse(BaseModel):
    """Model for error responses.

    Defines the structure of error responses returned by the API.
    """

    detail: str = Field(
        ...,
        description="Detailed error message."
    )
    error_code: Optional[str] = Field(
        None,
        description="Stable machine-readable error code."
    )
