#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Mapping of the decoded rehydration payload to a ``VideoRecord``.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from exceptions import StructureError
from models import VideoRecord
from services.payload import JsonNode

ITEM_STRUCT_PATH = ("__DEFAULT_SCOPE__", "webapp.video-detail", "itemInfo", "itemStruct")

# VideoRecord field -> key inside "stats" / "statsV2"
STAT_FIELDS = {
    "views": "playCount",
    "likes": "diggCount",
    "comments": "commentCount",
    "shares": "shareCount",
    "favorites": "collectCount",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetadataExtractor:
    """Builds a ``VideoRecord`` from the payload tree.

    The item struct must be present; its ``author``, ``stats``, ``video`` and
    ``music`` sub-objects are optional and fall back to empty values.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        """Initialize the extractor.

        Args:
            clock: Source of the capture timestamp, replaceable in tests.
        """
        self.clock = clock

    @staticmethod
    def _counter(stats: JsonNode, stats_v2: JsonNode, key: str) -> int:
        # statsV2 carries the same counters as strings
        node = stats[key] if stats[key].exists else stats_v2[key]
        return max(0, node.integer())

    @staticmethod
    def _created_at(item: JsonNode) -> Optional[datetime]:
        timestamp = item["createTime"].integer()
        if timestamp <= 0:
            return None
        try:
            return datetime.fromtimestamp(timestamp, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    def extract(self, tree: JsonNode, source_url: str) -> VideoRecord:
        """Extract video metadata from the decoded payload.

        Args:
            tree: Root of the decoded payload
            source_url: URL the page was requested with

        Returns:
            VideoRecord: The extracted metadata

        Raises:
            StructureError: If the item struct is missing or carries no video id
        """
        item = tree
        for segment in ITEM_STRUCT_PATH:
            item = item[segment]
        if not item.is_object or not item.as_dict():
            raise StructureError(url=source_url)

        video_id = item["id"].string().strip()
        if not video_id:
            raise StructureError("Not a valid TikTok video page.", url=source_url)

        author = item["author"]
        stats = item["stats"]
        stats_v2 = item["statsV2"]
        video = item["video"]
        music = item["music"]

        username = author["uniqueId"].string()
        canonical_url = (
            f"https://www.tiktok.com/@{username}/video/{video_id}" if username else source_url
        )

        return VideoRecord(
            video_id=video_id,
            canonical_url=canonical_url,
            source_url=source_url,
            description=item["desc"].string(),
            username=username,
            user_nickname=author["nickname"].string(),
            user_id=author["id"].string(),
            avatar_url=author["avatarThumb"].string(),
            thumbnail=video["cover"].string(),
            play_url=video["playAddr"].string(),
            duration=max(0, video["duration"].integer()),
            music_title=music["title"].string(),
            music_author=music["authorName"].string(),
            created_at=self._created_at(item),
            scraped_at=self.clock(),
            raw_data=item.as_dict(),
            **{field: self._counter(stats, stats_v2, key) for field, key in STAT_FIELDS.items()},
        )
