#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Recognition of TikTok video URLs.

Accepted forms (case-insensitive, http or https):

- any path on ``tiktok.com``, ``www.tiktok.com``, ``vm.tiktok.com`` or ``m.tiktok.com``
- canonical video pages: ``tiktok.com/@{handle}/video/{digits}`` with an optional query
- short links: ``vm.tiktok.com/{token}`` with an optional trailing slash
- legacy mobile pages: ``m.tiktok.com/v/{digits}.html`` with an optional query
"""

import re
from typing import Any, Tuple

TIKTOK_URL_PATTERNS: Tuple["re.Pattern[str]", ...] = tuple(
    re.compile(pattern, re.IGNORECASE) for pattern in (
        r"https?://(www\.)?(tiktok\.com|vm\.tiktok\.com|m\.tiktok\.com)/.*",
        r"https?://(www\.)?tiktok\.com/@[\w.-]+/video/\d+\??.*",
        r"https?://vm\.tiktok\.com/\w+/?",
        r"https?://m\.tiktok\.com/v/\d+\.html\??.*",
    )
)


def is_valid_tiktok_url(url: Any) -> bool:
    """Check whether ``url`` is a TikTok URL the scraper accepts.

    Never raises; anything that is not a string is simply invalid.

    Args:
        url: Candidate URL

    Returns:
        bool: True if any accepted form matches the whole string
    """
    if not isinstance(url, str) or not url:
        return False
    return any(pattern.fullmatch(url) for pattern in TIKTOK_URL_PATTERNS)
