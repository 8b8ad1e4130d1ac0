#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Locating and decoding the rehydration payload embedded in TikTok pages.

TikTok renders video pages on the client; every piece of metadata the scraper
needs ships in a single ``<script id="__UNIVERSAL_DATA_FOR_REHYDRATION__">``
element holding a JSON document.
"""

import json
import math
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup, SoupStrainer

from exceptions import PayloadDecodeError, PayloadNotFoundError

REHYDRATION_SCRIPT_ID = "__UNIVERSAL_DATA_FOR_REHYDRATION__"

_MISSING = object()


class JsonNode:
    """Read-only view over a decoded JSON value with forgiving navigation.

    Indexing never raises: a missing key (or indexing into a non-object)
    yields a node whose ``exists`` is False, so deep paths can be written
    as ``node["a"]["b"]["c"]`` and checked once at the end.
    """

    __slots__ = ("_value",)

    def __init__(self, value: Any = _MISSING):
        self._value = value

    def __getitem__(self, key: str) -> "JsonNode":
        if isinstance(self._value, dict) and key in self._value:
            return JsonNode(self._value[key])
        return JsonNode()

    def __repr__(self) -> str:
        if not self.exists:
            return "JsonNode(<missing>)"
        return f"JsonNode({self._value!r})"

    @property
    def exists(self) -> bool:
        """True unless the node came from a missing key. JSON null exists."""
        return self._value is not _MISSING

    @property
    def is_object(self) -> bool:
        return isinstance(self._value, dict)

    @property
    def value(self) -> Any:
        """The wrapped value, or None for a missing node."""
        return None if self._value is _MISSING else self._value

    def string(self, default: str = "") -> str:
        """The value as text. Numbers are converted; anything else gives ``default``."""
        value = self._value
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return default
        if isinstance(value, (int, float)):
            return str(value)
        return default

    def integer(self, default: int = 0) -> int:
        """The value as an int. Accepts numbers and numeric strings; anything else gives ``default``."""
        value = self._value
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value) if math.isfinite(value) else default
        if isinstance(value, str):
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                pass
            try:
                number = float(text)
            except ValueError:
                return default
            return int(number) if math.isfinite(number) else default
        return default

    def as_dict(self) -> Dict[str, Any]:
        """The wrapped object, or an empty dict if the value is not an object."""
        return dict(self._value) if isinstance(self._value, dict) else {}


class PayloadLocator:
    """Finds the rehydration script element in page HTML."""

    def __init__(self, script_id: str = REHYDRATION_SCRIPT_ID):
        self.script_id = script_id

    def locate(self, html: str, url: Optional[str] = None) -> str:
        """Return the text content of the rehydration script element.

        Attribute order and additional attributes on the element do not matter.

        Args:
            html: Page HTML
            url: Page URL, attached to the error for context

        Returns:
            str: The raw payload text

        Raises:
            PayloadNotFoundError: If the page has no such element
        """
        strainer = SoupStrainer("script", attrs={"id": self.script_id})
        soup = BeautifulSoup(html, "html.parser", parse_only=strainer)
        script = soup.find("script", attrs={"id": self.script_id})
        if script is None:
            raise PayloadNotFoundError(url=url)
        return "".join(str(part) for part in script.contents)


class PayloadParser:
    """Decodes payload text into a ``JsonNode`` tree. No schema validation."""

    def parse(self, text: str, url: Optional[str] = None) -> JsonNode:
        """Decode ``text`` as JSON.

        Raises:
            PayloadDecodeError: If ``text`` is not valid JSON
        """
        try:
            return JsonNode(json.loads(text))
        except ValueError as e:
            # json.JSONDecodeError is a ValueError subclass
            raise PayloadDecodeError(url=url, cause=e) from e
