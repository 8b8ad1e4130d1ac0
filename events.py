#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Domain events emitted by the scraper engine and a small fire-and-forget dispatcher.

Listeners are plain callables or coroutine functions registered per event type.
A failing listener is logged and never affects the scrape that emitted the event.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set, Type

from logging_config import StructuredLogger
from models import VideoRecord

logger = StructuredLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class VideoScraped:
    """A video page was fetched and extracted (cache hits do not emit this)."""

    url: str
    video: VideoRecord
    response_time_ms: float = 0.0
    occurred_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ScrapingFailed:
    """A scrape ended with an error."""

    url: str
    error: BaseException
    response_time_ms: float = 0.0
    occurred_at: datetime = field(default_factory=_utcnow)

    @property
    def error_code(self) -> Optional[str]:
        return getattr(self.error, "error_code", None)


@dataclass(frozen=True)
class RateLimitHit:
    """The rate limit gate rejected a scrape."""

    key: str
    retry_after: int
    url: Optional[str] = None
    occurred_at: datetime = field(default_factory=_utcnow)


Listener = Callable[[Any], Any]


class EventDispatcher:
    """Routes events to the listeners registered for their type."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._listeners: Dict[Type[Any], List[Listener]] = {}
        self._pending: Set["asyncio.Future[Any]"] = set()

    def listen(self, event_type: Type[Any], listener: Listener) -> None:
        """Register ``listener`` for events of ``event_type``."""
        self._listeners.setdefault(event_type, []).append(listener)

    def emit(self, event: Any) -> None:
        """Deliver ``event`` to its listeners without waiting for them.

        Coroutine listeners are scheduled on the running loop; their failures
        are logged when the task finishes.
        """
        if not self.enabled:
            return

        for listener in self._listeners.get(type(event), []):
            name = getattr(listener, "__name__", repr(listener))
            try:
                result = listener(event)
            except Exception as e:
                logger.error(f"Event listener '{name}' failed for {type(event).__name__}: {e}",
                             listener=name, event=type(event).__name__)
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._listener_done)

    def _listener_done(self, task: "asyncio.Future[Any]") -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Async event listener failed: {exc}", exc_info=exc)

    async def drain(self) -> None:
        """Wait for scheduled coroutine listeners to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
