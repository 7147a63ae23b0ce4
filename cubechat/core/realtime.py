"""
Push-based live queries over a MessagingDb.

A LiveQuery delivers the full result of ``fetch()`` once on creation and again
whenever a watched table changes and the result differs from the previous
delivery. Callers own the handle and must ``close()`` it.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, Iterable, TypeVar

from cubechat.core.db import MessagingDb
from cubechat.core.errors import TransientIO

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSET = object()


class LiveQuery(Generic[T]):
    def __init__(
        self,
        db: MessagingDb,
        tables: Iterable[str],
        fetch: Callable[[], T],
        on_snapshot: Callable[[T], None],
        name: str = "live_query",
    ):
        self.name = name
        self._fetch = fetch
        self._on_snapshot = on_snapshot
        self._lock = threading.RLock()
        self._closed = False
        self._last = _UNSET

        # Watch before the first fetch so a write landing in between is not lost.
        with self._lock:
            self._unwatch = db.watch(tables, self._refresh)
            try:
                self._deliver(fetch())
            except Exception:
                self._unwatch()
                self._closed = True
                raise

        logger.debug(f"subscription_opened name={self.name}")

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, snapshot: T) -> None:
        if snapshot == self._last:
            return
        self._last = snapshot
        self._on_snapshot(snapshot)

    def _refresh(self) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                snapshot = self._fetch()
            except TransientIO as error:
                # Keep listening, the next change notification retries.
                logger.warning(f"subscription_refresh_failed name={self.name} error={error}")
                return
            self._deliver(snapshot)

    def close(self) -> None:
        """Stop listening. No snapshot is delivered once this returns."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._unwatch()
        logger.debug(f"subscription_closed name={self.name}")

    def __enter__(self) -> "LiveQuery[T]":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
