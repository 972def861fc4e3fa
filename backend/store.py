"""Thread-safe Content Store over a single SQLite connection.

The API process shares one connection between request threads and fetch
workers.  ``ContentStore`` serialises every use of it behind a lock and turns
``sqlite3`` failures into :class:`~backend.exceptions.StorageError` so the
orchestrator deals with one storage error type.
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Optional

import structlog

from backend.config import settings
from backend.db import items
from backend.db.models import ScrapedItem, ScrapeStatus
from backend.exceptions import StorageError

logger = structlog.get_logger(__name__)


class ContentStore:
    """Append/lookup access to ``scraped_items``.

    Args:
        conn: Open, initialised connection (see :func:`backend.db.init_db`).
        max_limit: Upper bound applied to :meth:`list` page sizes.  Defaults
            to ``settings.history_max_limit``.
    """

    def __init__(self, conn: sqlite3.Connection, max_limit: Optional[int] = None) -> None:
        self._conn = conn
        self._lock = threading.Lock()
        self.max_limit = max_limit or settings.history_max_limit

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def get(self, url: str) -> Optional[ScrapedItem]:
        """Most recent successful item for *url*, or ``None``."""
        with self._lock:
            try:
                return items.get_latest_success(self._conn, url)
            except sqlite3.Error as exc:
                raise StorageError(f"lookup failed for {url}: {exc}") from exc

    def put(
        self,
        url: str,
        status: ScrapeStatus,
        content: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ScrapedItem:
        """Append an outcome; durable once this returns."""
        with self._lock:
            try:
                item = items.insert_item(
                    self._conn, url, status, content=content, error=error
                )
            except sqlite3.Error as exc:
                raise StorageError(f"insert failed for {url}: {exc}") from exc
        logger.info("item_stored", item_id=item.id, url=url, status=item.status.value)
        return item

    def list(self, offset: int = 0, limit: int = 20) -> list[ScrapedItem]:
        """Newest-first page of items; *limit* is clamped to ``max_limit``."""
        limit = max(1, min(limit, self.max_limit))
        offset = max(0, min(offset, items.MAX_SQLITE_INT))
        with self._lock:
            try:
                return items.list_items(self._conn, offset=offset, limit=limit)
            except sqlite3.Error as exc:
                raise StorageError(f"history listing failed: {exc}") from exc

    def get_by_id(self, item_id: int) -> Optional[ScrapedItem]:
        """Item with *item_id*; ids SQLite cannot hold simply do not exist."""
        if not 1 <= item_id <= items.MAX_SQLITE_INT:
            return None
        with self._lock:
            try:
                return items.get_item(self._conn, item_id)
            except sqlite3.Error as exc:
                raise StorageError(f"lookup failed for id {item_id}: {exc}") from exc

    def count(self) -> int:
        with self._lock:
            try:
                return items.count_items(self._conn)
            except sqlite3.Error as exc:
                raise StorageError(f"count failed: {exc}") from exc
