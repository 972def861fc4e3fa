"""Append / lookup operations for the ``scraped_items`` table.

Rows are never updated or deleted here: every scrape outcome is a new row.
"""

from __future__ import annotations

import sqlite3
from time import time
from typing import Optional

from backend.db.models import ScrapedItem, ScrapeStatus

# Largest value SQLite can bind as an INTEGER.
MAX_SQLITE_INT = 2**63 - 1


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _row_to_item(row: sqlite3.Row) -> ScrapedItem:
    return ScrapedItem(
        id=row["id"],
        url=row["url"],
        content=row["content"],
        status=ScrapeStatus(row["status"]),
        fetched_at=row["fetched_at"],
        error=row["error"],
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def insert_item(
    conn: sqlite3.Connection,
    url: str,
    status: ScrapeStatus,
    content: Optional[str] = None,
    error: Optional[str] = None,
    fetched_at: Optional[float] = None,
) -> ScrapedItem:
    """Append a scrape outcome and return it with its assigned id.

    The insert runs in its own transaction and is committed before this
    function returns.

    Args:
        conn: Open DB connection.
        url: Normalised URL the outcome belongs to.
        status: ``SUCCESS`` or ``FAILED``.
        content: Markdown body; required for successful items.
        error: Human-readable cause; only meaningful for failed items.
        fetched_at: Completion time (epoch seconds).  Defaults to now.

    Returns:
        The newly created :class:`~backend.db.models.ScrapedItem`.

    Raises:
        sqlite3.Error: On I/O failure or a CHECK constraint violation (e.g. a
            successful item without content).
    """
    ts = fetched_at if fetched_at is not None else time()
    with conn:
        cursor = conn.execute(
            """
            INSERT INTO scraped_items (url, content, status, fetched_at, error)
            VALUES (?, ?, ?, ?, ?)
            """,
            (url, content, ScrapeStatus(status).value, ts, error),
        )
    return ScrapedItem(
        id=cursor.lastrowid,
        url=url,
        content=content,
        status=ScrapeStatus(status),
        fetched_at=ts,
        error=error,
    )


def get_latest_success(conn: sqlite3.Connection, url: str) -> Optional[ScrapedItem]:
    """Return the most recent successful item for *url*, or ``None``."""
    row = conn.execute(
        """
        SELECT * FROM scraped_items
        WHERE url = ? AND status = 'success'
        ORDER BY fetched_at DESC, id DESC
        LIMIT 1
        """,
        (url,),
    ).fetchone()
    return _row_to_item(row) if row else None


def get_item(conn: sqlite3.Connection, item_id: int) -> Optional[ScrapedItem]:
    """Fetch a single item by id.  Returns ``None`` if not found."""
    row = conn.execute(
        "SELECT * FROM scraped_items WHERE id = ?", (item_id,)
    ).fetchone()
    return _row_to_item(row) if row else None


def list_items(
    conn: sqlite3.Connection,
    offset: int = 0,
    limit: int = 20,
) -> list[ScrapedItem]:
    """Return items newest first (``fetched_at`` then ``id`` descending)."""
    rows = conn.execute(
        """
        SELECT * FROM scraped_items
        ORDER BY fetched_at DESC, id DESC
        LIMIT ? OFFSET ?
        """,
        (limit, offset),
    ).fetchall()
    return [_row_to_item(r) for r in rows]


def count_items(conn: sqlite3.Connection) -> int:
    """Return the total number of stored items (success and failed)."""
    row = conn.execute("SELECT COUNT(*) FROM scraped_items").fetchone()
    return row[0] if row else 0
