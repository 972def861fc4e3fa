"""Dataclass models representing DB rows.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum


class ScrapeStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ScrapedItem:
    id: int
    url: str
    content: str | None
    status: ScrapeStatus
    fetched_at: float
    error: str | None = None

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    @property
    def ok(self) -> bool:
        return self.status is ScrapeStatus.SUCCESS

    def fetched_at_iso(self) -> str:
        """Return ``fetched_at`` as an ISO-8601 UTC timestamp."""
        return datetime.fromtimestamp(self.fetched_at, tz=timezone.utc).isoformat()

    def preview(self, length: int = 160) -> str:
        """First *length* characters of the content on a single line."""
        if not self.content:
            return ""
        flat = " ".join(self.content.split())
        return flat if len(flat) <= length else flat[: length - 1] + "…"
