"""Data models for the scraper pipeline."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class RawPage:
    """The raw HTTP response for a single URL fetch."""

    url: str
    html: str
    status_code: int
    final_url: str | None = None


@dataclass
class CleanPage:
    """Readable markdown extracted from a :class:`RawPage`."""

    url: str
    title: str
    markdown: str
