"""Scrape endpoints.

Routes
------
POST /scrape           Body: {"url": "https://...", "force_refresh": false}
GET  /scrape/status    ?url=...  in-flight / cached report for polling
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from backend.api.dependencies import get_orchestrator
from backend.db.models import ScrapedItem

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class ScrapeRequest(BaseModel):
    # Plain ``str``: validation happens in normalize_url so malformed URLs get
    # the same structured error body as every other failure.
    url: str
    force_refresh: bool = False


class ItemResponse(BaseModel):
    id: int
    url: str
    content: Optional[str]
    status: str
    fetched_at: str
    error: Optional[str] = None


class ScrapeStatusResponse(BaseModel):
    url: str
    in_flight: bool
    waiters: int
    cached: bool
    latest_item_id: Optional[int]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def item_response(item: ScrapedItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "url": item.url,
        "content": item.content,
        "status": item.status.value,
        "fetched_at": item.fetched_at_iso(),
        "error": item.error,
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", response_model=ItemResponse)
def scrape(body: ScrapeRequest, request: Request) -> dict[str, Any]:
    """Return the cached item for the URL, or fetch, store and return it.

    Concurrent requests for the same URL share a single upstream fetch.
    """
    item = get_orchestrator(request).scrape(body.url, force_refresh=body.force_refresh)
    return item_response(item)


@router.get("/status", response_model=ScrapeStatusResponse)
def scrape_status(url: str, request: Request) -> dict[str, Any]:
    """Report whether *url* is being fetched right now and what is cached."""
    report = get_orchestrator(request).status(url)
    return {
        "url": report.url,
        "in_flight": report.in_flight,
        "waiters": report.waiters,
        "cached": report.latest_item_id is not None,
        "latest_item_id": report.latest_item_id,
    }
