"""History endpoints.

Routes
------
GET /history                     ?offset=&limit=   newest-first summaries
GET /history/{item_id}           full item
GET /history/{item_id}/markdown  content as a downloadable .md file
"""

from __future__ import annotations

import re
from typing import Any, Optional

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel

from backend.api.dependencies import get_orchestrator
from backend.api.routers.scrape import ItemResponse, item_response
from backend.exceptions import ItemNotExportable, ItemNotFound

router = APIRouter()


class ItemSummary(BaseModel):
    id: int
    url: str
    status: str
    fetched_at: str
    error: Optional[str] = None
    preview: str


def _export_filename(url: str, item_id: int) -> str:
    stem = re.sub(r"^https?://", "", url)
    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", stem).strip("_")[:80]
    return f"{stem or 'item'}-{item_id}.md"


@router.get("", response_model=list[ItemSummary])
def list_history(
    request: Request,
    response: Response,
    offset: int = 0,
    limit: Optional[int] = None,
) -> list[dict[str, Any]]:
    """Return scraped items newest first.  ``X-Total-Count`` carries the total."""
    orchestrator = get_orchestrator(request)
    items = orchestrator.get_history(offset=offset, limit=limit)
    response.headers["X-Total-Count"] = str(orchestrator.count())
    return [
        {
            "id": item.id,
            "url": item.url,
            "status": item.status.value,
            "fetched_at": item.fetched_at_iso(),
            "error": item.error,
            "preview": item.preview(),
        }
        for item in items
    ]


@router.get("/{item_id}", response_model=ItemResponse)
def get_history_item(item_id: int, request: Request) -> dict[str, Any]:
    """Fetch one stored item by id."""
    item = get_orchestrator(request).get_by_id(item_id)
    if item is None:
        raise ItemNotFound(item_id)
    return item_response(item)


@router.get("/{item_id}/markdown")
def export_markdown(item_id: int, request: Request) -> Response:
    """Download the stored markdown for one item."""
    item = get_orchestrator(request).get_by_id(item_id)
    if item is None:
        raise ItemNotFound(item_id)
    if not item.ok or item.content is None:
        raise ItemNotExportable(item_id)
    return Response(
        content=item.content,
        media_type="text/markdown; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{_export_filename(item.url, item.id)}"'
        },
    )
