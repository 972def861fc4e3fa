"""Liveness endpoint.

Routes
------
GET /health
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

from backend.api.dependencies import get_orchestrator

router = APIRouter()


@router.get("")
def health(request: Request) -> dict[str, Any]:
    orchestrator = get_orchestrator(request)
    return {
        "status": "ok",
        "provider": orchestrator.provider.name,
        "in_flight": len(orchestrator.registry),
    }
