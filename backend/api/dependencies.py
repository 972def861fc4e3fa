"""Accessors for objects the lifespan stores on ``app.state``."""

from __future__ import annotations

from fastapi import Request

from backend.service.orchestrator import Orchestrator


def get_orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator
