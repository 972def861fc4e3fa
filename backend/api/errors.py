"""Map the service error taxonomy onto HTTP responses.

Every error body has the same shape::

    {"error": "...", "kind": "...", "retryable": false, "request_id": "..."}

Storage errors never expose their internal text; the ``request_id`` is the
correlation id that appears on the matching server-side log line.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.exceptions import (
    FetchTimeout,
    ItemNotExportable,
    ItemNotFound,
    ProviderError,
    RateLimited,
    ScrapeServiceError,
    StorageError,
    UpstreamFailure,
    UpstreamNotFound,
    ValidationError,
)

logger = structlog.get_logger(__name__)

# Checked in order; subclasses before their bases.
_STATUS_MAP: list[tuple[type[ScrapeServiceError], int]] = [
    (ValidationError, 422),
    (FetchTimeout, 504),
    (RateLimited, 503),
    (UpstreamNotFound, 404),
    (ProviderError, 502),
    (UpstreamFailure, 502),
    (ItemNotFound, 404),
    (ItemNotExportable, 409),
    (StorageError, 500),
]


def status_for(exc: ScrapeServiceError) -> int:
    for exc_type, status in _STATUS_MAP:
        if isinstance(exc, exc_type):
            return status
    return 500


def _kind_for(exc: ScrapeServiceError) -> str:
    if isinstance(exc, UpstreamFailure):
        return exc.kind.value
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, ItemNotFound):
        return "item_not_found"
    if isinstance(exc, ItemNotExportable):
        return "item_not_exportable"
    if isinstance(exc, StorageError):
        return "storage_error"
    return "internal_error"


def error_body(
    message: str,
    kind: str,
    retryable: bool = False,
    request_id: Optional[str] = None,
) -> dict[str, Any]:
    return {
        "error": message,
        "kind": kind,
        "retryable": retryable,
        "request_id": request_id,
    }


async def _handle_service_error(request: Request, exc: ScrapeServiceError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    status = status_for(exc)
    kind = _kind_for(exc)
    headers: dict[str, str] = {}

    if isinstance(exc, UpstreamFailure):
        message = exc.message
        retryable = exc.retryable
        if isinstance(exc, RateLimited) and exc.retry_after is not None:
            headers["Retry-After"] = str(int(exc.retry_after))
    elif status >= 500:
        logger.error("service_error", kind=kind, detail=str(exc), exc_info=exc)
        message = "Internal server error"
        retryable = False
    else:
        message = str(exc)
        retryable = False

    return JSONResponse(
        status_code=status,
        content=error_body(message, kind, retryable, request_id),
        headers=headers or None,
    )


def _describe_validation(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg', 'invalid value')}" if loc else err.get("msg", ""))
    return "; ".join(parts) or "Invalid request"


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=error_body(
            _describe_validation(exc),
            "validation_error",
            request_id=getattr(request.state, "request_id", None),
        ),
    )


async def _handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unknown routes, wrong methods and similar framework-level errors.
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(
            str(exc.detail),
            "http_error",
            request_id=getattr(request.state, "request_id", None),
        ),
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the taxonomy, request-validation and HTTP error handlers on *app*."""
    app.add_exception_handler(ScrapeServiceError, _handle_service_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_request_validation)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle_http_error)  # type: ignore[arg-type]
