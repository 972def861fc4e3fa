"""FastAPI application factory.

Lifespan
--------
On startup the app opens a single SQLite connection, initialises the schema,
builds the configured Fetch Provider and the :class:`Orchestrator`, and keeps
the orchestrator on ``app.state.orchestrator``.  On shutdown it drains the
fetch pool and closes the connection.  An orchestrator passed to
:func:`create_app` is used as-is and left open (tests own its lifecycle).

Routers
-------
    /scrape    submit a URL, poll its in-flight status
    /history   newest-first listing, single item, markdown export
    /health    liveness
"""

from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from backend.config import settings
from backend.db import get_connection, init_db
from backend.logging_config import configure_logging, request_id_var
from backend.scraper.providers import build_provider
from backend.service.orchestrator import Orchestrator
from backend.store import ContentStore

from backend.api.errors import register_exception_handlers
from backend.api.routers import health as health_router
from backend.api.routers import history as history_router
from backend.api.routers import scrape as scrape_router

logger = structlog.get_logger(__name__)


def create_app(orchestrator: Optional[Orchestrator] = None) -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if orchestrator is not None:
            app.state.orchestrator = orchestrator
            yield
            return

        conn = get_connection()
        init_db(conn)
        owned = Orchestrator(ContentStore(conn), build_provider())
        app.state.orchestrator = owned
        logger.info("service_started", db_path=str(settings.db_path))
        try:
            yield
        finally:
            owned.shutdown(wait=True)
            conn.close()
            logger.info("service_stopped")

    app = FastAPI(
        title="Markdown Scraper API",
        description=(
            "Scrapes a URL into markdown once, caches the result in SQLite, "
            "and serves the scrape history.  Concurrent requests for the same "
            "URL share one upstream fetch."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    # The desktop/web client talks to this API from any origin.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next: Callable) -> Response:
        """Bind a ``request_id`` for log correlation and echo it back."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        log_fn = logger.warning if response.status_code >= 400 else logger.info
        log_fn("request_complete", status_code=response.status_code, elapsed_ms=elapsed_ms)
        response.headers["X-Request-ID"] = request_id
        return response

    register_exception_handlers(app)

    app.include_router(scrape_router.router, prefix="/scrape", tags=["scrape"])
    app.include_router(history_router.router, prefix="/history", tags=["history"])
    app.include_router(health_router.router, prefix="/health", tags=["health"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn backend.api.app:app --reload
app = create_app()
