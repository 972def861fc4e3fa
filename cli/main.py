"""Scraper CLI: entry-point for local backend operations.

Usage:
    python cli/main.py --help

Command groups:
    db        → database setup
    scrape    → scrape one URL through the cache (same path as POST /scrape)
    history   → list / show / export stored items
    serve     → run the HTTP API with uvicorn
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from backend.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from contextlib import contextmanager
from typing import Iterator, Optional

import typer

from backend.config import settings
from backend.db import get_connection, init_db
from backend.db.models import ScrapedItem
from backend.exceptions import ScrapeServiceError, UpstreamFailure
from backend.logging_config import configure_logging
from backend.scraper.providers import build_provider
from backend.service.orchestrator import Orchestrator
from backend.store import ContentStore

app = typer.Typer(
    name="scraper",
    help="Markdown scraper backend CLI.",
    no_args_is_help=True,
)


@app.callback()
def main(
    log_level: str = typer.Option(
        "WARNING", "--log-level", help="Log level for backend log output."
    ),
) -> None:
    configure_logging(log_level)


@contextmanager
def _orchestrator(provider: Optional[str] = None) -> Iterator[Orchestrator]:
    """Open the workspace DB and yield an orchestrator; always clean up."""
    conn = get_connection()
    init_db(conn)
    orchestrator = Orchestrator(ContentStore(conn), build_provider(provider))
    try:
        yield orchestrator
    finally:
        orchestrator.shutdown(wait=True)
        conn.close()


def _summary_line(item: ScrapedItem) -> str:
    mark = "ok " if item.ok else "ERR"
    return f"  {item.id:>5}  {mark}  {item.fetched_at_iso()}  {item.url}"


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    conn = get_connection()
    init_db(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


# ---------------------------------------------------------------------------
# Scrape
# ---------------------------------------------------------------------------
@app.command("scrape")
def scrape(
    url: str = typer.Argument(..., help="URL to scrape."),
    refresh: bool = typer.Option(False, "--refresh", help="Bypass the cache."),
    provider: Optional[str] = typer.Option(
        None, "--provider", help="Override FETCH_PROVIDER (http | firecrawl | llm)."
    ),
) -> None:
    """Scrape *url* (or return the cached copy) and print its markdown."""
    try:
        with _orchestrator(provider) as orchestrator:
            item = orchestrator.scrape(url, force_refresh=refresh)
    except UpstreamFailure as exc:
        typer.echo(f"[scrape] Upstream failure ({exc.kind.value}): {exc.message}", err=True)
        raise typer.Exit(code=2)
    except (ScrapeServiceError, ValueError, EnvironmentError) as exc:
        typer.echo(f"[scrape] Error: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"[scrape] Item {item.id}  {item.url}  ({item.fetched_at_iso()})")
    typer.echo("")
    typer.echo(item.content or "")


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------
history_app = typer.Typer(help="Browse stored scrape results.", no_args_is_help=True)
app.add_typer(history_app, name="history")


@history_app.command("list")
def history_list(
    offset: int = typer.Option(0, help="Number of items to skip."),
    limit: int = typer.Option(20, help="Maximum number of items to show."),
) -> None:
    """List stored items, newest first."""
    conn = get_connection()
    init_db(conn)
    store = ContentStore(conn)
    try:
        if offset < 0 or limit < 1:
            typer.echo("[history] offset must be >= 0 and limit >= 1", err=True)
            raise typer.Exit(code=1)
        items = store.list(offset=offset, limit=limit)
        total = store.count()
    except ScrapeServiceError as exc:
        typer.echo(f"[history] Error: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        conn.close()

    if not items:
        typer.echo("[history] No items found.")
        return
    typer.echo(f"[history] Showing {len(items)} of {total} item(s):")
    for item in items:
        typer.echo(_summary_line(item))
        if not item.ok:
            typer.echo(f"         {item.error}")


@history_app.command("show")
def history_show(item_id: int = typer.Argument(..., help="Item id.")) -> None:
    """Print one stored item."""
    conn = get_connection()
    init_db(conn)
    try:
        item = ContentStore(conn).get_by_id(item_id)
    except ScrapeServiceError as exc:
        typer.echo(f"[history] Error: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        conn.close()

    if item is None:
        typer.echo(f"[history] No item with id {item_id}.", err=True)
        raise typer.Exit(code=1)
    typer.echo(_summary_line(item))
    typer.echo("")
    typer.echo(item.content if item.ok else f"(failed) {item.error}")


@history_app.command("export")
def history_export(
    item_id: int = typer.Argument(..., help="Item id."),
    out: Optional[Path] = typer.Option(None, "--out", help="Destination .md file."),
) -> None:
    """Write one item's markdown to a file (default: ./item-<id>.md)."""
    conn = get_connection()
    init_db(conn)
    try:
        item = ContentStore(conn).get_by_id(item_id)
    except ScrapeServiceError as exc:
        typer.echo(f"[history] Error: {exc}", err=True)
        raise typer.Exit(code=1)
    finally:
        conn.close()

    if item is None or not item.ok:
        typer.echo(f"[history] No exportable item with id {item_id}.", err=True)
        raise typer.Exit(code=1)
    target = out or Path(f"item-{item_id}.md")
    target.write_text(item.content or "", encoding="utf-8")
    typer.echo(f"[history] Wrote {target}")


# ---------------------------------------------------------------------------
# API server
# ---------------------------------------------------------------------------
@app.command("serve")
def serve(
    host: str = typer.Option(settings.api_host, help="Bind address."),
    port: int = typer.Option(settings.api_port, help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes."),
) -> None:
    """Run the HTTP API (``backend.api.app:app``) under uvicorn."""
    import uvicorn  # noqa: PLC0415

    uvicorn.run("backend.api.app:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
