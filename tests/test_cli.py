"""Tests for the scraper CLI."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from backend.db import get_connection, init_db
from backend.store import ContentStore
from backend.exceptions import StorageError, UpstreamNotFound
from cli.main import app
from tests.conftest import StubProvider

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Point the DB at a temp workspace and swap in a stub provider."""
    monkeypatch.setattr("backend.config.settings.workspace_dir", tmp_path)
    provider = StubProvider(
        outcomes={"http://gone.test": UpstreamNotFound("upstream returned HTTP 404")},
        default="# Hello\n\nWorld",
    )
    monkeypatch.setattr("cli.main.build_provider", lambda name=None: provider)
    return tmp_path


def test_db_init(workspace):
    result = runner.invoke(app, ["db", "init"])
    assert result.exit_code == 0
    assert "Database ready" in result.output
    assert (workspace / "scraped.db").exists()


def test_scrape_prints_markdown(workspace):
    result = runner.invoke(app, ["scrape", "http://a.test"])
    assert result.exit_code == 0
    assert "[scrape] Item 1  http://a.test" in result.output
    assert "# Hello" in result.output


def test_scrape_uses_cache(workspace):
    runner.invoke(app, ["scrape", "http://a.test"])
    result = runner.invoke(app, ["scrape", "http://A.test/"])
    assert result.exit_code == 0
    assert "Item 1" in result.output

    refreshed = runner.invoke(app, ["scrape", "http://a.test", "--refresh"])
    assert "Item 2" in refreshed.output


def test_scrape_upstream_failure_exit_code(workspace):
    result = runner.invoke(app, ["scrape", "http://gone.test"])
    assert result.exit_code == 2
    assert "not_found" in result.output


def test_scrape_invalid_url(workspace):
    result = runner.invoke(app, ["scrape", "not-a-url"])
    assert result.exit_code == 1
    assert "Error" in result.output


def test_history_list_empty(workspace):
    result = runner.invoke(app, ["history", "list"])
    assert result.exit_code == 0
    assert "No items found" in result.output


def test_history_list_and_show(workspace):
    runner.invoke(app, ["scrape", "http://a.test"])
    runner.invoke(app, ["scrape", "http://b.test"])

    listing = runner.invoke(app, ["history", "list", "--limit", "1"])
    assert listing.exit_code == 0
    assert "Showing 1 of 2" in listing.output
    assert "http://b.test" in listing.output
    assert "http://a.test" not in listing.output

    shown = runner.invoke(app, ["history", "show", "1"])
    assert shown.exit_code == 0
    assert "http://a.test" in shown.output
    assert "World" in shown.output


def test_history_list_rejects_bad_limit(workspace):
    result = runner.invoke(app, ["history", "list", "--limit", "0"])
    assert result.exit_code == 1


def test_history_show_missing(workspace):
    conn = get_connection()
    init_db(conn)
    conn.close()
    result = runner.invoke(app, ["history", "show", "42"])
    assert result.exit_code == 1
    assert "No item with id 42" in result.output


def test_history_export(workspace):
    runner.invoke(app, ["scrape", "http://a.test"])
    out = workspace / "export" / "a.md"
    out.parent.mkdir()

    result = runner.invoke(app, ["history", "export", "1", "--out", str(out)])
    assert result.exit_code == 0
    assert Path(out).read_text(encoding="utf-8") == "# Hello\n\nWorld"


def test_history_export_failed_scrape(workspace):
    runner.invoke(app, ["scrape", "http://gone.test"])
    result = runner.invoke(app, ["history", "export", "1"])
    assert result.exit_code == 1


@pytest.mark.parametrize(
    "args, method",
    [
        (["history", "list"], "list"),
        (["history", "show", "1"], "get_by_id"),
        (["history", "export", "1"], "get_by_id"),
    ],
)
def test_history_storage_error_exit_code(workspace, monkeypatch, args, method):
    def broken(self, *a, **kw):
        raise StorageError("disk full")

    monkeypatch.setattr(ContentStore, method, broken)
    result = runner.invoke(app, args)
    assert result.exit_code == 1
    assert "[history] Error: disk full" in result.output
    assert not isinstance(result.exception, StorageError)
