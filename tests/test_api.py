"""Integration tests for the HTTP layer.

The app is built with :func:`create_app` around an injected orchestrator so
no real SQLite file or network access is involved.
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from backend.api.app import create_app
from backend.db.models import ScrapeStatus
from backend.exceptions import FetchTimeout, ProviderError, RateLimited, UpstreamNotFound
from backend.service.orchestrator import Orchestrator
from backend.store import ContentStore
from tests.conftest import StubProvider, wait_until


def _assert_error_body(resp, kind: str) -> None:
    body = resp.json()
    assert set(body) == {"error", "kind", "retryable", "request_id"}
    assert body["kind"] == kind
    assert body["request_id"] == resp.headers["X-Request-ID"]


@pytest.fixture()
def client(orchestrator: Orchestrator) -> Generator[TestClient, None, None]:
    with TestClient(create_app(orchestrator=orchestrator)) as c:
        yield c


@pytest.fixture()
def failing_client(store: ContentStore) -> Generator[TestClient, None, None]:
    provider = StubProvider(
        outcomes={
            "http://timeout.test": FetchTimeout("upstream too slow"),
            "http://busy.test": RateLimited("slow down", retry_after=7),
            "http://gone.test": UpstreamNotFound("upstream returned HTTP 404"),
            "http://broken.test": ProviderError("upstream returned HTTP 500"),
        }
    )
    orch = Orchestrator(store, provider, fetch_timeout=5.0, publish_grace=2.0, max_workers=2)
    with TestClient(create_app(orchestrator=orch)) as c:
        yield c
    orch.shutdown(wait=True)


# ---------------------------------------------------------------------------
# End-to-end scrape → history
# ---------------------------------------------------------------------------

class TestScrapeFlow:
    def test_scrape_then_cache_then_history(
        self, client: TestClient, provider: StubProvider
    ) -> None:
        first = client.post("/scrape", json={"url": "http://a.test"})
        assert first.status_code == 200
        body = first.json()
        assert body["id"] == 1
        assert body["url"] == "http://a.test"
        assert body["content"] == "# Hello"
        assert body["status"] == "success"
        assert body["fetched_at"].endswith("+00:00")

        again = client.post("/scrape", json={"url": "HTTP://A.test/"})
        assert again.status_code == 200
        assert again.json()["id"] == 1
        assert provider.call_count == 1

        history = client.get("/history")
        assert history.status_code == 200
        assert len(history.json()) == 1
        assert history.json()[0]["preview"] == "# Hello"

        item = client.get("/history/1")
        assert item.status_code == 200
        assert item.json()["content"] == "# Hello"

    def test_force_refresh_creates_new_item(
        self, client: TestClient, provider: StubProvider
    ) -> None:
        client.post("/scrape", json={"url": "http://a.test"})
        refreshed = client.post("/scrape", json={"url": "http://a.test", "force_refresh": True})
        assert refreshed.status_code == 200
        assert refreshed.json()["id"] == 2
        assert provider.call_count == 2

    def test_unknown_item_is_404(self, client: TestClient) -> None:
        resp = client.get("/history/99")
        assert resp.status_code == 404
        assert resp.json()["kind"] == "item_not_found"
        assert resp.json()["retryable"] is False

    def test_request_id_header_is_echoed(self, client: TestClient) -> None:
        resp = client.get("/history/99")
        assert resp.headers["X-Request-ID"] == resp.json()["request_id"]


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

class TestErrorMapping:
    def test_malformed_url_is_422(self, client: TestClient, provider: StubProvider) -> None:
        resp = client.post("/scrape", json={"url": "ftp://example.com"})
        assert resp.status_code == 422
        assert resp.json()["kind"] == "validation_error"
        assert provider.call_count == 0

    def test_missing_body_field_is_422(self, client: TestClient) -> None:
        resp = client.post("/scrape", json={})
        assert resp.status_code == 422
        _assert_error_body(resp, "validation_error")
        assert "url" in resp.json()["error"]

    def test_unknown_route_has_structured_body(self, client: TestClient) -> None:
        resp = client.get("/nowhere")
        assert resp.status_code == 404
        _assert_error_body(resp, "http_error")

    def test_timeout_is_504(self, failing_client: TestClient) -> None:
        resp = failing_client.post("/scrape", json={"url": "http://timeout.test"})
        assert resp.status_code == 504
        assert resp.json()["kind"] == "timeout"
        assert resp.json()["retryable"] is True

    def test_rate_limited_is_503_with_retry_after(self, failing_client: TestClient) -> None:
        resp = failing_client.post("/scrape", json={"url": "http://busy.test"})
        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "7"
        assert resp.json()["kind"] == "rate_limited"

    def test_upstream_not_found_is_404(self, failing_client: TestClient) -> None:
        resp = failing_client.post("/scrape", json={"url": "http://gone.test"})
        assert resp.status_code == 404
        assert resp.json()["kind"] == "not_found"
        assert resp.json()["retryable"] is False

    def test_provider_error_is_502(self, failing_client: TestClient) -> None:
        resp = failing_client.post("/scrape", json={"url": "http://broken.test"})
        assert resp.status_code == 502
        assert resp.json()["kind"] == "provider_error"
        assert "HTTP 500" in resp.json()["error"]

    def test_failures_are_not_cached(self, failing_client: TestClient) -> None:
        failing_client.post("/scrape", json={"url": "http://broken.test"})
        assert failing_client.get("/history").json() == []

    def test_storage_error_is_500_without_details(
        self, client: TestClient, conn: sqlite3.Connection
    ) -> None:
        conn.close()
        resp = client.get("/history")
        assert resp.status_code == 500
        body = resp.json()
        assert body["error"] == "Internal server error"
        assert body["kind"] == "storage_error"
        assert body["request_id"] == resp.headers["X-Request-ID"]


# ---------------------------------------------------------------------------
# History listing / export
# ---------------------------------------------------------------------------

class TestHistory:
    def test_newest_first_with_total_header(self, client: TestClient) -> None:
        for host in ("a", "b", "c"):
            client.post("/scrape", json={"url": f"http://{host}.test"})

        resp = client.get("/history", params={"limit": 2})
        assert resp.status_code == 200
        assert [i["url"] for i in resp.json()] == ["http://c.test", "http://b.test"]
        assert resp.headers["X-Total-Count"] == "3"

        tail = client.get("/history", params={"offset": 2, "limit": 2})
        assert [i["url"] for i in tail.json()] == ["http://a.test"]

    @pytest.mark.parametrize(
        "params",
        [
            {"limit": 0},
            {"offset": -1},
            {"limit": "abc"},
            {"offset": 10**20},
        ],
    )
    def test_invalid_pagination_is_422(self, client: TestClient, params: dict) -> None:
        resp = client.get("/history", params=params)
        assert resp.status_code == 422
        _assert_error_body(resp, "validation_error")

    def test_id_beyond_sqlite_range_is_404(self, client: TestClient) -> None:
        resp = client.get(f"/history/{10**20}")
        assert resp.status_code == 404
        _assert_error_body(resp, "item_not_found")
        assert client.get(f"/history/{10**20}/markdown").status_code == 404

    def test_markdown_export(self, client: TestClient) -> None:
        client.post("/scrape", json={"url": "http://a.test"})
        resp = client.get("/history/1/markdown")
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/markdown")
        assert 'filename="a.test-1.md"' in resp.headers["content-disposition"]
        assert resp.text == "# Hello"

    def test_markdown_export_of_failed_item_is_409(
        self, client: TestClient, store: ContentStore
    ) -> None:
        failed = store.put("http://a.test", ScrapeStatus.FAILED, error="timeout: slow")
        resp = client.get(f"/history/{failed.id}/markdown")
        assert resp.status_code == 409
        _assert_error_body(resp, "item_not_exportable")

    def test_failed_item_is_listed_with_error(
        self, client: TestClient, store: ContentStore
    ) -> None:
        store.put("http://a.test", ScrapeStatus.FAILED, error="timeout: slow")
        [summary] = client.get("/history").json()
        assert summary["status"] == "failed"
        assert summary["error"] == "timeout: slow"
        assert summary["preview"] == ""


# ---------------------------------------------------------------------------
# Status / health
# ---------------------------------------------------------------------------

class TestStatusAndHealth:
    def test_status_before_and_after(self, client: TestClient) -> None:
        before = client.get("/scrape/status", params={"url": "http://a.test/"}).json()
        assert before == {
            "url": "http://a.test",
            "in_flight": False,
            "waiters": 0,
            "cached": False,
            "latest_item_id": None,
        }

        client.post("/scrape", json={"url": "http://a.test"})
        after = client.get("/scrape/status", params={"url": "http://a.test"}).json()
        assert after["cached"] is True
        assert after["latest_item_id"] == 1

    def test_status_reports_in_flight_fetch(self, store: ContentStore) -> None:
        gate = threading.Event()
        provider = StubProvider(gate=gate)
        orch = Orchestrator(store, provider, fetch_timeout=5.0, publish_grace=2.0, max_workers=2)
        worker = threading.Thread(target=orch.scrape, args=("http://a.test",))
        try:
            with TestClient(create_app(orchestrator=orch)) as c:
                worker.start()
                assert wait_until(lambda: provider.call_count == 1)

                status = c.get("/scrape/status", params={"url": "http://a.test"}).json()
                assert status["in_flight"] is True
                assert status["waiters"] == 1
                assert c.get("/health").json()["in_flight"] == 1
        finally:
            gate.set()
            worker.join(timeout=5)
            orch.shutdown(wait=True)

    def test_status_rejects_malformed_url(self, client: TestClient) -> None:
        resp = client.get("/scrape/status", params={"url": "nope"})
        assert resp.status_code == 422

    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "provider": "stub", "in_flight": 0}
