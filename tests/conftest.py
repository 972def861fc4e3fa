"""Shared fixtures: in-memory store and a controllable stub Fetch Provider."""

from __future__ import annotations

import sqlite3
import threading
import time
from typing import Callable, Generator, Optional, Union

import pytest

from backend.db.connection import get_connection
from backend.db.migrations import init_db
from backend.exceptions import UpstreamFailure
from backend.scraper.providers import FetchProvider
from backend.service.orchestrator import Orchestrator
from backend.store import ContentStore

Outcome = Union[str, UpstreamFailure, Exception]


class StubProvider(FetchProvider):
    """Returns canned outcomes per URL and counts calls.

    ``gate`` (when set) makes every call block until the event is set, so
    tests can pile up concurrent callers before the fetch completes.
    """

    def __init__(
        self,
        outcomes: Optional[dict[str, Outcome]] = None,
        default: Outcome = "# Hello",
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.outcomes = outcomes or {}
        self.default = default
        self.gate = gate
        self.calls: list[str] = []
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "stub"

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def fetch(self, url: str, timeout: float) -> str:
        with self._lock:
            self.calls.append(url)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        outcome = self.outcomes.get(url, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll *predicate* until it is true or *timeout* elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory connection with the schema initialised."""
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def store(conn: sqlite3.Connection) -> ContentStore:
    return ContentStore(conn, max_limit=50)


@pytest.fixture()
def provider() -> StubProvider:
    return StubProvider()


@pytest.fixture()
def orchestrator(store: ContentStore, provider: StubProvider) -> Generator[Orchestrator, None, None]:
    orch = Orchestrator(
        store,
        provider,
        fetch_timeout=5.0,
        publish_grace=2.0,
        persist_failures=False,
        max_workers=4,
    )
    yield orch
    orch.shutdown(wait=True)
