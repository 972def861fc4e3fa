"""ContentStore: contract behaviour, limit clamping, StorageError wrapping."""

from __future__ import annotations

import sqlite3
import threading

import pytest

from backend.db.models import ScrapeStatus
from backend.exceptions import StorageError
from backend.store import ContentStore


class TestContract:
    def test_put_then_get(self, store: ContentStore) -> None:
        item = store.put("http://a.test", ScrapeStatus.SUCCESS, content="# A")
        assert store.get("http://a.test") == item
        assert store.get_by_id(item.id) == item

    def test_get_by_unknown_id_is_none(self, store: ContentStore) -> None:
        assert store.get_by_id(12345) is None

    @pytest.mark.parametrize("item_id", [0, -1, 2**63, 10**20])
    def test_get_by_id_outside_sqlite_range_is_none(
        self, store: ContentStore, item_id: int
    ) -> None:
        store.put("http://a.test", ScrapeStatus.SUCCESS, content="# A")
        assert store.get_by_id(item_id) is None

    def test_list_offset_beyond_sqlite_range_is_empty(self, store: ContentStore) -> None:
        store.put("http://a.test", ScrapeStatus.SUCCESS, content="# A")
        assert store.list(offset=10**20) == []

    def test_list_limit_is_clamped(self, store: ContentStore) -> None:
        for i in range(60):
            store.put(f"http://{i}.test", ScrapeStatus.SUCCESS, content="x")
        assert len(store.list(offset=0, limit=1000)) == store.max_limit == 50

    def test_count(self, store: ContentStore) -> None:
        store.put("http://a.test", ScrapeStatus.SUCCESS, content="x")
        store.put("http://a.test", ScrapeStatus.FAILED, error="boom")
        assert store.count() == 2


class TestStorageErrors:
    def test_closed_connection_raises_storage_error(self) -> None:
        connection = sqlite3.connect(":memory:")
        store = ContentStore(connection)
        connection.close()
        with pytest.raises(StorageError):
            store.get("http://a.test")
        with pytest.raises(StorageError):
            store.put("http://a.test", ScrapeStatus.SUCCESS, content="x")

    def test_constraint_violation_raises_storage_error(self, store: ContentStore) -> None:
        with pytest.raises(StorageError):
            store.put("http://a.test", ScrapeStatus.SUCCESS, content=None)
        assert store.count() == 0


class TestConcurrentWrites:
    def test_parallel_puts_for_different_urls(self, store: ContentStore) -> None:
        errors: list[BaseException] = []

        def worker(n: int) -> None:
            try:
                for i in range(20):
                    store.put(f"http://{n}-{i}.test", ScrapeStatus.SUCCESS, content="x")
            except BaseException as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.count() == 160
        ids = [i.id for i in store.list(0, 50)]
        assert len(ids) == len(set(ids))
