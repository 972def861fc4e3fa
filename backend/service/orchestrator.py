"""Scrape orchestration: cache hit, join an in-flight fetch, or start one.

``Orchestrator.scrape`` is the single entry point used by the API and CLI::

    normalise → Store.get (unless force_refresh)
              → Registry.join
                  leader:   submit fetch job → Provider.fetch → Store.put → publish
                  everyone: wait for the job to start, then on the shared
                            future (bounded by fetch_timeout + publish_grace)

The fetch job runs on the orchestrator's own thread pool rather than in the
leader's request thread, so a leader that goes away does not abort the fetch:
followers are still answered and the cache is still populated.  The job
always publishes exactly once, from a ``finally`` path, whatever happens.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass
from time import monotonic
from typing import Any, Optional

import structlog

from backend.config import settings
from backend.db.items import MAX_SQLITE_INT
from backend.db.models import ScrapedItem, ScrapeStatus
from backend.exceptions import (
    FetchTimeout,
    ProviderError,
    StorageError,
    UpstreamFailure,
    ValidationError,
)
from backend.scraper.providers import FetchProvider
from backend.service.registry import InFlightEntry, InFlightRegistry
from backend.service.urls import normalize_url
from backend.store import ContentStore

logger = structlog.get_logger(__name__)


@dataclass
class ScrapeStatusReport:
    url: str
    in_flight: bool
    waiters: int
    latest_item_id: Optional[int]
    latest_fetched_at: Optional[float]


class Orchestrator:
    """Coordinates the Content Store, the In-Flight Registry and a provider.

    Args:
        store: Content store used for cache reads and result writes.
        provider: The Fetch Provider; never inspected beyond its interface.
        registry: Defaults to a fresh :class:`InFlightRegistry`.
        fetch_timeout: Seconds handed to ``provider.fetch``.
        publish_grace: Extra seconds a waiter allows on top of
            *fetch_timeout* for persisting and publishing.
        persist_failures: Store upstream failures as ``failed`` rows.
        max_workers: Size of the fetch thread pool.

    Unset keyword arguments fall back to ``backend.config.settings``.
    """

    def __init__(
        self,
        store: ContentStore,
        provider: FetchProvider,
        registry: Optional[InFlightRegistry] = None,
        *,
        fetch_timeout: Optional[float] = None,
        publish_grace: Optional[float] = None,
        persist_failures: Optional[bool] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.registry = registry or InFlightRegistry()
        self.fetch_timeout = fetch_timeout if fetch_timeout is not None else settings.fetch_timeout
        self.publish_grace = publish_grace if publish_grace is not None else settings.publish_grace
        self.persist_failures = (
            persist_failures if persist_failures is not None else settings.persist_failures
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or settings.max_concurrent_fetches,
            thread_name_prefix="scrape",
        )

    # ------------------------------------------------------------------
    # Scrape
    # ------------------------------------------------------------------
    def scrape(self, url: str, force_refresh: bool = False) -> ScrapedItem:
        """Return the stored or freshly fetched item for *url*.

        Raises:
            ValidationError: *url* is malformed (nothing was touched).
            UpstreamFailure: The provider failed; every concurrent caller for
                the same URL receives the same exception instance.
            StorageError: The result could not be persisted.
        """
        normalized = normalize_url(url)
        log = logger.bind(url=normalized)

        if not force_refresh:
            cached = self.store.get(normalized)
            if cached is not None:
                log.info("cache_hit", item_id=cached.id)
                return cached

        is_leader, entry = self.registry.join(normalized)
        if is_leader:
            log.info("fetch_started", provider=self.provider.name, force_refresh=force_refresh)
            self._submit(normalized, force_refresh)
        else:
            log.info("fetch_joined", waiters=self.registry.waiters(normalized))

        return self._await(entry)

    def _submit(self, url: str, force_refresh: bool) -> None:
        context = structlog.contextvars.get_contextvars()
        try:
            self._executor.submit(self._lead, url, force_refresh, context)
        except RuntimeError as exc:
            # Executor already shut down: release the waiters we just created.
            self.registry.publish(
                url, error=ProviderError(f"fetch could not be scheduled: {exc}", url=url)
            )

    def _await(self, entry: InFlightEntry) -> ScrapedItem:
        # The deadline starts when the job leaves the queue: time spent
        # behind other URLs' fetches is not an upstream timeout.
        if not entry.running.is_set():
            logger.debug("fetch_queued", url=entry.url)
            entry.running.wait()
        bound = self.fetch_timeout + self.publish_grace
        try:
            return entry.future.result(timeout=bound)
        except FuturesTimeout:
            self.registry.leave(entry)
            logger.warning("fetch_wait_timeout", url=entry.url, waited_s=bound)
            raise FetchTimeout(f"no result within {bound:g}s", url=entry.url) from None

    def _lead(self, url: str, force_refresh: bool, context: dict[str, Any]) -> None:
        """Fetch job body; runs on the executor and always publishes once."""
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**context)
        self.registry.mark_running(url)

        item: Optional[ScrapedItem] = None
        error: Optional[Exception] = None
        try:
            item = self._fetch_and_store(url, force_refresh)
        except StorageError as exc:
            logger.exception("store_failed", url=url)
            error = exc
        except Exception as exc:  # noqa: BLE001 - handed to every waiter
            error = exc
        finally:
            if item is not None:
                self.registry.publish(url, result=item)
            else:
                self.registry.publish(
                    url, error=error or ProviderError("fetch aborted", url=url)
                )
            structlog.contextvars.clear_contextvars()

    def _fetch_and_store(self, url: str, force_refresh: bool) -> ScrapedItem:
        log = logger.bind(url=url, provider=self.provider.name)

        # A previous leader may have finished between our cache miss and our
        # registration.
        if not force_refresh:
            cached = self.store.get(url)
            if cached is not None:
                log.info("cache_hit_after_join", item_id=cached.id)
                return cached

        started = monotonic()
        try:
            content = self.provider.fetch(url, self.fetch_timeout)
        except UpstreamFailure as exc:
            failure = exc
        except Exception as exc:  # noqa: BLE001 - re-raised as ProviderError
            failure = ProviderError(f"unexpected provider error: {exc!r}", url=url)
            failure.__cause__ = exc
        else:
            failure = None

        elapsed = round(monotonic() - started, 3)
        if failure is not None:
            failure.url = failure.url or url
            failure.provider = failure.provider or self.provider.name
            log.warning(
                "fetch_failed",
                kind=failure.kind.value,
                error=failure.message,
                elapsed_s=elapsed,
            )
            if self.persist_failures:
                self._record_failure(url, failure)
            raise failure

        item = self.store.put(url, ScrapeStatus.SUCCESS, content=content)
        log.info("fetch_succeeded", item_id=item.id, chars=len(content), elapsed_s=elapsed)
        return item

    def _record_failure(self, url: str, failure: UpstreamFailure) -> None:
        try:
            self.store.put(url, ScrapeStatus.FAILED, error=failure.describe())
        except StorageError:
            # The upstream failure is still what the callers receive.
            logger.exception("failure_record_failed", url=url, kind=failure.kind.value)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def get_history(self, offset: int = 0, limit: Optional[int] = None) -> list[ScrapedItem]:
        """Newest-first page of items.

        Raises:
            ValidationError: ``offset`` outside ``0..2**63-1`` or
                ``limit < 1``.  Limits above the store maximum are clamped,
                not rejected.
        """
        if limit is None:
            limit = settings.history_default_limit
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise ValidationError("offset must be a non-negative integer")
        if offset > MAX_SQLITE_INT:
            raise ValidationError(f"offset must not exceed {MAX_SQLITE_INT}")
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError("limit must be a positive integer")
        return self.store.list(offset=offset, limit=limit)

    def count(self) -> int:
        return self.store.count()

    def get_by_id(self, item_id: int) -> Optional[ScrapedItem]:
        """The item with *item_id*, or ``None`` when it does not exist."""
        return self.store.get_by_id(item_id)

    # ------------------------------------------------------------------
    # Introspection / lifecycle
    # ------------------------------------------------------------------
    def status(self, url: str) -> ScrapeStatusReport:
        """Report whether *url* is being fetched and what is cached for it."""
        normalized = normalize_url(url)
        latest = self.store.get(normalized)
        return ScrapeStatusReport(
            url=normalized,
            in_flight=self.registry.is_in_flight(normalized),
            waiters=self.registry.waiters(normalized),
            latest_item_id=latest.id if latest else None,
            latest_fetched_at=latest.fetched_at if latest else None,
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting fetch jobs; by default wait for running ones."""
        self._executor.shutdown(wait=wait)
