"""In-flight request registry: at most one outstanding fetch per URL.

The first caller for a URL becomes the *leader* and must eventually call
:meth:`InFlightRegistry.publish`.  Every concurrent caller for the same URL
becomes a *follower* and receives the leader's future.  Publishing removes the
entry before resolving the future, so a request arriving afterwards starts a
fresh attempt instead of replaying the finished one.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from time import monotonic
from typing import Optional

import structlog

from backend.db.models import ScrapedItem

logger = structlog.get_logger(__name__)


@dataclass
class InFlightEntry:
    url: str
    future: "Future[ScrapedItem]" = field(default_factory=Future)
    waiters: int = 1
    started_at: float = field(default_factory=monotonic)
    # Set once the fetch job is running (or the entry is published).
    running: threading.Event = field(default_factory=threading.Event)


class InFlightRegistry:
    """Mutex-guarded map of normalised URL to :class:`InFlightEntry`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, InFlightEntry] = {}

    def join(self, url: str) -> tuple[bool, InFlightEntry]:
        """Atomically join the pending fetch for *url* or register a new one.

        Returns:
            ``(is_leader, entry)``.  ``entry.future`` resolves to the leader's
            :class:`ScrapedItem` or raises the leader's exception.
        """
        with self._lock:
            entry = self._entries.get(url)
            if entry is not None:
                entry.waiters += 1
                logger.debug("inflight_joined", url=url, waiters=entry.waiters)
                return False, entry
            entry = InFlightEntry(url=url)
            self._entries[url] = entry
        logger.debug("inflight_started", url=url)
        return True, entry

    def join_or_start(self, url: str) -> tuple[bool, "Future[ScrapedItem]"]:
        """Like :meth:`join` but hands back only the shared future."""
        is_leader, entry = self.join(url)
        return is_leader, entry.future

    def mark_running(self, url: str) -> None:
        """Record that the fetch job for *url* has left the queue."""
        with self._lock:
            entry = self._entries.get(url)
        if entry is not None:
            entry.running.set()

    def leave(self, entry: InFlightEntry) -> None:
        """Detach one waiter that stopped waiting before the publish."""
        with self._lock:
            if self._entries.get(entry.url) is entry and entry.waiters > 0:
                entry.waiters -= 1

    def publish(
        self,
        url: str,
        result: Optional[ScrapedItem] = None,
        error: Optional[BaseException] = None,
    ) -> bool:
        """Resolve every waiter for *url* with *result* or *error* and clear it.

        Exactly one of *result* / *error* must be given.

        Returns:
            ``False`` if nothing was in flight for *url* (already published).
        """
        if (result is None) == (error is None):
            raise ValueError("publish() needs exactly one of result or error")

        with self._lock:
            entry = self._entries.pop(url, None)
        if entry is None:
            logger.warning("inflight_publish_without_entry", url=url)
            return False

        entry.running.set()
        if error is not None:
            entry.future.set_exception(error)
        else:
            entry.future.set_result(result)
        logger.debug(
            "inflight_published",
            url=url,
            waiters=entry.waiters,
            ok=error is None,
            elapsed_s=round(monotonic() - entry.started_at, 3),
        )
        return True

    def waiters(self, url: str) -> int:
        """Number of callers attached to the pending fetch (0 when idle)."""
        with self._lock:
            entry = self._entries.get(url)
            return entry.waiters if entry else 0

    def is_in_flight(self, url: str) -> bool:
        with self._lock:
            return url in self._entries

    def in_flight(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
