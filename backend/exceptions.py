"""Exception hierarchy for the scrape service.

Hierarchy::

    ScrapeServiceError
    ├── ValidationError          malformed URL / bad pagination, no side effects
    ├── UpstreamFailure          typed Fetch Provider failures
    │   ├── FetchTimeout
    │   ├── RateLimited          (retry_after: float | None)
    │   ├── UpstreamNotFound
    │   └── ProviderError
    ├── StorageError             SQLite I/O or constraint failure
    ├── ItemNotFound             unknown history identifier
    └── ItemNotExportable        markdown export of a failed item

The API layer maps each member to its own status code (see
``backend/api/errors.py``).
"""

from __future__ import annotations

from enum import Enum


class ScrapeServiceError(Exception):
    """Base class for every error raised by the service."""


class ValidationError(ScrapeServiceError):
    """Raised for malformed input before any Store or Registry access."""


# ---------------------------------------------------------------------------
# Upstream (Fetch Provider) failures
# ---------------------------------------------------------------------------

class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    PROVIDER_ERROR = "provider_error"


class UpstreamFailure(ScrapeServiceError):
    """A Fetch Provider could not produce content for *url*.

    Args:
        message: Human-readable cause.
        url: The URL that was being fetched, when known.
        provider: Name of the provider that failed, when known.
    """

    kind: FailureKind = FailureKind.PROVIDER_ERROR
    retryable: bool = True

    def __init__(
        self,
        message: str,
        url: str | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.url = url
        self.provider = provider

    def describe(self) -> str:
        """Return the ``"<kind>: <message>"`` form stored on failed items."""
        return f"{self.kind.value}: {self.message}"


class FetchTimeout(UpstreamFailure):
    kind = FailureKind.TIMEOUT
    retryable = True


class RateLimited(UpstreamFailure):
    """The upstream refused the request because of rate limiting.

    Args:
        retry_after: Seconds the upstream asked us to wait, if it said.
    """

    kind = FailureKind.RATE_LIMITED
    retryable = True

    def __init__(
        self,
        message: str,
        url: str | None = None,
        provider: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, url=url, provider=provider)
        self.retry_after = retry_after


class UpstreamNotFound(UpstreamFailure):
    kind = FailureKind.NOT_FOUND
    retryable = False


class ProviderError(UpstreamFailure):
    kind = FailureKind.PROVIDER_ERROR
    retryable = True


# ---------------------------------------------------------------------------
# Storage / lookup
# ---------------------------------------------------------------------------

class StorageError(ScrapeServiceError):
    """The Content Store failed to read or write."""


class ItemNotFound(ScrapeServiceError):
    """No scraped item exists with the requested identifier."""

    def __init__(self, item_id: int) -> None:
        super().__init__(f"Item not found: {item_id}")
        self.item_id = item_id


class ItemNotExportable(ScrapeServiceError):
    """The item exists but is a failed scrape with no content to export."""

    def __init__(self, item_id: int) -> None:
        super().__init__(f"Item {item_id} is a failed scrape and has no content.")
        self.item_id = item_id
