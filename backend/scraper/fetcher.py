"""HTTP fetcher that maps transport and status failures onto the typed
upstream-failure taxonomy."""

from __future__ import annotations

from typing import Optional

import httpx

from backend.config import settings
from backend.exceptions import (
    FetchTimeout,
    ProviderError,
    RateLimited,
    UpstreamNotFound,
)
from backend.scraper.models import RawPage

_NOT_FOUND_STATUSES = frozenset({404, 410})


def _default_headers() -> dict[str, str]:
    return {
        "User-Agent": settings.user_agent,
        "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
    }


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Return the ``Retry-After`` header as seconds, if it is numeric."""
    if not value:
        return None
    try:
        return max(0.0, float(value.strip()))
    except ValueError:
        return None


def raise_for_upstream_status(
    response: httpx.Response,
    url: str,
    provider: str,
) -> None:
    """Raise the matching :class:`UpstreamFailure` for a non-2xx *response*."""
    status = response.status_code
    if status < 400:
        return
    if status in _NOT_FOUND_STATUSES:
        raise UpstreamNotFound(f"upstream returned HTTP {status}", url=url, provider=provider)
    if status == 429:
        raise RateLimited(
            "upstream rate limit (HTTP 429)",
            url=url,
            provider=provider,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    raise ProviderError(f"upstream returned HTTP {status}", url=url, provider=provider)


def fetch_url(url: str, timeout: Optional[float] = None, provider: str = "http") -> RawPage:
    """Fetch *url* and return a :class:`RawPage`.

    Args:
        url: Absolute http(s) URL.
        timeout: Overall httpx timeout in seconds.  Defaults to
            ``settings.request_timeout``.
        provider: Provider name recorded on raised failures.

    Raises:
        FetchTimeout: Connect/read/write/pool timeout.
        UpstreamNotFound: HTTP 404 or 410.
        RateLimited: HTTP 429.
        ProviderError: Any other HTTP error status or transport failure.
    """
    try:
        with httpx.Client(
            headers=_default_headers(),
            timeout=timeout or settings.request_timeout,
            follow_redirects=True,
        ) as client:
            response = client.get(url)
    except httpx.TimeoutException as exc:
        raise FetchTimeout(f"timed out fetching {url}: {exc}", url=url, provider=provider) from exc
    except httpx.HTTPError as exc:
        raise ProviderError(f"request failed: {exc}", url=url, provider=provider) from exc

    raise_for_upstream_status(response, url, provider)

    return RawPage(
        url=url,
        html=response.text,
        status_code=response.status_code,
        final_url=str(response.url),
    )

