"""Fetch Provider abstraction: "give me markdown for this URL".

Implementations
---------------
``HttpScraperProvider`` (``FETCH_PROVIDER=http``, default)
    Plain ``httpx`` GET followed by trafilatura / BeautifulSoup extraction.

``FirecrawlProvider`` (``FETCH_PROVIDER=firecrawl``)
    Calls the Firecrawl ``/v1/scrape`` REST endpoint asking for markdown.
    Requires ``FIRECRAWL_API_KEY``.

``LlmExtractionProvider`` (``FETCH_PROVIDER=llm``)
    Fetches the page over HTTP, then asks a chat model (Ollama or OpenAI) to
    rewrite the visible text as markdown.

Every provider shares one contract: ``fetch(url, timeout) -> str`` returns
non-empty markdown or raises an
:class:`~backend.exceptions.UpstreamFailure` subclass.  The orchestrator only
ever sees this interface.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
import structlog

from backend.config import settings
from backend.exceptions import (
    FetchTimeout,
    ProviderError,
    RateLimited,
    UpstreamNotFound,
)
from backend.scraper.extractor import _bs4_fallback, _extract_title, extract_content
from backend.scraper.fetcher import fetch_url, parse_retry_after, raise_for_upstream_status

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class FetchProvider(ABC):
    """Abstract base class for a single content provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short provider name used in logs and failure records."""

    @abstractmethod
    def fetch(self, url: str, timeout: float) -> str:
        """Return markdown for *url* within roughly *timeout* seconds.

        Raises:
            FetchTimeout, RateLimited, UpstreamNotFound, ProviderError
        """


# ---------------------------------------------------------------------------
# Plain HTTP scraper
# ---------------------------------------------------------------------------

class HttpScraperProvider(FetchProvider):
    @property
    def name(self) -> str:
        return "http"

    def fetch(self, url: str, timeout: float) -> str:
        raw = fetch_url(url, timeout=timeout, provider=self.name)
        page = extract_content(raw)
        if not page.markdown:
            raise ProviderError("no readable content extracted", url=url, provider=self.name)
        return page.markdown


# ---------------------------------------------------------------------------
# Firecrawl
# ---------------------------------------------------------------------------

class FirecrawlProvider(FetchProvider):
    """Firecrawl hosted scraping API.

    The target page's own status code is reported back in
    ``data.metadata.statusCode``; a 404/410 there is surfaced as
    :class:`UpstreamNotFound` just like the plain HTTP provider does.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None) -> None:
        self._api_key = api_key if api_key is not None else settings.firecrawl_api_key
        if not self._api_key or self._api_key == "YOUR_FIRECRAWL_API_KEY":
            raise EnvironmentError(
                "FIRECRAWL_API_KEY is not set. "
                "Set it or switch to FETCH_PROVIDER=http."
            )
        self._base_url = (base_url or settings.firecrawl_base_url).rstrip("/")

    @property
    def name(self) -> str:
        return "firecrawl"

    def fetch(self, url: str, timeout: float) -> str:
        try:
            with httpx.Client(timeout=timeout) as client:
                response = client.post(
                    f"{self._base_url}/v1/scrape",
                    headers={"Authorization": f"Bearer {self._api_key}"},
                    json={
                        "url": url,
                        "formats": ["markdown"],
                        "timeout": int(timeout * 1000),
                    },
                )
        except httpx.TimeoutException as exc:
            raise FetchTimeout(f"firecrawl timed out: {exc}", url=url, provider=self.name) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"firecrawl request failed: {exc}", url=url, provider=self.name) from exc

        if response.status_code == 408:
            raise FetchTimeout("firecrawl reported a scrape timeout", url=url, provider=self.name)
        if response.status_code == 429:
            raise RateLimited(
                "firecrawl rate limit (HTTP 429)",
                url=url,
                provider=self.name,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        if response.status_code >= 400:
            raise ProviderError(
                f"firecrawl returned HTTP {response.status_code}: {response.text[:200]}",
                url=url,
                provider=self.name,
            )

        try:
            payload: dict[str, Any] = response.json()
        except ValueError as exc:
            raise ProviderError("firecrawl returned invalid JSON", url=url, provider=self.name) from exc

        data = payload.get("data") or {}
        target_status = (data.get("metadata") or {}).get("statusCode")
        if target_status in (404, 410):
            raise UpstreamNotFound(
                f"upstream returned HTTP {target_status}", url=url, provider=self.name
            )

        markdown = data.get("markdown")
        if not payload.get("success", True) or not markdown:
            raise ProviderError(
                payload.get("error") or "firecrawl did not return markdown content",
                url=url,
                provider=self.name,
            )
        return markdown


# ---------------------------------------------------------------------------
# LLM-assisted extraction
# ---------------------------------------------------------------------------

_LLM_SYSTEM_PROMPT = (
    "You convert web page text into clean, well-structured Markdown. "
    "Keep the original wording, headings, lists and code. Drop navigation, "
    "cookie banners and boilerplate. Output only the Markdown document."
)


class LlmExtractionProvider(FetchProvider):
    """Fetch over HTTP, then let a chat model produce the markdown."""

    def __init__(self, llm_provider: Optional[str] = None) -> None:
        self._llm = llm_provider or settings.llm_provider

    @property
    def name(self) -> str:
        return f"llm:{self._llm}"

    def fetch(self, url: str, timeout: float) -> str:
        raw = fetch_url(url, timeout=timeout, provider=self.name)
        text = _bs4_fallback(raw.html)[: settings.llm_max_input_chars]
        if not text.strip():
            raise ProviderError("page has no visible text", url=url, provider=self.name)

        title = _extract_title(raw.html)
        prompt = f"URL: {url}\nTitle: {title or '(none)'}\n\nPage text:\n{text}"
        markdown = self._complete(prompt, url, timeout).strip()
        if not markdown:
            raise ProviderError("model returned an empty document", url=url, provider=self.name)
        return markdown

    # ------------------------------------------------------------------
    # Chat backends
    # ------------------------------------------------------------------
    def _complete(self, prompt: str, url: str, timeout: float) -> str:
        messages = [
            {"role": "system", "content": _LLM_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
        try:
            with httpx.Client(timeout=timeout) as client:
                if self._llm == "openai":
                    response = self._post_openai(client, messages, url)
                    self._check(response, url)
                    return response.json()["choices"][0]["message"]["content"] or ""
                response = client.post(
                    f"{settings.ollama_base_url}/api/chat",
                    json={
                        "model": settings.ollama_chat_model,
                        "messages": messages,
                        "stream": False,
                        "options": {"temperature": 0},
                    },
                )
                self._check(response, url)
                return response.json()["message"]["content"] or ""
        except httpx.TimeoutException as exc:
            raise FetchTimeout(f"model call timed out: {exc}", url=url, provider=self.name) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"model call failed: {exc}", url=url, provider=self.name) from exc
        except (KeyError, IndexError, ValueError) as exc:
            raise ProviderError(f"unexpected model response: {exc!r}", url=url, provider=self.name) from exc

    def _post_openai(
        self,
        client: httpx.Client,
        messages: list[dict[str, str]],
        url: str,
    ) -> httpx.Response:
        api_key = os.environ.get("OPENAI_API_KEY", "")
        if not api_key:
            raise ProviderError(
                "OPENAI_API_KEY environment variable is not set",
                url=url,
                provider=self.name,
            )
        return client.post(
            "https://api.openai.com/v1/chat/completions",
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": settings.openai_chat_model,
                "messages": messages,
                "temperature": 0,
            },
        )

    def _check(self, response: httpx.Response, url: str) -> None:
        # A 404 here means a missing model, not a missing page.
        if response.status_code == 404:
            raise ProviderError("model endpoint returned HTTP 404", url=url, provider=self.name)
        raise_for_upstream_status(response, url, self.name)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_PROVIDERS = {
    "http": HttpScraperProvider,
    "firecrawl": FirecrawlProvider,
    "llm": LlmExtractionProvider,
}


def build_provider(name: Optional[str] = None) -> FetchProvider:
    """Return the provider selected by *name* or ``settings.fetch_provider``.

    Raises:
        ValueError: Unknown provider name.
        EnvironmentError: Provider is missing required credentials.
    """
    key = (name or settings.fetch_provider).strip().lower()
    try:
        provider_cls = _PROVIDERS[key]
    except KeyError:
        raise ValueError(
            f"Unknown FETCH_PROVIDER {key!r}; expected one of {sorted(_PROVIDERS)}"
        ) from None
    provider = provider_cls()
    logger.info("fetch_provider_selected", provider=provider.name)
    return provider
