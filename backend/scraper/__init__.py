"""Scraper package: Fetch Provider implementations and their helpers."""

from backend.scraper.extractor import extract_content
from backend.scraper.fetcher import fetch_url
from backend.scraper.models import CleanPage, RawPage
from backend.scraper.providers import (
    FetchProvider,
    FirecrawlProvider,
    HttpScraperProvider,
    LlmExtractionProvider,
    build_provider,
)

__all__ = [
    "fetch_url",
    "extract_content",
    "RawPage",
    "CleanPage",
    "FetchProvider",
    "HttpScraperProvider",
    "FirecrawlProvider",
    "LlmExtractionProvider",
    "build_provider",
]
