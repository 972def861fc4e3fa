"""Scrape orchestration core: URL normalisation, in-flight registry, orchestrator."""

from backend.service.orchestrator import Orchestrator, ScrapeStatusReport
from backend.service.registry import InFlightEntry, InFlightRegistry
from backend.service.urls import normalize_url

__all__ = [
    "Orchestrator",
    "ScrapeStatusReport",
    "InFlightRegistry",
    "InFlightEntry",
    "normalize_url",
]
