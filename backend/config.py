"""Centralised settings for the scraper backend.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("SCRAPER_WORKSPACE", Path.home() / ".scraper_data")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "scraped.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    # ------------------------------------------------------------------
    # Fetch provider
    # ------------------------------------------------------------------
    fetch_provider: str = field(
        default_factory=lambda: os.environ.get("FETCH_PROVIDER", "http")
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30.0"))
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "SCRAPER_USER_AGENT",
            "Mozilla/5.0 (compatible; MarkdownScraper/1.0)",
        )
    )
    firecrawl_api_key: str = field(
        default_factory=lambda: os.environ.get("FIRECRAWL_API_KEY", "")
    )
    firecrawl_base_url: str = field(
        default_factory=lambda: os.environ.get(
            "FIRECRAWL_BASE_URL", "https://api.firecrawl.dev"
        )
    )

    # ------------------------------------------------------------------
    # LLM-assisted extraction (FETCH_PROVIDER=llm)
    # ------------------------------------------------------------------
    llm_provider: str = field(
        default_factory=lambda: os.environ.get("LLM_PROVIDER", "ollama")
    )
    ollama_base_url: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    )
    ollama_chat_model: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_CHAT_MODEL", "ministral-3:8b")
    )
    openai_chat_model: str = field(
        default_factory=lambda: os.environ.get("OPENAI_CHAT_MODEL", "gpt-4o-mini")
    )
    llm_max_input_chars: int = field(
        default_factory=lambda: int(os.environ.get("LLM_MAX_INPUT_CHARS", "24000"))
    )

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------
    fetch_timeout: float = field(
        default_factory=lambda: float(os.environ.get("FETCH_TIMEOUT", "45.0"))
    )
    # Extra seconds a waiter allows for persisting and publishing after the
    # provider call itself has returned.
    publish_grace: float = field(
        default_factory=lambda: float(os.environ.get("PUBLISH_GRACE", "5.0"))
    )
    max_concurrent_fetches: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONCURRENT_FETCHES", "8"))
    )
    persist_failures: bool = field(
        default_factory=lambda: _env_bool("PERSIST_FAILURES")
    )

    # ------------------------------------------------------------------
    # History paging
    # ------------------------------------------------------------------
    history_default_limit: int = field(
        default_factory=lambda: int(os.environ.get("HISTORY_DEFAULT_LIMIT", "20"))
    )
    history_max_limit: int = field(
        default_factory=lambda: int(os.environ.get("HISTORY_MAX_LIMIT", "100"))
    )

    # ------------------------------------------------------------------
    # API server / logging
    # ------------------------------------------------------------------
    api_host: str = field(
        default_factory=lambda: os.environ.get("API_HOST", "127.0.0.1")
    )
    api_port: int = field(
        default_factory=lambda: int(os.environ.get("API_PORT", "3001"))
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton, import this everywhere:
#   from backend.config import settings
settings = Settings()
