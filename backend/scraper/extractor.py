"""Content extraction: turns a :class:`RawPage` into markdown."""

from __future__ import annotations

import re

import trafilatura

from backend.scraper.models import CleanPage, RawPage

_BLOCK_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6", "p", "li", "pre", "blockquote"]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _extract_title(html: str) -> str:
    """Return the text content of the first ``<title>`` tag, or empty string."""
    match = re.search(r"<title[^>]*>([^<]+)</title>", html, re.IGNORECASE)
    if match:
        return match.group(1).strip()
    return ""


def _bs4_fallback(html: str) -> str:
    """Render readable blocks as simple markdown using BeautifulSoup.

    Headings become ``#`` lines, list items ``- `` bullets, ``<pre>`` blocks
    fenced code, everything else a plain paragraph.
    """
    from bs4 import BeautifulSoup  # noqa: PLC0415

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "footer", "header", "noscript"]):
        tag.decompose()
    container = soup.find("main") or soup.find("article") or soup.body or soup

    blocks: list[str] = []
    for el in container.find_all(_BLOCK_TAGS):
        # Skip blocks nested in another block we already emit (li > p, etc.)
        if el.find_parent(_BLOCK_TAGS) is not None:
            continue
        if el.name == "pre":
            code = el.get_text().strip("\n")
            if code:
                blocks.append(f"```\n{code}\n```")
            continue
        text = el.get_text(separator=" ", strip=True)
        if not text:
            continue
        if el.name.startswith("h"):
            blocks.append(f"{'#' * int(el.name[1])} {text}")
        elif el.name == "li":
            blocks.append(f"- {text}")
        elif el.name == "blockquote":
            blocks.append(f"> {text}")
        else:
            blocks.append(text)

    if not blocks:
        text = container.get_text(separator=" ", strip=True)
        return text
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_content(raw: RawPage) -> CleanPage:
    """Extract clean markdown from *raw*.

    Tries ``trafilatura`` first for best-in-class readability.  Falls back to
    a BeautifulSoup heuristic when trafilatura returns ``None`` or an empty
    string (e.g., highly dynamic or minimal pages).
    """
    markdown: str | None = trafilatura.extract(
        raw.html,
        output_format="markdown",
        include_links=True,
        include_images=False,
        include_tables=True,
        include_formatting=True,
        no_fallback=False,
        url=raw.final_url or raw.url,
    )

    if not markdown:
        markdown = _bs4_fallback(raw.html)

    title = _extract_title(raw.html)
    markdown = (markdown or "").strip()
    if title and markdown and not markdown.startswith("#"):
        markdown = f"# {title}\n\n{markdown}"

    return CleanPage(url=raw.url, title=title, markdown=markdown)
