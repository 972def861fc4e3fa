"""URL normalisation: one canonical string per cache / registry key."""

from __future__ import annotations

import urllib.parse

from backend.exceptions import ValidationError

MAX_URL_LENGTH = 2048

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    """Return the canonical form of *url*.

    Rules:
    - Surrounding whitespace is stripped.
    - Scheme and host are lower-cased; only ``http`` and ``https`` are
      accepted.
    - Default ports (``:80`` for http, ``:443`` for https) are dropped.
    - A trailing slash on the path is dropped (``/`` becomes empty).
    - The fragment is dropped; the query string is kept verbatim.

    ``"HTTP://Example.com:80/"`` and ``"http://example.com"`` both normalise
    to ``"http://example.com"``.

    Raises:
        ValidationError: Empty, overlong, non-http(s), host-less, or
            otherwise unparseable input.
    """
    if not isinstance(url, str):
        raise ValidationError("URL must be a string")
    candidate = url.strip()
    if not candidate:
        raise ValidationError("URL cannot be empty")
    if len(candidate) > MAX_URL_LENGTH:
        raise ValidationError(f"URL exceeds {MAX_URL_LENGTH} characters")
    if any(ch.isspace() for ch in candidate):
        raise ValidationError("URL must not contain whitespace")

    try:
        parts = urllib.parse.urlsplit(candidate)
        port = parts.port
    except ValueError as exc:
        raise ValidationError(f"Malformed URL: {exc}") from exc

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise ValidationError(f"Unsupported URL scheme {parts.scheme!r}; use http or https")

    host = (parts.hostname or "").rstrip(".")
    if not host:
        raise ValidationError("URL has no host")
    if ":" in host:
        host = f"[{host}]"

    netloc = host
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo += f":{parts.password}"
        netloc = f"{userinfo}@{netloc}"
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"

    path = parts.path.rstrip("/")

    return urllib.parse.urlunsplit((scheme, netloc, path, parts.query, ""))
