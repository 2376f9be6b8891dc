"""Small string helpers used across the client."""

from typing import Any


def clean(value: Any) -> str:
    """Coerce any value to a trimmed string (None becomes empty)."""
    if value is None:
        return ""
    return str(value).strip()


def safe_slice(text: str, limit: int) -> str:
    """Clamp text to at most `limit` characters."""
    if len(text) <= limit:
        return text
    return text[:limit]


def join_url(base: str, path: str) -> str:
    """Join a base URL and a path with exactly one slash between them."""
    b = clean(base).rstrip("/")
    p = clean(path)
    if not p.startswith("/"):
        p = f"/{p}"
    return f"{b}{p}"
