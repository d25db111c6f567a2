from __future__ import annotations

from collections.abc import Mapping

MAX_HEADER_VALUE_LENGTH = 1024
DEFAULT_REQUEST_HEADERS: Mapping[str, str] = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


def _truncate(value: str, *, limit: int = MAX_HEADER_VALUE_LENGTH) -> str:
    """Truncate a decoded string value to the configured header size limit."""
    return value[:limit]


def get_header(headers: Mapping[str, str], name: str) -> str | None:
    """Return a header value, matching ``name`` case-insensitively."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def merge_headers(
    base: Mapping[str, str],
    overrides: Mapping[str, str] | None,
) -> dict[str, str]:
    """Return ``base`` with ``overrides`` applied, replacing names case-insensitively."""
    merged = dict(base)
    for key, value in (overrides or {}).items():
        for existing in [name for name in merged if name.lower() == key.lower()]:
            del merged[existing]
        merged[key] = value
    return merged


def normalize_response_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return a plain dict copy of response headers with bounded value sizes."""
    return {str(key): _truncate(str(value)) for key, value in headers.items()}
