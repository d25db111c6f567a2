"""Helpers for summarizing HTTP failures."""

from __future__ import annotations

import json

import httpx

from resilience_core.http.constants import ERROR_MESSAGE_FIELDS, STATUS_MESSAGES

_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "temporary failure in name resolution",
    "no address associated with hostname",
)
_SSL_FAILURE_MARKERS = ("ssl", "certificate", "tls")


def extract_error_message(status_code: int, body: str) -> str:
    """Create a concise error summary for a non-success response."""
    try:
        decoded = json.loads(body)
    except ValueError:
        decoded = None

    if isinstance(decoded, dict):
        for field in ERROR_MESSAGE_FIELDS:
            message = decoded.get(field)
            if message is None:
                continue
            if not isinstance(message, str):
                message = json.dumps(message)
            return f"HTTP {status_code}: {message}"

    return STATUS_MESSAGES.get(status_code, f"HTTP error {status_code}")


def describe_transport_error(exc: httpx.RequestError) -> str:
    """Map an httpx transport error to a human-readable message."""
    if isinstance(exc, httpx.TimeoutException):
        return "Request timed out"
    if isinstance(exc, httpx.ConnectError):
        detail = str(exc).lower()
        if any(marker in detail for marker in _DNS_FAILURE_MARKERS):
            return "Could not resolve hostname"
        if any(marker in detail for marker in _SSL_FAILURE_MARKERS):
            return "SSL connection failed"
        return "Could not connect to server"
    return f"Connection error: {exc}"
