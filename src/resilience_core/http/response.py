"""Response and result types returned by the circuit breaker HTTP client."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, cast

from resilience_core.headers import get_header


class HttpStatusCategory(Enum):
    """HTTP status classification used for circuit breaker decisions."""

    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    RATE_LIMITED = "rate_limited"

    @classmethod
    def from_status_code(cls, code: int) -> HttpStatusCategory:
        if 200 <= code < 300:
            return cls.SUCCESS
        if code == 429:
            return cls.RATE_LIMITED
        if 400 <= code < 500:
            return cls.CLIENT_ERROR
        if code >= 500:
            return cls.SERVER_ERROR
        return cls.CLIENT_ERROR

    @property
    def should_record_failure(self) -> bool:
        """Whether this category counts as a failure of the remote service."""
        return self in (HttpStatusCategory.SERVER_ERROR, HttpStatusCategory.RATE_LIMITED)


class HttpRequestError(RuntimeError):
    """Raised by ``HttpResult.unwrap`` for a failed result."""

    def __init__(self, message: str, http_status: int | None = None) -> None:
        """Initialize request-error metadata.

        Args:
            message: Human-readable error message.
            http_status: Optional HTTP status of the failed request.
        """
        super().__init__(message)
        self.http_status = http_status


@dataclass(frozen=True)
class HttpResponse:
    """Parsed JSON response with optional HATEOAS metadata.

    ``has_hateoas`` is true when the body is an object carrying a ``_links``
    object. ``_links`` and ``_embedded`` are then moved out of ``data`` into
    ``links`` and ``embedded``.
    """

    data: Any
    status_code: int
    has_hateoas: bool = False
    links: dict[str, Any] = field(default_factory=dict)
    embedded: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    url: str | None = None

    def has_link(self, rel: str) -> bool:
        return rel in self.links

    def get_link(self, rel: str) -> dict[str, Any] | None:
        """Return the link object for ``rel``.

        HAL allows an array of link objects per relation; the first one wins.
        """
        link = self.links.get(rel)
        if isinstance(link, list):
            link = next((item for item in link if isinstance(item, Mapping)), None)
        if not isinstance(link, Mapping):
            return None
        return dict(cast(Mapping[str, Any], link))

    def get_link_url(self, rel: str) -> str | None:
        link = self.get_link(rel)
        if link is None:
            return None
        href = link.get("href")
        return href if isinstance(href, str) else None

    def get_embedded(self, name: str) -> Any | None:
        return self.embedded.get(name)

    def get_header(self, name: str) -> str | None:
        """Return a response header value, matching the name case-insensitively."""
        return get_header(self.headers, name)

    @classmethod
    def from_json(
        cls,
        body: str | bytes,
        status_code: int,
        *,
        headers: Mapping[str, str] | None = None,
        url: str | None = None,
    ) -> HttpResponse:
        """Parse a JSON body, extracting HATEOAS metadata when present.

        An empty body parses as an empty object.

        Raises:
            ValueError: When the body is not valid JSON.
        """
        text = body.decode("utf-8") if isinstance(body, bytes) else body
        decoded: Any = json.loads(text) if text.strip() else {}

        links: dict[str, Any] = {}
        embedded: dict[str, Any] = {}
        has_hateoas = isinstance(decoded, dict) and isinstance(
            decoded.get("_links"), dict
        )
        if has_hateoas:
            decoded = dict(decoded)
            links = decoded.pop("_links")
            if isinstance(decoded.get("_embedded"), dict):
                embedded = decoded.pop("_embedded")

        return cls(
            data=decoded,
            status_code=status_code,
            has_hateoas=has_hateoas,
            links=links,
            embedded=embedded,
            headers=dict(headers or {}),
            url=url,
        )


@dataclass(frozen=True)
class HttpResult:
    """Outcome of one client request.

    Ordinary HTTP failures, transport errors and an open circuit are all
    reported as a failed result rather than raised.
    """

    success: bool
    response: HttpResponse | None
    error: str | None
    status_code: int | None

    @classmethod
    def ok(cls, response: HttpResponse) -> HttpResult:
        return cls(
            success=True,
            response=response,
            error=None,
            status_code=response.status_code,
        )

    @classmethod
    def failure(cls, error: str, status_code: int | None = None) -> HttpResult:
        return cls(success=False, response=None, error=error, status_code=status_code)

    def unwrap(self) -> HttpResponse:
        """Return the response or raise ``HttpRequestError`` for a failure."""
        if not self.success or self.response is None:
            raise HttpRequestError(
                self.error or "HTTP request failed",
                http_status=self.status_code,
            )
        return self.response

    def unwrap_or(self, default: HttpResponse) -> HttpResponse:
        """Return the response, or ``default`` for a failed result."""
        if self.success and self.response is not None:
            return self.response
        return default
