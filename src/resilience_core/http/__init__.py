from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import httpx

from resilience_core.circuit_breaker import CircuitBreaker
from resilience_core.headers import (
    DEFAULT_REQUEST_HEADERS,
    get_header,
    merge_headers,
    normalize_response_headers,
)
from resilience_core.http.constants import (
    CIRCUIT_OPEN_MESSAGE,
    CIRCUIT_OPEN_STATUS,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    MAX_REDIRECTS,
)
from resilience_core.http.helpers import (
    describe_transport_error,
    extract_error_message,
)
from resilience_core.http.response import (
    HttpRequestError,
    HttpResponse,
    HttpResult,
    HttpStatusCategory,
)
from resilience_core.http.url import resolve_link_href

__all__ = [
    "CircuitBreakerClient",
    "HttpRequestError",
    "HttpResponse",
    "HttpResult",
    "HttpStatusCategory",
]


class CircuitBreakerClient:
    """JSON HTTP client that reports every outcome to a circuit breaker.

    The client works with plain JSON APIs and HATEOAS APIs alike; hypermedia
    metadata is extracted when a response carries it.
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        """Create a breaker-protected client.

        Args:
            breaker: Circuit breaker guarding the remote service.
            client: Shared async HTTP client. When omitted the client creates
                and owns one limited to ``MAX_REDIRECTS`` redirects; release
                it with ``aclose``. An injected client keeps its own
                ``max_redirects`` setting.
            timeout: Per-request timeout in seconds.
            user_agent: ``User-Agent`` header sent with every request.
        """
        self._breaker = breaker
        self._owns_client = client is None
        self._client = (
            httpx.AsyncClient(max_redirects=MAX_REDIRECTS) if client is None else client
        )
        self._timeout = timeout
        self._user_agent = user_agent

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def get(self, url: str, headers: Mapping[str, str] | None = None) -> HttpResult:
        return await self.request("GET", url, headers)

    async def post(
        self,
        url: str,
        data: Any,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResult:
        return await self.request("POST", url, headers, data)

    async def put(
        self,
        url: str,
        data: Any,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResult:
        return await self.request("PUT", url, headers, data)

    async def patch(
        self,
        url: str,
        data: Any,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResult:
        return await self.request("PATCH", url, headers, data)

    async def delete(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> HttpResult:
        return await self.request("DELETE", url, headers)

    async def follow_link(
        self,
        response: HttpResponse,
        rel: str,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResult:
        """Request the target of a HATEOAS link from an earlier response.

        The link's ``method`` (default ``GET``) is used, and its ``type`` is
        sent as ``Accept`` unless the caller already set one.
        """
        if not response.has_hateoas:
            return HttpResult.failure(
                "Response does not contain HATEOAS links (no _links field found)"
            )

        link = response.get_link(rel)
        if link is None:
            return HttpResult.failure(f"Link relation '{rel}' not found in response")

        href = link.get("href")
        if not isinstance(href, str) or not href:
            return HttpResult.failure(f"Link relation '{rel}' is missing href attribute")

        method = link.get("method")
        link_type = link.get("type")
        request_headers = dict(headers or {})
        if isinstance(link_type, str) and get_header(request_headers, "Accept") is None:
            request_headers["Accept"] = link_type

        return await self.request(
            method if isinstance(method, str) and method else "GET",
            resolve_link_href(href, response.url),
            request_headers,
        )

    async def request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        data: Any = None,
    ) -> HttpResult:
        """Send one request if the circuit allows it and classify the outcome.

        Server errors (5xx), rate limiting (429) and transport errors count as
        breaker failures; 2xx counts as success; other 4xx leave the breaker
        untouched.
        """
        if not await self._breaker.is_available():
            return HttpResult.failure(CIRCUIT_OPEN_MESSAGE, CIRCUIT_OPEN_STATUS)

        request_headers = merge_headers(
            {**DEFAULT_REQUEST_HEADERS, "User-Agent": self._user_agent},
            headers,
        )
        content = None if data is None else json.dumps(data)

        try:
            response = await self._client.request(
                method.upper(),
                url,
                headers=request_headers,
                content=content,
                timeout=self._timeout,
                follow_redirects=True,
            )
        except httpx.RequestError as exc:
            await self._breaker.record_failure()
            return HttpResult.failure(describe_transport_error(exc))

        status_code = response.status_code
        category = HttpStatusCategory.from_status_code(status_code)
        if category.should_record_failure:
            await self._breaker.record_failure()
        elif category is HttpStatusCategory.SUCCESS:
            await self._breaker.record_success()

        if category is not HttpStatusCategory.SUCCESS:
            return HttpResult.failure(
                extract_error_message(status_code, response.text),
                status_code,
            )

        try:
            parsed = HttpResponse.from_json(
                response.content,
                status_code,
                headers=normalize_response_headers(response.headers),
                url=str(response.url),
            )
        except ValueError as exc:
            return HttpResult.failure(f"Failed to parse response: {exc}", status_code)

        return HttpResult.ok(parsed)
