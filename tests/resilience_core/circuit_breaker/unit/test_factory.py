from __future__ import annotations

import logging
from typing import Any, cast

import httpx
import pytest
from pytest_httpx import HTTPXMock

from resilience_core.circuit_breaker import (
    CircuitState,
    InMemoryBreakerStorage,
    LoggingBreakerListener,
    StorageUnavailableError,
)
from resilience_core.circuit_breaker.factory import (
    build_breaker_storage,
    build_circuit_breaker,
    build_http_client,
    configure_logging,
)
from resilience_core.circuit_breaker.redis_storage import RedisBreakerStorage
from resilience_core.settings import BreakerSettings
from tests.resilience_core.support.fakes import FakeRedis, RecordingListener

pytestmark = pytest.mark.asyncio


async def test_build_breaker_storage_defaults_to_in_memory() -> None:
    storage = build_breaker_storage(BreakerSettings(key_prefix="local"))

    assert isinstance(storage, InMemoryBreakerStorage)
    assert storage.key("svc", "state") == "local:svc:state"


async def test_build_breaker_storage_uses_redis_when_url_configured(
    fake_redis: FakeRedis,
) -> None:
    captured: dict[str, object] = {}
    errors: list[StorageUnavailableError] = []

    def _create(url: str, **kwargs: Any) -> RedisBreakerStorage:
        captured["url"] = url
        captured.update(kwargs)
        return RedisBreakerStorage(
            cast(Any, fake_redis),
            key_prefix=kwargs["key_prefix"],
            on_error=kwargs["on_error"],
        )

    settings = BreakerSettings(
        redis_url="redis://cache:6379/1",
        redis_socket_timeout=0.25,
        key_prefix="shared",
    )

    storage = build_breaker_storage(
        settings, on_error=errors.append, create_redis_storage=_create
    )
    await storage.set_state("svc", CircuitState.OPEN, 90)

    assert isinstance(storage, RedisBreakerStorage)
    assert captured == {
        "url": "redis://cache:6379/1",
        "socket_timeout": 0.25,
        "key_prefix": "shared",
        "on_error": errors.append,
    }
    assert fake_redis.values["shared:svc:state"] == b"open"


async def test_build_circuit_breaker_applies_settings() -> None:
    settings = BreakerSettings(failure_threshold=2, recovery_timeout=7.5)

    breaker = build_circuit_breaker("inventory", settings)

    assert breaker.name == "inventory"
    assert breaker.config.failure_threshold == 2
    assert breaker.config.recovery_timeout == 7.5
    assert isinstance(breaker._listeners[0], LoggingBreakerListener)
    assert await breaker.is_available() is True


async def test_build_circuit_breaker_shares_given_storage() -> None:
    storage = InMemoryBreakerStorage()
    listener = RecordingListener()
    settings = BreakerSettings(failure_threshold=1)

    first = build_circuit_breaker("inventory", settings, storage=storage)
    second = build_circuit_breaker(
        "inventory", settings, storage=storage, listeners=[listener]
    )
    await first.is_available()
    await first.record_failure()

    assert await second.is_available() is False
    assert second._listeners == (listener,)


async def test_build_http_client_applies_timeout_and_user_agent(
    httpx_mock: HTTPXMock,
) -> None:
    settings = BreakerSettings(http_timeout=2.5, http_user_agent="inventory-sync/3")
    breaker = build_circuit_breaker(
        "inventory", settings, storage=InMemoryBreakerStorage(), listeners=[]
    )
    httpx_mock.add_response(url="https://inventory.example.com/items", json=[])

    async with httpx.AsyncClient() as http_client:
        client = build_http_client(breaker, settings, client=http_client)
        result = await client.get("https://inventory.example.com/items")

    request = httpx_mock.get_request()
    assert request is not None
    assert request.headers["User-Agent"] == "inventory-sync/3"
    assert request.extensions["timeout"]["read"] == 2.5
    assert result.success is True


async def test_configure_logging_uses_configured_level() -> None:
    configure_logging(BreakerSettings(log_level="warning"), json_logs=True)

    assert logging.getLogger().level == logging.WARNING
