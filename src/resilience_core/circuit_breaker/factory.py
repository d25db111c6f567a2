"""Wiring helpers that build breakers, storage, HTTP clients and logging from settings."""

from __future__ import annotations

from collections.abc import Callable, Sequence

import httpx
import structlog

from resilience_core.circuit_breaker.breaker import CircuitBreaker
from resilience_core.circuit_breaker.metrics import (
    BreakerListener,
    LoggingBreakerListener,
)
from resilience_core.circuit_breaker.redis_storage import RedisBreakerStorage
from resilience_core.circuit_breaker.storage import (
    AbstractBreakerStorage,
    InMemoryBreakerStorage,
    StorageErrorHook,
)
from resilience_core.http import CircuitBreakerClient
from resilience_core.logging import configure_structlog
from resilience_core.settings import BreakerSettings

RedisStorageFactory = Callable[..., RedisBreakerStorage]


def build_breaker_storage(
    settings: BreakerSettings,
    *,
    on_error: StorageErrorHook | None = None,
    create_redis_storage: RedisStorageFactory | None = None,
) -> AbstractBreakerStorage:
    """Return Redis storage when ``redis_url`` is configured, else in-memory."""
    if not settings.redis_url:
        return InMemoryBreakerStorage(key_prefix=settings.key_prefix, on_error=on_error)

    factory = create_redis_storage or RedisBreakerStorage.from_url
    return factory(
        settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
        key_prefix=settings.key_prefix,
        on_error=on_error,
    )


def build_circuit_breaker(
    name: str,
    settings: BreakerSettings,
    *,
    storage: AbstractBreakerStorage | None = None,
    listeners: Sequence[BreakerListener] | None = None,
) -> CircuitBreaker:
    """Build a breaker for ``name`` that logs transitions by default.

    Pass ``storage`` to share one backend between several breakers.
    """
    resolved_storage = build_breaker_storage(settings) if storage is None else storage
    resolved_listeners = (
        (LoggingBreakerListener(),) if listeners is None else tuple(listeners)
    )
    return CircuitBreaker(
        name,
        storage=resolved_storage,
        config=settings.breaker_config(),
        listeners=resolved_listeners,
    )


def build_http_client(
    breaker: CircuitBreaker,
    settings: BreakerSettings,
    *,
    client: httpx.AsyncClient | None = None,
) -> CircuitBreakerClient:
    """Build a breaker-protected HTTP client using the configured timeout and agent."""
    return CircuitBreakerClient(
        breaker,
        client=client,
        timeout=settings.http_timeout,
        user_agent=settings.http_user_agent,
    )


def configure_logging(
    settings: BreakerSettings,
    *,
    json_logs: bool | None = None,
) -> structlog.stdlib.BoundLogger:
    """Configure structlog at the configured ``log_level``."""
    return configure_structlog(log_level=settings.log_level, json_logs=json_logs)
