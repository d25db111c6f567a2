"""Redis storage for circuit breakers shared across processes and hosts."""

from __future__ import annotations

from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from resilience_core.circuit_breaker.storage import (
    DEFAULT_KEY_PREFIX,
    KeyValueBreakerStorage,
    StorageErrorHook,
)

DEFAULT_SOCKET_TIMEOUT_SECONDS = 0.1

# INCR alone would create a missing key without an expiry.
_INCREMENT_IF_EXISTS = """
if redis.call('EXISTS', KEYS[1]) == 1 then
    return redis.call('INCR', KEYS[1])
end
return false
"""


class RedisBreakerStorage(KeyValueBreakerStorage):
    """Breaker storage on a shared Redis server.

    The Redis client owns connection pooling and may be shared with other
    application code; keys are namespaced by ``key_prefix``.
    """

    _backend_errors = (RedisError, OSError)

    def __init__(
        self,
        client: Redis,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        on_error: StorageErrorHook | None = None,
    ) -> None:
        """Wrap an existing async Redis client.

        Args:
            client: ``redis.asyncio.Redis`` client.
            key_prefix: Namespace prepended to every key.
            on_error: Hook receiving degraded backend failures.
        """
        super().__init__(key_prefix=key_prefix, on_error=on_error)
        self._redis = client
        self._increment_script = client.register_script(_INCREMENT_IF_EXISTS)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        socket_timeout: float = DEFAULT_SOCKET_TIMEOUT_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        on_error: StorageErrorHook | None = None,
    ) -> RedisBreakerStorage:
        """Build storage with a client tuned to fail fast when Redis is down."""
        client = Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, key_prefix=key_prefix, on_error=on_error)

    async def _get(self, key: str) -> str | None:
        value = await self._redis.get(key)
        if value is None:
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return str(value)

    async def _set(self, key: str, value: str, ttl: int) -> None:
        await self._redis.set(key, value, ex=ttl)

    async def _add(self, key: str, value: int, ttl: int) -> bool:
        return bool(await self._redis.set(key, value, ex=ttl, nx=True))

    async def _increment(self, key: str) -> int | None:
        result = await self._increment_script(keys=[key])
        if result is None:
            return None
        return int(result)

    async def _delete(self, key: str) -> None:
        await self._redis.delete(key)

    async def _ping(self) -> bool:
        return bool(await self._redis.ping())

    async def ping(self) -> bool:
        """Check connectivity. Updates ``is_connected`` and never raises."""
        return await self._guard("ping", self._key_prefix, self._ping, False)

    async def get_stats(self) -> dict[str, Any]:
        """Return Redis ``INFO`` statistics, ``{}`` when unreachable."""
        return await self._guard("get_stats", self._key_prefix, self._redis.info, {})

    async def aclose(self) -> None:
        """Release the underlying connection pool."""
        await self._redis.aclose()
