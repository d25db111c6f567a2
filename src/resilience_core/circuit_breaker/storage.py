"""State storage for circuit breakers.

Storage is intentionally decoupled from breaker logic. The breaker treats
storage as its only source of truth, so backends shared between processes (for
example Redis) give every process the same view of a circuit.

Each service owns four independently expiring keys: ``state``, ``failures``,
``successes`` and ``opened_at``. There is no cross-key atomicity.

Backend failures never reach the caller. Every operation degrades to a safe
default (``CLOSED``, ``0``, ``None`` or a skipped write) and reports a
``StorageUnavailableError`` through the storage error hook instead.
"""

import asyncio
import math
import re
import sys
import threading
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import TypeVar

from resilience_core.circuit_breaker.exceptions import StorageUnavailableError
from resilience_core.circuit_breaker.state import CircuitState
from resilience_core.logging import get_logger, log_warning

T = TypeVar("T")

DEFAULT_KEY_PREFIX = "circuit_breaker"
MAX_KEY_LENGTH = 250
SUCCESS_COUNT_TTL_SECONDS = 300

STATE_FIELD = "state"
FAILURES_FIELD = "failures"
SUCCESSES_FIELD = "successes"
OPENED_AT_FIELD = "opened_at"

_INVALID_KEY_CHARS = re.compile(r"[^a-zA-Z0-9._-]")

StorageErrorHook = Callable[[StorageUnavailableError], None]

_logger = get_logger(__name__)


def _monotonic() -> float:
    return time.monotonic()


def build_storage_key(
    name: str,
    field: str,
    *,
    prefix: str = DEFAULT_KEY_PREFIX,
    max_length: int = MAX_KEY_LENGTH,
) -> str:
    """Build a namespaced backend key for one breaker field.

    Characters outside ``[A-Za-z0-9._-]`` in ``name`` are replaced with ``_``.
    When the key would exceed ``max_length`` the service portion is truncated;
    the prefix and field suffix are always kept intact.
    """
    sanitized = _INVALID_KEY_CHARS.sub("_", name)
    budget = max(max_length - len(prefix) - len(field) - 2, 0)
    return f"{prefix}:{sanitized[:budget]}:{field}"


def log_storage_error(error: StorageUnavailableError) -> None:
    """Default storage error hook: log the degraded operation."""
    log_warning(
        _logger,
        "circuit_breaker.storage_unavailable",
        operation=error.operation,
        key=error.key,
        error=repr(error.__cause__),
    )


def _ttl_seconds(seconds: float) -> int:
    # Backends expire on whole seconds and treat 0 as "never expire".
    return max(math.ceil(seconds), 1)


class AbstractBreakerStorage(ABC):
    """Abstract breaker storage interface.

    Implementations must be safe to call concurrently from many breaker
    instances, possibly in other processes, sharing one backend.
    """

    @abstractmethod
    async def get_state(self, name: str) -> CircuitState:
        """Return the persisted state, ``CLOSED`` when absent or unreachable."""

    @abstractmethod
    async def set_state(self, name: str, state: CircuitState, ttl: float) -> None:
        """Persist ``state`` for ``ttl`` seconds. Failures are not raised."""

    @abstractmethod
    async def get_failure_count(self, name: str) -> int:
        """Return the failure count inside the current window, ``0`` if absent."""

    @abstractmethod
    async def get_success_count(self, name: str) -> int:
        """Return the half-open success count, ``0`` if absent."""

    @abstractmethod
    async def increment_failure_count(self, name: str, window: float) -> None:
        """Add one failure, starting a ``window``-second counter if absent."""

    @abstractmethod
    async def increment_success_count(self, name: str) -> None:
        """Add one half-open success, starting a short-lived counter if absent."""

    @abstractmethod
    async def reset_counts(self, name: str) -> None:
        """Clear both counters. Missing keys are not an error."""

    @abstractmethod
    async def get_opened_at(self, name: str) -> datetime | None:
        """Return when the circuit was opened, ``None`` if absent."""

    @abstractmethod
    async def set_opened_at(self, name: str, timestamp: datetime, ttl: float) -> None:
        """Persist the open timestamp for ``ttl`` seconds."""


class KeyValueBreakerStorage(AbstractBreakerStorage):
    """Breaker storage over any key-value backend with per-key expiry.

    Subclasses implement five primitives (``_get``, ``_set``, ``_add``,
    ``_increment``, ``_delete``) and list the exceptions their backend raises
    in ``_backend_errors``. This class owns the key layout, value encoding,
    counter initialization race handling and graceful degradation.
    """

    _backend_errors: tuple[type[Exception], ...] = ()

    def __init__(
        self,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        on_error: StorageErrorHook | None = None,
    ) -> None:
        """Initialize shared key-value storage behavior.

        Args:
            key_prefix: Namespace prepended to every key.
            on_error: Hook receiving degraded backend failures. Defaults to a
                structured warning log.
        """
        self._key_prefix = key_prefix
        self._on_error = log_storage_error if on_error is None else on_error
        self._connected = True

    @property
    def is_connected(self) -> bool:
        """Whether the most recent backend operation succeeded."""
        return self._connected

    def key(self, name: str, field: str) -> str:
        """Return the backend key for ``field`` of breaker ``name``."""
        return build_storage_key(name, field, prefix=self._key_prefix)

    @abstractmethod
    async def _get(self, key: str) -> str | None:
        """Return the live value for ``key`` or ``None``."""

    @abstractmethod
    async def _set(self, key: str, value: str, ttl: int) -> None:
        """Unconditionally write ``value`` with a ``ttl``-second expiry."""

    @abstractmethod
    async def _add(self, key: str, value: int, ttl: int) -> bool:
        """Atomically create ``key``; return ``False`` if it already exists."""

    @abstractmethod
    async def _increment(self, key: str) -> int | None:
        """Atomically increment an existing key; ``None`` if it is missing."""

    @abstractmethod
    async def _delete(self, key: str) -> None:
        """Delete ``key`` if present."""

    async def _guard(
        self,
        operation: str,
        key: str,
        call: Callable[[], Awaitable[T]],
        default: T,
    ) -> T:
        try:
            result = await call()
        except self._backend_errors as exc:
            self._connected = False
            error = StorageUnavailableError(operation, key)
            error.__cause__ = exc
            self._report(error)
            return default
        self._connected = True
        return result

    def _report(self, error: StorageUnavailableError) -> None:
        try:
            self._on_error(error)
        except Exception:
            return

    async def _read_count(self, operation: str, key: str) -> int:
        raw = await self._guard(operation, key, lambda: self._get(key), None)
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError:
            return 0

    async def _increment_or_initialize(
        self, operation: str, key: str, ttl: float
    ) -> None:
        async def _attempt() -> None:
            if await self._increment(key) is not None:
                return
            if await self._add(key, 1, _ttl_seconds(ttl)):
                return
            # A concurrent writer created the key first; retry exactly once.
            await self._increment(key)

        await self._guard(operation, key, _attempt, None)

    async def get_state(self, name: str) -> CircuitState:
        key = self.key(name, STATE_FIELD)
        raw = await self._guard("get_state", key, lambda: self._get(key), None)
        if raw is None:
            return CircuitState.CLOSED
        try:
            return CircuitState(raw)
        except ValueError:
            return CircuitState.CLOSED

    async def set_state(self, name: str, state: CircuitState, ttl: float) -> None:
        key = self.key(name, STATE_FIELD)
        await self._guard(
            "set_state",
            key,
            lambda: self._set(key, state.value, _ttl_seconds(ttl)),
            None,
        )

    async def get_failure_count(self, name: str) -> int:
        return await self._read_count(
            "get_failure_count", self.key(name, FAILURES_FIELD)
        )

    async def get_success_count(self, name: str) -> int:
        return await self._read_count(
            "get_success_count", self.key(name, SUCCESSES_FIELD)
        )

    async def increment_failure_count(self, name: str, window: float) -> None:
        await self._increment_or_initialize(
            "increment_failure_count", self.key(name, FAILURES_FIELD), window
        )

    async def increment_success_count(self, name: str) -> None:
        await self._increment_or_initialize(
            "increment_success_count",
            self.key(name, SUCCESSES_FIELD),
            SUCCESS_COUNT_TTL_SECONDS,
        )

    async def reset_counts(self, name: str) -> None:
        for field in (FAILURES_FIELD, SUCCESSES_FIELD):
            key = self.key(name, field)
            await self._guard("reset_counts", key, lambda: self._delete(key), None)

    async def get_opened_at(self, name: str) -> datetime | None:
        key = self.key(name, OPENED_AT_FIELD)
        raw = await self._guard("get_opened_at", key, lambda: self._get(key), None)
        if raw is None:
            return None
        try:
            return datetime.fromtimestamp(float(raw), UTC)
        except (ValueError, OverflowError, OSError):
            return None

    async def set_opened_at(self, name: str, timestamp: datetime, ttl: float) -> None:
        key = self.key(name, OPENED_AT_FIELD)
        value = repr(timestamp.timestamp())
        await self._guard(
            "set_opened_at",
            key,
            lambda: self._set(key, value, _ttl_seconds(ttl)),
            None,
        )


class InMemoryBreakerStorage(KeyValueBreakerStorage):
    """Single-process storage with per-key cooperative + optional thread locks.

    Entries expire lazily on read using a monotonic clock.
    """

    def __init__(
        self,
        *,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        on_error: StorageErrorHook | None = None,
    ) -> None:
        """Initialize in-memory entry and lock registries."""
        super().__init__(key_prefix=key_prefix, on_error=on_error)
        self._entries: dict[str, tuple[str, float]] = {}
        self._async_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._thread_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())

    @asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        async_lock = self._async_locks[key]
        if self._gil_enabled:
            await async_lock.acquire()
            try:
                yield
            finally:
                async_lock.release()
            return

        thread_lock = self._thread_locks[key]
        thread_lock.acquire()
        try:
            await async_lock.acquire()
        except Exception:
            thread_lock.release()
            raise
        try:
            yield
        finally:
            async_lock.release()
            thread_lock.release()

    def _live(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if _monotonic() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def _get(self, key: str) -> str | None:
        async with self._locked(key):
            return self._live(key)

    async def _set(self, key: str, value: str, ttl: int) -> None:
        async with self._locked(key):
            self._entries[key] = (value, _monotonic() + ttl)

    async def _add(self, key: str, value: int, ttl: int) -> bool:
        async with self._locked(key):
            if self._live(key) is not None:
                return False
            self._entries[key] = (str(value), _monotonic() + ttl)
            return True

    async def _increment(self, key: str) -> int | None:
        async with self._locked(key):
            current = self._live(key)
            if current is None:
                return None
            _, expires_at = self._entries[key]
            try:
                updated = int(current) + 1
            except ValueError:
                # Non-numeric counters are dropped so the caller re-creates them.
                del self._entries[key]
                return None
            self._entries[key] = (str(updated), expires_at)
            return updated

    async def _delete(self, key: str) -> None:
        async with self._locked(key):
            self._entries.pop(key, None)
