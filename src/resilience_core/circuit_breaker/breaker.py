"""Core circuit breaker implementation."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TypeVar

from resilience_core.circuit_breaker.exceptions import CircuitOpenError
from resilience_core.circuit_breaker.metrics import BreakerListener
from resilience_core.circuit_breaker.state import BreakerSnapshot, CircuitState
from resilience_core.circuit_breaker.storage import AbstractBreakerStorage
from resilience_core.logging import breaker_log_context

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Failures inside the window required to open.
        recovery_timeout: Seconds to stay ``OPEN`` before moving to
            ``HALF_OPEN``.
        half_open_max_calls: Successful trial calls required to close again.
        failure_window: Seconds a failure counter lives after its first
            failure.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 3
    failure_window: float = 60.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout must be >= 0")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be >= 1")
        if self.failure_window < 0:
            raise ValueError("failure_window must be >= 0")


class CircuitBreaker:
    """Circuit breaker view over shared storage.

    The breaker holds no authoritative state. Every availability check reads
    storage, so instances in different processes sharing a backend agree on
    the circuit. The last state read is cached and drives ``record_success``
    and ``record_failure``.
    """

    def __init__(
        self,
        name: str,
        *,
        storage: AbstractBreakerStorage,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker bound to one protected service.

        Args:
            name: Stable, unique service identifier used for storage keys.
            storage: State storage backend.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._storage = storage
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._state = CircuitState.CLOSED
        self._opened_at: datetime | None = None

    async def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                await listener.on_state_change(self.name, old, new)
            except Exception:
                continue

    async def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_rejected(self.name)
            except Exception:
                continue

    async def _emit_call_succeeded(self, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_succeeded(self.name, elapsed)
            except Exception:
                continue

    async def _emit_call_failed(self, exc: Exception, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_failed(self.name, exc, elapsed)
            except Exception:
                continue

    async def is_available(self) -> bool:
        """Refresh the state from storage and report whether a call may run."""
        await self._update_state()
        return self._state.can_attempt

    async def get_state(self) -> CircuitState:
        """Refresh the state from storage and return it."""
        await self._update_state()
        return self._state

    async def snapshot(self) -> BreakerSnapshot:
        """Return the refreshed state together with the raw stored counters."""
        await self._update_state()
        return BreakerSnapshot(
            name=self.name,
            state=self._state,
            failure_count=await self._storage.get_failure_count(self.name),
            success_count=await self._storage.get_success_count(self.name),
            opened_at=self._opened_at,
        )

    async def record_success(self) -> None:
        """Record a successful call against the last refreshed state.

        A new instance caches ``CLOSED`` until its first ``is_available``,
        ``get_state`` or ``snapshot`` call reads storage.
        """
        state = self._state
        if state == CircuitState.HALF_OPEN:
            await self._storage.increment_success_count(self.name)
            successes = await self._storage.get_success_count(self.name)
            if successes >= self.config.half_open_max_calls:
                await self._transition_to(state.on_success())
        elif state == CircuitState.CLOSED:
            await self._storage.reset_counts(self.name)

    async def record_failure(self) -> None:
        """Record a failed call against the last refreshed state.

        A new instance caches ``CLOSED`` until its first ``is_available``,
        ``get_state`` or ``snapshot`` call reads storage.
        """
        state = self._state
        if not state.tracks_failures:
            return

        if state == CircuitState.HALF_OPEN:
            await self._open()
            return

        await self._storage.increment_failure_count(
            self.name, self.config.failure_window
        )
        failures = await self._storage.get_failure_count(self.name)
        threshold_exceeded = failures >= self.config.failure_threshold
        if state.on_failure(threshold_exceeded) == CircuitState.OPEN:
            await self._open()

    async def reset(self) -> None:
        """Force the circuit ``CLOSED`` and clear its counters."""
        await self._transition_to(CircuitState.CLOSED)

    async def force_open(self) -> None:
        """Force the circuit ``OPEN`` and restart the recovery timeout."""
        await self._open()

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        fallback: Callable[[], Awaitable[T]] | None = None,
    ) -> T:
        """Invoke an async operation under circuit breaker protection.

        Args:
            operation: Zero-argument async callable to protect.
            fallback: Optional zero-argument async callable used when the
                circuit is open or ``operation`` fails. Its result is returned
                instead of raising.

        Returns:
            The result of ``operation``, or of ``fallback`` when it applies.

        Raises:
            CircuitOpenError: When the circuit is open and no fallback is set.
            Exception: The original exception from ``operation`` when it fails
                and no fallback is set.
        """
        if not await self.is_available():
            await self._emit_call_rejected()
            if fallback is not None:
                return await fallback()
            raise CircuitOpenError(self.name, retry_after=self._retry_after())

        task = asyncio.current_task()
        if task is not None:
            callable_name = getattr(operation, "__qualname__", None)
            if callable_name is None:
                callable_name = operation.__class__.__qualname__
            task.set_name(f"circuit_breaker:{self.name}:{callable_name}")

        start = time.monotonic()
        try:
            with breaker_log_context(self.name):
                result = await operation()
        except Exception as exc:
            elapsed = max(time.monotonic() - start, 0.0)
            await self.record_failure()
            await self._emit_call_failed(exc, elapsed)
            if fallback is not None:
                return await fallback()
            raise

        elapsed = max(time.monotonic() - start, 0.0)
        await self.record_success()
        await self._emit_call_succeeded(elapsed)
        return result

    async def _update_state(self) -> None:
        persisted = await self._storage.get_state(self.name)
        if persisted != CircuitState.OPEN:
            self._state = persisted
            self._opened_at = None
            return

        # A missing timestamp while OPEN means the timeout has not elapsed.
        opened_at = await self._storage.get_opened_at(self.name)
        self._opened_at = opened_at
        if opened_at is not None:
            elapsed = (_utcnow() - opened_at).total_seconds()
            if elapsed >= self.config.recovery_timeout:
                await self._transition_to(CircuitState.HALF_OPEN, old=persisted)
                return
        self._state = persisted

    async def _open(self) -> None:
        opened_at = _utcnow()
        await self._transition_to(CircuitState.OPEN)
        await self._storage.set_opened_at(
            self.name,
            opened_at,
            CircuitState.OPEN.persistence_ttl(self.config.recovery_timeout),
        )
        self._opened_at = opened_at

    async def _transition_to(
        self,
        new_state: CircuitState,
        *,
        old: CircuitState | None = None,
    ) -> None:
        old_state = self._state if old is None else old
        self._state = new_state
        if new_state != CircuitState.OPEN:
            self._opened_at = None

        await self._storage.set_state(
            self.name,
            new_state,
            new_state.persistence_ttl(self.config.recovery_timeout),
        )
        await self._storage.reset_counts(self.name)
        await self._emit_state_change(old_state, new_state)

    def _retry_after(self) -> float:
        if self._opened_at is None:
            return self.config.recovery_timeout
        elapsed = (_utcnow() - self._opened_at).total_seconds()
        return max(self.config.recovery_timeout - elapsed, 0.0)
