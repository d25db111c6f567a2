"""Observability hooks for circuit breakers."""

from __future__ import annotations

import logging
from typing import Protocol

from resilience_core.circuit_breaker.state import CircuitState
from resilience_core.logging import (
    StructuredLogger,
    get_logger,
    log_info,
    log_warning,
)


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        ``on_state_change`` is emitted for every transition a breaker instance
        writes to storage, including ``OPEN → HALF_OPEN`` after the recovery
        timeout elapses.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        """Handle failed protected call completion."""


class LoggingBreakerListener(BreakerListener):
    """Listener that writes breaker events as structured log events."""

    def __init__(
        self,
        logger: StructuredLogger | logging.Logger | None = None,
    ) -> None:
        """Create a logging listener.

        Args:
            logger: Structured or stdlib logger. Defaults to this module's
                structlog logger.
        """
        self._logger = get_logger(__name__) if logger is None else logger

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Log one state transition at a level matching the new state."""
        log_fn = log_info if new is CircuitState.CLOSED else log_warning
        log_fn(
            self._logger,
            "circuit_breaker.state_change",
            service=name,
            old_state=old.value,
            new_state=new.value,
            severity=new.severity,
        )

    async def on_call_rejected(self, name: str) -> None:
        log_warning(self._logger, "circuit_breaker.call_rejected", service=name)

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """No-op for this listener."""
        _ = (name, elapsed)

    async def on_call_failed(self, name: str, exc: Exception, elapsed: float) -> None:
        log_warning(
            self._logger,
            "circuit_breaker.call_failed",
            service=name,
            error_type=exc.__class__.__name__,
            elapsed=round(elapsed, 6),
        )
