"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

HALF_OPEN_TTL_SECONDS = 300
CLOSED_TTL_SECONDS = 3600
OPEN_TTL_GRACE_SECONDS = 60


class CircuitState(StrEnum):
    """Circuit breaker state values.

    The string value is the representation written to storage backends.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    @property
    def can_attempt(self) -> bool:
        """Return whether a call may be attempted in this state."""
        return self is not CircuitState.OPEN

    @property
    def tracks_failures(self) -> bool:
        """Return whether failures are counted in this state."""
        return self is not CircuitState.OPEN

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def severity(self) -> str:
        """Return the monitoring severity: ``info``, ``warning`` or ``critical``."""
        return _SEVERITIES[self]

    def on_success(self) -> "CircuitState":
        """Return the state to move to after a successful call."""
        if self is CircuitState.OPEN:
            return CircuitState.OPEN
        return CircuitState.CLOSED

    def on_failure(self, threshold_exceeded: bool) -> "CircuitState":
        """Return the state to move to after a failed call.

        Args:
            threshold_exceeded: Whether the failure threshold has been reached.
                Only consulted while ``CLOSED``.
        """
        if self is CircuitState.CLOSED and not threshold_exceeded:
            return CircuitState.CLOSED
        return CircuitState.OPEN

    def persistence_ttl(self, recovery_timeout: float) -> float:
        """Return the cleanup TTL in seconds used when persisting this state.

        This is not a behavioral timeout. Leaving ``OPEN`` is governed by
        ``opened_at`` and ``recovery_timeout`` only.
        """
        if self is CircuitState.OPEN:
            return recovery_timeout + OPEN_TTL_GRACE_SECONDS
        if self is CircuitState.HALF_OPEN:
            return HALF_OPEN_TTL_SECONDS
        return CLOSED_TTL_SECONDS


_DESCRIPTIONS: dict[CircuitState, str] = {
    CircuitState.CLOSED: "Circuit closed - normal operation",
    CircuitState.OPEN: "Circuit open - requests blocked",
    CircuitState.HALF_OPEN: "Circuit half-open - testing recovery",
}

_SEVERITIES: dict[CircuitState, str] = {
    CircuitState.CLOSED: "info",
    CircuitState.OPEN: "critical",
    CircuitState.HALF_OPEN: "warning",
}


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Breaker state after refreshing from storage.
        failure_count: Count of recent failures inside the failure window.
        success_count: Count of successful trial calls while ``HALF_OPEN``.
        opened_at: Timestamp when the breaker entered ``OPEN``, if open.
    """

    name: str
    state: CircuitState
    failure_count: int
    success_count: int
    opened_at: datetime | None
