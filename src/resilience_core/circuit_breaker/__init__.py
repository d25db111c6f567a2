"""Framework-agnostic async circuit breaker with pluggable shared storage.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - Storage is the single source of truth. All three states (``CLOSED``,
    ``OPEN``, ``HALF_OPEN``) are persisted, so breaker instances in different
    processes sharing a backend observe the same circuit.
  - ``OPEN`` moves to ``HALF_OPEN`` on the first availability check after
    ``recovery_timeout`` seconds have passed since the circuit opened.
  - ``HALF_OPEN`` closes after ``half_open_max_calls`` successful trial calls;
    any single failure reopens it.
  - Storage failures degrade to permissive defaults and are reported through a
    hook, never raised.
"""

from resilience_core.circuit_breaker.breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
)
from resilience_core.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
    StorageUnavailableError,
)
from resilience_core.circuit_breaker.metrics import (
    BreakerListener,
    LoggingBreakerListener,
)
from resilience_core.circuit_breaker.state import BreakerSnapshot, CircuitState
from resilience_core.circuit_breaker.storage import (
    AbstractBreakerStorage,
    InMemoryBreakerStorage,
    KeyValueBreakerStorage,
    build_storage_key,
)

__all__ = [
    "AbstractBreakerStorage",
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "InMemoryBreakerStorage",
    "KeyValueBreakerStorage",
    "LoggingBreakerListener",
    "StorageUnavailableError",
    "build_storage_key",
]
