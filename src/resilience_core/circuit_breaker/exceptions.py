"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - The original exception raised by the protected operation, which is always
    re-raised unchanged.

``StorageUnavailableError`` is never raised to callers. Storage backends build
it to describe a failed backend operation and hand it to their error hook.
"""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        retry_after: Seconds until the breaker may move to ``HALF_OPEN``.
    """

    def __init__(self, breaker_name: str, retry_after: float) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            retry_after: Seconds until the next probe window opens.
        """
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"circuit_open: {breaker_name} retry_after={retry_after:g}s")


class StorageUnavailableError(CircuitBreakerError):
    """Describes a storage backend operation that failed and was degraded.

    Attributes:
        operation: Storage operation that failed, for example ``get_state``.
        key: Backend key involved in the failed operation.
    """

    def __init__(self, operation: str, key: str) -> None:
        self.operation = operation
        self.key = key
        super().__init__(f"storage_unavailable: {operation} key={key}")
