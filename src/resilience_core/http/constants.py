"""Shared constants used by the circuit breaker HTTP client."""

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = "Circuit_Breaker_Client/1.0"
MAX_REDIRECTS = 5
CIRCUIT_OPEN_MESSAGE = "Circuit breaker is open - service temporarily unavailable"
CIRCUIT_OPEN_STATUS = 503
ERROR_MESSAGE_FIELDS = ("message", "error", "detail", "error_description")
STATUS_MESSAGES = {
    400: "Bad Request - Invalid request syntax",
    401: "Unauthorized - Authentication required",
    403: "Forbidden - Access denied",
    404: "Not Found - Resource does not exist",
    429: "Too Many Requests - Rate limit exceeded",
    500: "Internal Server Error",
    502: "Bad Gateway - Invalid upstream response",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}
