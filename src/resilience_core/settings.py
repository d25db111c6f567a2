from __future__ import annotations

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilience_core.circuit_breaker.breaker import CircuitBreakerConfig
from resilience_core.circuit_breaker.storage import DEFAULT_KEY_PREFIX
from resilience_core.http.constants import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT
from resilience_core.logging import get_log_level_value

BREAKER_ENV_PREFIX = "CIRCUIT_BREAKER_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Environment-driven settings for breakers, their storage and HTTP client."""

    model_config = prefixed_settings_config(BREAKER_ENV_PREFIX)

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 3
    failure_window: float = 60.0
    redis_url: str | None = None
    key_prefix: str = DEFAULT_KEY_PREFIX
    redis_socket_timeout: float = 0.1
    http_timeout: float = DEFAULT_TIMEOUT_SECONDS
    http_user_agent: str = DEFAULT_USER_AGENT
    log_level: str = "INFO"

    @field_validator("redis_url", mode="before")
    @classmethod
    def _normalize_redis_url(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip()
            return normalized or None
        return value

    @field_validator("key_prefix", "http_user_agent", mode="before")
    @classmethod
    def _validate_required_string(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be non-empty")
        return normalized

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            get_log_level_value(value)
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _validate_breaker_settings(self) -> BreakerSettings:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout must be >= 0")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be >= 1")
        if self.failure_window < 0:
            raise ValueError("failure_window must be >= 0")
        if self.redis_socket_timeout <= 0:
            raise ValueError("redis_socket_timeout must be > 0")
        if self.http_timeout <= 0:
            raise ValueError("http_timeout must be > 0")
        return self

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the immutable breaker configuration from these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            recovery_timeout=self.recovery_timeout,
            half_open_max_calls=self.half_open_max_calls,
            failure_window=self.failure_window,
        )
