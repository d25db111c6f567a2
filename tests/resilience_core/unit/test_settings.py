from __future__ import annotations

from typing import Any, cast

import pytest
from pydantic import ValidationError

from resilience_core.circuit_breaker import CircuitBreakerConfig
from resilience_core.http.constants import DEFAULT_TIMEOUT_SECONDS, DEFAULT_USER_AGENT
from resilience_core.settings import BreakerSettings


def _build_settings(**overrides: object) -> BreakerSettings:
    return BreakerSettings(**cast(Any, overrides))


def test_breaker_settings_defaults() -> None:
    settings = _build_settings()

    assert settings.failure_threshold == 5
    assert settings.recovery_timeout == 30.0
    assert settings.half_open_max_calls == 3
    assert settings.failure_window == 60.0
    assert settings.redis_url is None
    assert settings.key_prefix == "circuit_breaker"
    assert settings.redis_socket_timeout == 0.1
    assert settings.http_timeout == DEFAULT_TIMEOUT_SECONDS
    assert settings.http_user_agent == DEFAULT_USER_AGENT
    assert settings.log_level == "INFO"


def test_breaker_settings_read_prefixed_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CIRCUIT_BREAKER_FAILURE_THRESHOLD", "3")
    monkeypatch.setenv("CIRCUIT_BREAKER_RECOVERY_TIMEOUT", "12.5")
    monkeypatch.setenv("circuit_breaker_redis_url", "redis://cache:6379/0")
    monkeypatch.setenv("CIRCUIT_BREAKER_LOG_LEVEL", "debug")

    settings = BreakerSettings()

    assert settings.failure_threshold == 3
    assert settings.recovery_timeout == 12.5
    assert settings.redis_url == "redis://cache:6379/0"
    assert settings.log_level == "DEBUG"


def test_breaker_settings_treat_blank_redis_url_as_unset() -> None:
    assert _build_settings(redis_url="   ").redis_url is None


def test_breaker_settings_build_breaker_config() -> None:
    settings = _build_settings(
        failure_threshold=2,
        recovery_timeout=5,
        half_open_max_calls=1,
        failure_window=20,
    )

    assert settings.breaker_config() == CircuitBreakerConfig(
        failure_threshold=2,
        recovery_timeout=5.0,
        half_open_max_calls=1,
        failure_window=20.0,
    )


@pytest.mark.parametrize(
    "overrides",
    [
        {"failure_threshold": 0},
        {"recovery_timeout": -1},
        {"half_open_max_calls": 0},
        {"failure_window": -5},
        {"redis_socket_timeout": 0},
        {"http_timeout": 0},
        {"key_prefix": "  "},
        {"http_user_agent": ""},
        {"log_level": "TRACE"},
    ],
)
def test_breaker_settings_reject_invalid_values(overrides: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        _build_settings(**overrides)


def test_breaker_settings_strip_string_fields() -> None:
    settings = _build_settings(key_prefix=" app_breakers ", http_user_agent=" bot/2 ")

    assert settings.key_prefix == "app_breakers"
    assert settings.http_user_agent == "bot/2"
