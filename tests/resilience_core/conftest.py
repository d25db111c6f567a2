from __future__ import annotations

import pytest

import resilience_core.circuit_breaker.breaker as breaker_mod
import resilience_core.circuit_breaker.storage as storage_mod
from tests.resilience_core.support.fakes import FakeClock, FakeLogger, FakeRedis


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive breaker timestamps and in-memory expiry from one fake clock."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", clock.now)
    monkeypatch.setattr(storage_mod, "_monotonic", clock.monotonic)
    return clock


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Provide a fresh Redis client test double per test."""
    return FakeRedis()
