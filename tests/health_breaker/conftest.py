from __future__ import annotations

import pytest

from tests.health_breaker.support.fakes import FakeLogger, FakeScheduler, StubCheck


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_scheduler() -> FakeScheduler:
    """Provide a fresh virtual-clock scheduler per test."""
    return FakeScheduler()


@pytest.fixture
def stub_check() -> StubCheck:
    """Provide a passing health check whose outcome tests can flip."""
    return StubCheck()
