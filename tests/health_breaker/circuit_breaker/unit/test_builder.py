from __future__ import annotations

from datetime import timedelta

import pytest

from health_breaker.circuit_breaker import (
    BreakerConfigurationError,
    CircuitState,
    CircuitBreakerBuilder,
    new_circuit_breaker,
)
from health_breaker.settings import BreakerSettings
from tests.health_breaker.support.fakes import (
    FakeLogger,
    FakeScheduler,
    RecordingListener,
    StubCheck,
    closed_behaviour,
    open_behaviour,
)


def _builder(scheduler: FakeScheduler) -> CircuitBreakerBuilder[str, int]:
    return (
        new_circuit_breaker("svc").with_scheduler(scheduler).with_logger(FakeLogger())
    )


def test_builder_assembles_working_breaker(
    stub_check: StubCheck, fake_scheduler: FakeScheduler
) -> None:
    breaker = (
        _builder(fake_scheduler)
        .check(stub_check, 10)
        .when_closed(closed_behaviour)
        .when_open(open_behaviour, 4)
        .build()
    )

    assert breaker.name == "svc"
    assert breaker.handle("foo") == 3
    assert fake_scheduler.repeating == [(0, 10)]


def test_builder_defaults_to_thirty_and_ten_seconds(
    stub_check: StubCheck, fake_scheduler: FakeScheduler
) -> None:
    breaker = (
        _builder(fake_scheduler)
        .check(stub_check)
        .when_closed(closed_behaviour)
        .when_open(open_behaviour)
        .build()
    )

    assert breaker.config.check_interval_seconds == 30
    assert breaker.config.open_timeout_seconds == 10


def test_builder_accepts_timedelta_and_truncates(
    fake_scheduler: FakeScheduler,
) -> None:
    breaker = (
        _builder(fake_scheduler)
        .check(StubCheck(passes=False), timedelta(milliseconds=1500))
        .when_closed(closed_behaviour)
        .when_open(open_behaviour, timedelta(seconds=4, milliseconds=900))
        .build()
    )

    assert fake_scheduler.repeating == [(0, 1)]
    assert fake_scheduler.once == [4]
    assert breaker.current_state() is CircuitState.OPEN


def test_builder_applies_settings(
    stub_check: StubCheck, fake_scheduler: FakeScheduler
) -> None:
    settings = BreakerSettings(check_interval_seconds=5, open_timeout_seconds=2)

    breaker = (
        _builder(fake_scheduler)
        .with_settings(settings)
        .check(stub_check)
        .when_closed(closed_behaviour)
        .when_open(open_behaviour)
        .build()
    )

    assert breaker.config.check_interval_seconds == 5
    assert breaker.config.open_timeout_seconds == 2


def test_builder_registers_listeners(fake_scheduler: FakeScheduler) -> None:
    listener = RecordingListener()

    breaker = (
        _builder(fake_scheduler)
        .check(StubCheck())
        .when_closed(closed_behaviour)
        .when_open(open_behaviour)
        .with_listener(listener)
        .build()
    )
    breaker.force_open()

    assert listener.events == [
        ("state", ("svc", CircuitState.CLOSED, CircuitState.FORCED_OPEN))
    ]


def test_build_without_check_fails_fast(fake_scheduler: FakeScheduler) -> None:
    builder = (
        _builder(fake_scheduler)
        .when_closed(closed_behaviour)
        .when_open(open_behaviour)
    )

    with pytest.raises(
        BreakerConfigurationError, match="check behaviour not initialised"
    ):
        builder.build()


def test_unconfigured_closed_behaviour_fails_at_first_call(
    fake_scheduler: FakeScheduler,
) -> None:
    breaker = (
        _builder(fake_scheduler).check(StubCheck()).when_open(open_behaviour).build()
    )

    with pytest.raises(
        BreakerConfigurationError, match="closed_behaviour not initialised"
    ):
        breaker.handle("foo")


def test_unconfigured_open_behaviour_fails_at_first_call(
    fake_scheduler: FakeScheduler,
) -> None:
    breaker = (
        _builder(fake_scheduler)
        .check(StubCheck(passes=False))
        .when_closed(closed_behaviour)
        .build()
    )

    with pytest.raises(
        BreakerConfigurationError, match="open_behaviour not initialised"
    ):
        breaker.handle("foo")


def test_builder_rejects_none_values() -> None:
    builder = new_circuit_breaker()

    with pytest.raises(ValueError, match="check"):
        builder.check(None)  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="open_behaviour"):
        builder.when_open(None)  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="closed_behaviour"):
        builder.when_closed(None)  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="scheduler"):
        builder.with_scheduler(None)  # type: ignore[arg-type]


def test_builder_rejects_sub_second_interval(
    stub_check: StubCheck, fake_scheduler: FakeScheduler
) -> None:
    builder = (
        _builder(fake_scheduler)
        .check(stub_check, timedelta(milliseconds=500))
        .when_closed(closed_behaviour)
        .when_open(open_behaviour)
    )

    with pytest.raises(BreakerConfigurationError, match="check_interval"):
        builder.build()
