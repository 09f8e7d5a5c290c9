"""Fluent assembly of circuit breakers.

Mandatory pieces (check, open and closed behaviour) default to placeholders
that raise ``BreakerConfigurationError`` the first time they are used. The
check is used during ``build()``, so a breaker without one never starts.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import timedelta
from typing import Any, Generic, NoReturn, TypeVar

from health_breaker.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from health_breaker.circuit_breaker.check import Check, Status
from health_breaker.circuit_breaker.exceptions import BreakerConfigurationError
from health_breaker.circuit_breaker.metrics import BreakerListener
from health_breaker.circuit_breaker.scheduling import Scheduler
from health_breaker.logging import StructuredLogger
from health_breaker.settings import BreakerSettings

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")

Duration = float | timedelta

DEFAULT_CHECK_INTERVAL = 30.0
DEFAULT_OPEN_TIMEOUT = 10.0


def _to_seconds(value: Duration) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def _require(value: object, what: str) -> None:
    if value is None:
        raise ValueError(f"{what} must not be None")


def _unconfigured_check() -> Status:
    raise BreakerConfigurationError("check behaviour not initialised")


def _unconfigured_behaviour(what: str) -> Callable[[Any], NoReturn]:
    def _raise(request: Any) -> NoReturn:
        _ = request
        raise BreakerConfigurationError(f"{what} not initialised")

    return _raise


class CircuitBreakerBuilder(Generic[InputT, OutputT]):
    """Fluent builder of ``CircuitBreaker`` instances."""

    def __init__(self, name: str = "circuit_breaker") -> None:
        self._name = name
        self._check: Check = _unconfigured_check
        self._check_interval = DEFAULT_CHECK_INTERVAL
        self._open_behaviour: Callable[[InputT], OutputT] = _unconfigured_behaviour(
            "open_behaviour"
        )
        self._open_timeout = DEFAULT_OPEN_TIMEOUT
        self._closed_behaviour: Callable[[InputT], OutputT] = _unconfigured_behaviour(
            "closed_behaviour"
        )
        # Left unset until build(): an owned ThreadScheduler starts a thread.
        self._scheduler: Scheduler | None = None
        self._listeners: list[BreakerListener] = []
        self._logger: StructuredLogger | None = None

    def check(
        self, check: Check, interval: Duration | None = None
    ) -> CircuitBreakerBuilder[InputT, OutputT]:
        """Set the health check and, optionally, the interval between checks."""
        _require(check, "check")
        self._check = check
        if interval is not None:
            self._check_interval = _to_seconds(interval)
        return self

    def when_open(
        self,
        open_behaviour: Callable[[InputT], OutputT],
        timeout: Duration | None = None,
    ) -> CircuitBreakerBuilder[InputT, OutputT]:
        """Set the open behaviour and, optionally, the open timeout."""
        _require(open_behaviour, "open_behaviour")
        self._open_behaviour = open_behaviour
        if timeout is not None:
            self._open_timeout = _to_seconds(timeout)
        return self

    def when_closed(
        self, closed_behaviour: Callable[[InputT], OutputT]
    ) -> CircuitBreakerBuilder[InputT, OutputT]:
        """Set the closed behaviour."""
        _require(closed_behaviour, "closed_behaviour")
        self._closed_behaviour = closed_behaviour
        return self

    def with_scheduler(
        self, scheduler: Scheduler
    ) -> CircuitBreakerBuilder[InputT, OutputT]:
        """Use ``scheduler`` instead of a breaker-owned ``ThreadScheduler``."""
        _require(scheduler, "scheduler")
        self._scheduler = scheduler
        return self

    def with_listener(
        self, listener: BreakerListener
    ) -> CircuitBreakerBuilder[InputT, OutputT]:
        """Register a listener for breaker events."""
        _require(listener, "listener")
        self._listeners.append(listener)
        return self

    def with_logger(
        self, logger: StructuredLogger
    ) -> CircuitBreakerBuilder[InputT, OutputT]:
        """Use ``logger`` for breaker events."""
        _require(logger, "logger")
        self._logger = logger
        return self

    def with_settings(
        self, settings: BreakerSettings
    ) -> CircuitBreakerBuilder[InputT, OutputT]:
        """Take the check interval and open timeout from ``settings``."""
        _require(settings, "settings")
        config = CircuitBreakerConfig.from_settings(settings)
        self._check_interval = config.check_interval
        self._open_timeout = config.open_timeout
        return self

    def build(self) -> CircuitBreaker[InputT, OutputT]:
        """Build and start the breaker.

        Raises:
            BreakerConfigurationError: If no check was configured or the
                timings are invalid.
        """
        config = CircuitBreakerConfig(
            check_interval=self._check_interval,
            open_timeout=self._open_timeout,
        )
        return CircuitBreaker(
            self._name,
            check=self._check,
            open_behaviour=self._open_behaviour,
            closed_behaviour=self._closed_behaviour,
            config=config,
            scheduler=self._scheduler,
            listeners=self._listeners,
            logger=self._logger,
        )


def new_circuit_breaker(
    name: str = "circuit_breaker",
) -> CircuitBreakerBuilder[Any, Any]:
    """Start building a circuit breaker named ``name``."""
    return CircuitBreakerBuilder(name)
