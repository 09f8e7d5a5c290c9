"""Health-check supervised circuit breaker.

This package implements the circuit breaker pattern from *Release It!*, driven
by a periodic health check rather than by the outcome of protected calls.

Key behavior notes:
  - A scheduler ticks the breaker at a fixed interval. Each tick evaluates the
    check and asks the current state for its successor.
  - ``HALF_OPEN`` is not a state of its own: once the Open state's timeout has
    elapsed, the next check decides between closing and re-opening with a
    fresh timeout.
  - A check that raises resets the breaker to ``Closed``. Administrative
    overrides (``ForcedClosed``/``ForcedOpen``) still run the check but ignore
    both its result and its exceptions until ``reset_to_normal_operation``.
"""

from health_breaker.circuit_breaker.breaker import (
    NO_CHECK_DESCRIPTION,
    BreakerAdministration,
    CircuitBreaker,
    CircuitBreakerConfig,
)
from health_breaker.circuit_breaker.builder import (
    CircuitBreakerBuilder,
    new_circuit_breaker,
)
from health_breaker.circuit_breaker.check import (
    Check,
    RequestHandler,
    Status,
    fail_fast,
    make_callable_check,
)
from health_breaker.circuit_breaker.exceptions import (
    BreakerConfigurationError,
    CircuitBreakerError,
    CircuitOpenError,
    SchedulerShutdownError,
)
from health_breaker.circuit_breaker.metrics import BreakerListener
from health_breaker.circuit_breaker.scheduling import (
    AsyncioScheduler,
    ScheduledTask,
    Scheduler,
    ThreadScheduler,
)
from health_breaker.circuit_breaker.state import (
    BreakerSnapshot,
    BreakerState,
    CircuitState,
    StateConfiguration,
)

__all__ = [
    "NO_CHECK_DESCRIPTION",
    "AsyncioScheduler",
    "BreakerAdministration",
    "BreakerConfigurationError",
    "BreakerListener",
    "BreakerSnapshot",
    "BreakerState",
    "Check",
    "CircuitBreaker",
    "CircuitBreakerBuilder",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "RequestHandler",
    "ScheduledTask",
    "Scheduler",
    "SchedulerShutdownError",
    "StateConfiguration",
    "Status",
    "ThreadScheduler",
    "fail_fast",
    "make_callable_check",
    "new_circuit_breaker",
]
