"""Circuit breaker state primitives.

States are immutable values tagged with a ``CircuitState``. Every transition
either returns the same instance ("stay") or builds a new one; the only mutable
piece is the Open state's one-shot timeout flag, written by its timer.
"""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

from health_breaker.circuit_breaker.check import Status
from health_breaker.circuit_breaker.exceptions import BreakerConfigurationError
from health_breaker.circuit_breaker.scheduling import Scheduler

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "Closed"
    OPEN = "Open"
    FORCED_CLOSED = "ForcedClosed"
    FORCED_OPEN = "ForcedOpen"

    @property
    def is_forced(self) -> bool:
        """Return whether this is an administrative override."""
        return self in (CircuitState.FORCED_CLOSED, CircuitState.FORCED_OPEN)

    @property
    def uses_open_behaviour(self) -> bool:
        """Return whether requests are served by the open behaviour."""
        return self in (CircuitState.OPEN, CircuitState.FORCED_OPEN)


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for operators/logging.

    Attributes:
        name: Breaker name.
        state: Current breaker state.
        last_check_description: Rendering of the latest check status, or
            ``"NONE"`` before the first check completed.
    """

    name: str
    state: CircuitState
    last_check_description: str


@dataclass(frozen=True, slots=True)
class StateConfiguration(Generic[InputT, OutputT]):
    """Settings shared read-only by every state of one breaker.

    Attributes:
        open_timeout: Whole seconds the Open state ignores checks for.
        scheduler: Scheduler arming the Open state's timeout.
        open_behaviour: Handler serving requests while open.
        closed_behaviour: Handler serving requests while closed.
    """

    open_timeout: int
    scheduler: Scheduler
    open_behaviour: Callable[[InputT], OutputT]
    closed_behaviour: Callable[[InputT], OutputT]

    def __post_init__(self) -> None:
        if self.open_timeout < 0:
            raise BreakerConfigurationError("open_timeout must be >= 0")


@dataclass(frozen=True, slots=True, eq=False)
class BreakerState(Generic[InputT, OutputT]):
    """One state of the breaker's state machine.

    Build instances with ``closed_state``, ``open_state``,
    ``forced_closed_state`` or ``forced_open_state``.

    Attributes:
        kind: Which variant this state is.
        configuration: Shared breaker configuration.
        timed_out: Open only: set once the open timeout has elapsed.
    """

    kind: CircuitState
    configuration: StateConfiguration[InputT, OutputT]
    timed_out: threading.Event | None = None

    @property
    def name(self) -> str:
        """Return the state's display name."""
        return str(self.kind)

    def response_to(self, request: InputT) -> OutputT:
        """Serve ``request`` with the behaviour this state selects.

        Errors raised by the behaviour propagate unchanged.
        """
        if self.kind.uses_open_behaviour:
            return self.configuration.open_behaviour(request)
        return self.configuration.closed_behaviour(request)

    def next_state(self, status: Status) -> "BreakerState[InputT, OutputT]":
        """Return the state that follows this one after observing ``status``."""
        if self.kind is CircuitState.CLOSED:
            if status.passed:
                return self
            return open_state(self.configuration)
        if self.kind is CircuitState.OPEN:
            # The cooldown ignores the check; the first tick after it decides.
            if self.timed_out is None or not self.timed_out.is_set():
                return self
            if status.passed:
                return closed_state(self.configuration)
            return open_state(self.configuration)
        return self


def closed_state(configuration: StateConfiguration[Any, Any]) -> BreakerState[Any, Any]:
    """Build a Closed state."""
    return BreakerState(CircuitState.CLOSED, configuration)


def open_state(configuration: StateConfiguration[Any, Any]) -> BreakerState[Any, Any]:
    """Build an Open state and arm its one-shot timeout."""
    timed_out = threading.Event()
    configuration.scheduler.schedule_once(timed_out.set, configuration.open_timeout)
    return BreakerState(CircuitState.OPEN, configuration, timed_out)


def forced_closed_state(
    configuration: StateConfiguration[Any, Any],
) -> BreakerState[Any, Any]:
    """Build a ForcedClosed state."""
    return BreakerState(CircuitState.FORCED_CLOSED, configuration)


def forced_open_state(
    configuration: StateConfiguration[Any, Any],
) -> BreakerState[Any, Any]:
    """Build a ForcedOpen state."""
    return BreakerState(CircuitState.FORCED_OPEN, configuration)
