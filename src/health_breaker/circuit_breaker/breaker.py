"""Core circuit breaker implementation."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Generic, Protocol, TypeVar

from health_breaker.circuit_breaker.check import Check, Status
from health_breaker.circuit_breaker.exceptions import BreakerConfigurationError
from health_breaker.circuit_breaker.metrics import BreakerListener
from health_breaker.circuit_breaker.scheduling import (
    ScheduledTask,
    Scheduler,
    ThreadScheduler,
)
from health_breaker.circuit_breaker.state import (
    BreakerSnapshot,
    BreakerState,
    CircuitState,
    StateConfiguration,
    closed_state,
    forced_closed_state,
    forced_open_state,
)
from health_breaker.logging import (
    StructuredLogger,
    get_logger,
    log_debug,
    log_info,
    log_warning,
)

if TYPE_CHECKING:
    from health_breaker.settings import BreakerSettings

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")

NO_CHECK_DESCRIPTION = "NONE"


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker timing values.

    The scheduler works in whole seconds, so fractional values are truncated
    when handed to it.

    Attributes:
        check_interval: Seconds between supervisory ticks.
        open_timeout: Seconds the Open state ignores the check before probing.
    """

    check_interval: float = 30.0
    open_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.check_interval < 1:
            raise BreakerConfigurationError("check_interval must be >= 1 second")
        if self.open_timeout < 0:
            raise BreakerConfigurationError("open_timeout must be >= 0")

    @property
    def check_interval_seconds(self) -> int:
        """Return the check interval truncated to whole seconds."""
        return int(self.check_interval)

    @property
    def open_timeout_seconds(self) -> int:
        """Return the open timeout truncated to whole seconds."""
        return int(self.open_timeout)

    @classmethod
    def from_settings(cls, settings: BreakerSettings) -> CircuitBreakerConfig:
        """Build a config from environment-driven settings."""
        return cls(
            check_interval=settings.check_interval_seconds,
            open_timeout=settings.open_timeout_seconds,
        )


class BreakerAdministration(Protocol):
    """Operator-facing surface for inspecting and overriding a breaker."""

    def current_state_name(self) -> str:
        """Return the current state's name."""

    def last_check_description(self) -> str:
        """Return the rendering of the most recent check status."""

    def force_closed(self) -> None:
        """Pin the breaker to the closed behaviour until reset."""

    def force_open(self) -> None:
        """Pin the breaker to the open behaviour until reset."""

    def reset_to_normal_operation(self) -> None:
        """Leave any override and resume check-driven operation."""


class _StateCell(Generic[InputT, OutputT]):
    """Atomic reference holding the breaker's current state.

    Reads are a single attribute load. Writes go through a lock so a
    compare-and-set can never interleave with an administrative override.
    """

    def __init__(self, initial: BreakerState[InputT, OutputT]) -> None:
        self._value = initial
        self._lock = threading.Lock()

    def get(self) -> BreakerState[InputT, OutputT]:
        return self._value

    def set(
        self, value: BreakerState[InputT, OutputT]
    ) -> BreakerState[InputT, OutputT]:
        with self._lock:
            previous = self._value
            self._value = value
            return previous

    def compare_and_set(
        self,
        expected: BreakerState[InputT, OutputT],
        value: BreakerState[InputT, OutputT],
    ) -> bool:
        with self._lock:
            if self._value is not expected:
                return False
            self._value = value
            return True


class CircuitBreaker(BreakerAdministration, Generic[InputT, OutputT]):
    """Supervised switch between a closed and an open request behaviour.

    A health check runs on a fixed schedule and drives the state machine:

        Closed --[check fails]--> Open
        Open --[timeout elapsed, check passes]--> Closed
        Open --[timeout elapsed, check fails]--> Open (fresh timeout)

    ``handle`` always delegates to the behaviour of the state current at the
    moment of the call. A check that raises resets the breaker to Closed,
    except under an administrative override, which only an explicit
    ``reset_to_normal_operation`` ends.
    """

    def __init__(
        self,
        name: str,
        *,
        check: Check,
        open_behaviour: Callable[[InputT], OutputT],
        closed_behaviour: Callable[[InputT], OutputT],
        config: CircuitBreakerConfig | None = None,
        scheduler: Scheduler | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build a breaker, evaluate the check once and start supervision.

        Args:
            name: Breaker name used in logs, listener events and snapshots.
            check: Health check evaluated on every tick.
            open_behaviour: Handler serving requests while open.
            closed_behaviour: Handler serving requests while closed.
            config: Timing configuration. Defaults to
                ``CircuitBreakerConfig()``.
            scheduler: Recurring-task scheduler. Defaults to a
                ``ThreadScheduler`` owned (and shut down) by this breaker.
            listeners: Optional listener hooks for breaker events.
            logger: Structured logger. Defaults to this module's logger.

        Raises:
            BreakerConfigurationError: If the check is not configured.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._logger = get_logger(__name__) if logger is None else logger
        self._owned_scheduler: ThreadScheduler | None = None
        if scheduler is None:
            scheduler = self._owned_scheduler = ThreadScheduler(
                name=f"{name}-scheduler"
            )
        self._scheduler: Scheduler = scheduler
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._check = check
        self._last_check_description = NO_CHECK_DESCRIPTION
        self._configuration: StateConfiguration[InputT, OutputT] = StateConfiguration(
            open_timeout=self.config.open_timeout_seconds,
            scheduler=self._scheduler,
            open_behaviour=open_behaviour,
            closed_behaviour=closed_behaviour,
        )
        self._state: _StateCell[InputT, OutputT] = _StateCell(
            closed_state(self._configuration)
        )
        self._closed = False

        self.refresh()
        self._tick: ScheduledTask = self._scheduler.schedule_repeating(
            self.refresh, 0, self.config.check_interval_seconds
        )

    def handle(self, request: InputT) -> OutputT:
        """Serve ``request`` with the currently selected behaviour.

        Raises:
            Exception: Whatever the selected behaviour raises, unchanged.
        """
        return self._state.get().response_to(request)

    def refresh(self) -> None:
        """Run one supervisory tick: evaluate the check and advance the state."""
        current = self._state.get()
        try:
            status = self._evaluate_check()
        except BreakerConfigurationError:
            raise
        except Exception as exc:
            self._handle_check_error(current, exc)
            return
        self._install(current, current.next_state(status))

    def current_state(self) -> CircuitState:
        """Return the current state kind."""
        return self._state.get().kind

    def current_state_name(self) -> str:
        """Return ``Closed``, ``Open``, ``ForcedClosed`` or ``ForcedOpen``."""
        return self._state.get().name

    def last_check_description(self) -> str:
        """Return the latest check status rendering, or ``NONE``."""
        return self._last_check_description

    def snapshot(self) -> BreakerSnapshot:
        """Return a point-in-time view for operators."""
        return BreakerSnapshot(
            name=self.name,
            state=self.current_state(),
            last_check_description=self._last_check_description,
        )

    def force_closed(self) -> None:
        """Serve the closed behaviour and ignore the check until reset."""
        self._override(forced_closed_state(self._configuration))

    def force_open(self) -> None:
        """Serve the open behaviour and ignore the check until reset."""
        self._override(forced_open_state(self._configuration))

    def reset_to_normal_operation(self) -> None:
        """Replace the current state with a fresh Closed state."""
        replacement = closed_state(self._configuration)
        previous = self._state.set(replacement)
        log_info(
            self._logger,
            "circuit_breaker.reset",
            breaker=self.name,
            previous_state=previous.name,
        )
        self._notify_transition(previous, replacement)

    def close(self) -> None:
        """Stop supervision. Calls already in progress are unaffected.

        An owned scheduler is shut down and waited for, so no check is still
        running once this returns (unless called from the check itself).
        """
        if self._closed:
            return
        self._closed = True
        self._tick.cancel()
        if self._owned_scheduler is not None:
            self._owned_scheduler.shutdown(wait=True)

    def __enter__(self) -> CircuitBreaker[InputT, OutputT]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _evaluate_check(self) -> Status:
        status = self._check()
        self._last_check_description = str(status)
        log_debug(
            self._logger,
            "circuit_breaker.check_completed",
            breaker=self.name,
            status=self._last_check_description,
        )
        return status

    def _handle_check_error(
        self, current: BreakerState[InputT, OutputT], exc: Exception
    ) -> None:
        self._emit_check_failed(exc)
        # A broken check cannot end an administrative override.
        if current.kind.is_forced:
            log_warning(
                self._logger,
                "circuit_breaker.check_failed",
                breaker=self.name,
                state=current.name,
                action="ignored",
                error=f"{exc.__class__.__name__}: {exc}",
            )
            return
        log_warning(
            self._logger,
            "circuit_breaker.check_failed",
            breaker=self.name,
            state=current.name,
            action="reset_to_closed",
            error=f"{exc.__class__.__name__}: {exc}",
        )
        self._install(current, closed_state(self._configuration))

    def _install(
        self,
        expected: BreakerState[InputT, OutputT],
        replacement: BreakerState[InputT, OutputT],
    ) -> None:
        if replacement is expected:
            return
        if not self._state.compare_and_set(expected, replacement):
            log_debug(
                self._logger,
                "circuit_breaker.transition_superseded",
                breaker=self.name,
                discarded_state=replacement.name,
            )
            return
        if expected.kind is CircuitState.OPEN and replacement.kind is CircuitState.OPEN:
            log_info(
                self._logger,
                "circuit_breaker.reopened",
                breaker=self.name,
                open_timeout=self._configuration.open_timeout,
            )
        self._notify_transition(expected, replacement)

    def _override(self, replacement: BreakerState[InputT, OutputT]) -> None:
        previous = self._state.set(replacement)
        log_warning(
            self._logger,
            "circuit_breaker.forced",
            breaker=self.name,
            previous_state=previous.name,
            state=replacement.name,
        )
        self._notify_transition(previous, replacement)

    def _notify_transition(
        self,
        previous: BreakerState[InputT, OutputT],
        current: BreakerState[InputT, OutputT],
    ) -> None:
        if previous.kind is current.kind:
            return
        log_info(
            self._logger,
            "circuit_breaker.state_changed",
            breaker=self.name,
            old=previous.name,
            new=current.name,
        )
        for listener in self._listeners:
            try:
                listener.on_state_change(self.name, previous.kind, current.kind)
            except Exception as exc:
                self._log_listener_failure(listener, exc)

    def _emit_check_failed(self, error: Exception) -> None:
        for listener in self._listeners:
            try:
                listener.on_check_failed(self.name, error)
            except Exception as exc:
                self._log_listener_failure(listener, exc)

    def _log_listener_failure(self, listener: BreakerListener, exc: Exception) -> None:
        log_warning(
            self._logger,
            "circuit_breaker.listener_failed",
            breaker=self.name,
            listener=listener.__class__.__qualname__,
            error=f"{exc.__class__.__name__}: {exc}",
        )
