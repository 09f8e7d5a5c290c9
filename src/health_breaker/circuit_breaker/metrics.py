"""Observability hooks for circuit breakers."""

from typing import Protocol

from health_breaker.circuit_breaker.state import CircuitState


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        Listeners run synchronously on the thread that caused the event (the
        scheduler for check-driven transitions, the caller for administrative
        ones). Exceptions raised by listeners are logged and suppressed.
    """

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        """Handle a change of the breaker's state kind."""

    def on_check_failed(self, name: str, exc: Exception) -> None:
        """Handle a health check that raised instead of returning a status."""
