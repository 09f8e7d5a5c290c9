"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - A breaker used before its mandatory behaviour was configured.
  - Work scheduled on a scheduler that has already been shut down.
"""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class BreakerConfigurationError(CircuitBreakerError):
    """Raised when a breaker is misconfigured or used before being configured."""


class CircuitOpenError(CircuitBreakerError):
    """Raised by fail-fast open behaviour while the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
    """

    def __init__(self, breaker_name: str) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
        """
        self.breaker_name = breaker_name
        super().__init__(f"circuit_open: {breaker_name}")


class SchedulerShutdownError(CircuitBreakerError):
    """Raised when work is scheduled after the scheduler was shut down."""
