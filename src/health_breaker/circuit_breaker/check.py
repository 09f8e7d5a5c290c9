"""Health check and request handler primitives."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, NoReturn, TypeVar

from health_breaker.circuit_breaker.exceptions import CircuitOpenError

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Status:
    """Outcome of one health check evaluation.

    Attributes:
        passed: Whether the checked dependency is healthy.
        description: Human-readable detail about the outcome.
        observed_at: When the outcome was observed.
    """

    passed: bool
    description: str = ""
    observed_at: datetime = field(default_factory=_utcnow)

    def __str__(self) -> str:
        verdict = "PASS" if self.passed else "FAIL"
        return f"[{verdict}@{self.observed_at.isoformat()}] {self.description}"


Check = Callable[[], Status]
RequestHandler = Callable[[InputT], OutputT]


def make_callable_check(
    check: Callable[[], bool],
    *,
    description_when_true: str = "",
    description_when_false: str = "",
) -> Check:
    """Build a health check from a boolean callable.

    Exceptions raised by ``check`` propagate so the breaker can apply its
    check-failure policy.
    """

    def _check() -> Status:
        if check():
            return Status(passed=True, description=description_when_true)
        return Status(passed=False, description=description_when_false)

    _check.__name__ = getattr(check, "__name__", "callable_check")
    return _check


def fail_fast(breaker_name: str) -> Callable[[Any], NoReturn]:
    """Build an open behaviour that rejects every request immediately."""

    def _reject(request: Any) -> NoReturn:
        _ = request
        raise CircuitOpenError(breaker_name)

    return _reject
