from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from health_breaker.circuit_breaker import CircuitState, SchedulerShutdownError, Status


class FakeLogger:
    """Capture structured logger events for assertions."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.calls: list[tuple[str, str, dict[str, object]]] = []

    def _record(self, level: str, event: str, **kwargs: object) -> None:
        self.events.append(event)
        self.calls.append((level, event, kwargs))

    def debug(self, event: str, **kwargs: object) -> None:
        self._record("debug", event, **kwargs)

    def info(self, event: str, **kwargs: object) -> None:
        self._record("info", event, **kwargs)

    def warning(self, event: str, **kwargs: object) -> None:
        self._record("warning", event, **kwargs)

    def error(self, event: str, **kwargs: object) -> None:
        self._record("error", event, **kwargs)

    def exception(self, event: str, **kwargs: object) -> None:
        self._record("exception", event, **kwargs)

    def calls_for(self, event: str) -> list[tuple[str, str, dict[str, object]]]:
        return [call for call in self.calls if call[1] == event]


@dataclass(eq=False)
class FakeScheduledTask:
    """Task registered with ``FakeScheduler``."""

    task: Callable[[], object]
    due: int
    period: int | None
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Virtual-clock scheduler counting whole seconds.

    Nothing runs until ``run_pending`` or ``tick`` is called. One-shot tasks due
    at an instant run before repeating tasks due at the same instant, so an
    Open state's timeout is visible to the tick sharing its second.
    """

    def __init__(self) -> None:
        self.now = 0
        self.tasks: list[FakeScheduledTask] = []
        self.repeating: list[tuple[int, int]] = []
        self.once: list[int] = []
        self.is_shutdown = False

    def schedule_repeating(
        self, task: Callable[[], object], initial_delay: int, period: int
    ) -> FakeScheduledTask:
        self.repeating.append((initial_delay, period))
        return self._add(FakeScheduledTask(task, self.now + initial_delay, period))

    def schedule_once(
        self, task: Callable[[], object], delay: int
    ) -> FakeScheduledTask:
        self.once.append(delay)
        return self._add(FakeScheduledTask(task, self.now + delay, None))

    def shutdown(self) -> None:
        self.is_shutdown = True

    def run_pending(self) -> None:
        """Run every task due at or before the current virtual time."""
        while not self.is_shutdown:
            due = [
                entry
                for entry in self.tasks
                if not entry.cancelled and entry.due <= self.now
            ]
            if not due:
                return
            entry = min(due, key=lambda item: (item.due, item.period is not None))
            if entry.period is None:
                self.tasks.remove(entry)
            else:
                entry.due += entry.period
            entry.task()

    def tick(self, count: int = 1) -> None:
        """Advance the virtual clock one second at a time, running due tasks."""
        for _ in range(count):
            self.now += 1
            self.run_pending()

    def _add(self, entry: FakeScheduledTask) -> FakeScheduledTask:
        if self.is_shutdown:
            raise SchedulerShutdownError("fake scheduler is shut down")
        self.tasks.append(entry)
        return entry


class StubCheck:
    """Health check whose outcome tests flip between ticks."""

    def __init__(self, *, passes: bool = True) -> None:
        self.passes = passes
        self.error: Exception | None = None
        self.calls = 0

    def __call__(self) -> Status:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return Status(
            passed=self.passes,
            description="dependency up" if self.passes else "dependency down",
        )


@dataclass(slots=True)
class RecordingListener:
    """Listener capturing breaker events."""

    events: list[tuple[str, object]] = field(default_factory=list)

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        self.events.append(("state", (name, old, new)))

    def on_check_failed(self, name: str, exc: Exception) -> None:
        self.events.append(("check_failed", (name, exc.__class__.__name__)))


@dataclass(slots=True)
class ExplodingListener:
    """Listener raising from every hook."""

    def on_state_change(self, name: str, old: CircuitState, new: CircuitState) -> None:
        raise RuntimeError("boom")

    def on_check_failed(self, name: str, exc: Exception) -> None:
        raise RuntimeError("boom")


def closed_behaviour(request: str) -> int:
    """Normal behaviour used across tests: the request's length."""
    return len(request)


def open_behaviour(request: str) -> int:
    """Protective behaviour used across tests: fail fast."""
    _ = request
    raise RuntimeError("Fail fast")
