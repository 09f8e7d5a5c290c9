"""Recurring-task schedulers driving breaker supervision.

Delays and periods are whole seconds. Two implementations are provided:
  - ``ThreadScheduler`` runs every task on one APScheduler worker thread. It
    is the scheduler a breaker creates (and owns) when none is supplied.
  - ``AsyncioScheduler`` runs tasks on the running event loop, for breakers
    embedded in async services.

Both run repeating tasks at a fixed rate: a slow task shortens the following
wait instead of pushing every later execution back.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable, Coroutine
from contextlib import suppress
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.job import Job
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from health_breaker.circuit_breaker.exceptions import SchedulerShutdownError
from health_breaker.logging import StructuredLogger, get_logger, log_exception

Task = Callable[[], object]


class ScheduledTask(Protocol):
    """Handle for one scheduled task."""

    def cancel(self) -> None:
        """Stop future executions of the task."""

    @property
    def cancelled(self) -> bool:
        """Return whether ``cancel`` has been requested."""


class Scheduler(Protocol):
    """Recurring-task capability consumed by circuit breakers."""

    def schedule_repeating(
        self, task: Task, initial_delay: int, period: int
    ) -> ScheduledTask:
        """Run ``task`` after ``initial_delay`` and then every ``period``."""

    def schedule_once(self, task: Task, delay: int) -> ScheduledTask:
        """Run ``task`` once after ``delay``."""

    def shutdown(self) -> None:
        """Stop all future executions."""


def _task_name(task: Task) -> str:
    name = getattr(task, "__qualname__", None)
    if name is None:
        name = getattr(task, "__name__", None)
    if name is None:
        name = task.__class__.__qualname__
    return str(name)


def _validate_timing(delay: int, period: int | None = None) -> None:
    if delay < 0:
        raise ValueError("delay must be >= 0")
    if period is not None and period <= 0:
        raise ValueError("period must be > 0")


class _JobTask:
    def __init__(self, job: Job) -> None:
        self._job = job
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        # One-shot jobs are dropped by APScheduler once they have run.
        with suppress(JobLookupError):
            self._job.remove()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ThreadScheduler:
    """Scheduler backed by an APScheduler ``BackgroundScheduler``.

    Jobs share a single worker thread, so a tick and an Open timer never run
    concurrently, and a repeating job never overlaps itself. A task that
    raises is logged and, if repeating, keeps its cadence.
    """

    def __init__(
        self,
        *,
        name: str = "health-breaker-scheduler",
        logger: StructuredLogger | None = None,
    ) -> None:
        """Create an idle scheduler; APScheduler starts on first use.

        Args:
            name: Scheduler name used in log events.
            logger: Structured logger for task failures.
        """
        self._name = name
        self._logger = get_logger(__name__) if logger is None else logger
        self._scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": None,
            },
            timezone=timezone.utc,
            daemon=True,
        )
        self._lock = threading.Lock()
        self._local = threading.local()
        self._is_shutdown = False

    @property
    def is_shutdown(self) -> bool:
        """Return whether ``shutdown`` has been called."""
        return self._is_shutdown

    def schedule_repeating(
        self, task: Task, initial_delay: int, period: int
    ) -> ScheduledTask:
        """Run ``task`` after ``initial_delay`` seconds, then every ``period``."""
        _validate_timing(initial_delay, period)
        first_run = datetime.now(timezone.utc) + timedelta(seconds=initial_delay)
        return self._add(
            task,
            IntervalTrigger(seconds=period, timezone=timezone.utc),
            next_run_time=first_run,
        )

    def schedule_once(self, task: Task, delay: int) -> ScheduledTask:
        """Run ``task`` once after ``delay`` seconds."""
        _validate_timing(delay)
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay)
        return self._add(task, DateTrigger(run_date=run_date, timezone=timezone.utc))

    def shutdown(self, *, wait: bool = False) -> None:
        """Drop pending work and stop APScheduler.

        A task already running is allowed to finish. With ``wait=True`` the
        caller blocks until it has, unless the caller is that task.
        """
        with self._lock:
            if self._is_shutdown:
                return
            self._is_shutdown = True
            running = self._scheduler.running
        if not running:
            return
        in_task = getattr(self._local, "in_task", False)
        self._scheduler.shutdown(wait=wait and not in_task)

    def _add(self, task: Task, trigger: BaseTrigger, **options: Any) -> _JobTask:
        with self._lock:
            if self._is_shutdown:
                raise SchedulerShutdownError(f"scheduler {self._name} is shut down")
            if not self._scheduler.running:
                self._scheduler.start()
            job = self._scheduler.add_job(
                self._run_task,
                trigger=trigger,
                args=(task,),
                name=_task_name(task),
                **options,
            )
        return _JobTask(job)

    def _run_task(self, task: Task) -> None:
        self._local.in_task = True
        try:
            task()
        except Exception as exc:
            log_exception(
                self._logger,
                "scheduler.task_failed",
                scheduler=self._name,
                task=_task_name(task),
                error=f"{exc.__class__.__name__}: {exc}",
            )
        finally:
            self._local.in_task = False


class _AsyncioTask:
    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task
        self._cancel_requested = False

    def cancel(self) -> None:
        self._cancel_requested = True
        self._task.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested or self._task.cancelled()


class AsyncioScheduler:
    """Scheduler running breaker tasks on the running asyncio event loop.

    Scheduling requires a running loop in the calling thread. Tasks are plain
    callables and run on the loop thread.
    """

    def __init__(
        self,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Create a scheduler bound to whichever loop is running at schedule time.

        Args:
            sleep: Awaitable sleep function used between executions.
            clock: Seconds clock used to keep repeats at a fixed rate.
                Defaults to the running loop's ``time``.
            logger: Structured logger for task failures.
        """
        self._sleep = sleep
        self._clock = clock
        self._logger = get_logger(__name__) if logger is None else logger
        self._tasks: set[asyncio.Task[None]] = set()
        self._is_shutdown = False

    def schedule_repeating(
        self, task: Task, initial_delay: int, period: int
    ) -> ScheduledTask:
        """Run ``task`` after ``initial_delay`` seconds, then every ``period``."""
        _validate_timing(initial_delay, period)
        return self._spawn(
            self._run_repeating(task, initial_delay, period),
            name=f"health_breaker:repeating:{_task_name(task)}",
        )

    def schedule_once(self, task: Task, delay: int) -> ScheduledTask:
        """Run ``task`` once after ``delay`` seconds."""
        _validate_timing(delay)
        return self._spawn(
            self._run_once(task, delay),
            name=f"health_breaker:once:{_task_name(task)}",
        )

    def shutdown(self) -> None:
        """Cancel every pending task."""
        self._is_shutdown = True
        for task in list(self._tasks):
            task.cancel()

    async def aclose(self) -> None:
        """Cancel every pending task and wait for them to finish."""
        tasks = list(self._tasks)
        self.shutdown()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    def _spawn(
        self, coro: Coroutine[Any, Any, None], *, name: str
    ) -> ScheduledTask:
        if self._is_shutdown:
            coro.close()
            raise SchedulerShutdownError("asyncio scheduler is shut down")
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return _AsyncioTask(task)

    async def _run_repeating(self, task: Task, initial_delay: int, period: int) -> None:
        clock = self._clock or asyncio.get_running_loop().time
        next_due = clock() + initial_delay
        if initial_delay > 0:
            await self._sleep(initial_delay)
        while True:
            self._run_task(task)
            next_due += period
            await self._sleep(max(0.0, next_due - clock()))

    async def _run_once(self, task: Task, delay: int) -> None:
        await self._sleep(delay)
        self._run_task(task)

    def _run_task(self, task: Task) -> None:
        try:
            task()
        except Exception as exc:
            log_exception(
                self._logger,
                "scheduler.task_failed",
                scheduler="asyncio",
                task=_task_name(task),
                error=f"{exc.__class__.__name__}: {exc}",
            )
