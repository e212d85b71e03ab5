"""
Scheduling for the background sweeps.

The sweeps never schedule themselves. They are registered on a
``Scheduler``, and the server decides which scheduler runs them:

- ``ThreadingScheduler`` fires jobs on a single daemon thread in production.
- ``ManualScheduler`` fires jobs only when a test calls ``run``.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from time import monotonic
from typing import Any

logger = logging.getLogger(__name__)

Job = Callable[[], Any]


@dataclass
class ScheduledJob:
    name: str
    interval: timedelta
    job: Job
    next_run: float = field(default=0.0)


class Scheduler(ABC):
    """Runs named jobs at fixed intervals."""

    def __init__(self) -> None:
        self._jobs: dict[str, ScheduledJob] = {}

    def every(self, interval: timedelta, name: str, job: Job) -> None:
        """Register ``job`` to run every ``interval``, first run one interval from start."""
        if interval <= timedelta(0):
            raise ValueError("Job interval must be positive")
        if name in self._jobs:
            raise ValueError(f"Job '{name}' is already scheduled")
        self._jobs[name] = ScheduledJob(name=name, interval=interval, job=job)
        logger.info("Scheduled job '%s' every %s", name, interval)

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    def _run_job(self, scheduled: ScheduledJob) -> Any:
        """Run one job; a failure is logged and never propagates to the scheduler."""
        try:
            return scheduled.job()
        except Exception:
            logger.exception("Scheduled job '%s' failed", scheduled.name)
            return None

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def shutdown(self, wait: bool = True) -> None: ...


class ThreadingScheduler(Scheduler):
    """A single daemon thread that sleeps until the next job is due."""

    def __init__(self) -> None:
        super().__init__()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        now = monotonic()
        for scheduled in self._jobs.values():
            scheduled.next_run = now + scheduled.interval.total_seconds()
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="lending-scheduler", daemon=True
        )
        self._thread.start()
        logger.info("Scheduler started with %d job(s)", len(self._jobs))

    def _loop(self) -> None:
        while not self._stop.is_set():
            if not self._jobs:
                self._stop.wait(1.0)
                continue

            now = monotonic()
            for scheduled in self._jobs.values():
                if scheduled.next_run <= now:
                    self._run_job(scheduled)
                    scheduled.next_run = monotonic() + scheduled.interval.total_seconds()

            next_due = min(scheduled.next_run for scheduled in self._jobs.values())
            self._stop.wait(max(0.0, next_due - monotonic()))

    def shutdown(self, wait: bool = True) -> None:
        self._stop.set()
        if self._thread is not None and wait:
            self._thread.join()
        self._thread = None
        logger.info("Scheduler stopped")


class ManualScheduler(Scheduler):
    """Runs jobs only on request, so tests decide exactly when a sweep happens."""

    def __init__(self) -> None:
        super().__init__()
        self.started = False

    def start(self) -> None:
        self.started = True

    def shutdown(self, wait: bool = True) -> None:  # noqa: ARG002
        self.started = False

    def run(self, name: str) -> Any:
        """Run one registered job now and return its result."""
        if name not in self._jobs:
            raise KeyError(f"No job named '{name}'")
        return self._run_job(self._jobs[name])

    def run_all(self) -> dict[str, Any]:
        return {name: self._run_job(scheduled) for name, scheduled in self._jobs.items()}
