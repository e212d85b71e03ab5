"""Periodic background work: the fine sweep and the overdue sweep."""

from .recalculator import FINE_SWEEP_JOB, OVERDUE_SWEEP_JOB, BackgroundRecalculator
from .scheduler import ManualScheduler, Scheduler, ThreadingScheduler

__all__ = [
    "FINE_SWEEP_JOB",
    "OVERDUE_SWEEP_JOB",
    "BackgroundRecalculator",
    "ManualScheduler",
    "Scheduler",
    "ThreadingScheduler",
]
