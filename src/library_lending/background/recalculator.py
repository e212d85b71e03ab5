"""
Background fine and overdue sweeps.

Both sweeps run alongside user-facing operations and hold no lock across
the issue set:

- The fine sweep lists open issue ids in one short session, then
  recalculates each issue in a session of its own. A failing issue is
  logged, counted and skipped.
- The overdue sweep is one bulk UPDATE that is safe to repeat.
"""

import logging
from collections.abc import Callable
from datetime import timedelta

import logfire
from sqlalchemy.orm import Session

from ..clock import Clock, system_clock
from ..database.issue_repository import IssueRepository
from ..fine_policy import ZERO, to_money
from ..models.fines import FineSweepResult
from ..observability import metrics
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

FINE_SWEEP_JOB = "fine-sweep"
OVERDUE_SWEEP_JOB = "overdue-sweep"


class BackgroundRecalculator:
    """
    Runs the two periodic sweeps.

    Args:
        session_factory: Callable returning a fresh session, e.g.
            ``DatabaseManager.session_factory``
        clock: Time source shared with the repositories
    """

    def __init__(self, session_factory: Callable[[], Session], clock: Clock = system_clock):
        self.session_factory = session_factory
        self.clock = clock

    def run_fine_sweep(self) -> FineSweepResult:
        """Recalculate the fine of every unreturned issue."""
        with logfire.span("lending.sweep.fines") as span:
            with self.session_factory() as session:
                issue_ids = IssueRepository(session, self.clock).open_issue_ids()

            updated = failed = 0
            total_fines = ZERO
            for issue_id in issue_ids:
                try:
                    with self.session_factory() as session:
                        issue, changed = IssueRepository(session, self.clock).recalculate_fine(
                            issue_id
                        )
                except Exception:
                    logger.exception("Fine recalculation failed for issue %s", issue_id)
                    metrics.record_sweep_failure("fines")
                    failed += 1
                    continue

                if changed:
                    updated += 1
                if issue.is_open:
                    total_fines += issue.fine_amount

            result = FineSweepResult(
                examined=len(issue_ids),
                updated=updated,
                failed=failed,
                total_fines=to_money(total_fines),
            )
            span.set_attribute("sweep.examined", result.examined)
            span.set_attribute("sweep.updated", result.updated)
            span.set_attribute("sweep.failed", result.failed)

        logger.info(
            "Fine sweep complete: examined=%d updated=%d failed=%d total_fines=%s",
            result.examined,
            result.updated,
            result.failed,
            result.total_fines,
        )
        return result

    def run_overdue_sweep(self) -> int:
        """Flip overdue ACTIVE issues to OVERDUE. Returns how many were flipped."""
        with logfire.span("lending.sweep.overdue") as span:
            with self.session_factory() as session:
                flipped = IssueRepository(session, self.clock).mark_overdue()
            span.set_attribute("sweep.flipped", flipped)

        metrics.record_overdue_flipped(flipped)
        logger.info("Overdue sweep complete: %d issue(s) marked overdue", flipped)
        return flipped

    def register(
        self,
        scheduler: Scheduler,
        fine_interval: timedelta = timedelta(days=1),
        overdue_interval: timedelta = timedelta(hours=1),
    ) -> None:
        """Schedule both sweeps: fines daily and overdue status hourly by default."""
        scheduler.every(fine_interval, FINE_SWEEP_JOB, self.run_fine_sweep)
        scheduler.every(overdue_interval, OVERDUE_SWEEP_JOB, self.run_overdue_sweep)
