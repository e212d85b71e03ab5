"""Tests for the background fine and overdue sweeps."""

import logging
from datetime import timedelta
from decimal import Decimal

import pytest

from library_lending.background import FINE_SWEEP_JOB, OVERDUE_SWEEP_JOB
from library_lending.database import IssueCreateSchema, IssueRepository, ReturnSchema
from library_lending.models import LOAN_PERIOD_DAYS, FineSweepResult, IssueStatus


@pytest.fixture
def second_issue(issue_repo, single_copy_book, other_borrower, librarian):
    return issue_repo.issue_book(
        IssueCreateSchema(
            book_id=single_copy_book.id,
            issued_to_id=other_borrower.id,
            processed_by_id=librarian.id,
        )
    )


class TestFineSweep:
    def test_recalculates_every_open_issue(
        self, recalculator, issued, second_issue, clock, db_session, issue_repo
    ):
        clock.advance(days=LOAN_PERIOD_DAYS + 10)
        db_session.commit()

        result = recalculator.run_fine_sweep()

        assert result == FineSweepResult(
            examined=2, updated=2, failed=0, total_fines=Decimal("180.00")
        )
        for issue_id in (issued.id, second_issue.id):
            issue = issue_repo.get_issue(issue_id)
            assert issue.fine_amount == Decimal("90.00")
            assert issue.status == IssueStatus.OVERDUE

    def test_second_run_changes_nothing(self, recalculator, issued, second_issue, clock):
        clock.advance(days=LOAN_PERIOD_DAYS + 10)

        first = recalculator.run_fine_sweep()
        second = recalculator.run_fine_sweep()

        assert first.updated == 2
        assert second.updated == 0
        assert second.total_fines == first.total_fines

    def test_loans_not_yet_due_are_untouched(self, recalculator, issued, clock):
        clock.advance(days=3)

        result = recalculator.run_fine_sweep()

        assert result.examined == 1
        assert result.updated == 0
        assert result.total_fines == Decimal("0.00")

    def test_returned_loans_are_skipped(self, recalculator, issue_repo, issued, librarian, clock):
        clock.advance(days=LOAN_PERIOD_DAYS + 10)
        issue_repo.return_book(ReturnSchema(issue_id=issued.id, processed_by_id=librarian.id))

        result = recalculator.run_fine_sweep()

        assert result.examined == 0

    def test_one_failing_issue_does_not_stop_the_sweep(
        self, recalculator, issued, second_issue, clock, db_session, issue_repo, monkeypatch, caplog
    ):
        original = IssueRepository.recalculate_fine

        def flaky(self, issue_id):
            if issue_id == issued.id:
                raise RuntimeError("disk on fire")
            return original(self, issue_id)

        monkeypatch.setattr(IssueRepository, "recalculate_fine", flaky)
        clock.advance(days=LOAN_PERIOD_DAYS + 10)
        db_session.commit()

        with caplog.at_level(logging.ERROR):
            result = recalculator.run_fine_sweep()

        assert result.examined == 2
        assert result.updated == 1
        assert result.failed == 1
        assert result.total_fines == Decimal("90.00")
        assert f"Fine recalculation failed for issue {issued.id}" in caplog.text

        assert issue_repo.get_issue(issued.id).fine_amount == Decimal("0.00")
        assert issue_repo.get_issue(second_issue.id).fine_amount == Decimal("90.00")


class TestOverdueSweep:
    def test_flips_only_past_due_loans(
        self, recalculator, issue_repo, issued, single_copy_book, other_borrower, librarian, clock
    ):
        clock.advance(days=5)
        later = issue_repo.issue_book(
            IssueCreateSchema(
                book_id=single_copy_book.id,
                issued_to_id=other_borrower.id,
                processed_by_id=librarian.id,
            )
        )
        clock.advance(days=10)

        flipped = recalculator.run_overdue_sweep()

        assert flipped == 1
        overdue = issue_repo.get_issue(issued.id)
        assert overdue.status == IssueStatus.OVERDUE
        assert overdue.fine_amount == Decimal("0.00")
        assert overdue.version == 2
        assert issue_repo.get_issue(later.id).status == IssueStatus.ACTIVE

    def test_repeat_run_is_a_no_op(self, recalculator, issued, clock):
        clock.advance(days=LOAN_PERIOD_DAYS, seconds=1)

        assert recalculator.run_overdue_sweep() == 1
        assert recalculator.run_overdue_sweep() == 0

    def test_returned_loans_stay_returned(
        self, recalculator, issue_repo, issued, librarian, clock
    ):
        issue_repo.return_book(ReturnSchema(issue_id=issued.id, processed_by_id=librarian.id))
        clock.advance(days=LOAN_PERIOD_DAYS + 1)

        assert recalculator.run_overdue_sweep() == 0


class TestScheduledSweeps:
    def test_register_schedules_both_sweeps(self, recalculator, manual_scheduler):
        recalculator.register(manual_scheduler)

        assert set(manual_scheduler.job_names) == {FINE_SWEEP_JOB, OVERDUE_SWEEP_JOB}

    def test_custom_intervals(self, recalculator, manual_scheduler):
        recalculator.register(
            manual_scheduler,
            fine_interval=timedelta(hours=6),
            overdue_interval=timedelta(minutes=15),
        )

        assert manual_scheduler._jobs[FINE_SWEEP_JOB].interval == timedelta(hours=6)
        assert manual_scheduler._jobs[OVERDUE_SWEEP_JOB].interval == timedelta(minutes=15)

    def test_running_the_jobs(self, recalculator, manual_scheduler, issued, clock):
        recalculator.register(manual_scheduler)
        clock.advance(days=LOAN_PERIOD_DAYS + 10)

        assert manual_scheduler.run(OVERDUE_SWEEP_JOB) == 1
        result = manual_scheduler.run(FINE_SWEEP_JOB)

        assert result.updated == 1
        assert result.total_fines == Decimal("90.00")
