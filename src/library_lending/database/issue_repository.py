"""
Issue repository: the loan lifecycle.

This repository runs every state change of an issue:

1. **Issue**: reserve a copy and create the loan, one transaction
2. **Return**: settle the fine, close the loan and release the copy, one transaction
3. **Recalculate**: bring an open loan's fine and status up to date
4. **Pay / Waive**: apply credits against the outstanding fine
5. **Update**: move the due date or edit notes on an open loan

and the read side the API layer needs (single issue, filtered lists, the
overdue report, a borrower's outstanding fines).

Every write to an existing issue is a compare-and-set on ``version``:
the row is read, the new values are computed, and the UPDATE only applies
if nobody else has written the row in between. A lost race rolls back and
starts again from a fresh read, up to ``MAX_WRITE_ATTEMPTS`` times. The
background sweep and a user-facing return can therefore run against the
same loan at the same moment without either overwriting the other.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field, field_validator
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..clock import Clock, system_clock, to_naive_local
from ..fine_policy import (
    MAX_MONEY,
    ZERO,
    compute_fine,
    net_of_credits,
    overdue_calendar_days,
    to_money,
)
from ..models.enums import OPEN_ISSUE_STATUSES, AuditAction, IssueStatus, PaymentMethod
from ..models.fines import OutstandingFine, PaymentReceipt, UserOutstandingFines
from ..models.issue import LOAN_PERIOD_DAYS, OverdueIssue
from ..models.issue import Issue as IssueModel
from ..observability import metrics
from .audit_repository import AuditRepository
from .book_repository import BookRepository
from .fine_repository import FineConfigurationRepository
from .repository import (
    AlreadyIssuedError,
    AlreadyReturnedError,
    BadRequestError,
    BaseRepository,
    ConflictError,
    InvalidIssueUpdateError,
    InvalidPaymentError,
)
from .schema import Book as BookDB
from .schema import Issue as IssueDB
from .schema import User as UserDB
from .session import safe_query
from .user_repository import UserRepository

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 3

# Computes the column values to write, or None when there is nothing to change
IssueMutation = Callable[[IssueDB, datetime], dict[str, Any] | None]


class IssueCreateSchema(BaseModel):
    """Schema for issuing a book."""

    book_id: str
    issued_to_id: str
    processed_by_id: str
    notes: str | None = Field(None, max_length=1000)


class ReturnSchema(BaseModel):
    """Schema for returning a book."""

    issue_id: str
    processed_by_id: str
    additional_fine: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        description="Charge on top of the overdue fine, e.g. for damage",
    )


class PaymentSchema(BaseModel):
    """Schema for paying (part of) a fine."""

    issue_id: str
    amount: Decimal
    method: PaymentMethod = PaymentMethod.CASH


class WaiverSchema(BaseModel):
    """Schema for waiving a fine."""

    issue_id: str
    reason: str = Field(..., min_length=1, max_length=500)
    actor_id: str


class IssueUpdateSchema(BaseModel):
    """Fields an open issue may have changed directly. Fine and status never are."""

    expected_return_date: datetime | None = None
    notes: str | None = Field(None, max_length=1000)

    @field_validator("expected_return_date")
    @classmethod
    def due_date_in_local_time(cls, v: datetime | None) -> datetime | None:
        # Stored dates are naive local time
        return to_naive_local(v) if v is not None else None


class IssueRepository(BaseRepository[IssueDB, IssueModel]):
    """
    Repository for the issue lifecycle.

    Each public write method is one transaction on ``self.session`` and
    commits before returning. Methods that need the fine configuration read
    it first, because bootstrapping the defaults commits on its own.
    """

    def __init__(self, session: Session, clock: Clock = system_clock):
        super().__init__(session)
        self.clock = clock
        self.book_repo = BookRepository(session)
        self.user_repo = UserRepository(session)
        self.fine_repo = FineConfigurationRepository(session, clock)
        self.audit = AuditRepository(session, clock)

    @property
    def model_class(self) -> type[IssueDB]:
        return IssueDB

    @property
    def response_schema(self) -> type[IssueModel]:
        return IssueModel

    # ------------------------------------------------------------------
    # Write helpers
    # ------------------------------------------------------------------

    def _compare_and_set(
        self, issue_id: str, mutate: IssueMutation, operation: str
    ) -> tuple[IssueDB, dict[str, Any] | None, datetime]:
        """
        Apply ``mutate`` to the current row with an optimistic version check.

        Returns the issue as read, the values written (None if ``mutate``
        declined to write), and the time the values were computed for.

        Raises:
            NotFoundError: If the issue does not exist
            ConflictError: If every attempt lost a race with another writer
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            issue = self._load_or_raise(issue_id)
            now = self.clock()
            values = mutate(issue, now)
            if values is None:
                return issue, None, now

            result = self.session.execute(
                update(IssueDB)
                .where(IssueDB.id == issue.id, IssueDB.version == issue.version)
                .values(**values, version=issue.version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                self.session.refresh(issue)
                return issue, values, now

            self.session.rollback()
            logger.info(
                "Issue %s changed during %s (attempt %d of %d), retrying",
                issue_id,
                operation,
                attempt,
                MAX_WRITE_ATTEMPTS,
            )

        raise ConflictError(
            f"Issue {issue_id} was modified concurrently; {operation} gave up after "
            f"{MAX_WRITE_ATTEMPTS} attempts"
        )

    def _open_issue_exists(self, book_id: str, issued_to_id: str) -> bool:
        found = safe_query(
            self.session,
            lambda s: s.execute(
                select(IssueDB.id).where(
                    IssueDB.book_id == book_id,
                    IssueDB.issued_to_id == issued_to_id,
                    IssueDB.status.in_(OPEN_ISSUE_STATUSES),
                )
            ).first(),
            "Failed to check for an open issue",
        )
        return found is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def issue_book(self, issue_data: IssueCreateSchema) -> IssueModel:
        """
        Lend one copy of a book to a borrower.

        The copy reservation and the new issue row commit together; if the
        row cannot be written the reservation is rolled back with it.

        Raises:
            NotFoundError: If the book, borrower or processor does not exist
            AlreadyIssuedError: If the borrower already holds an open loan of the book
            BookNotCirculatingError: If the book is in maintenance or lost
            NoCopiesAvailableError: If no copy is on the shelf
        """
        with self._transaction("issue book"):
            now = self.clock()
            book = self.book_repo.get(issue_data.book_id)
            self.user_repo.get(issue_data.issued_to_id)
            self.user_repo.get(issue_data.processed_by_id)

            if self._open_issue_exists(issue_data.book_id, issue_data.issued_to_id):
                raise AlreadyIssuedError(
                    f"User {issue_data.issued_to_id} already has '{book.title}' on loan"
                )

            self.book_repo.reserve_copy(issue_data.book_id)

            issue = IssueDB(
                id=str(uuid.uuid4()),
                book_id=issue_data.book_id,
                issued_to_id=issue_data.issued_to_id,
                processed_by_id=issue_data.processed_by_id,
                issue_date=now,
                expected_return_date=now + timedelta(days=LOAN_PERIOD_DAYS),
                status=IssueStatus.ACTIVE,
                fine_amount=ZERO,
                fine_paid_amount=ZERO,
                fine_waived_amount=ZERO,
                notes=issue_data.notes,
                version=1,
            )
            self.session.add(issue)
            try:
                self.session.flush()
            except IntegrityError as e:
                # The partial unique index caught a concurrent duplicate
                raise AlreadyIssuedError(
                    f"User {issue_data.issued_to_id} already has '{book.title}' on loan"
                ) from e

            self.audit.record(
                AuditAction.ISSUE_BOOK,
                "Issue",
                issue.id,
                issue_data.processed_by_id,
                {
                    "book_id": issue.book_id,
                    "issued_to_id": issue.issued_to_id,
                    "expected_return_date": issue.expected_return_date.isoformat(),
                },
            )

        metrics.record_issue_created()
        logger.info(
            "Issued book %s to user %s as issue %s, due %s",
            issue.book_id,
            issue.issued_to_id,
            issue.id,
            issue.expected_return_date.date().isoformat(),
        )
        return self._to_response_model(issue)

    def return_book(self, return_data: ReturnSchema) -> IssueModel:
        """
        Close a loan, freeze its fine and put the copy back on the shelf.

        The settled fine is the policy fine as of now plus any additional
        charge, less payments and waivers already applied to this loan.

        Raises:
            NotFoundError: If the issue or processor does not exist
            AlreadyReturnedError: If the issue is already returned
            BadRequestError: If the additional fine is not a storable amount
            InternalConsistencyError: If the book's counter is already full
        """
        terms = self.fine_repo.get_active()
        try:
            additional = to_money(return_data.additional_fine)
        except InvalidOperation as e:
            raise BadRequestError(
                f"Additional fine {return_data.additional_fine} is not a valid amount"
            ) from e
        if additional > MAX_MONEY:
            raise BadRequestError(f"Additional fine cannot exceed {MAX_MONEY}")

        def settle(issue: IssueDB, now: datetime) -> dict[str, Any]:
            if issue.status == IssueStatus.RETURNED:
                raise AlreadyReturnedError(
                    f"Issue {issue.id} was already returned on "
                    f"{issue.actual_return_date:%Y-%m-%d}"
                )
            policy_fine = compute_fine(
                overdue_calendar_days(issue.expected_return_date, now), terms
            )
            return {
                "status": IssueStatus.RETURNED,
                "actual_return_date": now,
                "fine_amount": net_of_credits(
                    policy_fine + additional, issue.fine_paid_amount, issue.fine_waived_amount
                ),
                "processed_by_id": return_data.processed_by_id,
            }

        with self._transaction("return book"):
            self.user_repo.get(return_data.processed_by_id)
            issue, values, now = self._compare_and_set(return_data.issue_id, settle, "return")
            self.book_repo.release_copy(issue.book_id, issue.id)
            self.audit.record(
                AuditAction.RETURN_BOOK,
                "Issue",
                issue.id,
                return_data.processed_by_id,
                {
                    "book_id": issue.book_id,
                    "overdue_days": overdue_calendar_days(issue.expected_return_date, now),
                    "additional_fine": additional,
                    "fine_amount": values["fine_amount"],
                },
            )

        metrics.record_issue_returned(issue.fine_amount)
        logger.info(
            "Issue %s returned, settled fine %s (additional %s)",
            issue.id,
            issue.fine_amount,
            additional,
        )
        return self._to_response_model(issue)

    def recalculate_fine(self, issue_id: str) -> tuple[IssueModel, bool]:
        """
        Bring an open issue's fine and status up to date.

        The stored fine only ever grows here. Returned issues are left alone.

        Returns:
            The issue, and whether anything was written
        """
        terms = self.fine_repo.get_active()

        def recalculate(issue: IssueDB, now: datetime) -> dict[str, Any] | None:
            if issue.status == IssueStatus.RETURNED:
                return None
            overdue_days = overdue_calendar_days(issue.expected_return_date, now)
            owed = net_of_credits(
                compute_fine(overdue_days, terms),
                issue.fine_paid_amount,
                issue.fine_waived_amount,
            )
            fine = max(to_money(issue.fine_amount), owed)
            status = IssueStatus.OVERDUE if overdue_days > 0 else issue.status
            if fine == issue.fine_amount and status == issue.status:
                return None
            return {"fine_amount": fine, "status": status}

        with self._transaction("recalculate fine"):
            issue, values, now = self._compare_and_set(issue_id, recalculate, "recalculate")
            if values is not None:
                self.audit.record(
                    AuditAction.CALCULATE_FINE,
                    "Issue",
                    issue.id,
                    None,
                    {
                        "overdue_days": overdue_calendar_days(issue.expected_return_date, now),
                        "fine_amount": values["fine_amount"],
                        "status": values["status"].value,
                    },
                )

        if values is not None:
            metrics.record_fine_recalculated()
            logger.debug(
                "Issue %s fine recalculated to %s (%s)",
                issue.id,
                issue.fine_amount,
                issue.status.value,
            )
        return self._to_response_model(issue), values is not None

    def record_payment(self, payment: PaymentSchema) -> PaymentReceipt:
        """
        Apply a payment against the outstanding fine.

        Raises:
            NotFoundError: If the issue does not exist
            InvalidPaymentError: If the amount is not positive or exceeds the fine
        """
        try:
            amount = to_money(payment.amount)
        except InvalidOperation as e:
            raise InvalidPaymentError(
                f"Payment amount {payment.amount} is not a valid amount"
            ) from e
        if amount <= 0:
            raise InvalidPaymentError("Payment amount must be greater than 0")

        def pay(issue: IssueDB, now: datetime) -> dict[str, Any]:  # noqa: ARG001
            if amount > issue.fine_amount:
                raise InvalidPaymentError(
                    f"Payment of {amount} exceeds the outstanding fine of {issue.fine_amount}"
                )
            return {
                "fine_amount": max(ZERO, to_money(issue.fine_amount - amount)),
                "fine_paid_amount": to_money(issue.fine_paid_amount + amount),
            }

        with self._transaction("record payment"):
            issue, _, paid_at = self._compare_and_set(payment.issue_id, pay, "payment")
            # Payments are attributed to the borrower who owes the fine
            self.audit.record(
                AuditAction.PAY_FINE,
                "Issue",
                issue.id,
                issue.issued_to_id,
                {
                    "amount": amount,
                    "method": payment.method.value,
                    "remaining_fine": issue.fine_amount,
                },
            )

        metrics.record_payment(amount, payment.method.value)
        logger.info(
            "Payment of %s (%s) recorded on issue %s, remaining %s",
            amount,
            payment.method.value,
            issue.id,
            issue.fine_amount,
        )
        return PaymentReceipt(
            issue_id=issue.id,
            amount_paid=amount,
            remaining_fine=issue.fine_amount,
            fully_paid=issue.fine_amount == 0,
            method=payment.method,
            paid_at=paid_at,
        )

    def waive_fine(self, waiver: WaiverSchema) -> IssueModel:
        """
        Forgive the whole outstanding fine. Waiving a zero fine is allowed.

        Raises:
            NotFoundError: If the issue or actor does not exist
        """

        def waive(issue: IssueDB, now: datetime) -> dict[str, Any]:  # noqa: ARG001
            return {
                "fine_amount": ZERO,
                "fine_waived_amount": to_money(issue.fine_waived_amount + issue.fine_amount),
                "notes": waiver.reason,
            }

        with self._transaction("waive fine"):
            self.user_repo.get(waiver.actor_id)
            issue, values, _ = self._compare_and_set(waiver.issue_id, waive, "waiver")
            self.audit.record(
                AuditAction.WAIVE_FINE,
                "Issue",
                issue.id,
                waiver.actor_id,
                {"reason": waiver.reason, "total_waived": values["fine_waived_amount"]},
            )

        metrics.record_fine_waived()
        logger.info("Fine on issue %s waived by %s: %s", issue.id, waiver.actor_id, waiver.reason)
        return self._to_response_model(issue)

    def update_issue(self, issue_id: str, changes: IssueUpdateSchema) -> IssueModel:
        """
        Change the due date or notes of an open issue.

        Raises:
            NotFoundError: If the issue does not exist
            InvalidIssueUpdateError: If the issue is returned or the due date precedes issue
        """

        def apply(issue: IssueDB, now: datetime) -> dict[str, Any] | None:  # noqa: ARG001
            if issue.status == IssueStatus.RETURNED:
                raise InvalidIssueUpdateError(f"Issue {issue.id} is returned and cannot be updated")
            values: dict[str, Any] = {}
            if changes.expected_return_date is not None:
                if changes.expected_return_date < issue.issue_date:
                    raise InvalidIssueUpdateError(
                        "Expected return date cannot precede the issue date"
                    )
                values["expected_return_date"] = changes.expected_return_date
            if changes.notes is not None:
                values["notes"] = changes.notes
            return values or None

        with self._transaction("update issue"):
            issue, values, _ = self._compare_and_set(issue_id, apply, "update")

        if values:
            logger.info("Issue %s updated: %s", issue_id, ", ".join(sorted(values)))
        return self._to_response_model(issue)

    # ------------------------------------------------------------------
    # Sweeps
    # ------------------------------------------------------------------

    def mark_overdue(self) -> int:
        """
        Flip every open ACTIVE issue past its due date to OVERDUE.

        Re-running changes nothing further. Returns the number of issues flipped.
        """
        now = self.clock()
        stmt = (
            update(IssueDB)
            .where(
                IssueDB.status == IssueStatus.ACTIVE,
                IssueDB.actual_return_date.is_(None),
                IssueDB.expected_return_date < now,
            )
            .values(status=IssueStatus.OVERDUE, version=IssueDB.version + 1)
            .execution_options(synchronize_session=False)
        )
        with self._transaction("mark overdue"):
            flipped = self.session.execute(stmt).rowcount
        return flipped

    def open_issue_ids(self) -> list[str]:
        """Ids of every unreturned issue, earliest due first."""
        return list(
            safe_query(
                self.session,
                lambda s: s.execute(
                    select(IssueDB.id)
                    .where(
                        IssueDB.status.in_(OPEN_ISSUE_STATUSES),
                        IssueDB.actual_return_date.is_(None),
                    )
                    .order_by(IssueDB.expected_return_date)
                )
                .scalars()
                .all(),
                "Failed to list open issues",
            )
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_issue(self, issue_id: str) -> IssueModel:
        """
        Raises:
            NotFoundError: If the issue does not exist
        """
        return self.get(issue_id)

    def list_issues(
        self,
        status: IssueStatus | None = None,
        book_id: str | None = None,
        issued_to_id: str | None = None,
        overdue_only: bool = False,
    ) -> list[IssueModel]:
        """Issues matching every given filter, most recently issued first."""
        query = select(IssueDB)
        if status is not None:
            query = query.where(IssueDB.status == status)
        if book_id is not None:
            query = query.where(IssueDB.book_id == book_id)
        if issued_to_id is not None:
            query = query.where(IssueDB.issued_to_id == issued_to_id)
        if overdue_only:
            query = query.where(
                IssueDB.status.in_(OPEN_ISSUE_STATUSES),
                IssueDB.actual_return_date.is_(None),
                IssueDB.expected_return_date < self.clock(),
            )
        query = query.order_by(IssueDB.issue_date.desc()).execution_options(populate_existing=True)

        rows = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to list issues"
        )
        return [self._to_response_model(row) for row in rows]

    def get_overdue_issues(self) -> list[OverdueIssue]:
        """Unreturned loans past their due date, the longest overdue first."""
        now = self.clock()
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(IssueDB, BookDB, UserDB)
                .join(BookDB, IssueDB.book_id == BookDB.id)
                .join(UserDB, IssueDB.issued_to_id == UserDB.id)
                .where(
                    IssueDB.status.in_(OPEN_ISSUE_STATUSES),
                    IssueDB.actual_return_date.is_(None),
                    IssueDB.expected_return_date < now,
                )
                .order_by(IssueDB.expected_return_date)
                .execution_options(populate_existing=True)
            ).all(),
            "Failed to get overdue issues",
        )

        return [
            OverdueIssue(
                issue_id=issue.id,
                book_id=book.id,
                book_title=book.title,
                isbn=book.isbn,
                borrower_id=user.id,
                borrower_name=user.name,
                borrower_email=user.email,
                issue_date=issue.issue_date,
                expected_return_date=issue.expected_return_date,
                status=issue.status,
                overdue_days=overdue_calendar_days(issue.expected_return_date, now),
                fine_amount=issue.fine_amount,
            )
            for issue, book, user in rows
        ]

    def get_user_outstanding_fines(self, user_id: str) -> UserOutstandingFines:
        """
        Everything a borrower owes, across returned and open loans.

        Raises:
            NotFoundError: If the user does not exist
        """
        self.user_repo.get(user_id)
        now = self.clock()

        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(IssueDB, BookDB)
                .join(BookDB, IssueDB.book_id == BookDB.id)
                .where(IssueDB.issued_to_id == user_id)
                .order_by(IssueDB.issue_date.desc())
                .execution_options(populate_existing=True)
            ).all(),
            "Failed to get outstanding fines",
        )

        outstanding = [
            OutstandingFine(
                issue_id=issue.id,
                book_id=book.id,
                book_title=book.title,
                status=issue.status,
                expected_return_date=issue.expected_return_date,
                fine_amount=issue.fine_amount,
            )
            for issue, book in rows
            if issue.fine_amount > 0
        ]
        overdue_count = sum(
            1
            for issue, _ in rows
            if issue.status != IssueStatus.RETURNED and issue.expected_return_date < now
        )

        return UserOutstandingFines(
            user_id=user_id,
            total_outstanding=to_money(sum((item.fine_amount for item in outstanding), ZERO)),
            overdue_count=overdue_count,
            issues=outstanding,
        )
