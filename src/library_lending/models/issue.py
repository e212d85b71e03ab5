"""
Issue (loan) models for the library lending engine.

An issue moves through ACTIVE -> OVERDUE -> RETURNED. OVERDUE is only
reachable from ACTIVE while the book is still out; RETURNED is terminal and
reachable from either open state.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .enums import IssueStatus

LOAN_PERIOD_DAYS = 14


class Issue(BaseModel):
    """
    A single loan of one copy of a book to one borrower.

    ``fine_amount`` is what is currently owed. ``fine_paid_amount`` and
    ``fine_waived_amount`` are the running totals of credits already
    applied against fines on this loan.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique identifier for the issue")

    book_id: str = Field(..., description="Book on loan")

    issued_to_id: str = Field(..., description="Borrower holding the copy")

    processed_by_id: str = Field(
        ...,
        description="Staff member who last processed the loan (issue or return)",
    )

    issue_date: datetime

    expected_return_date: datetime = Field(
        ...,
        description=f"Due date, {LOAN_PERIOD_DAYS} days after issue unless updated",
    )

    actual_return_date: datetime | None = None

    status: IssueStatus = IssueStatus.ACTIVE

    fine_amount: Decimal = Field(default=Decimal("0.00"), ge=0)

    fine_paid_amount: Decimal = Field(default=Decimal("0.00"), ge=0)

    fine_waived_amount: Decimal = Field(default=Decimal("0.00"), ge=0)

    notes: str | None = None

    version: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def validate_return_state(self) -> "Issue":
        """RETURNED and a return date go together."""
        if self.status == IssueStatus.RETURNED and self.actual_return_date is None:
            raise ValueError("Returned issue must have an actual return date")
        if self.status != IssueStatus.RETURNED and self.actual_return_date is not None:
            raise ValueError("Open issue cannot have an actual return date")
        return self

    @property
    def is_open(self) -> bool:
        return self.status != IssueStatus.RETURNED


class OverdueIssue(BaseModel):
    """An unreturned loan past its due date, joined with book and borrower."""

    issue_id: str
    book_id: str
    book_title: str
    isbn: str
    borrower_id: str
    borrower_name: str
    borrower_email: str
    issue_date: datetime
    expected_return_date: datetime
    status: IssueStatus
    overdue_days: int = Field(..., ge=0)
    fine_amount: Decimal = Field(..., ge=0)
