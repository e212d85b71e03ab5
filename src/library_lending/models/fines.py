"""
Fine models for the library lending engine.

Money is always ``Decimal`` with two places. The repositories round every
amount with ``fine_policy.to_money`` before storing it; these models only
carry the stored values.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .enums import IssueStatus, PaymentMethod


class FineConfiguration(BaseModel):
    """
    One row of the fine configuration history.

    Exactly the active row is used for every fine computation; historical
    rows are kept for reference only.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int

    fine_per_day: Decimal = Field(..., gt=0, description="Amount charged per effective overdue day")

    max_fine_amount: Decimal = Field(..., gt=0, description="Cap on the fine for a single loan")

    grace_period_days: int = Field(..., ge=0, description="Overdue days that accrue no fine")

    is_active: bool

    created_by_id: str | None = None

    created_at: datetime


class PaymentReceipt(BaseModel):
    issue_id: str
    amount_paid: Decimal
    remaining_fine: Decimal
    fully_paid: bool
    method: PaymentMethod
    paid_at: datetime


class OutstandingFine(BaseModel):
    """One issue with an unpaid balance."""

    issue_id: str
    book_id: str
    book_title: str
    status: IssueStatus
    expected_return_date: datetime
    fine_amount: Decimal


class UserOutstandingFines(BaseModel):
    """Everything a borrower currently owes."""

    user_id: str
    total_outstanding: Decimal = Field(..., ge=0)
    overdue_count: int = Field(..., ge=0, description="Unreturned loans past due right now")
    issues: list[OutstandingFine] = Field(default_factory=list)


class FineSweepResult(BaseModel):
    """Summary of one pass of the background fine sweep."""

    examined: int = 0
    updated: int = 0
    failed: int = 0
    total_fines: Decimal = Decimal("0.00")
