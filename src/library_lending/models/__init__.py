"""
Library lending models.

Pydantic models returned by the repositories and serialized by the tools:

- Book, User: the parties to a loan
- Issue, OverdueIssue: loans and the overdue report
- FineConfiguration, PaymentReceipt, UserOutstandingFines, FineSweepResult:
  the fine side of the lifecycle

The enums in ``models.enums`` are shared with the database schema.
"""

from .book import Book
from .enums import (
    OPEN_ISSUE_STATUSES,
    AuditAction,
    BookStatus,
    CatalogStatus,
    IssueStatus,
    PaymentMethod,
    UserRole,
)
from .fines import (
    FineConfiguration,
    FineSweepResult,
    OutstandingFine,
    PaymentReceipt,
    UserOutstandingFines,
)
from .issue import LOAN_PERIOD_DAYS, Issue, OverdueIssue
from .user import User

__all__ = [
    "LOAN_PERIOD_DAYS",
    "OPEN_ISSUE_STATUSES",
    "AuditAction",
    "Book",
    "BookStatus",
    "CatalogStatus",
    "FineConfiguration",
    "FineSweepResult",
    "Issue",
    "IssueStatus",
    "OutstandingFine",
    "OverdueIssue",
    "PaymentMethod",
    "PaymentReceipt",
    "User",
    "UserOutstandingFines",
    "UserRole",
]
