"""
Issue tools for the library lending MCP server.

Tools that move a loan through its lifecycle, plus the read tools the
circulation desk needs:

1. issue_book: lend a copy to a borrower
2. return_book: close a loan and settle its fine
3. get_issue / list_issues: look loans up
4. update_issue: move a due date or edit notes
5. get_overdue_books: the overdue report

Each handler validates its arguments with a pydantic input model, runs one
repository call on its own session and maps repository errors to an MCP
error response with an ``errorType``.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..clock import get_clock, to_naive_local
from ..database.issue_repository import (
    IssueCreateSchema,
    IssueRepository,
    IssueUpdateSchema,
    ReturnSchema,
)
from ..database.session import get_session
from ..models.enums import IssueStatus
from ..observability.decorators import trace_tool
from .common import (
    invalid_input_response,
    repository_error_response,
    success_response,
)

logger = logging.getLogger(__name__)


# =============================================================================
# ISSUE TOOL
# =============================================================================


class IssueBookInput(BaseModel):
    """Input schema for the issue_book tool."""

    book_id: str = Field(..., min_length=1, description="ID of the book to lend")

    issued_to_id: str = Field(..., min_length=1, description="ID of the borrower")

    processed_by_id: str = Field(
        ..., min_length=1, description="ID of the staff member processing the loan"
    )

    notes: str | None = Field(
        default=None,
        description="Optional notes about this loan",
        max_length=1000,
        examples=["Book club selection"],
    )


@trace_tool("issue_book")
async def issue_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """
    Handler for the issue_book tool.

    Lends one copy for the standard 14-day loan period. Fails when the book
    or a user does not exist, the borrower already has this book, the book
    is not circulating, or no copy is on the shelf.
    """
    try:
        params = IssueBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("issue_book", e)

    with get_session() as session:
        try:
            issue = IssueRepository(session, get_clock()).issue_book(
                IssueCreateSchema(
                    book_id=params.book_id,
                    issued_to_id=params.issued_to_id,
                    processed_by_id=params.processed_by_id,
                    notes=params.notes,
                )
            )
        except Exception as e:
            return repository_error_response("Issue", e)

    return success_response(
        f"Issued book {issue.book_id} to user {issue.issued_to_id}. "
        f"Due date: {issue.expected_return_date.strftime('%B %d, %Y')}",
        {"issue": issue.model_dump(mode="json")},
    )


# =============================================================================
# RETURN TOOL
# =============================================================================


class ReturnBookInput(BaseModel):
    """Input schema for the return_book tool."""

    issue_id: str = Field(..., min_length=1, description="ID of the issue being returned")

    processed_by_id: str = Field(
        ..., min_length=1, description="ID of the staff member processing the return"
    )

    additional_fine: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        max_digits=10,
        decimal_places=2,
        description="Extra charge on top of the overdue fine, e.g. for damage",
        examples=["0.00", "25.00"],
    )


@trace_tool("return_book")
async def return_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the return_book tool."""
    try:
        params = ReturnBookInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("return_book", e)

    with get_session() as session:
        try:
            issue = IssueRepository(session, get_clock()).return_book(
                ReturnSchema(
                    issue_id=params.issue_id,
                    processed_by_id=params.processed_by_id,
                    additional_fine=params.additional_fine,
                )
            )
        except Exception as e:
            return repository_error_response("Return", e)

    message = f"Issue {issue.id} returned."
    if issue.fine_amount > 0:
        message += f" Fine due: {issue.fine_amount}"
    else:
        message += " No fine due."

    return success_response(message, {"issue": issue.model_dump(mode="json")})


# =============================================================================
# LOOKUP TOOLS
# =============================================================================


class GetIssueInput(BaseModel):
    issue_id: str = Field(..., min_length=1)


@trace_tool("get_issue")
async def get_issue_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = GetIssueInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("get_issue", e)

    with get_session() as session:
        try:
            issue = IssueRepository(session, get_clock()).get_issue(params.issue_id)
        except Exception as e:
            return repository_error_response("Issue lookup", e)

    return success_response(
        f"Issue {issue.id}: {issue.status.value}", {"issue": issue.model_dump(mode="json")}
    )


class ListIssuesInput(BaseModel):
    """Input schema for the list_issues tool. All filters combine."""

    status: IssueStatus | None = Field(default=None, description="Only issues in this status")

    book_id: str | None = Field(default=None, description="Only issues of this book")

    issued_to_id: str | None = Field(default=None, description="Only issues of this borrower")

    overdue_only: bool = Field(
        default=False, description="Only unreturned issues past their due date"
    )


@trace_tool("list_issues")
async def list_issues_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = ListIssuesInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("list_issues", e)

    with get_session() as session:
        try:
            issues = IssueRepository(session, get_clock()).list_issues(
                status=params.status,
                book_id=params.book_id,
                issued_to_id=params.issued_to_id,
                overdue_only=params.overdue_only,
            )
        except Exception as e:
            return repository_error_response("Issue listing", e)

    return success_response(
        f"Found {len(issues)} issue(s)",
        {"issues": [issue.model_dump(mode="json") for issue in issues]},
    )


# =============================================================================
# UPDATE TOOL
# =============================================================================


class UpdateIssueInput(BaseModel):
    """Input schema for the update_issue tool. Fine and status are not editable."""

    issue_id: str = Field(..., min_length=1)

    expected_return_date: datetime | None = Field(
        default=None,
        description="New due date; cannot precede the issue date",
        examples=["2024-03-01T17:00:00"],
    )

    notes: str | None = Field(default=None, max_length=1000)

    @field_validator("expected_return_date")
    @classmethod
    def due_date_in_local_time(cls, v: datetime | None) -> datetime | None:
        return to_naive_local(v) if v is not None else None


@trace_tool("update_issue")
async def update_issue_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = UpdateIssueInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("update_issue", e)

    with get_session() as session:
        try:
            issue = IssueRepository(session, get_clock()).update_issue(
                params.issue_id,
                IssueUpdateSchema(
                    expected_return_date=params.expected_return_date, notes=params.notes
                ),
            )
        except Exception as e:
            return repository_error_response("Issue update", e)

    return success_response(f"Issue {issue.id} updated", {"issue": issue.model_dump(mode="json")})


# =============================================================================
# OVERDUE REPORT
# =============================================================================


class GetOverdueBooksInput(BaseModel):
    """The overdue report takes no arguments."""


@trace_tool("get_overdue_books")
async def get_overdue_books_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Unreturned loans past due, the longest overdue first."""
    try:
        GetOverdueBooksInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("get_overdue_books", e)

    with get_session() as session:
        try:
            overdue = IssueRepository(session, get_clock()).get_overdue_issues()
        except Exception as e:
            return repository_error_response("Overdue report", e)

    return success_response(
        f"{len(overdue)} overdue loan(s)",
        {"overdue": [item.model_dump(mode="json") for item in overdue]},
    )


# Tool registration
issue_tools = [
    {
        "name": "issue_book",
        "description": "Lend a copy of a book to a borrower for the standard 14-day loan period",
        "inputSchema": IssueBookInput.model_json_schema(),
        "handler": issue_book_handler,
    },
    {
        "name": "return_book",
        "description": "Return a borrowed book, settling any overdue fine",
        "inputSchema": ReturnBookInput.model_json_schema(),
        "handler": return_book_handler,
    },
    {
        "name": "get_issue",
        "description": "Look up a single loan by ID",
        "inputSchema": GetIssueInput.model_json_schema(),
        "handler": get_issue_handler,
    },
    {
        "name": "list_issues",
        "description": "List loans filtered by status, book, borrower or overdue state",
        "inputSchema": ListIssuesInput.model_json_schema(),
        "handler": list_issues_handler,
    },
    {
        "name": "update_issue",
        "description": "Change the due date or notes of an unreturned loan",
        "inputSchema": UpdateIssueInput.model_json_schema(),
        "handler": update_issue_handler,
    },
    {
        "name": "get_overdue_books",
        "description": "List unreturned loans past their due date with borrower details",
        "inputSchema": GetOverdueBooksInput.model_json_schema(),
        "handler": get_overdue_books_handler,
    },
]
