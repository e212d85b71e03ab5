"""
Fine tools for the library lending MCP server.

1. recalculate_fine: bring one loan's fine up to date now
2. record_payment / waive_fine: reduce what a borrower owes
3. get_fine_configuration / update_fine_configuration / get_fine_configuration_history:
   the single active fine configuration and its history
4. get_user_outstanding_fines: everything a borrower owes
"""

import logging
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..clock import get_clock
from ..database.fine_repository import FineConfigurationRepository
from ..database.issue_repository import IssueRepository, PaymentSchema, WaiverSchema
from ..database.session import get_session
from ..models.enums import PaymentMethod
from ..observability.decorators import trace_tool
from .common import (
    invalid_input_response,
    repository_error_response,
    success_response,
)

logger = logging.getLogger(__name__)


# =============================================================================
# RECALCULATE
# =============================================================================


class RecalculateFineInput(BaseModel):
    issue_id: str = Field(..., min_length=1)


@trace_tool("recalculate_fine")
async def recalculate_fine_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Recalculate one loan's fine. Returned loans keep their settled fine."""
    try:
        params = RecalculateFineInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("recalculate_fine", e)

    with get_session() as session:
        try:
            issue, changed = IssueRepository(session, get_clock()).recalculate_fine(
                params.issue_id
            )
        except Exception as e:
            return repository_error_response("Fine recalculation", e)

    message = f"Fine for issue {issue.id} is {issue.fine_amount}"
    if not changed:
        message += " (unchanged)"
    return success_response(
        message, {"issue": issue.model_dump(mode="json"), "changed": changed}
    )


# =============================================================================
# PAYMENT AND WAIVER
# =============================================================================


class RecordPaymentInput(BaseModel):
    """Input schema for the record_payment tool."""

    issue_id: str = Field(..., min_length=1)

    amount: Decimal = Field(
        ...,
        max_digits=10,
        decimal_places=2,
        description="Amount paid; must be positive and no more than the outstanding fine",
        examples=["50.00"],
    )

    method: PaymentMethod = Field(default=PaymentMethod.CASH)


@trace_tool("record_payment")
async def record_payment_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = RecordPaymentInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("record_payment", e)

    with get_session() as session:
        try:
            receipt = IssueRepository(session, get_clock()).record_payment(
                PaymentSchema(issue_id=params.issue_id, amount=params.amount, method=params.method)
            )
        except Exception as e:
            return repository_error_response("Payment", e)

    message = f"Payment of {receipt.amount_paid} recorded."
    if receipt.fully_paid:
        message += " Fine fully paid."
    else:
        message += f" Remaining: {receipt.remaining_fine}"
    return success_response(message, {"receipt": receipt.model_dump(mode="json")})


class WaiveFineInput(BaseModel):
    """Input schema for the waive_fine tool."""

    issue_id: str = Field(..., min_length=1)

    reason: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Why the fine is waived; stored in the issue notes",
        examples=["damaged on issue"],
    )

    actor_id: str = Field(..., min_length=1, description="ID of the staff member waiving")


@trace_tool("waive_fine")
async def waive_fine_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = WaiveFineInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("waive_fine", e)

    with get_session() as session:
        try:
            issue = IssueRepository(session, get_clock()).waive_fine(
                WaiverSchema(
                    issue_id=params.issue_id, reason=params.reason, actor_id=params.actor_id
                )
            )
        except Exception as e:
            return repository_error_response("Waiver", e)

    return success_response(
        f"Fine on issue {issue.id} waived", {"issue": issue.model_dump(mode="json")}
    )


# =============================================================================
# FINE CONFIGURATION
# =============================================================================


class GetFineConfigurationInput(BaseModel):
    """No arguments."""


@trace_tool("get_fine_configuration")
async def get_fine_configuration_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        GetFineConfigurationInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("get_fine_configuration", e)

    with get_session() as session:
        try:
            config = FineConfigurationRepository(session, get_clock()).get_active()
        except Exception as e:
            return repository_error_response("Fine configuration lookup", e)

    return success_response(
        f"{config.fine_per_day} per day after {config.grace_period_days} grace day(s), "
        f"capped at {config.max_fine_amount}",
        {"configuration": config.model_dump(mode="json")},
    )


class UpdateFineConfigurationInput(BaseModel):
    """
    Input schema for the update_fine_configuration tool.

    Amounts are limited to cents and to what the money columns hold. Range
    checks happen in the repository so a zero or negative value comes back as
    a ``bad_request`` error rather than a schema failure.
    """

    fine_per_day: Decimal = Field(
        ..., max_digits=10, decimal_places=2, description="Must be greater than 0"
    )

    max_fine_amount: Decimal = Field(
        ..., max_digits=10, decimal_places=2, description="Must be greater than 0"
    )

    grace_period_days: int = Field(..., description="Must be 0 or more")

    actor_id: str | None = Field(default=None, description="ID of the administrator")


@trace_tool("update_fine_configuration")
async def update_fine_configuration_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = UpdateFineConfigurationInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("update_fine_configuration", e)

    with get_session() as session:
        try:
            config = FineConfigurationRepository(session, get_clock()).replace(
                params.fine_per_day,
                params.max_fine_amount,
                params.grace_period_days,
                actor_id=params.actor_id,
            )
        except Exception as e:
            return repository_error_response("Fine configuration update", e)

    return success_response(
        "Fine configuration updated", {"configuration": config.model_dump(mode="json")}
    )


class GetFineConfigurationHistoryInput(BaseModel):
    """No arguments."""


@trace_tool("get_fine_configuration_history")
async def get_fine_configuration_history_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        GetFineConfigurationHistoryInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("get_fine_configuration_history", e)

    with get_session() as session:
        try:
            history = FineConfigurationRepository(session, get_clock()).history()
        except Exception as e:
            return repository_error_response("Fine configuration history", e)

    return success_response(
        f"{len(history)} configuration(s)",
        {"history": [config.model_dump(mode="json") for config in history]},
    )


# =============================================================================
# OUTSTANDING FINES
# =============================================================================


class GetUserOutstandingFinesInput(BaseModel):
    user_id: str = Field(..., min_length=1)


@trace_tool("get_user_outstanding_fines")
async def get_user_outstanding_fines_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    try:
        params = GetUserOutstandingFinesInput.model_validate(arguments)
    except ValidationError as e:
        return invalid_input_response("get_user_outstanding_fines", e)

    with get_session() as session:
        try:
            fines = IssueRepository(session, get_clock()).get_user_outstanding_fines(
                params.user_id
            )
        except Exception as e:
            return repository_error_response("Outstanding fines lookup", e)

    return success_response(
        f"User {fines.user_id} owes {fines.total_outstanding} across "
        f"{len(fines.issues)} loan(s); {fines.overdue_count} currently overdue",
        {"fines": fines.model_dump(mode="json")},
    )


# Tool registration
fine_tools = [
    {
        "name": "recalculate_fine",
        "description": "Recalculate the fine on a loan as of now",
        "inputSchema": RecalculateFineInput.model_json_schema(),
        "handler": recalculate_fine_handler,
    },
    {
        "name": "record_payment",
        "description": "Record a payment against a loan's outstanding fine",
        "inputSchema": RecordPaymentInput.model_json_schema(),
        "handler": record_payment_handler,
    },
    {
        "name": "waive_fine",
        "description": "Waive the outstanding fine on a loan, recording the reason",
        "inputSchema": WaiveFineInput.model_json_schema(),
        "handler": waive_fine_handler,
    },
    {
        "name": "get_fine_configuration",
        "description": "Show the active fine configuration",
        "inputSchema": GetFineConfigurationInput.model_json_schema(),
        "handler": get_fine_configuration_handler,
    },
    {
        "name": "update_fine_configuration",
        "description": "Replace the active fine configuration",
        "inputSchema": UpdateFineConfigurationInput.model_json_schema(),
        "handler": update_fine_configuration_handler,
    },
    {
        "name": "get_fine_configuration_history",
        "description": "List every fine configuration, newest first",
        "inputSchema": GetFineConfigurationHistoryInput.model_json_schema(),
        "handler": get_fine_configuration_history_handler,
    },
    {
        "name": "get_user_outstanding_fines",
        "description": "Total and per-loan breakdown of what a borrower owes",
        "inputSchema": GetUserOutstandingFinesInput.model_json_schema(),
        "handler": get_user_outstanding_fines_handler,
    },
]
