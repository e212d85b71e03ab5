"""Lending metrics recorded through Logfire."""

from decimal import Decimal

import logfire

issues_created = logfire.metric_counter(
    "lending.issues.created", description="Books issued to borrowers"
)

issues_returned = logfire.metric_counter(
    "lending.issues.returned", description="Loans closed by a return"
)

fines_settled = logfire.metric_histogram(
    "lending.fines.settled", unit="currency", description="Fine frozen onto a loan at return"
)

fines_recalculated = logfire.metric_counter(
    "lending.fines.recalculated", description="Recalculations that changed a stored fine"
)

fines_collected = logfire.metric_counter(
    "lending.fines.collected", unit="currency", description="Fine payments by method"
)

fines_waived = logfire.metric_counter("lending.fines.waived", description="Fines waived")

overdue_flipped = logfire.metric_counter(
    "lending.issues.overdue", description="Loans moved from ACTIVE to OVERDUE by the sweep"
)

sweep_failures = logfire.metric_counter(
    "lending.sweep.failures", description="Issues the fine sweep failed to recalculate"
)


def record_issue_created() -> None:
    issues_created.add(1)


def record_issue_returned(settled_fine: Decimal) -> None:
    issues_returned.add(1)
    fines_settled.record(float(settled_fine))


def record_fine_recalculated() -> None:
    fines_recalculated.add(1)


def record_payment(amount: Decimal, method: str) -> None:
    fines_collected.add(float(amount), {"method": method})


def record_fine_waived() -> None:
    fines_waived.add(1)


def record_overdue_flipped(count: int) -> None:
    if count:
        overdue_flipped.add(count)


def record_sweep_failure(sweep: str) -> None:
    sweep_failures.add(1, {"sweep": sweep})
