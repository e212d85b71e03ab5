"""Fine arithmetic.

Pure functions only. Callers supply the current time and the active fine
configuration; nothing here touches the database or the clock.

    overdue_calendar_days = max(0, ceil((now - expected_return_date) / 1 day))
    effective_days        = max(0, overdue_calendar_days - grace_period_days)
    fine                  = min(effective_days * fine_per_day, max_fine_amount)
"""

import math
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
ONE_DAY = timedelta(days=1)

# Largest amount a Numeric(10, 2) money column holds
MAX_MONEY = Decimal("99999999.99")


class FineTerms(Protocol):
    """Anything carrying the three fine configuration values."""

    fine_per_day: Decimal
    max_fine_amount: Decimal
    grace_period_days: int


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize a value to two decimal places."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def overdue_calendar_days(expected_return_date: datetime, now: datetime) -> int:
    """Whole days past due, rounded up and never negative.

    One second past the due date already counts as one overdue day.
    Early returns and clock skew yield 0.
    """
    elapsed = now - expected_return_date
    if elapsed <= timedelta(0):
        return 0
    return math.ceil(elapsed / ONE_DAY)


def effective_days(overdue_days: int, grace_period_days: int) -> int:
    return max(0, max(0, overdue_days) - grace_period_days)


def compute_fine(overdue_days: int, terms: FineTerms) -> Decimal:
    """Fine owed for ``overdue_days`` under ``terms``, capped at the maximum."""
    days = effective_days(overdue_days, terms.grace_period_days)
    raw = Decimal(days) * Decimal(terms.fine_per_day)
    return to_money(min(raw, Decimal(terms.max_fine_amount)))


def fine_as_of(expected_return_date: datetime, now: datetime, terms: FineTerms) -> Decimal:
    return compute_fine(overdue_calendar_days(expected_return_date, now), terms)


def net_of_credits(gross: Decimal, paid: Decimal, waived: Decimal) -> Decimal:
    """What is still owed once payments and waivers are deducted."""
    return to_money(max(ZERO, Decimal(gross) - Decimal(paid) - Decimal(waived)))
