"""Tests for the fine arithmetic."""

from datetime import datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from library_lending.fine_policy import (
    compute_fine,
    effective_days,
    fine_as_of,
    net_of_credits,
    overdue_calendar_days,
    to_money,
)

DUE = datetime(2024, 1, 29, 10, 0, 0)


def terms(per_day="10.00", max_fine="1000.00", grace=1):
    return SimpleNamespace(
        fine_per_day=Decimal(per_day), max_fine_amount=Decimal(max_fine), grace_period_days=grace
    )


class TestOverdueCalendarDays:
    def test_before_due_date_is_zero(self):
        assert overdue_calendar_days(DUE, DUE - timedelta(days=3)) == 0

    def test_exactly_at_due_date_is_zero(self):
        assert overdue_calendar_days(DUE, DUE) == 0

    def test_one_second_late_counts_as_a_day(self):
        assert overdue_calendar_days(DUE, DUE + timedelta(seconds=1)) == 1

    def test_partial_days_round_up(self):
        assert overdue_calendar_days(DUE, DUE + timedelta(days=2, hours=1)) == 3

    def test_whole_days(self):
        assert overdue_calendar_days(DUE, DUE + timedelta(days=10)) == 10


class TestComputeFine:
    def test_ten_days_overdue_with_one_grace_day(self):
        """Nine chargeable days at 10.00."""
        assert compute_fine(10, terms()) == Decimal("90.00")

    def test_within_grace_period_is_free(self):
        assert compute_fine(1, terms()) == Decimal("0.00")
        assert compute_fine(0, terms()) == Decimal("0.00")

    def test_capped_at_maximum(self):
        assert compute_fine(200, terms()) == Decimal("1000.00")

    def test_no_grace_period(self):
        assert compute_fine(1, terms(grace=0)) == Decimal("10.00")

    def test_negative_days_treated_as_zero(self):
        assert compute_fine(-5, terms()) == Decimal("0.00")

    def test_fractional_rate_keeps_two_places(self):
        assert compute_fine(4, terms(per_day="0.35", grace=0)) == Decimal("1.40")

    @pytest.mark.parametrize("days", [0, 1, 2, 15, 99, 100, 101, 500])
    def test_fine_is_bounded(self, days):
        fine = compute_fine(days, terms())
        assert Decimal("0.00") <= fine <= Decimal("1000.00")

    def test_fine_never_decreases_as_days_grow(self):
        fines = [compute_fine(days, terms(per_day="7.50", max_fine="300.00")) for days in range(60)]
        assert fines == sorted(fines)

    def test_effective_days(self):
        assert effective_days(10, 1) == 9
        assert effective_days(1, 3) == 0


class TestFineAsOf:
    def test_due_ten_days_ago(self):
        assert fine_as_of(DUE, DUE + timedelta(days=10), terms()) == Decimal("90.00")

    def test_returned_early(self):
        assert fine_as_of(DUE, DUE - timedelta(days=4), terms()) == Decimal("0.00")


class TestCredits:
    def test_payments_and_waivers_are_deducted(self):
        assert net_of_credits(Decimal("90.00"), Decimal("50.00"), Decimal("0.00")) == Decimal(
            "40.00"
        )

    def test_never_negative(self):
        assert net_of_credits(Decimal("10.00"), Decimal("50.00"), Decimal("5.00")) == Decimal(
            "0.00"
        )

    def test_to_money_rounds_half_up(self):
        assert to_money("2.345") == Decimal("2.35")
        assert to_money(0.1) == Decimal("0.10")
        assert to_money(3) == Decimal("3.00")
