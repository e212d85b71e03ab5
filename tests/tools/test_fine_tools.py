"""Tests for the fine tools."""

import pytest

from library_lending.models import LOAN_PERIOD_DAYS
from library_lending.tools import all_tools
from library_lending.tools.fines import (
    fine_tools,
    get_fine_configuration_handler,
    get_fine_configuration_history_handler,
    get_user_outstanding_fines_handler,
    recalculate_fine_handler,
    record_payment_handler,
    update_fine_configuration_handler,
    waive_fine_handler,
)


def text_of(result):
    return result["content"][0]["text"]


@pytest.fixture
def overdue(mock_get_session, issued, clock):
    """The issued loan ten days past due."""
    clock.advance(days=LOAN_PERIOD_DAYS + 10)
    return issued


class TestRecalculateFineTool:
    async def test_recalculate(self, overdue):
        result = await recalculate_fine_handler({"issue_id": overdue.id})

        assert not result.get("isError")
        assert result["data"]["changed"] is True
        assert result["data"]["issue"]["fine_amount"] == "90.00"
        assert result["data"]["issue"]["status"] == "OVERDUE"

    async def test_repeat_is_unchanged(self, overdue):
        await recalculate_fine_handler({"issue_id": overdue.id})

        result = await recalculate_fine_handler({"issue_id": overdue.id})

        assert result["data"]["changed"] is False
        assert text_of(result).endswith("(unchanged)")

    async def test_unknown_issue(self, mock_get_session):
        result = await recalculate_fine_handler({"issue_id": "missing"})

        assert result["errorType"] == "not_found"


class TestPaymentTools:
    async def test_partial_payment_then_overpayment(self, overdue):
        await recalculate_fine_handler({"issue_id": overdue.id})

        paid = await record_payment_handler({"issue_id": overdue.id, "amount": "50.00"})
        assert paid["data"]["receipt"]["remaining_fine"] == "40.00"
        assert paid["data"]["receipt"]["fully_paid"] is False
        assert paid["data"]["receipt"]["method"] == "CASH"
        assert "Remaining: 40.00" in text_of(paid)

        rejected = await record_payment_handler({"issue_id": overdue.id, "amount": "50.00"})
        assert rejected["isError"]
        assert rejected["errorType"] == "bad_request"

    async def test_full_payment_by_card(self, overdue):
        await recalculate_fine_handler({"issue_id": overdue.id})

        result = await record_payment_handler(
            {"issue_id": overdue.id, "amount": 90, "method": "CARD"}
        )

        assert result["data"]["receipt"]["fully_paid"] is True
        assert "Fine fully paid" in text_of(result)

    async def test_zero_payment(self, overdue):
        result = await record_payment_handler({"issue_id": overdue.id, "amount": "0"})

        assert result["errorType"] == "bad_request"

    @pytest.mark.parametrize("amount", ["1e40", "12.345"])
    async def test_amount_outside_money_range(self, overdue, amount):
        await recalculate_fine_handler({"issue_id": overdue.id})

        result = await record_payment_handler({"issue_id": overdue.id, "amount": amount})

        assert result["errorType"] == "invalid_input"

    async def test_unknown_method(self, overdue):
        result = await record_payment_handler(
            {"issue_id": overdue.id, "amount": "10", "method": "CHEQUE"}
        )

        assert result["errorType"] == "invalid_input"

    async def test_waive(self, overdue, librarian):
        await recalculate_fine_handler({"issue_id": overdue.id})

        result = await waive_fine_handler(
            {"issue_id": overdue.id, "reason": "damaged on issue", "actor_id": librarian.id}
        )

        issue = result["data"]["issue"]
        assert issue["fine_amount"] == "0.00"
        assert issue["fine_waived_amount"] == "90.00"
        assert issue["notes"] == "damaged on issue"

    async def test_waive_without_reason(self, overdue, librarian):
        result = await waive_fine_handler(
            {"issue_id": overdue.id, "reason": "", "actor_id": librarian.id}
        )

        assert result["errorType"] == "invalid_input"


class TestFineConfigurationTools:
    async def test_defaults(self, mock_get_session):
        result = await get_fine_configuration_handler({})

        config = result["data"]["configuration"]
        assert config["fine_per_day"] == "10.00"
        assert config["max_fine_amount"] == "1000.00"
        assert config["grace_period_days"] == 1
        assert config["is_active"] is True

    async def test_update_and_history(self, mock_get_session, librarian, clock):
        await get_fine_configuration_handler({})
        clock.advance(hours=1)

        updated = await update_fine_configuration_handler(
            {
                "fine_per_day": "2.50",
                "max_fine_amount": "75",
                "grace_period_days": 0,
                "actor_id": librarian.id,
            }
        )
        assert updated["data"]["configuration"]["fine_per_day"] == "2.50"
        assert updated["data"]["configuration"]["max_fine_amount"] == "75.00"

        history = await get_fine_configuration_history_handler({})
        rows = history["data"]["history"]
        assert [row["fine_per_day"] for row in rows] == ["2.50", "10.00"]
        assert [row["is_active"] for row in rows] == [True, False]

    async def test_update_out_of_range(self, mock_get_session):
        result = await update_fine_configuration_handler(
            {"fine_per_day": "0", "max_fine_amount": "100", "grace_period_days": 1}
        )

        assert result["errorType"] == "bad_request"

    @pytest.mark.parametrize(
        ("per_day", "max_fine"), [("1e40", "100.00"), ("10.00", "1e40"), ("12.345", "100.00")]
    )
    async def test_update_outside_money_range(self, mock_get_session, per_day, max_fine):
        result = await update_fine_configuration_handler(
            {"fine_per_day": per_day, "max_fine_amount": max_fine, "grace_period_days": 1}
        )

        assert result["errorType"] == "invalid_input"
        current = await get_fine_configuration_handler({})
        assert current["data"]["configuration"]["fine_per_day"] == "10.00"

    async def test_new_rate_applies_to_recalculation(self, overdue):
        await update_fine_configuration_handler(
            {"fine_per_day": "1.00", "max_fine_amount": "100.00", "grace_period_days": 0}
        )

        result = await recalculate_fine_handler({"issue_id": overdue.id})

        assert result["data"]["issue"]["fine_amount"] == "10.00"


class TestOutstandingFinesTool:
    async def test_outstanding_fines(self, overdue, borrower):
        await recalculate_fine_handler({"issue_id": overdue.id})

        result = await get_user_outstanding_fines_handler({"user_id": borrower.id})

        fines = result["data"]["fines"]
        assert fines["total_outstanding"] == "90.00"
        assert fines["overdue_count"] == 1
        assert [item["issue_id"] for item in fines["issues"]] == [overdue.id]

    async def test_unknown_user(self, mock_get_session):
        result = await get_user_outstanding_fines_handler({"user_id": "missing"})

        assert result["errorType"] == "not_found"


class TestToolRegistration:
    def test_fine_tools_registered(self):
        assert {tool["name"] for tool in fine_tools} == {
            "recalculate_fine",
            "record_payment",
            "waive_fine",
            "get_fine_configuration",
            "update_fine_configuration",
            "get_fine_configuration_history",
            "get_user_outstanding_fines",
        }

    def test_all_tools_have_unique_names(self):
        names = [tool["name"] for tool in all_tools]

        assert len(names) == len(set(names)) == 13
