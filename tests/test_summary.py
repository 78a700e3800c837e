"""Tests for month helpers and the monthly aggregation engine."""

import pytest
from datetime import date
from decimal import Decimal

from expense_tracker.engine import (
    month_key,
    month_range,
    next_month,
    parse_month,
    percent_change,
    previous_month,
    summarize,
)
from expense_tracker.models.expense import BudgetPolicy, ExpenseCategory, ExpenseRecord


def _record(day: str, amount: str, category: str, owner: str = "alice", name: str = "item") -> ExpenseRecord:
    return ExpenseRecord(
        owner=owner,
        name=name,
        amount=Decimal(amount),
        category=ExpenseCategory(category),
        expense_date=date.fromisoformat(day),
    )


def _policy(budget="3000", effective_from="2026-01"):
    return BudgetPolicy(owner="alice", monthly_budget=Decimal(budget), budget_effective_from=effective_from)


@pytest.fixture
def january_records():
    return [
        _record("2026-01-24", "8.75", "dining"),
        _record("2026-01-21", "86.30", "groceries"),
    ]


class TestMonths:
    """Tests for YYYY-MM helpers."""

    def test_previous_month_rolls_over_year(self):
        assert previous_month("2026-01") == "2025-12"
        assert previous_month("2026-07") == "2026-06"

    def test_next_month_rolls_over_year(self):
        assert next_month("2025-12") == "2026-01"

    def test_month_range_is_half_open(self):
        assert month_range("2026-12") == (date(2026, 12, 1), date(2027, 1, 1))
        assert month_range("2026-02") == (date(2026, 2, 1), date(2026, 3, 1))

    def test_month_key(self):
        assert month_key(date(2026, 1, 5)) == "2026-01"

    def test_parse_month_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_month("2026-00")
        with pytest.raises(ValueError):
            parse_month("26-01")


class TestPercentChange:
    """Tests for month-over-month change."""

    def test_first_spend_is_hundred_percent(self):
        assert percent_change(Decimal("10"), Decimal("0")) == 100.0

    def test_no_spend_at_all_is_zero(self):
        assert percent_change(Decimal("0"), Decimal("0")) == 0.0

    def test_rounded_to_one_decimal(self):
        assert percent_change(Decimal("150"), Decimal("100")) == 50.0
        assert percent_change(Decimal("33.33"), Decimal("30")) == 11.1
        assert percent_change(Decimal("0"), Decimal("100")) == -100.0


class TestSummarize:
    """Tests for summarize()."""

    def test_january_scenario(self, january_records):
        """Test the reference month: two records, budget effective that month."""
        summary = summarize(january_records, "2026-01", policy=_policy())

        assert summary.total == Decimal("95.05")
        assert summary.previous_month_total == Decimal("0.00")
        assert summary.change == 100.0
        assert summary.expense_count == 2
        assert summary.has_budget is True
        assert summary.budget_remaining == Decimal("2904.95")
        assert summary.currency == "EUR"
        assert summary.by_category == {
            ExpenseCategory.DINING: Decimal("8.75"),
            ExpenseCategory.GROCERIES: Decimal("86.30"),
        }

    def test_previous_month_across_year_boundary(self, january_records):
        records = january_records + [
            _record("2025-12-10", "50.00", "bills"),
            _record("2025-11-30", "999.00", "bills"),
        ]

        summary = summarize(records, "2026-01", policy=_policy())

        assert summary.previous_month_total == Decimal("50.00")
        assert summary.change == 90.1
        assert ExpenseCategory.BILLS not in summary.by_category

    def test_month_before_budget_is_uncovered(self, january_records):
        summary = summarize(january_records, "2026-01", policy=_policy(effective_from="2026-02"))

        assert summary.has_budget is False
        assert summary.budget_remaining is None

    def test_empty_month(self):
        summary = summarize([], "2026-05", policy=_policy())

        assert summary.total == Decimal("0.00")
        assert summary.change == 0.0
        assert summary.expense_count == 0
        assert summary.by_category == {}
        assert summary.budget_remaining == Decimal("3000.00")

    def test_overspend_gives_negative_remaining(self):
        records = [_record("2026-02-01", "120.00", "shopping")]
        summary = summarize(records, "2026-02", policy=_policy(budget="100"))

        assert summary.budget_remaining == Decimal("-20.00")

    def test_summarize_is_idempotent(self, january_records):
        """Test two calls over the same input give identical output."""
        policy = _policy()
        first = summarize(january_records, "2026-01", policy=policy)
        second = summarize(january_records, "2026-01", policy=policy)

        assert first == second
        assert first.model_dump() == second.model_dump()

    def test_missing_policy_falls_back_to_default(self, january_records, fixed_now):
        """Test the default policy (effective current month) is used."""
        march = [_record("2026-03-02", "10.00", "transport")]

        covered = summarize(march, "2026-03", policy=None, today=fixed_now)
        uncovered = summarize(january_records, "2026-01", policy=None, today=fixed_now)

        assert covered.has_budget is True
        assert covered.budget_remaining == Decimal("2990.00")
        assert uncovered.has_budget is False

    def test_invalid_month(self, january_records):
        with pytest.raises(ValueError):
            summarize(january_records, "2026-1", policy=_policy())


class TestSummarizeDisplayCurrency:
    """Tests for the converted (client-side) summary."""

    def test_amounts_and_budget_are_converted(self, converter, january_records):
        converter.set_currency("USD")

        summary = summarize(january_records, "2026-01", policy=_policy(), converter=converter)

        # 8.75 * 1.08 = 9.45, 86.30 * 1.08 = 93.204 -> 93.20
        assert summary.currency == "USD"
        assert summary.total == Decimal("102.65")
        assert summary.by_category[ExpenseCategory.DINING] == Decimal("9.45")
        assert summary.budget_remaining == Decimal("3240.00") - Decimal("102.65")

    def test_categories_sum_to_total(self, converter):
        """Test the breakdown adds up exactly after conversion."""
        converter.set_currency("JPY")
        records = [
            _record("2026-01-03", "0.33", "dining"),
            _record("2026-01-04", "12.01", "dining"),
            _record("2026-01-05", "7.77", "transport"),
            _record("2026-01-06", "199.99", "health"),
            _record("2026-01-07", "0.05", "other"),
        ]

        summary = summarize(records, "2026-01", policy=_policy(), converter=converter)

        assert sum(summary.by_category.values()) == summary.total

    def test_unknown_display_currency_is_identity(self, converter, january_records):
        converter.set_currency("XYZ")

        summary = summarize(january_records, "2026-01", policy=_policy(), converter=converter)

        assert summary.currency == "XYZ"
        assert summary.total == Decimal("95.05")
        assert summary.budget_remaining == Decimal("2904.95")
