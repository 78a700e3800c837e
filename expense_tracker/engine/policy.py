"""
Budget coverage rules.

Pure functions over a BudgetPolicy snapshot. A budget covers every month on
or after its effective-from month and no month before it.
"""

from decimal import Decimal
from typing import Optional

from expense_tracker.models.expense import BudgetPolicy


def has_budget_for_month(policy: BudgetPolicy, year_month: str) -> bool:
    # Zero-padded YYYY-MM strings sort chronologically
    return year_month >= policy.budget_effective_from


def budget_for_month(
    policy: BudgetPolicy,
    year_month: str,
    converter=None,
) -> Optional[Decimal]:
    """
    Budget applying to year_month, or None when the month is not covered.

    Without a converter the amount stays in the base currency; with one it
    is converted to the converter's display currency.
    """
    if not has_budget_for_month(policy, year_month):
        return None
    if converter is None:
        return policy.monthly_budget
    return converter.convert_from_base(policy.monthly_budget)
