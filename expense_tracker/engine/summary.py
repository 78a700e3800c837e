"""
Monthly Aggregation Engine

DESIGN DECISION: The summary is recomputed in full from the raw records and
a policy snapshot on every call. Nothing is maintained incrementally, so a
summary can never drift from the records under concurrent edits. Per-user
record volume is small enough that the recomputation cost does not matter.

The engine runs in one of two currency spaces:
- base space (no converter): the server-side variant, amounts as stored
- display space (converter given): every record amount and the budget are
  converted before aggregation, the client-side variant

Converting per record (rather than converting the totals) keeps the
category breakdown summing exactly to the total.
"""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, Optional

import structlog

from expense_tracker.engine.months import current_month, parse_month, previous_month
from expense_tracker.engine.policy import budget_for_month, has_budget_for_month
from expense_tracker.models.expense import (
    BASE_CURRENCY,
    CENT,
    BudgetPolicy,
    ExpenseCategory,
    ExpenseRecord,
    MonthlySummary,
)


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
TENTH = Decimal("0.1")


def percent_change(total: Decimal, previous_total: Decimal) -> float:
    """
    Month-over-month change in percent, rounded to one decimal.

    Any spend where there was none before counts as a 100% increase;
    no spend in either month is 0%.
    """
    if previous_total > 0:
        change = (total - previous_total) / previous_total * 100
        return float(change.quantize(TENTH, rounding=ROUND_HALF_UP))
    if total > 0:
        return 100.0
    return 0.0


def _amount_getter(converter) -> Callable[[ExpenseRecord], Decimal]:
    if converter is None:
        return lambda record: record.amount
    return lambda record: converter.convert_from_base(record.amount)


def summarize(
    records: Iterable[ExpenseRecord],
    year_month: str,
    policy: Optional[BudgetPolicy] = None,
    converter=None,
    today: Optional[datetime] = None,
) -> MonthlySummary:
    """
    Build the summary for one calendar month.

    Args:
        records: Raw records; any months may be mixed in
        year_month: Target month as YYYY-MM
        policy: Budget policy snapshot. None falls back to the default
                policy (effective from the current month)
        converter: CurrencyConverter for display space, None for base space
        today: Reference time for the default policy (now if None)

    Raises:
        ValueError: If year_month is not a valid YYYY-MM string
    """
    parse_month(year_month)
    prior = previous_month(year_month)

    if policy is None:
        logger.warning("summary_policy_missing", month=year_month)
        policy = BudgetPolicy.defaults(owner="anonymous", effective_from=current_month(today))

    amount_of = _amount_getter(converter)

    total = ZERO
    previous_total = ZERO
    count = 0
    by_category: dict[ExpenseCategory, Decimal] = {}

    for record in records:
        month = record.month
        if month == year_month:
            amount = amount_of(record)
            total += amount
            count += 1
            by_category[record.category] = by_category.get(record.category, ZERO) + amount
        elif month == prior:
            previous_total += amount_of(record)

    total = total.quantize(CENT, rounding=ROUND_HALF_UP)
    previous_total = previous_total.quantize(CENT, rounding=ROUND_HALF_UP)

    budget = budget_for_month(policy, year_month, converter)
    remaining = None
    if budget is not None:
        remaining = (budget - total).quantize(CENT, rounding=ROUND_HALF_UP)

    return MonthlySummary(
        month=year_month,
        total=total,
        previous_month_total=previous_total,
        change=percent_change(total, previous_total),
        expense_count=count,
        by_category={
            category: amount.quantize(CENT, rounding=ROUND_HALF_UP)
            for category, amount in by_category.items()
        },
        has_budget=has_budget_for_month(policy, year_month),
        budget_remaining=remaining,
        currency=converter.currency if converter is not None else BASE_CURRENCY.value,
    )
