"""Monthly aggregation engine."""

from expense_tracker.engine.months import (
    current_month,
    format_month,
    month_key,
    month_range,
    next_month,
    parse_month,
    previous_month,
)
from expense_tracker.engine.policy import budget_for_month, has_budget_for_month
from expense_tracker.engine.summary import percent_change, summarize

__all__ = [
    "budget_for_month",
    "current_month",
    "format_month",
    "has_budget_for_month",
    "month_key",
    "month_range",
    "next_month",
    "parse_month",
    "percent_change",
    "previous_month",
    "summarize",
]
