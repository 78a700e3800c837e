"""Validation package."""

from expense_tracker.validation.validator import ExpenseValidator, issues_from_pydantic

__all__ = ["ExpenseValidator", "issues_from_pydantic"]
