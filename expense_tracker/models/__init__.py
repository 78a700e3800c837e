"""
Data Models Package

This package contains all Pydantic models used in the Expense Tracker.
All data flowing through the system must conform to these schemas.
"""

from expense_tracker.models.expense import (
    BASE_CURRENCY,
    BudgetPolicy,
    Currency,
    DataExport,
    ExpenseCategory,
    ExpenseCreate,
    ExpenseRecord,
    ExpenseUpdate,
    MonthlySummary,
    TopCategory,
    ValidationIssue,
    quantize_amount,
)
from expense_tracker.models.rates import (
    DEFAULT_RATES,
    ExchangeRateTable,
    RateSource,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Expense models
    "BASE_CURRENCY",
    "BudgetPolicy",
    "Currency",
    "DataExport",
    "ExpenseCategory",
    "ExpenseCreate",
    "ExpenseRecord",
    "ExpenseUpdate",
    "MonthlySummary",
    "TopCategory",
    "ValidationIssue",
    "quantize_amount",
    # Rate models
    "DEFAULT_RATES",
    "ExchangeRateTable",
    "RateSource",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
