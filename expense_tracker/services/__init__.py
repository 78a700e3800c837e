"""Services package."""

from expense_tracker.services.budget import (
    BudgetManager,
    apply_settings_update,
    default_policy,
    get_or_create_policy,
)
from expense_tracker.services.currency import (
    CurrencyConverter,
    RateCache,
    RateFeedClient,
    RateFeedError,
)
from expense_tracker.services.mirror import ExpenseMirror
from expense_tracker.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    ExpenseStorageInterface,
    MemoryAuditStorage,
    MemoryExpenseStorage,
    MemorySettingsStorage,
    SettingsStorageInterface,
    StorageError,
)

__all__ = [
    # Budget policy
    "BudgetManager",
    "apply_settings_update",
    "default_policy",
    "get_or_create_policy",
    # Currency conversion
    "CurrencyConverter",
    "RateCache",
    "RateFeedClient",
    "RateFeedError",
    # Local mirror
    "ExpenseMirror",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "ExpenseStorageInterface",
    "MemoryAuditStorage",
    "MemoryExpenseStorage",
    "MemorySettingsStorage",
    "SettingsStorageInterface",
    "StorageError",
]
