"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The in-memory backend is the default; Google Sheets is the durable backend.
"""

from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ExpenseStorageInterface,
    SettingsStorageInterface,
    StorageError,
    check_owner,
)
from expense_tracker.services.storage.memory import (
    MemoryAuditStorage,
    MemoryExpenseStorage,
    MemorySettingsStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ExpenseStorageInterface",
    "SettingsStorageInterface",
    "check_owner",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # In-memory implementation
    "MemoryAuditStorage",
    "MemoryExpenseStorage",
    "MemorySettingsStorage",
]
