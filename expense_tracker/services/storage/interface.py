"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the engine decoupled from storage implementation

Every mutating operation on an existing record checks ownership before it
touches anything. A mismatch is reported as AuthorizationError, a missing
record as NotFoundError.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from expense_tracker.errors import AuthorizationError, NotFoundError, UpstreamError
from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.expense import (
    BudgetPolicy,
    ExpenseCreate,
    ExpenseRecord,
    ExpenseUpdate,
)


class ExpenseStorageInterface(ABC):
    """
    Abstract interface for expense record storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_expenses(
        self,
        owner: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        """
        List an owner's expenses, newest date first.

        Args:
            owner: Owner whose records to return
            date_from: Only records on or after this date
            date_to: Only records strictly before this date

        Returns:
            Matching records
        """
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        """
        Retrieve a record by ID regardless of owner.

        Returns:
            The record if found, None otherwise
        """
        pass

    @abstractmethod
    async def create_expense(self, owner: str, data: ExpenseCreate) -> ExpenseRecord:
        """
        Create a record. The store assigns id and timestamps.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_expense(
        self,
        owner: str,
        expense_id: UUID,
        data: ExpenseUpdate,
    ) -> ExpenseRecord:
        """
        Apply a partial update to a record the owner holds.

        Raises:
            NotFoundError: If the record doesn't exist
            AuthorizationError: If the record belongs to someone else
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete_expense(self, owner: str, expense_id: UUID) -> bool:
        """
        Delete a record the owner holds.

        Raises:
            NotFoundError: If the record doesn't exist
            AuthorizationError: If the record belongs to someone else
            StorageError: If the write fails
        """
        pass


class SettingsStorageInterface(ABC):
    """
    Abstract interface for per-user budget settings.

    The store itself never invents defaults; get-or-create lives in the
    budget service so the default values are explicit.
    """

    @abstractmethod
    async def get_settings(self, owner: str) -> Optional[BudgetPolicy]:
        """Return the stored policy, or None if the user has none yet."""
        pass

    @abstractmethod
    async def put_settings(self, policy: BudgetPolicy) -> BudgetPolicy:
        """
        Create or replace the policy for policy.owner.

        Raises:
            StorageError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_owner(
        self,
        owner: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent events concerning one user (newest first).
        """
        pass


def check_owner(record: Optional[ExpenseRecord], owner: str, expense_id: UUID) -> ExpenseRecord:
    """
    Ownership gate shared by all store implementations.

    Raises:
        NotFoundError: If record is None
        AuthorizationError: If record.owner != owner
    """
    if record is None:
        raise NotFoundError(f"Expense not found: {expense_id}")
    if record.owner != owner:
        raise AuthorizationError()
    return record


class StorageError(UpstreamError):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
