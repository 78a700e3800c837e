"""
In-process memory storage.

Suitable for single-process use and testing. All state is lost when the
process exits; use the Google Sheets backend for durable storage.
Records are copied on the way in and out so callers can never mutate
stored state by accident.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from expense_tracker.models.audit import AuditEvent
from expense_tracker.models.expense import (
    BudgetPolicy,
    ExpenseCreate,
    ExpenseRecord,
    ExpenseUpdate,
)
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ExpenseStorageInterface,
    SettingsStorageInterface,
    check_owner,
)


class MemoryExpenseStorage(ExpenseStorageInterface):
    """Dictionary-backed expense store."""

    def __init__(self) -> None:
        self._records: dict[UUID, ExpenseRecord] = {}

    async def list_expenses(
        self,
        owner: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        records = []
        for record in self._records.values():
            if record.owner != owner:
                continue
            if date_from and record.expense_date < date_from:
                continue
            if date_to and record.expense_date >= date_to:
                continue
            records.append(record.model_copy(deep=True))

        records.sort(key=lambda r: r.expense_date, reverse=True)
        return records

    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        record = self._records.get(expense_id)
        return record.model_copy(deep=True) if record else None

    async def create_expense(self, owner: str, data: ExpenseCreate) -> ExpenseRecord:
        record = ExpenseRecord.from_create(owner, data)
        self._records[record.id] = record
        return record.model_copy(deep=True)

    async def update_expense(
        self,
        owner: str,
        expense_id: UUID,
        data: ExpenseUpdate,
    ) -> ExpenseRecord:
        existing = check_owner(self._records.get(expense_id), owner, expense_id)
        updated = existing.with_changes(data)
        self._records[expense_id] = updated
        return updated.model_copy(deep=True)

    async def delete_expense(self, owner: str, expense_id: UUID) -> bool:
        check_owner(self._records.get(expense_id), owner, expense_id)
        del self._records[expense_id]
        return True


class MemorySettingsStorage(SettingsStorageInterface):
    """Dictionary-backed settings store keyed by owner."""

    def __init__(self) -> None:
        self._policies: dict[str, BudgetPolicy] = {}

    async def get_settings(self, owner: str) -> Optional[BudgetPolicy]:
        policy = self._policies.get(owner)
        return policy.model_copy(deep=True) if policy else None

    async def put_settings(self, policy: BudgetPolicy) -> BudgetPolicy:
        self._policies[policy.owner] = policy.model_copy(deep=True)
        return policy.model_copy(deep=True)


class MemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_owner(
        self,
        owner: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.owner == owner]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
