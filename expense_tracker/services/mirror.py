"""
Local Expense Mirror

An in-memory copy of one owner's records, kept consistent with every
create/update/delete so the UI-facing getters never need to re-query the
store.

CRITICAL ORDERING: every mutation is performed against the authoritative
store first. The local list changes only after the store call returned
successfully. A store error propagates unchanged and leaves the mirror
exactly as it was; there are no optimistic updates.

All amounts in the mirror are in the base currency.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Mapping, Optional, Union
from uuid import UUID

import structlog

from expense_tracker.engine.months import current_month, format_month, parse_month
from expense_tracker.models.expense import (
    ExpenseCategory,
    ExpenseCreate,
    ExpenseRecord,
    ExpenseUpdate,
    TopCategory,
)
from expense_tracker.services.storage import ExpenseStorageInterface
from expense_tracker.validation import ExpenseValidator


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


def _recency_key(record: ExpenseRecord):
    return (record.expense_date, record.created_at, str(record.id))


class ExpenseMirror:
    """
    Ordered records of the current owner, newest additions first.

    The mirror never holds records of more than one owner; load() replaces
    the contents and clear() empties them.
    """

    def __init__(
        self,
        storage: ExpenseStorageInterface,
        validator: Optional[ExpenseValidator] = None,
        recent_limit: int = 10,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger=None,
    ):
        self._storage = storage
        self._validator = validator or ExpenseValidator()
        self._recent_limit = recent_limit
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._audit_logger = audit_logger

        self._owner: Optional[str] = None
        self._records: list[ExpenseRecord] = []
        self._selected_month = current_month(self._clock())

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    @property
    def records(self) -> list[ExpenseRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    async def load(
        self,
        owner: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        """Replace the mirror with the owner's records from the store."""
        records = await self._storage.list_expenses(owner, date_from=date_from, date_to=date_to)
        self._owner = owner
        self._records = records
        logger.info("mirror_loaded", owner=owner, count=len(records))
        return self.records

    def clear(self) -> None:
        self._owner = None
        self._records = []
        self._selected_month = current_month(self._clock())

    def _require_owner(self) -> str:
        if self._owner is None:
            raise RuntimeError("ExpenseMirror.load() must be called before mutating")
        return self._owner

    # -------------------------------------------------------------------------
    # Mutations (store first, then local)
    # -------------------------------------------------------------------------

    async def add(self, payload: Union[Mapping[str, Any], ExpenseCreate]) -> ExpenseRecord:
        """
        Create an expense and put it at the front of the mirror.

        Raises:
            ValidationError: Payload rejected; the store was not called
            StorageError: The store write failed; the mirror is unchanged
        """
        owner = self._require_owner()
        data = self._validator.validate_create(payload)

        record = await self._storage.create_expense(owner, data)
        self._records.insert(0, record)

        logger.info("expense_added", owner=owner, expense_id=str(record.id))
        if self._audit_logger:
            await self._audit_logger.log_expense_created(
                owner=owner,
                expense_id=record.id,
                name=record.name,
                amount=str(record.amount),
            )
        return record

    async def update(
        self,
        expense_id: UUID,
        payload: Union[Mapping[str, Any], ExpenseUpdate],
    ) -> ExpenseRecord:
        """
        Apply a partial update.

        Raises:
            ValidationError, NotFoundError, AuthorizationError, StorageError
        """
        owner = self._require_owner()
        data = self._validator.validate_update(payload)

        record = await self._storage.update_expense(owner, expense_id, data)
        for index, existing in enumerate(self._records):
            if existing.id == record.id:
                self._records[index] = record
                break
        else:
            self._records.insert(0, record)

        if self._audit_logger:
            await self._audit_logger.log_expense_updated(
                owner=owner,
                expense_id=record.id,
                changed_fields=sorted(data.changes()),
            )
        return record

    async def delete(self, expense_id: UUID) -> None:
        """
        Delete an expense.

        Raises:
            NotFoundError, AuthorizationError, StorageError
        """
        owner = self._require_owner()
        await self._storage.delete_expense(owner, expense_id)
        self._records = [r for r in self._records if r.id != expense_id]

        if self._audit_logger:
            await self._audit_logger.log_expense_deleted(owner=owner, expense_id=expense_id)

    # -------------------------------------------------------------------------
    # Getters
    # -------------------------------------------------------------------------

    @property
    def total_expenses(self) -> Decimal:
        return sum((r.amount for r in self._records), ZERO)

    @property
    def recent_expenses(self) -> list[ExpenseRecord]:
        """
        The most recent records by date, descending.

        Same-day records are ordered by creation time (newest first) and
        then by id, so the order is deterministic.
        """
        ordered = sorted(self._records, key=_recency_key, reverse=True)
        return ordered[:self._recent_limit]

    @property
    def expenses_by_category(self) -> dict[ExpenseCategory, Decimal]:
        """Summed amount per category, in order of first appearance."""
        totals: dict[ExpenseCategory, Decimal] = {}
        for record in self._records:
            totals[record.category] = totals.get(record.category, ZERO) + record.amount
        return totals

    @property
    def top_category(self) -> TopCategory:
        """
        Category with the strictly greatest sum, None while every sum is zero.

        On a tie the category seen first in mirror order wins. The
        percentage is the category's share of the total, rounded half-up.
        """
        best: Optional[ExpenseCategory] = None
        best_amount = ZERO
        for category, amount in self.expenses_by_category.items():
            if amount > best_amount:
                best, best_amount = category, amount

        total = self.total_expenses
        if best is None or total <= 0:
            return TopCategory(category=best, amount=best_amount, percentage=0)

        share = (best_amount / total * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return TopCategory(category=best, amount=best_amount, percentage=int(share))

    @property
    def selected_month(self) -> str:
        return self._selected_month

    def set_selected_month(self, year_month: str) -> None:
        parse_month(year_month)
        self._selected_month = year_month

    @property
    def filtered_expenses(self) -> list[ExpenseRecord]:
        """Records of the selected month, in mirror order."""
        return [r for r in self._records if r.month == self._selected_month]

    def expenses_for_month(self, year: int, month: int) -> list[ExpenseRecord]:
        key = format_month(year, month)
        return [r for r in self._records if r.month == key]

    def expenses_for_category(self, category: Union[str, ExpenseCategory]) -> list[ExpenseRecord]:
        category = ExpenseCategory(category)
        return [r for r in self._records if r.category == category]
