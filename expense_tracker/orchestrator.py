"""
Main Orchestrator for the Expense Tracker

This module ties together all the components and defines the two ways the
engine is driven:
1. ExpenseSession - one signed-in user on the client side. Owns the
   converter, the budget manager and the local mirror; summaries are in the
   user's display currency.
2. ExpenseApi - the request/response surface over the stores. Every call
   names its owner explicitly; summaries are in the base currency.

DESIGN DECISION: The orchestrator enforces the boundaries:
- Input is validated before any store access
- Records are only touched by their owner
- Switching users always passes through a full reset
- Every mutation and every rejection is audited
"""

from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Union
from uuid import UUID

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.config import AppSettings, get_settings
from expense_tracker.engine import format_month, month_range, summarize
from expense_tracker.errors import AuthorizationError, ValidationError
from expense_tracker.models.expense import (
    BudgetPolicy,
    DataExport,
    ExpenseCreate,
    ExpenseRecord,
    ExpenseUpdate,
    MonthlySummary,
)
from expense_tracker.services.budget import (
    BudgetManager,
    apply_settings_update,
    default_policy,
    get_or_create_policy,
)
from expense_tracker.services.currency import CurrencyConverter
from expense_tracker.services.mirror import ExpenseMirror
from expense_tracker.services.storage import (
    ExpenseStorageInterface,
    MemoryAuditStorage,
    MemoryExpenseStorage,
    MemorySettingsStorage,
    SettingsStorageInterface,
)
from expense_tracker.validation import ExpenseValidator


logger = structlog.get_logger(__name__)


def _issue_dicts(error: ValidationError) -> list[dict]:
    return [
        {"field": i.field, "type": i.issue_type, "message": i.message}
        for i in error.issues
    ]


class ExpenseSession:
    """
    Client-side session for one authenticated owner.

    Flow on start(owner):
    1. Reset converter, budget and mirror to defaults
    2. Install the durably cached rate table
    3. Refresh rates if they are stale (never fails the start)
    4. Load or create the owner's budget policy
    5. Load the owner's records into the mirror

    Amounts the user types are in the display currency and are converted
    to the base currency before they are stored.
    """

    def __init__(
        self,
        expense_storage: ExpenseStorageInterface,
        settings_storage: SettingsStorageInterface,
        converter: Optional[CurrencyConverter] = None,
        validator: Optional[ExpenseValidator] = None,
        app_settings: Optional[AppSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._settings = app_settings or get_settings().app
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._validator = validator or ExpenseValidator(self._settings)
        self._audit_logger = audit_logger

        self._converter = converter or CurrencyConverter(clock=self._clock, audit_logger=audit_logger)
        self._budget = BudgetManager(
            settings_storage,
            self._converter,
            validator=self._validator,
            settings=self._settings,
            clock=self._clock,
            audit_logger=audit_logger,
        )
        self._mirror = ExpenseMirror(
            expense_storage,
            validator=self._validator,
            recent_limit=self._settings.recent_expenses_limit,
            clock=self._clock,
            audit_logger=audit_logger,
        )
        self._owner: Optional[str] = None

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    @property
    def converter(self) -> CurrencyConverter:
        return self._converter

    @property
    def budget(self) -> BudgetManager:
        return self._budget

    @property
    def mirror(self) -> ExpenseMirror:
        return self._mirror

    def _reset(self) -> None:
        self._converter.reset()
        self._budget.reset()
        self._mirror.clear()
        self._owner = None

    async def start(self, owner: str) -> None:
        """Sign a user in. Any previous user is signed out first."""
        if self._owner is not None:
            await self.end()
        self._reset()

        self._converter.load_cached()
        if self._converter.should_refresh():
            await self._converter.refresh_rates()

        await self._budget.load(owner)
        await self._mirror.load(owner)
        self._owner = owner

        logger.info("session_started", owner=owner, currency=self._converter.currency)
        if self._audit_logger:
            await self._audit_logger.log_session_started(owner)

    async def end(self) -> None:
        """Sign out and drop all per-user state."""
        owner = self._owner
        self._reset()
        if owner and self._audit_logger:
            await self._audit_logger.log_session_ended(owner)

    def _require_owner(self) -> str:
        if self._owner is None:
            raise RuntimeError("No active session; call start() first")
        return self._owner

    def monthly_summary(self, year_month: Optional[str] = None) -> MonthlySummary:
        """
        Summary of a month in the display currency.

        Defaults to the mirror's selected month.
        """
        year_month = self._validator.validate_month(year_month or self._mirror.selected_month)
        return summarize(
            self._mirror.records,
            year_month,
            policy=self._budget.policy,
            converter=self._converter,
        )

    async def add_expense(self, payload: Union[Mapping[str, Any], ExpenseCreate]) -> ExpenseRecord:
        """
        Record an expense entered in the display currency.

        Raises:
            ValidationError: Input rejected, nothing stored
            StorageError: Store write failed, mirror unchanged
        """
        owner = self._require_owner()
        try:
            data = self._validator.validate_create(payload)
        except ValidationError as e:
            await self._audit_validation(owner, "expense", e)
            raise
        data = data.model_copy(update={"amount": self._converter.convert_to_base(data.amount)})
        return await self._mirror.add(data)

    async def update_expense(
        self,
        expense_id: UUID,
        payload: Union[Mapping[str, Any], ExpenseUpdate],
    ) -> ExpenseRecord:
        """Apply a partial update; a new amount is in the display currency."""
        owner = self._require_owner()
        try:
            data = self._validator.validate_update(payload)
        except ValidationError as e:
            await self._audit_validation(owner, "expense", e)
            raise
        if data.amount is not None:
            data = data.model_copy(update={"amount": self._converter.convert_to_base(data.amount)})
        try:
            return await self._mirror.update(expense_id, data)
        except AuthorizationError:
            await self._audit_denied(owner, expense_id, "update")
            raise

    async def delete_expense(self, expense_id: UUID) -> None:
        owner = self._require_owner()
        try:
            await self._mirror.delete(expense_id)
        except AuthorizationError:
            await self._audit_denied(owner, expense_id, "delete")
            raise

    async def update_settings(self, monthly_budget: Any, currency: Any) -> BudgetPolicy:
        """Change budget (base currency) and display currency."""
        owner = self._require_owner()
        try:
            return await self._budget.update(monthly_budget, currency)
        except ValidationError as e:
            await self._audit_validation(owner, "settings", e)
            raise

    async def refresh_rates(self) -> bool:
        return await self._converter.refresh_rates()

    async def _audit_validation(self, owner: str, entity_type: str, error: ValidationError) -> None:
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(owner, entity_type, _issue_dicts(error))

    async def _audit_denied(self, owner: str, expense_id: UUID, operation: str) -> None:
        if self._audit_logger:
            await self._audit_logger.log_access_denied(owner, expense_id, operation)


class ExpenseApi:
    """
    Server-side operations over the stores.

    Stateless apart from the injected stores: every call carries the
    authenticated owner. Validation runs before any store access;
    ownership is checked by the store before anything is modified.
    """

    def __init__(
        self,
        expense_storage: ExpenseStorageInterface,
        settings_storage: SettingsStorageInterface,
        validator: Optional[ExpenseValidator] = None,
        app_settings: Optional[AppSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._expenses = expense_storage
        self._settings_store = settings_storage
        self._settings = app_settings or get_settings().app
        self._validator = validator or ExpenseValidator(self._settings)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._audit_logger = audit_logger

    async def list_expenses(
        self,
        owner: str,
        year: Optional[int] = None,
        month: Optional[int] = None,
    ) -> list[ExpenseRecord]:
        """
        The owner's expenses, newest date first.

        When both year and month are given only that month is returned.
        """
        if year is not None and month is not None:
            year_month = self._validator.validate_month(format_month(int(year), int(month)))
            date_from, date_to = month_range(year_month)
            return await self._expenses.list_expenses(owner, date_from=date_from, date_to=date_to)
        return await self._expenses.list_expenses(owner)

    async def create_expense(
        self,
        owner: str,
        payload: Union[Mapping[str, Any], ExpenseCreate],
    ) -> ExpenseRecord:
        """
        Create an expense for owner. Any id/owner in the payload is ignored.

        Raises:
            ValidationError: Missing or malformed fields
            StorageError: The write failed
        """
        try:
            data = self._validator.validate_create(payload)
        except ValidationError as e:
            await self._audit_validation(owner, "expense", e)
            raise

        record = await self._expenses.create_expense(owner, data)
        logger.info("expense_created", owner=owner, expense_id=str(record.id))
        if self._audit_logger:
            await self._audit_logger.log_expense_created(
                owner=owner,
                expense_id=record.id,
                name=record.name,
                amount=str(record.amount),
            )
        return record

    async def update_expense(
        self,
        owner: str,
        expense_id: UUID,
        payload: Union[Mapping[str, Any], ExpenseUpdate],
    ) -> ExpenseRecord:
        """
        Partial update of an owned expense.

        Raises:
            ValidationError, NotFoundError, AuthorizationError, StorageError
        """
        try:
            data = self._validator.validate_update(payload)
        except ValidationError as e:
            await self._audit_validation(owner, "expense", e)
            raise

        try:
            record = await self._expenses.update_expense(owner, expense_id, data)
        except AuthorizationError:
            await self._audit_denied(owner, expense_id, "update")
            raise

        if self._audit_logger:
            await self._audit_logger.log_expense_updated(
                owner=owner,
                expense_id=expense_id,
                changed_fields=sorted(data.changes()),
            )
        return record

    async def delete_expense(self, owner: str, expense_id: UUID) -> bool:
        """
        Delete an owned expense.

        Raises:
            NotFoundError, AuthorizationError, StorageError
        """
        try:
            deleted = await self._expenses.delete_expense(owner, expense_id)
        except AuthorizationError:
            await self._audit_denied(owner, expense_id, "delete")
            raise

        if self._audit_logger:
            await self._audit_logger.log_expense_deleted(owner=owner, expense_id=expense_id)
        return deleted

    async def get_settings(self, owner: str) -> BudgetPolicy:
        """The owner's policy; the defaults are created on first access."""
        return await get_or_create_policy(
            self._settings_store,
            owner,
            now=self._clock(),
            settings=self._settings,
            audit_logger=self._audit_logger,
        )

    async def put_settings(self, owner: str, currency: Any, monthly_budget: Any) -> BudgetPolicy:
        """
        Replace currency and budget.

        The effective month moves to the current month only when the
        budget amount actually changes.
        """
        try:
            parsed_currency, parsed_budget = self._validator.validate_settings(currency, monthly_budget)
        except ValidationError as e:
            await self._audit_validation(owner, "settings", e)
            raise

        current = await self.get_settings(owner)
        updated, budget_changed = apply_settings_update(
            current, parsed_currency, parsed_budget, self._clock()
        )
        stored = await self._settings_store.put_settings(updated)

        if self._audit_logger:
            await self._audit_logger.log_settings_updated(
                owner=owner,
                currency=stored.currency.value,
                monthly_budget=str(stored.monthly_budget),
                effective_from=stored.budget_effective_from,
                budget_changed=budget_changed,
            )
        return stored

    async def monthly_summary(self, owner: str, year_month: str) -> MonthlySummary:
        """
        Summary of one month in the base currency.

        A user without stored settings is summarized against the default
        policy; nothing is persisted for them here.
        """
        year_month = self._validator.validate_month(year_month)

        records = await self._expenses.list_expenses(owner)
        policy = await self._settings_store.get_settings(owner)
        if policy is None:
            policy = default_policy(owner, self._clock(), self._settings)

        summary = summarize(records, year_month, policy=policy)
        if self._audit_logger:
            await self._audit_logger.log_summary_computed(owner, year_month, summary.expense_count)
        return summary

    async def export_data(self, owner: str) -> DataExport:
        """Everything stored for the owner: settings plus all expenses."""
        expenses = await self._expenses.list_expenses(owner)
        settings = await self._settings_store.get_settings(owner)
        export = DataExport(
            owner=owner,
            settings=settings,
            expenses=expenses,
            export_date=self._clock(),
            count=len(expenses),
        )
        if self._audit_logger:
            await self._audit_logger.log_data_exported(owner, export.count)
        return export

    async def _audit_validation(self, owner: str, entity_type: str, error: ValidationError) -> None:
        if self._audit_logger:
            await self._audit_logger.log_validation_failed(owner, entity_type, _issue_dicts(error))

    async def _audit_denied(self, owner: str, expense_id: UUID, operation: str) -> None:
        if self._audit_logger:
            await self._audit_logger.log_access_denied(owner, expense_id, operation)


def create_app_components(
    use_sheets: bool = False,
):
    """
    Factory function to create all application components.

    Args:
        use_sheets: Whether to use Google Sheets storage.
                    Set to False for in-memory storage (tests, local use).

    Returns:
        (expense_api, expense_session, sheets_client)
    """
    sheets_client = None
    expense_storage = None
    settings_storage = None
    audit_storage = None

    if use_sheets:
        try:
            from expense_tracker.services.storage.google_sheets import (
                GoogleSheetsAuditStorage,
                GoogleSheetsClient,
                GoogleSheetsExpenseStorage,
                GoogleSheetsSettingsStorage,
            )

            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            expense_storage = GoogleSheetsExpenseStorage(sheets_client)
            settings_storage = GoogleSheetsSettingsStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("sheets_storage_unavailable", error=str(e))
            sheets_client = None

    if expense_storage is None:
        expense_storage = MemoryExpenseStorage()
        settings_storage = MemorySettingsStorage()
        audit_storage = MemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)

    expense_api = ExpenseApi(
        expense_storage,
        settings_storage,
        audit_logger=audit_logger,
    )
    expense_session = ExpenseSession(
        expense_storage,
        settings_storage,
        audit_logger=audit_logger,
    )

    return expense_api, expense_session, sheets_client
