"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the durable storage backend because:
1. Users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing the engine.

gspread is blocking, so every worksheet call runs in a worker thread
(asyncio.to_thread) to keep the event loop free.
"""

import asyncio
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_tracker.config import get_settings
from expense_tracker.errors import ExpenseTrackerError
from expense_tracker.models.audit import AuditEvent, AuditEventType, AuditSeverity
from expense_tracker.models.expense import (
    BudgetPolicy,
    Currency,
    ExpenseCategory,
    ExpenseCreate,
    ExpenseRecord,
    ExpenseUpdate,
)
from expense_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    ExpenseStorageInterface,
    SettingsStorageInterface,
    StorageError,
    check_owner,
)


logger = structlog.get_logger(__name__)

# Column mappings for Expenses sheet
EXPENSE_COLUMNS = [
    "id",
    "owner",
    "name",
    "amount",
    "category",
    "date",
    "note",
    "created_at",
    "updated_at",
]

# Column mappings for Settings sheet
SETTINGS_COLUMNS = [
    "owner",
    "currency",
    "monthly_budget",
    "budget_effective_from",
    "created_at",
    "updated_at",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner",
    "entity_type",
    "entity_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_expenses_sheet(self) -> gspread.Worksheet:
        """Get or create the Expenses worksheet."""
        return self._get_or_create_sheet(
            self._settings.expenses_sheet_name, EXPENSE_COLUMNS, rows=1000
        )

    def get_settings_sheet(self) -> gspread.Worksheet:
        """Get or create the Settings worksheet."""
        return self._get_or_create_sheet(
            self._settings.settings_sheet_name, SETTINGS_COLUMNS, rows=100
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


def _safe_getter(row: list):
    """Return an accessor that tolerates short rows."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


def expense_to_row(record: ExpenseRecord) -> list:
    """Convert an ExpenseRecord to a spreadsheet row."""
    return [
        str(record.id),
        record.owner,
        record.name,
        str(record.amount),
        record.category.value,
        record.expense_date.isoformat(),
        record.note,
        record.created_at.isoformat(),
        record.updated_at.isoformat(),
    ]


def row_to_expense(row: list) -> ExpenseRecord:
    """Convert a spreadsheet row to an ExpenseRecord."""
    safe_get = _safe_getter(row)
    return ExpenseRecord(
        id=UUID(safe_get(0)),
        owner=safe_get(1),
        name=safe_get(2),
        amount=Decimal(safe_get(3, "0")),
        category=ExpenseCategory(safe_get(4)),
        expense_date=date.fromisoformat(safe_get(5)),
        note=safe_get(6),
        created_at=datetime.fromisoformat(safe_get(7)),
        updated_at=datetime.fromisoformat(safe_get(8)),
    )


def policy_to_row(policy: BudgetPolicy) -> list:
    """Convert a BudgetPolicy to a spreadsheet row."""
    return [
        policy.owner,
        policy.currency.value,
        str(policy.monthly_budget),
        policy.budget_effective_from,
        policy.created_at.isoformat(),
        policy.updated_at.isoformat(),
    ]


def row_to_policy(row: list) -> BudgetPolicy:
    """Convert a spreadsheet row to a BudgetPolicy."""
    safe_get = _safe_getter(row)
    return BudgetPolicy(
        owner=safe_get(0),
        currency=Currency(safe_get(1)),
        monthly_budget=Decimal(safe_get(2, "0")),
        budget_effective_from=safe_get(3),
        created_at=datetime.fromisoformat(safe_get(4)),
        updated_at=datetime.fromisoformat(safe_get(5)),
    )


class GoogleSheetsExpenseStorage(ExpenseStorageInterface):
    """
    Google Sheets implementation of expense storage.

    Expenses are stored as rows in a worksheet with one record per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _find_row(self, all_rows: list, expense_id: UUID) -> tuple[Optional[int], Optional[ExpenseRecord]]:
        """Locate a record; returns (1-based sheet row index, record)."""
        for idx, row in enumerate(all_rows[1:], start=2):  # Start from 2 (row 1 is header)
            if row and row[0] == str(expense_id):
                return idx, row_to_expense(row)
        return None, None

    async def list_expenses(
        self,
        owner: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[ExpenseRecord]:
        try:
            sheet = await asyncio.to_thread(self._client.get_expenses_sheet)
            all_rows = (await asyncio.to_thread(sheet.get_all_values))[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")

        records = []
        for row in all_rows:
            if not row or not row[0] or len(row) < 2 or row[1] != owner:
                continue

            try:
                record = row_to_expense(row)
            except Exception as e:
                logger.warning("malformed_expense_row", expense_id=row[0], error=str(e))
                continue

            if date_from and record.expense_date < date_from:
                continue
            if date_to and record.expense_date >= date_to:
                continue

            records.append(record)

        # Sort by date descending (newest first)
        records.sort(key=lambda r: r.expense_date, reverse=True)
        return records

    async def get_expense(self, expense_id: UUID) -> Optional[ExpenseRecord]:
        try:
            sheet = await asyncio.to_thread(self._client.get_expenses_sheet)
            _, record = self._find_row(await asyncio.to_thread(sheet.get_all_values), expense_id)
            return record
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")

    # Not retried: a repeated append would duplicate the row
    async def create_expense(self, owner: str, data: ExpenseCreate) -> ExpenseRecord:
        record = ExpenseRecord.from_create(owner, data)
        try:
            sheet = await asyncio.to_thread(self._client.get_expenses_sheet)
            await asyncio.to_thread(sheet.append_row, expense_to_row(record), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")
        return record

    async def update_expense(
        self,
        owner: str,
        expense_id: UUID,
        data: ExpenseUpdate,
    ) -> ExpenseRecord:
        try:
            sheet = await asyncio.to_thread(self._client.get_expenses_sheet)
            idx, existing = self._find_row(await asyncio.to_thread(sheet.get_all_values), expense_id)
            check_owner(existing, owner, expense_id)

            updated = existing.with_changes(data)
            cell_range = f"A{idx}:{chr(ord('A') + len(EXPENSE_COLUMNS) - 1)}{idx}"
            await asyncio.to_thread(
                sheet.update, range_name=cell_range, values=[expense_to_row(updated)], value_input_option="RAW"
            )
            return updated
        except ExpenseTrackerError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")

    async def delete_expense(self, owner: str, expense_id: UUID) -> bool:
        try:
            sheet = await asyncio.to_thread(self._client.get_expenses_sheet)
            idx, existing = self._find_row(await asyncio.to_thread(sheet.get_all_values), expense_id)
            check_owner(existing, owner, expense_id)
            await asyncio.to_thread(sheet.delete_rows, idx)
            return True
        except ExpenseTrackerError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")


class GoogleSheetsSettingsStorage(SettingsStorageInterface):
    """One row per user in the Settings worksheet."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    async def get_settings(self, owner: str) -> Optional[BudgetPolicy]:
        try:
            sheet = await asyncio.to_thread(self._client.get_settings_sheet)
            for row in (await asyncio.to_thread(sheet.get_all_values))[1:]:
                if row and row[0] == owner:
                    return row_to_policy(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get settings: {e}")

    # Upsert keyed by owner, so a retried write lands on the same row
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def put_settings(self, policy: BudgetPolicy) -> BudgetPolicy:
        try:
            sheet = await asyncio.to_thread(self._client.get_settings_sheet)
            new_row = policy_to_row(policy)
            for idx, row in enumerate((await asyncio.to_thread(sheet.get_all_values))[1:], start=2):
                if row and row[0] == policy.owner:
                    cell_range = f"A{idx}:{chr(ord('A') + len(SETTINGS_COLUMNS) - 1)}{idx}"
                    await asyncio.to_thread(
                        sheet.update, range_name=cell_range, values=[new_row], value_input_option="RAW"
                    )
                    return policy
            await asyncio.to_thread(sheet.append_row, new_row, value_input_option="RAW")
            return policy
        except Exception as e:
            raise StorageError(f"Failed to save settings: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        safe_get = _safe_getter(row)
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            owner=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Never raises."""
        try:
            sheet = await asyncio.to_thread(self._client.get_audit_sheet)
            await asyncio.to_thread(sheet.append_row, event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_sheet_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_owner(
        self,
        owner: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            sheet = await asyncio.to_thread(self._client.get_audit_sheet)
            all_rows = (await asyncio.to_thread(sheet.get_all_values))[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and len(row) > 4 and row[4] == owner:
                try:
                    events.append(self._row_to_event(row))
                except Exception as e:
                    logger.warning("malformed_audit_row", error=str(e))
                    continue

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
