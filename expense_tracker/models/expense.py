"""
Core Data Models for Expense Tracker

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and the wire format (camelCase aliases)

DESIGN DECISION: Records and policies are closed, explicitly typed structures.
Categories and currencies are enums, amounts are Decimals quantized to cents.
"""

from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


CENT = Decimal("0.01")
MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


def quantize_amount(value: Any) -> Decimal:
    """
    Coerce a numeric value to a Decimal rounded half-up to the cent.

    Floats go through str() so 86.3 becomes Decimal("86.30"), not the
    binary expansion. Booleans are rejected even though they are ints.
    """
    if isinstance(value, bool):
        raise ValueError("Amount must be a number")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Amount is not a number: {value!r}")
    else:
        raise ValueError(f"Amount must be a number, got {type(value).__name__}")
    if not amount.is_finite():
        raise ValueError("Amount must be finite")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseCategory(str, Enum):
    """
    Supported expense categories.

    DESIGN DECISION: Using explicit categories rather than free text ensures
    consistent grouping in the monthly breakdown.
    """
    DINING = "dining"
    TRANSPORT = "transport"
    GROCERIES = "groceries"
    BILLS = "bills"
    HEALTH = "health"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    OTHER = "other"


class Currency(str, Enum):
    """Selectable display currencies. EUR is the storage (base) currency."""
    EUR = "EUR"
    USD = "USD"
    GBP = "GBP"
    JPY = "JPY"

    @property
    def symbol(self) -> str:
        return CURRENCY_SYMBOLS[self.value]


CURRENCY_SYMBOLS = {
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
    "JPY": "¥",
}

BASE_CURRENCY = Currency.EUR


# =============================================================================
# EXPENSE RECORDS
# =============================================================================

class _ExpenseFields(BaseModel):
    """Shared coercion for the mutable expense fields."""

    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    @field_validator('amount', mode='before', check_fields=False)
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        if v is None:
            return v
        return quantize_amount(v)

    @field_validator('expense_date', mode='before', check_fields=False)
    @classmethod
    def strip_time_component(cls, v: Any) -> Any:
        """Accept ISO timestamps and keep only the calendar date."""
        if isinstance(v, datetime):
            return v.date()
        if isinstance(v, str) and "T" in v:
            return v.split("T", 1)[0]
        return v

    @field_validator('note', mode='before', check_fields=False)
    @classmethod
    def none_note_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class ExpenseCreate(_ExpenseFields):
    """Payload for creating an expense. Amount is in the base currency."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Short label, e.g. the merchant"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount in the base currency"
    )
    category: ExpenseCategory
    expense_date: date = Field(
        ...,
        alias="date",
        description="Calendar date of the expense"
    )
    note: str = Field(
        default="",
        max_length=1000,
    )


class ExpenseUpdate(_ExpenseFields):
    """
    Partial update payload.

    Only fields explicitly set are applied; id and owner are not part of
    this model so they can never change.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    category: Optional[ExpenseCategory] = None
    expense_date: Optional[date] = Field(default=None, alias="date")
    note: Optional[str] = Field(default=None, max_length=1000)

    def changes(self) -> dict[str, Any]:
        """Fields the caller actually provided."""
        return self.model_dump(exclude_unset=True)


class ExpenseRecord(_ExpenseFields):
    """
    A stored expense.

    CRITICAL: id and owner are assigned at creation and never change.
    Timestamps are owned by the store adapter.
    """

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique expense ID"
    )
    owner: str = Field(
        ...,
        min_length=1,
        description="ID of the user who owns this record"
    )
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0, description="Amount in the base currency")
    category: ExpenseCategory
    expense_date: date = Field(..., alias="date")
    note: str = Field(default="", max_length=1000)
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    @property
    def month(self) -> str:
        """Calendar month of the expense as YYYY-MM."""
        return self.expense_date.strftime("%Y-%m")

    @property
    def display_date(self) -> str:
        """Human-readable date, e.g. 'Jan 24, 2026'."""
        return f"{self.expense_date.strftime('%b')} {self.expense_date.day}, {self.expense_date.year}"

    @classmethod
    def from_create(cls, owner: str, data: ExpenseCreate) -> "ExpenseRecord":
        now = utc_now()
        return cls(
            owner=owner,
            name=data.name,
            amount=data.amount,
            category=data.category,
            expense_date=data.expense_date,
            note=data.note,
            created_at=now,
            updated_at=now,
        )

    def with_changes(self, update: ExpenseUpdate) -> "ExpenseRecord":
        """Return a copy with the update applied and updated_at refreshed."""
        changes = update.changes()
        changes["updated_at"] = utc_now()
        return self.model_copy(update=changes)

    @field_serializer('amount')
    def serialize_amount(self, v: Decimal) -> float:
        return float(v)


# =============================================================================
# BUDGET POLICY (per-user settings)
# =============================================================================

class BudgetPolicy(BaseModel):
    """
    Per-user settings: display currency plus the monthly budget.

    The budget is denominated in the base currency and applies to every
    month >= budget_effective_from. Only the current budget is kept.
    """

    model_config = ConfigDict(populate_by_name=True)

    owner: str = Field(..., min_length=1)
    currency: Currency = Field(
        default=BASE_CURRENCY,
        description="Display currency"
    )
    monthly_budget: Decimal = Field(
        ...,
        ge=0,
        alias="monthlyBudget",
        description="Budget in the base currency"
    )
    budget_effective_from: str = Field(
        ...,
        pattern=MONTH_PATTERN,
        alias="budgetEffectiveFrom",
        description="First month (YYYY-MM) the budget applies to"
    )
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=utc_now, alias="updatedAt")

    @field_validator('monthly_budget', mode='before')
    @classmethod
    def coerce_budget(cls, v: Any) -> Decimal:
        return quantize_amount(v)

    @field_serializer('monthly_budget')
    def serialize_budget(self, v: Decimal) -> float:
        return float(v)

    @classmethod
    def defaults(
        cls,
        owner: str,
        effective_from: str,
        monthly_budget: Any = Decimal("3000"),
    ) -> "BudgetPolicy":
        """The documented default policy every user starts with."""
        return cls(
            owner=owner,
            currency=BASE_CURRENCY,
            monthly_budget=monthly_budget,
            budget_effective_from=effective_from,
        )


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class MonthlySummary(BaseModel):
    """
    Aggregated view of one calendar month. Derived, never persisted.

    All amounts are in the currency named by `currency`.
    """

    model_config = ConfigDict(populate_by_name=True)

    month: str = Field(..., pattern=MONTH_PATTERN)
    total: Decimal
    previous_month_total: Decimal = Field(..., alias="previousMonthTotal")
    change: float = Field(..., description="Percent change vs previous month, 1 dp")
    expense_count: int = Field(..., ge=0, alias="expenseCount")
    by_category: dict[ExpenseCategory, Decimal] = Field(
        default_factory=dict,
        alias="byCategory",
    )
    has_budget: bool = Field(..., alias="hasBudget")
    budget_remaining: Optional[Decimal] = Field(default=None, alias="budgetRemaining")
    currency: str = Field(..., min_length=3, max_length=3)

    @property
    def is_positive(self) -> bool:
        """True when spending did not go up compared to last month."""
        return self.total <= self.previous_month_total

    @field_serializer('total', 'previous_month_total', 'budget_remaining')
    def serialize_money(self, v: Optional[Decimal]) -> Optional[float]:
        return float(v) if v is not None else None

    @field_serializer('by_category')
    def serialize_breakdown(self, v: dict[ExpenseCategory, Decimal]) -> dict[str, float]:
        return {category.value: float(amount) for category, amount in v.items()}


class TopCategory(BaseModel):
    """Category with the largest spend and its share of the total."""

    category: Optional[ExpenseCategory] = None
    amount: Decimal = Decimal("0")
    percentage: int = 0


class DataExport(BaseModel):
    """Everything stored for one user, as returned by the export endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    owner: str = Field(..., alias="userId")
    settings: Optional[BudgetPolicy] = None
    expenses: list[ExpenseRecord] = Field(default_factory=list)
    export_date: datetime = Field(default_factory=utc_now, alias="exportDate")
    count: int = Field(default=0, ge=0)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'unsupported')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
