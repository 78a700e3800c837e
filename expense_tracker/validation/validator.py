"""
Input Validation

DESIGN DECISION: All caller input is validated before any store access.
Validation happens in two stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Type checking (amount is a number, date is YYYY-MM-DD)
- Closed sets (category, currency)

STAGE 2 - SEMANTIC VALIDATION:
- Absurd amount detection

A failure in either stage raises ValidationError carrying every issue found,
so the caller can show all problems at once. Validation never silently
fixes input beyond trimming whitespace and rounding to the cent.
"""

from decimal import Decimal
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from expense_tracker.config import AppSettings, get_settings
from expense_tracker.engine.months import parse_month
from expense_tracker.errors import ValidationError
from expense_tracker.models.expense import (
    Currency,
    ExpenseCreate,
    ExpenseUpdate,
    ValidationIssue,
    quantize_amount,
)


# Keys a caller may send but that never reach the store
PROTECTED_FIELDS = {"id", "owner", "userId", "createdAt", "updatedAt", "created_at", "updated_at"}


def issues_from_pydantic(error: PydanticValidationError) -> list[ValidationIssue]:
    """Flatten pydantic's error list into ValidationIssues."""
    issues = []
    for err in error.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "payload"
        error_type = err.get("type", "")
        if error_type == "missing":
            issue_type = "missing"
        elif error_type == "enum":
            issue_type = "unsupported"
        else:
            issue_type = "invalid_value"
        issues.append(ValidationIssue(
            field=field,
            issue_type=issue_type,
            message=err.get("msg", "Invalid value"),
        ))
    return issues


class ExpenseValidator:
    """
    Validates expense and settings payloads.

    Stage 1 is delegated to the pydantic models; stage 2 checks business
    limits from AppSettings.
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self._settings = settings or get_settings().app

    def _parse(self, model: type[BaseModel], payload: Union[Mapping[str, Any], BaseModel]):
        if isinstance(payload, model):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(by_alias=True, exclude_unset=True)
        if not isinstance(payload, Mapping):
            raise ValidationError(
                "Expense payload must be an object",
                [ValidationIssue(field="payload", issue_type="invalid_format", message="Expected an object")],
            )
        cleaned = {k: v for k, v in payload.items() if k not in PROTECTED_FIELDS}
        try:
            return model.model_validate(cleaned)
        except PydanticValidationError as e:
            raise ValidationError("Name, amount (number), category, and date are required", issues_from_pydantic(e))

    def _check_amount(self, amount: Optional[Decimal]) -> None:
        if amount is None:
            return
        limit = quantize_amount(self._settings.max_expense_amount)
        if amount > limit:
            raise ValidationError(
                "Amount is unrealistically large",
                [ValidationIssue(
                    field="amount",
                    issue_type="suspicious_value",
                    message=f"Amount {amount} exceeds the maximum of {limit}",
                )],
            )

    def validate_create(self, payload: Union[Mapping[str, Any], ExpenseCreate]) -> ExpenseCreate:
        """
        Validate a new expense.

        Raises:
            ValidationError: With one issue per problem found
        """
        data = self._parse(ExpenseCreate, payload)
        self._check_amount(data.amount)
        return data

    def validate_update(self, payload: Union[Mapping[str, Any], ExpenseUpdate]) -> ExpenseUpdate:
        """Validate a partial update. id/owner in the payload are dropped."""
        data = self._parse(ExpenseUpdate, payload)
        changes = data.changes()
        for field in ("name", "amount", "category", "expense_date"):
            if field in changes and changes[field] is None:
                raise ValidationError(
                    f"{field} cannot be cleared",
                    [ValidationIssue(field=field, issue_type="missing", message=f"{field} cannot be null")],
                )
        self._check_amount(data.amount)
        return data

    def validate_settings(self, currency: Any, monthly_budget: Any) -> tuple[Currency, Decimal]:
        """
        Validate a settings update.

        The budget must be an actual number (not a numeric string, not a
        bool) and the currency one of the supported codes.
        """
        issues = []

        parsed_currency = None
        try:
            parsed_currency = Currency(str(currency).strip().upper()) if currency else None
        except ValueError:
            pass
        if parsed_currency is None:
            supported = ", ".join(c.value for c in Currency)
            issues.append(ValidationIssue(
                field="currency",
                issue_type="unsupported" if currency else "missing",
                message=f"Currency must be one of {supported}",
            ))

        parsed_budget = None
        if isinstance(monthly_budget, bool) or not isinstance(monthly_budget, (int, float, Decimal)):
            issues.append(ValidationIssue(
                field="monthlyBudget",
                issue_type="invalid_value",
                message="Monthly budget must be a number",
            ))
        else:
            try:
                parsed_budget = quantize_amount(monthly_budget)
            except ValueError as e:
                issues.append(ValidationIssue(field="monthlyBudget", issue_type="invalid_value", message=str(e)))
            else:
                if parsed_budget < 0:
                    issues.append(ValidationIssue(
                        field="monthlyBudget",
                        issue_type="invalid_value",
                        message="Monthly budget cannot be negative",
                    ))

        if issues:
            raise ValidationError("Currency and monthlyBudget (number) are required", issues)
        return parsed_currency, parsed_budget

    def validate_month(self, year_month: Any) -> str:
        """Check a YYYY-MM month string."""
        try:
            parse_month(year_month if isinstance(year_month, str) else "")
        except ValueError as e:
            raise ValidationError(
                "Month must be formatted YYYY-MM",
                [ValidationIssue(field="month", issue_type="invalid_format", message=str(e))],
            )
        return year_month
