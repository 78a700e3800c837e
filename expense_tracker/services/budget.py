"""
Budget Policy Service

Holds one user's settings (display currency + monthly budget) and answers
whether a month is covered by the budget.

CRITICAL ORDERING: updates are written to the settings store first and only
mirrored into local state after that write succeeds. A failed write leaves
the local policy exactly as it was.

Only the current budget is kept. Changing the amount moves the effective
month to the current month, so earlier months stop being covered.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

import structlog

from expense_tracker.config import AppSettings, get_settings
from expense_tracker.engine.months import current_month
from expense_tracker.engine.policy import budget_for_month, has_budget_for_month
from expense_tracker.models.expense import BudgetPolicy, Currency
from expense_tracker.services.currency import CurrencyConverter
from expense_tracker.services.storage import SettingsStorageInterface
from expense_tracker.validation import ExpenseValidator


logger = structlog.get_logger(__name__)


def default_policy(owner: str, now: datetime, settings: AppSettings) -> BudgetPolicy:
    """Base currency, the configured default budget, effective this month."""
    return BudgetPolicy.defaults(
        owner=owner,
        effective_from=current_month(now),
        monthly_budget=settings.default_monthly_budget,
    )


async def get_or_create_policy(
    storage: SettingsStorageInterface,
    owner: str,
    now: datetime,
    settings: Optional[AppSettings] = None,
    audit_logger=None,
) -> BudgetPolicy:
    """
    Return the stored policy, creating and persisting the defaults first if
    the user has none. Every user has a policy once queried.
    """
    settings = settings or get_settings().app
    policy = await storage.get_settings(owner)
    if policy is not None:
        return policy

    policy = await storage.put_settings(default_policy(owner, now, settings))
    logger.info("settings_defaults_created", owner=owner, effective_from=policy.budget_effective_from)
    if audit_logger:
        await audit_logger.log_settings_created(
            owner=owner,
            currency=policy.currency.value,
            monthly_budget=str(policy.monthly_budget),
            effective_from=policy.budget_effective_from,
        )
    return policy


def apply_settings_update(
    current: BudgetPolicy,
    currency: Currency,
    monthly_budget: Decimal,
    now: datetime,
) -> tuple[BudgetPolicy, bool]:
    """
    Compute the policy after an update. Does not persist anything.

    Returns:
        (new_policy, budget_changed)
    """
    budget_changed = monthly_budget != current.monthly_budget
    effective_from = current_month(now) if budget_changed else current.budget_effective_from
    updated = current.model_copy(update={
        "currency": currency,
        "monthly_budget": monthly_budget,
        "budget_effective_from": effective_from,
        "updated_at": now,
    })
    return updated, budget_changed


class BudgetManager:
    """
    The budget policy of the signed-in user.

    Amounts handed out by budget_for_month() are in the display currency of
    the converter this manager was built with.
    """

    def __init__(
        self,
        storage: SettingsStorageInterface,
        converter: CurrencyConverter,
        validator: Optional[ExpenseValidator] = None,
        settings: Optional[AppSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger=None,
    ):
        self._storage = storage
        self._converter = converter
        self._settings = settings or get_settings().app
        self._validator = validator or ExpenseValidator(self._settings)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._audit_logger = audit_logger

        self._owner: Optional[str] = None
        self._policy: Optional[BudgetPolicy] = None

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    @property
    def policy(self) -> BudgetPolicy:
        """Current policy; the defaults until load() has run."""
        if self._policy is None:
            return default_policy(self._owner or "anonymous", self._clock(), self._settings)
        return self._policy

    @property
    def budget_effective_from(self) -> str:
        return self.policy.budget_effective_from

    async def load(self, owner: str) -> BudgetPolicy:
        """Get-or-create the owner's policy and adopt its display currency."""
        policy = await get_or_create_policy(
            self._storage,
            owner,
            now=self._clock(),
            settings=self._settings,
            audit_logger=self._audit_logger,
        )
        self._owner = owner
        self._policy = policy
        self._converter.set_currency(policy.currency)
        return policy

    def has_budget_for_month(self, year_month: str) -> bool:
        return has_budget_for_month(self.policy, year_month)

    def budget_for_month(self, year_month: str) -> Optional[Decimal]:
        """Budget for the month in display currency, None if not covered."""
        return budget_for_month(self.policy, year_month, self._converter)

    async def update(self, new_budget: Any, new_currency: Any) -> BudgetPolicy:
        """
        Change budget and display currency.

        Raises:
            ValidationError: Non-numeric budget or unsupported currency
            StorageError: The authoritative write failed (local state untouched)
            RuntimeError: No user loaded yet
        """
        if self._owner is None:
            raise RuntimeError("BudgetManager.load() must be called before update()")
        owner = self._owner
        currency, budget = self._validator.validate_settings(new_currency, new_budget)

        updated, budget_changed = apply_settings_update(self.policy, currency, budget, self._clock())
        stored = await self._storage.put_settings(updated)

        # Only mirror locally once the store accepted the write
        self._owner = owner
        self._policy = stored
        self._converter.set_currency(stored.currency)

        logger.info(
            "settings_updated",
            owner=owner,
            currency=stored.currency.value,
            budget_changed=budget_changed,
            effective_from=stored.budget_effective_from,
        )
        if self._audit_logger:
            await self._audit_logger.log_settings_updated(
                owner=owner,
                currency=stored.currency.value,
                monthly_budget=str(stored.monthly_budget),
                effective_from=stored.budget_effective_from,
                budget_changed=budget_changed,
            )
        return stored

    def reset(self) -> None:
        """Forget the loaded user; back to defaults."""
        self._owner = None
        self._policy = None
