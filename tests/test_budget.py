"""Tests for the budget policy rules and BudgetManager."""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

from expense_tracker.engine.policy import budget_for_month, has_budget_for_month
from expense_tracker.errors import ValidationError
from expense_tracker.models.audit import AuditEventType
from expense_tracker.models.expense import BudgetPolicy, Currency
from expense_tracker.services.budget import BudgetManager, apply_settings_update
from expense_tracker.services.storage import StorageError


def _policy(budget="3000", effective_from="2026-01", currency=Currency.EUR, owner="alice"):
    return BudgetPolicy(
        owner=owner,
        currency=currency,
        monthly_budget=Decimal(budget),
        budget_effective_from=effective_from,
    )


@pytest.fixture
def manager(settings_storage, converter, validator, app_settings, clock, audit_logger):
    return BudgetManager(
        settings_storage,
        converter,
        validator=validator,
        settings=app_settings,
        clock=clock,
        audit_logger=audit_logger,
    )


class TestBudgetCoverage:
    """Tests for the pure coverage rules."""

    def test_months_before_effective_are_not_covered(self):
        policy = _policy(effective_from="2026-01")
        assert has_budget_for_month(policy, "2025-12") is False
        assert has_budget_for_month(policy, "2026-01") is True
        assert has_budget_for_month(policy, "2027-05") is True

    def test_coverage_is_monotonic(self):
        """Test once a month is covered every later month is too."""
        policy = _policy(effective_from="2026-03")
        months = [f"{year}-{month:02d}" for year in (2025, 2026, 2027) for month in range(1, 13)]

        covered = [has_budget_for_month(policy, m) for m in months]

        first = covered.index(True)
        assert months[first] == "2026-03"
        assert all(covered[first:])
        assert not any(covered[:first])

    def test_budget_for_uncovered_month_is_none(self):
        assert budget_for_month(_policy(effective_from="2026-02"), "2026-01") is None

    def test_budget_in_base_and_display_currency(self, converter):
        policy = _policy()
        assert budget_for_month(policy, "2026-02") == Decimal("3000.00")

        converter.set_currency("USD")
        assert budget_for_month(policy, "2026-02", converter) == Decimal("3240.00")


class TestApplySettingsUpdate:
    """Tests for the effective-from rule."""

    def test_budget_change_moves_effective_month(self):
        now = datetime(2026, 3, 15, tzinfo=timezone.utc)
        updated, changed = apply_settings_update(_policy(), Currency.EUR, Decimal("2000.00"), now)

        assert changed is True
        assert updated.budget_effective_from == "2026-03"
        assert updated.monthly_budget == Decimal("2000.00")
        assert updated.updated_at == now

    def test_currency_only_change_keeps_effective_month(self):
        now = datetime(2026, 3, 15, tzinfo=timezone.utc)
        updated, changed = apply_settings_update(_policy(), Currency.GBP, Decimal("3000.00"), now)

        assert changed is False
        assert updated.currency == Currency.GBP
        assert updated.budget_effective_from == "2026-01"


class TestBudgetManager:
    """Tests for the stateful budget service."""

    @pytest.mark.asyncio
    async def test_load_creates_defaults(self, manager, settings_storage, audit_storage):
        """Test a new user gets the default policy, persisted."""
        policy = await manager.load("alice")

        assert policy.currency == Currency.EUR
        assert policy.monthly_budget == Decimal("3000.00")
        assert policy.budget_effective_from == "2026-03"
        assert await settings_storage.get_settings("alice") == policy

        events = await audit_storage.get_events_by_owner("alice")
        assert [e.event_type for e in events] == [AuditEventType.SETTINGS_CREATED]

    @pytest.mark.asyncio
    async def test_load_adopts_stored_currency(self, manager, settings_storage, converter):
        await settings_storage.put_settings(_policy(currency=Currency.USD))

        await manager.load("alice")

        assert manager.owner == "alice"
        assert converter.currency == "USD"
        assert manager.budget_for_month("2026-02") == Decimal("3240.00")

    @pytest.mark.asyncio
    async def test_budget_change_scenario(self, manager, settings_storage):
        """Test lowering the budget on 2026-03-15."""
        await settings_storage.put_settings(_policy(budget="3000", effective_from="2026-01"))
        await manager.load("alice")
        assert manager.has_budget_for_month("2026-02") is True

        policy = await manager.update(2000, "EUR")

        assert policy.budget_effective_from == "2026-03"
        assert manager.budget_effective_from == "2026-03"
        # Only the latest budget is kept, so February is no longer covered
        assert manager.has_budget_for_month("2026-02") is False
        assert manager.budget_for_month("2026-02") is None
        assert manager.has_budget_for_month("2026-03") is True
        assert manager.budget_for_month("2026-03") == Decimal("2000.00")
        assert (await settings_storage.get_settings("alice")).monthly_budget == Decimal("2000.00")

    @pytest.mark.asyncio
    async def test_currency_change_keeps_effective_month(self, manager, settings_storage, converter):
        await settings_storage.put_settings(_policy(effective_from="2026-01"))
        await manager.load("alice")

        await manager.update(3000, "USD")

        assert manager.budget_effective_from == "2026-01"
        assert converter.currency == "USD"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("budget, currency", [
        ("3000", "EUR"),
        (True, "EUR"),
        (-1, "EUR"),
        (100, "XYZ"),
    ])
    async def test_invalid_update_touches_nothing(self, manager, settings_storage, budget, currency):
        """Test validation failures never reach the store."""
        await manager.load("alice")
        settings_storage.put_settings = AsyncMock()

        with pytest.raises(ValidationError):
            await manager.update(budget, currency)

        settings_storage.put_settings.assert_not_called()
        assert manager.policy.monthly_budget == Decimal("3000.00")

    @pytest.mark.asyncio
    async def test_failed_write_leaves_local_state(self, manager, settings_storage, converter):
        """Test the local policy is untouched when the store write fails."""
        await manager.load("alice")
        settings_storage.put_settings = AsyncMock(side_effect=StorageError("sheet unavailable"))

        with pytest.raises(StorageError):
            await manager.update(1500, "GBP")

        assert manager.policy.monthly_budget == Decimal("3000.00")
        assert manager.policy.currency == Currency.EUR
        assert converter.currency == "EUR"

    @pytest.mark.asyncio
    async def test_update_before_load_is_refused(self, manager, settings_storage, converter):
        """Test nothing is stored for a user that was never loaded."""
        with pytest.raises(RuntimeError):
            await manager.update(2000, "USD")

        assert await settings_storage.get_settings("anonymous") is None
        assert converter.currency == "EUR"
        assert manager.owner is None

    @pytest.mark.asyncio
    async def test_update_is_audited(self, manager, audit_storage):
        await manager.load("alice")
        await manager.update(2500, "EUR")

        events = await audit_storage.get_events_by_owner("alice")
        updated = [e for e in events if e.event_type == AuditEventType.SETTINGS_UPDATED]
        assert len(updated) == 1
        assert updated[0].details["budget_changed"] is True

    @pytest.mark.asyncio
    async def test_reset(self, manager):
        """Test reset drops the loaded user."""
        await manager.load("alice")
        await manager.update(100, "EUR")

        manager.reset()

        assert manager.owner is None
        assert manager.policy.owner == "anonymous"
        assert manager.policy.monthly_budget == Decimal("3000.00")
