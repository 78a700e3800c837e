"""
Integration tests for the session and the server-side API.

Both run against in-memory stores with the fake rate feed from conftest
(primary feed: 1 EUR = 1.10 USD).
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from expense_tracker.errors import AuthorizationError, NotFoundError, ValidationError
from expense_tracker.models.audit import AuditEventType
from expense_tracker.models.expense import BudgetPolicy, Currency, ExpenseCategory, ExpenseCreate
from expense_tracker.models.rates import ExchangeRateTable, RateSource
from expense_tracker.orchestrator import ExpenseApi, ExpenseSession, create_app_components
from expense_tracker.services.currency import RateFeedError


def _payload(name="Lidl", amount=86.30, category="groceries", day="2026-01-21"):
    return {"name": name, "amount": amount, "category": category, "date": day}


async def _event_types(audit_storage, owner):
    events = await audit_storage.get_events_by_owner(owner)
    return {e.event_type for e in events}


class TestExpenseSession:
    """Tests for the client-side session."""

    @pytest.mark.asyncio
    async def test_start_loads_everything(self, session, expense_storage, settings_storage, fake_feed):
        await expense_storage.create_expense("alice", ExpenseCreate.model_validate(_payload()))

        await session.start("alice")

        assert session.owner == "alice"
        assert len(session.mirror) == 1
        assert session.budget.policy.owner == "alice"
        assert await settings_storage.get_settings("alice") is not None
        assert fake_feed.calls == [("primary", "EUR")]
        assert session.converter.table.source == RateSource.PRIMARY

    @pytest.mark.asyncio
    async def test_fresh_cache_skips_refresh(self, session, rate_cache, fake_feed, fixed_now):
        rate_cache.save(ExchangeRateTable(rates={"USD": 1.2}, last_updated=fixed_now))

        await session.start("alice")

        assert fake_feed.calls == []
        assert session.converter.table.source == RateSource.CACHE
        assert session.converter.table.rates["USD"] == 1.2

    @pytest.mark.asyncio
    async def test_feed_outage_does_not_block_start(self, session, fake_feed):
        fake_feed.primary_error = RateFeedError("down")
        fake_feed.fallback_error = RateFeedError("down too")

        await session.start("alice")

        assert session.owner == "alice"
        assert session.converter.has_error is True

    @pytest.mark.asyncio
    async def test_add_expense_in_display_currency(self, session, expense_storage):
        """Test amounts typed in USD are stored in EUR."""
        await session.start("alice")
        await session.update_settings(3000, "USD")

        record = await session.add_expense(_payload(amount=11.00, day="2026-03-02"))

        assert record.amount == Decimal("10.00")
        stored = await expense_storage.get_expense(record.id)
        assert stored.amount == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_monthly_summary_in_display_currency(self, session):
        await session.start("alice")
        await session.update_settings(3000, "USD")
        await session.add_expense(_payload(amount=11.00, day="2026-03-02"))

        summary = session.monthly_summary()

        assert summary.month == "2026-03"
        assert summary.currency == "USD"
        assert summary.total == Decimal("11.00")
        assert summary.has_budget is True
        assert summary.budget_remaining == Decimal("3289.00")

    @pytest.mark.asyncio
    async def test_update_expense_converts_amount(self, session):
        await session.start("alice")
        await session.update_settings(3000, "USD")
        record = await session.add_expense(_payload(amount=11.00))

        updated = await session.update_expense(record.id, {"amount": 22.00})

        assert updated.amount == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_owner_switch_resets_state(self, session, expense_storage):
        """Test nothing of one user's session leaks into the next."""
        await expense_storage.create_expense("bob", ExpenseCreate.model_validate(_payload(name="Bob's")))
        await session.start("alice")
        await session.update_settings(1200, "GBP")
        await session.add_expense(_payload(name="Alice's"))

        await session.start("bob")

        assert session.owner == "bob"
        assert session.converter.currency == "EUR"
        assert session.budget.policy.owner == "bob"
        assert session.budget.policy.monthly_budget == Decimal("3000.00")
        assert [r.name for r in session.mirror.records] == ["Bob's"]

    @pytest.mark.asyncio
    async def test_end_resets_to_defaults(self, session, audit_storage):
        await session.start("alice")
        await session.update_settings(3000, "JPY")

        await session.end()

        assert session.owner is None
        assert session.converter.currency == "EUR"
        assert len(session.mirror) == 0
        assert AuditEventType.SESSION_ENDED in await _event_types(audit_storage, "alice")

    @pytest.mark.asyncio
    async def test_foreign_record_is_denied_and_audited(self, session, expense_storage, audit_storage):
        foreign = await expense_storage.create_expense("bob", ExpenseCreate.model_validate(_payload()))
        await session.start("alice")

        with pytest.raises(AuthorizationError):
            await session.delete_expense(foreign.id)

        assert AuditEventType.ACCESS_DENIED in await _event_types(audit_storage, "alice")

    @pytest.mark.asyncio
    async def test_invalid_input_is_audited(self, session, audit_storage):
        await session.start("alice")

        with pytest.raises(ValidationError):
            await session.add_expense({"name": "No amount"})

        assert AuditEventType.VALIDATION_FAILED in await _event_types(audit_storage, "alice")

    @pytest.mark.asyncio
    async def test_operations_need_a_session(self, session):
        with pytest.raises(RuntimeError):
            await session.add_expense(_payload())


class TestExpenseApi:
    """Tests for the server-side surface."""

    @pytest.mark.asyncio
    async def test_create_ignores_client_identity(self, api):
        record = await api.create_expense("alice", dict(_payload(), userId="mallory", id=str(uuid4())))

        assert record.owner == "alice"

    @pytest.mark.asyncio
    async def test_list_by_month(self, api):
        await api.create_expense("alice", _payload(day="2026-01-21"))
        await api.create_expense("alice", _payload(day="2026-01-24"))
        await api.create_expense("alice", _payload(day="2026-02-01"))

        january = await api.list_expenses("alice", year=2026, month=1)
        everything = await api.list_expenses("alice")

        assert [r.expense_date.day for r in january] == [24, 21]
        assert len(everything) == 3

    @pytest.mark.asyncio
    async def test_list_with_bad_month(self, api):
        with pytest.raises(ValidationError):
            await api.list_expenses("alice", year=2026, month=13)

    @pytest.mark.asyncio
    async def test_update_and_delete_ownership(self, api, audit_storage):
        record = await api.create_expense("alice", _payload())

        with pytest.raises(AuthorizationError):
            await api.update_expense("mallory", record.id, {"amount": 1})
        with pytest.raises(AuthorizationError):
            await api.delete_expense("mallory", record.id)
        with pytest.raises(NotFoundError):
            await api.delete_expense("alice", uuid4())

        assert AuditEventType.ACCESS_DENIED in await _event_types(audit_storage, "mallory")

        updated = await api.update_expense("alice", record.id, {"category": "dining"})
        assert updated.category == ExpenseCategory.DINING
        assert await api.delete_expense("alice", record.id) is True

    @pytest.mark.asyncio
    async def test_get_settings_creates_once(self, api, settings_storage):
        first = await api.get_settings("alice")
        second = await api.get_settings("alice")

        assert first.budget_effective_from == "2026-03"
        assert first.created_at == second.created_at
        assert await settings_storage.get_settings("alice") == first

    @pytest.mark.asyncio
    async def test_put_settings_effective_month(self, api, settings_storage):
        """Test the effective month only moves when the amount changes."""
        await settings_storage.put_settings(BudgetPolicy(
            owner="alice", monthly_budget=3000, budget_effective_from="2026-01",
        ))

        same_budget = await api.put_settings("alice", "USD", 3000)
        assert same_budget.currency == Currency.USD
        assert same_budget.budget_effective_from == "2026-01"

        new_budget = await api.put_settings("alice", "USD", 2000)
        assert new_budget.budget_effective_from == "2026-03"

    @pytest.mark.asyncio
    async def test_put_settings_rejects_string_budget(self, api, settings_storage):
        with pytest.raises(ValidationError):
            await api.put_settings("alice", "EUR", "2000")

        assert await settings_storage.get_settings("alice") is None

    @pytest.mark.asyncio
    async def test_monthly_summary_is_in_base_currency(self, api):
        await api.put_settings("alice", "USD", 3000)
        await api.create_expense("alice", _payload(name="Cafe", amount=8.75, category="dining", day="2026-03-04"))
        await api.create_expense("alice", _payload(amount=86.30, day="2026-03-01"))

        summary = await api.monthly_summary("alice", "2026-03")

        assert summary.currency == "EUR"
        assert summary.total == Decimal("95.05")
        assert summary.change == 100.0
        assert summary.budget_remaining == Decimal("2904.95")

    @pytest.mark.asyncio
    async def test_summary_without_settings_uses_defaults(self, api, settings_storage):
        summary = await api.monthly_summary("alice", "2026-03")

        assert summary.has_budget is True
        assert summary.budget_remaining == Decimal("3000.00")
        assert await settings_storage.get_settings("alice") is None

    @pytest.mark.asyncio
    async def test_export(self, api, audit_storage):
        await api.get_settings("alice")
        await api.create_expense("alice", _payload())
        await api.create_expense("bob", _payload())

        export = await api.export_data("alice")

        assert export.count == 1
        assert export.settings.owner == "alice"
        assert export.model_dump(by_alias=True, mode="json")["userId"] == "alice"
        assert AuditEventType.DATA_EXPORTED in await _event_types(audit_storage, "alice")


class TestAppFactory:
    """Tests for create_app_components."""

    def test_in_memory_components(self):
        api, session, sheets_client = create_app_components(use_sheets=False)

        assert isinstance(api, ExpenseApi)
        assert isinstance(session, ExpenseSession)
        assert sheets_client is None

    def test_unconfigured_sheets_fall_back_to_memory(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        api, session, sheets_client = create_app_components(use_sheets=True)

        assert sheets_client is None
        assert isinstance(api, ExpenseApi)
