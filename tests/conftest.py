"""
Shared fixtures.

No test talks to the network or to Google Sheets: rate feeds are faked,
storage is in-memory, and the clock is pinned to 2026-03-15 12:00 UTC.
"""

from datetime import datetime, timedelta, timezone

import pytest

from expense_tracker.audit import AuditLogger
from expense_tracker.config import AppSettings, ExchangeRateSettings
from expense_tracker.orchestrator import ExpenseApi, ExpenseSession
from expense_tracker.services.currency import CurrencyConverter, RateCache
from expense_tracker.services.storage import (
    MemoryAuditStorage,
    MemoryExpenseStorage,
    MemorySettingsStorage,
)
from expense_tracker.validation import ExpenseValidator


FIXED_NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeRateFeed:
    """Stands in for RateFeedClient; rates are already anchored to EUR."""

    def __init__(self):
        self.primary_rates = {"EUR": 1.0, "USD": 1.10, "GBP": 0.85, "JPY": 160.0}
        self.fallback_rates = {"EUR": 1.0, "USD": 1.12, "GBP": 0.84, "JPY": 158.0}
        self.primary_error = None
        self.fallback_error = None
        self.calls = []

    def fetch_primary(self, base):
        self.calls.append(("primary", base))
        if self.primary_error:
            raise self.primary_error
        return dict(self.primary_rates)

    def fetch_fallback(self, base):
        self.calls.append(("fallback", base))
        if self.fallback_error:
            raise self.fallback_error
        return dict(self.fallback_rates)


@pytest.fixture
def fixed_now():
    return FIXED_NOW


@pytest.fixture
def clock():
    return FakeClock(FIXED_NOW)


@pytest.fixture
def app_settings():
    return AppSettings(_env_file=None)


@pytest.fixture
def rate_settings(tmp_path):
    return ExchangeRateSettings(
        cache_path=str(tmp_path / "exchange_rates.json"),
        retry_attempts=1,
    )


@pytest.fixture
def rate_cache(rate_settings):
    return RateCache(rate_settings.cache_path)


@pytest.fixture
def fake_feed():
    return FakeRateFeed()


@pytest.fixture
def converter(fake_feed, rate_cache, rate_settings, clock):
    return CurrencyConverter(
        feed=fake_feed,
        cache=rate_cache,
        settings=rate_settings,
        clock=clock,
    )


@pytest.fixture
def validator(app_settings):
    return ExpenseValidator(app_settings)


@pytest.fixture
def expense_storage():
    return MemoryExpenseStorage()


@pytest.fixture
def settings_storage():
    return MemorySettingsStorage()


@pytest.fixture
def audit_storage():
    return MemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def session(expense_storage, settings_storage, converter, validator, app_settings, clock, audit_logger):
    return ExpenseSession(
        expense_storage,
        settings_storage,
        converter=converter,
        validator=validator,
        app_settings=app_settings,
        clock=clock,
        audit_logger=audit_logger,
    )


@pytest.fixture
def api(expense_storage, settings_storage, validator, app_settings, clock, audit_logger):
    return ExpenseApi(
        expense_storage,
        settings_storage,
        validator=validator,
        app_settings=app_settings,
        clock=clock,
        audit_logger=audit_logger,
    )
