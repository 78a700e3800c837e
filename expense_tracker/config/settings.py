"""
Configuration Management for Expense Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every tunable used by the engine (base currency, default budget, rate feed
URLs, staleness window) lives in one place and is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    expenses_sheet_name: str = Field(
        default="Expenses",
        description="Name of the sheet for expense records"
    )
    settings_sheet_name: str = Field(
        default="Settings",
        description="Name of the sheet for per-user budget settings"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class ExchangeRateSettings(BaseSettings):
    """Exchange rate feed configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RATES_",
        extra="ignore"
    )

    primary_url: str = Field(
        default="https://api.frankfurter.app/latest?from={base}",
        description="Primary feed URL, anchored to the base currency ({base} is substituted)"
    )
    fallback_url: str = Field(
        default="https://open.er-api.com/v6/latest/{anchor}",
        description="Fallback feed URL, anchored to fallback_anchor ({anchor} is substituted)"
    )
    fallback_anchor: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency the fallback feed expresses its rates against"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for a single feed request"
    )
    retry_attempts: int = Field(
        default=2,
        ge=1,
        le=5,
        description="Attempts per feed before moving on to the next source"
    )
    staleness_hours: int = Field(
        default=24,
        ge=1,
        description="Rates older than this are refreshed"
    )
    cache_path: str = Field(
        default=".cache/exchange_rates.json",
        description="Local file holding the last successfully fetched rate table"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="EXPENSE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Budget defaults for new users
    default_monthly_budget: float = Field(
        default=3000.0,
        ge=0,
        description="Budget assigned to a user on first settings access"
    )

    # Dashboard
    recent_expenses_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="How many records the recent-expenses list shows"
    )
    max_expense_amount: float = Field(
        default=1000000.0,
        description="Maximum accepted amount for a single expense"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def rates(self) -> ExchangeRateSettings:
        return ExchangeRateSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "rates", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
