"""
Exchange Rate Models

A rate table maps currency code -> units of that currency per one unit of
the base currency. The base currency always maps to exactly 1.0.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from expense_tracker.models.expense import BASE_CURRENCY


# Used until the first refresh (or cache load) succeeds
DEFAULT_RATES: dict[str, float] = {
    "EUR": 1.0,
    "USD": 1.08,
    "GBP": 0.86,
    "JPY": 162.0,
}


class RateSource(str, Enum):
    """Where the currently installed rates came from."""
    DEFAULT = "default"
    CACHE = "cache"
    PRIMARY = "primary"
    FALLBACK = "fallback"


class ExchangeRateTable(BaseModel):
    """Rates anchored to the base currency."""

    base: str = Field(default=BASE_CURRENCY.value, min_length=3, max_length=3)
    rates: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_RATES))
    last_updated: Optional[datetime] = Field(
        default=None,
        description="When the last successful refresh completed"
    )
    source: RateSource = RateSource.DEFAULT

    @model_validator(mode='after')
    def pin_base_rate(self) -> 'ExchangeRateTable':
        """The base currency is always exactly 1.0."""
        self.rates[self.base] = 1.0
        return self

    def rate_for(self, code: str) -> Optional[float]:
        return self.rates.get(code)

    @classmethod
    def defaults(cls) -> "ExchangeRateTable":
        return cls()
