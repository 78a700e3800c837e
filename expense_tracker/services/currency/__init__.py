"""Currency conversion package."""

from expense_tracker.services.currency.cache import RateCache
from expense_tracker.services.currency.converter import CurrencyConverter
from expense_tracker.services.currency.feeds import (
    RateFeedClient,
    RateFeedError,
    parse_rates,
    reanchor,
)

__all__ = [
    "CurrencyConverter",
    "RateCache",
    "RateFeedClient",
    "RateFeedError",
    "parse_rates",
    "reanchor",
]
