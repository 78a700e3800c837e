"""
Currency Conversion Unit

Holds the current rate table and the user's display currency, and converts
amounts between the base (storage) currency and the display currency.

GUARANTEES:
- Conversion never raises. Missing/zero input converts to 0, and a
  missing rate for the display currency means identity conversion.
- refresh_rates() never raises. Failures are recorded on the converter
  (last_error / has_error) and the previous table stays installed.
- Results are rounded half-up to the cent.

Historical months are converted with the current rate at read time; rates
at the time of the expense are not kept.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Optional, Union

import structlog

from expense_tracker.config import ExchangeRateSettings, get_settings
from expense_tracker.models.expense import BASE_CURRENCY, CENT, Currency
from expense_tracker.models.rates import ExchangeRateTable, RateSource
from expense_tracker.services.currency.cache import RateCache
from expense_tracker.services.currency.feeds import RateFeedClient


logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")


def _to_decimal(amount: Any) -> Optional[Decimal]:
    """Best-effort Decimal for conversion input; None when unusable."""
    if amount is None or isinstance(amount, bool):
        return None
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


class CurrencyConverter:
    """
    Converts between the base currency and one display currency.

    One converter belongs to one session; reset() returns it to the
    state of a freshly created converter (minus the durable cache).
    """

    def __init__(
        self,
        currency: Union[str, Currency] = BASE_CURRENCY,
        feed: Optional[RateFeedClient] = None,
        cache: Optional[RateCache] = None,
        settings: Optional[ExchangeRateSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        audit_logger=None,
    ):
        """
        Initialize converter.

        Args:
            currency: Initial display currency code
            feed: Rate feed client (built from settings if None)
            cache: Durable rate cache (built from settings.cache_path if None)
            settings: Exchange rate settings
            clock: Returns the current UTC time, injectable for tests
            audit_logger: Optional AuditLogger for refresh outcomes
        """
        self._settings = settings or get_settings().rates
        self._feed = feed or RateFeedClient(self._settings)
        self._cache = cache if cache is not None else RateCache(self._settings.cache_path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._audit_logger = audit_logger

        self._table = ExchangeRateTable.defaults()
        self._currency = BASE_CURRENCY.value
        self.last_error: Optional[str] = None

        self.set_currency(currency)
        self.load_cached()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def currency(self) -> str:
        """Display currency code."""
        return self._currency

    @property
    def base_currency(self) -> str:
        return self._table.base

    @property
    def table(self) -> ExchangeRateTable:
        return self._table.model_copy(deep=True)

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._table.last_updated

    @property
    def has_error(self) -> bool:
        return self.last_error is not None

    def set_currency(self, currency: Union[str, Currency]) -> None:
        """
        Switch the display currency.

        Any code is accepted here; which codes a user may pick is the
        budget service's concern.
        """
        code = currency.value if isinstance(currency, Currency) else str(currency)
        self._currency = code.strip().upper()

    def rate(self) -> float:
        """Units of display currency per base unit; 1.0 when unknown."""
        rate = self._table.rate_for(self._currency)
        if not rate or rate <= 0:
            logger.debug("rate_missing_identity_fallback", currency=self._currency)
            return 1.0
        return rate

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    def convert_from_base(self, amount: Any) -> Decimal:
        """Base-currency amount -> display currency, rounded to the cent."""
        value = _to_decimal(amount)
        if not value:
            return ZERO
        converted = value * Decimal(str(self.rate()))
        return converted.quantize(CENT, rounding=ROUND_HALF_UP)

    def convert_to_base(self, amount: Any) -> Decimal:
        """Display-currency amount -> base currency, rounded to the cent."""
        value = _to_decimal(amount)
        if not value:
            return ZERO
        converted = value / Decimal(str(self.rate()))
        return converted.quantize(CENT, rounding=ROUND_HALF_UP)

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    def should_refresh(self) -> bool:
        """True if never refreshed, or the last refresh is older than the staleness window."""
        if self._table.last_updated is None:
            return True
        age = self._clock() - self._table.last_updated
        return age > timedelta(hours=self._settings.staleness_hours)

    async def refresh_rates(self) -> bool:
        """
        Fetch fresh rates: primary feed first, fallback feed second.

        Returns:
            True if a new table was installed, False if both feeds failed
            (the previous table is kept and last_error is set)
        """
        base = self._table.base
        errors = []

        sources = (
            (RateSource.PRIMARY, self._feed.fetch_primary),
            (RateSource.FALLBACK, self._feed.fetch_fallback),
        )
        for source, fetch in sources:
            try:
                fetched = await asyncio.to_thread(fetch, base)
            except Exception as e:
                logger.warning("rate_feed_failed", source=source.value, error=str(e))
                errors.append(f"{source.value}: {e}")
                if self._audit_logger:
                    await self._audit_logger.log_external_service_error(
                        service=f"{source.value}_rate_feed",
                        error_message=str(e),
                    )
                continue

            self._install(fetched, source)
            if self._audit_logger:
                await self._audit_logger.log_rates_refreshed(
                    source=source.value,
                    currency_count=len(self._table.rates),
                )
            return True

        self.last_error = "All exchange rate feeds failed (" + "; ".join(errors) + ")"
        logger.error("rate_refresh_failed", error=self.last_error)
        if self._audit_logger:
            await self._audit_logger.log_rates_refresh_failed(self.last_error)
        return False

    def _install(self, fetched: dict[str, float], source: RateSource) -> None:
        # Codes the feed did not return keep their previous value
        rates = {**self._table.rates, **fetched}
        self._table = ExchangeRateTable(
            base=self._table.base,
            rates=rates,
            last_updated=self._clock(),
            source=source,
        )
        self.last_error = None
        self._cache.save(self._table)
        logger.info("rates_installed", source=source.value, count=len(rates))

    def load_cached(self) -> bool:
        """Install the durably cached table if there is one for our base."""
        cached = self._cache.load()
        if cached is None or cached.base != self._table.base:
            return False
        self._table = cached.model_copy(update={"source": RateSource.CACHE})
        return True

    def reset(self) -> None:
        """Back to default rates and the base display currency."""
        self._table = ExchangeRateTable.defaults()
        self._currency = BASE_CURRENCY.value
        self.last_error = None
