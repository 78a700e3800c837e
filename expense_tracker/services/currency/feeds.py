"""
Exchange Rate Feeds

Two external sources, tried in order:

PRIMARY - anchored to our base currency:
    {"base": "EUR", "rates": {"USD": 1.08, "GBP": 0.86, ...}}

FALLBACK - anchored to a different currency (USD by default):
    {"result": "success", "base_code": "USD", "rates": {"EUR": 0.92, ...}}

The fallback's rates are re-anchored to the base currency before anyone
sees them: invert the fallback's rate for the base currency, then multiply
every other rate through by it.

Every failure mode (network error, non-2xx status, malformed body) is
raised as RateFeedError so callers only handle one type.
"""

from typing import Any, Optional

import requests
import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from expense_tracker.config import ExchangeRateSettings, get_settings
from expense_tracker.errors import UpstreamError


logger = structlog.get_logger(__name__)


class RateFeedError(UpstreamError):
    """A rate feed could not be fetched or parsed."""
    pass


def parse_rates(raw: Any) -> dict[str, float]:
    """
    Keep only well-formed entries: 3-letter code -> positive number.

    Raises:
        RateFeedError: If nothing usable is left
    """
    if not isinstance(raw, dict):
        raise RateFeedError("Rate feed response has no 'rates' mapping")

    rates = {}
    for code, value in raw.items():
        if not isinstance(code, str) or len(code) != 3:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if value <= 0:
            continue
        rates[code.upper()] = float(value)

    if not rates:
        raise RateFeedError("Rate feed response contained no usable rates")
    return rates


def reanchor(rates: dict[str, float], anchor: str, base: str) -> dict[str, float]:
    """
    Re-express rates quoted against `anchor` as rates against `base`.

    With USD-anchored rates {"USD": 1.0, "EUR": 0.92} and base EUR the
    result is {"USD": 1/0.92, "EUR": 1.0}.

    Raises:
        RateFeedError: If the feed has no usable rate for the base currency
    """
    rates = dict(rates)
    rates.setdefault(anchor, 1.0)

    base_rate = rates.get(base)
    if not base_rate:
        raise RateFeedError(f"Fallback feed has no rate for base currency {base}")

    factor = 1.0 / base_rate
    reanchored = {code: rate * factor for code, rate in rates.items()}
    reanchored[base] = 1.0
    return reanchored


class RateFeedClient:
    """
    Fetches rate tables over HTTP.

    Requests are synchronous; the converter runs them off the event loop.
    Each feed is retried a few times before the caller moves on.
    """

    def __init__(
        self,
        settings: Optional[ExchangeRateSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        self._settings = settings or get_settings().rates
        self._session = session or requests.Session()

    def _get_json(self, url: str) -> Any:
        retrying = Retrying(
            stop=stop_after_attempt(self._settings.retry_attempts),
            wait=wait_exponential(multiplier=0.5, max=4),
            retry=retry_if_exception_type((requests.RequestException, ValueError)),
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    response = self._session.get(
                        url,
                        timeout=self._settings.request_timeout_seconds,
                    )
                    response.raise_for_status()
                    return response.json()
        except requests.RequestException as e:
            raise RateFeedError(f"Request to {url} failed: {e}")
        except ValueError as e:
            raise RateFeedError(f"Invalid JSON from {url}: {e}")

    def fetch_primary(self, base: str) -> dict[str, float]:
        """Rates anchored to base, straight from the primary feed."""
        url = self._settings.primary_url.format(base=base)
        data = self._get_json(url)
        if not isinstance(data, dict):
            raise RateFeedError("Primary feed returned a non-object body")

        feed_base = str(data.get("base") or base).upper()
        if feed_base != base:
            raise RateFeedError(f"Primary feed is anchored to {feed_base}, expected {base}")

        rates = parse_rates(data.get("rates"))
        rates[base] = 1.0
        logger.info("rate_feed_fetched", source="primary", count=len(rates))
        return rates

    def fetch_fallback(self, base: str) -> dict[str, float]:
        """Rates from the fallback feed, re-anchored to base."""
        anchor = self._settings.fallback_anchor.upper()
        url = self._settings.fallback_url.format(anchor=anchor)
        data = self._get_json(url)
        if not isinstance(data, dict):
            raise RateFeedError("Fallback feed returned a non-object body")

        result = data.get("result")
        if result is not None and result != "success":
            raise RateFeedError(f"Fallback feed reported {result!r}")

        feed_anchor = str(data.get("base_code") or data.get("base") or anchor).upper()
        rates = reanchor(parse_rates(data.get("rates")), feed_anchor, base)
        logger.info("rate_feed_fetched", source="fallback", anchor=feed_anchor, count=len(rates))
        return rates
