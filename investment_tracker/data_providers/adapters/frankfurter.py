"""
Frankfurter Adapter

Provides historical and latest forex rates from the Frankfurter API
(European Central Bank reference rates). Free, no API key required.

Endpoints:
- /v1/latest - Latest rates
- /v1/{date} - Rates for a specific date (the ECB publishes on business
  days only; a weekend or holiday answers with the preceding business day)

TWD is not among the ECB reference currencies, so TWD pairs must come
from another provider.
"""
import asyncio
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

import aiohttp
from loguru import logger

from investment_tracker.config import settings
from investment_tracker.data_providers.adapters.base import (
    BaseAdapter,
    DataNotAvailableError,
    HistoricalQuote,
    ProviderConfig,
    ProviderError,
)


PROVIDER_NAME = "frankfurter"

SUPPORTED_CURRENCIES = {
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "SEK", "NOK", "DKK", "PLN", "CZK", "HUF", "RON", "BGN",
    "TRY", "ILS", "ZAR", "MXN", "BRL", "SGD", "HKD", "KRW",
    "CNY", "INR", "IDR", "MYR", "PHP", "THB",
}


def create_frankfurter_config() -> ProviderConfig:
    """Create configuration for Frankfurter adapter."""
    return ProviderConfig(
        name=PROVIDER_NAME,
        base_url=settings.FRANKFURTER_BASE_URL,
        timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS,
        supported_markets=[],
        supports_fx=True,
        supports_prices=False,
    )


def parse_rate_response(
    data: dict[str, Any],
    from_currency: str,
    to_currency: str,
    requested_date: date,
) -> HistoricalQuote:
    """
    Normalize a Frankfurter rates payload.

    Raises:
        DataNotAvailableError: If the target currency is absent
    """
    pair = f"{from_currency}{to_currency}"
    rate = data.get("rates", {}).get(to_currency)
    if rate is None:
        raise DataNotAvailableError(PROVIDER_NAME, pair, "rate")

    actual = data.get("date")
    actual_date = datetime.strptime(actual, "%Y-%m-%d").date() if actual else requested_date

    return HistoricalQuote(
        key=pair,
        requested_date=requested_date,
        value=Decimal(str(rate)),
        actual_date=actual_date,
        provider=PROVIDER_NAME,
        currency=to_currency,
    )


class FrankfurterAdapter(BaseAdapter):
    """Adapter for Frankfurter API (ECB forex data)."""

    def __init__(self, config: Optional[ProviderConfig] = None):
        super().__init__(config or create_frankfurter_config())
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        """Initialize HTTP session."""
        if not self._session:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            logger.info("Frankfurter adapter initialized")

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
        logger.info("Frankfurter adapter closed")

    async def health_check(self) -> bool:
        """Check connectivity."""
        try:
            await self._get_json("latest", {"base": "USD", "symbols": "EUR"}, "USDEUR")
            return True
        except ProviderError as e:
            logger.error(f"Frankfurter health check failed: {e}")
            return False

    def _check_pair(self, from_currency: str, to_currency: str) -> tuple[str, str]:
        base = from_currency.upper()
        quote = to_currency.upper()
        if base not in SUPPORTED_CURRENCIES or quote not in SUPPORTED_CURRENCIES:
            raise DataNotAvailableError(PROVIDER_NAME, f"{base}{quote}", "rate")
        return base, quote

    async def _get_json(self, path: str, params: dict[str, str], key: str) -> dict[str, Any]:
        if self._session is None:
            await self.initialize()

        url = f"{self.config.base_url}/{path}"
        try:
            start_time = datetime.now()
            async with self._session.get(url, params=params) as response:
                latency_ms = (datetime.now() - start_time).total_seconds() * 1000

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise self._record_rate_limit(float(retry_after) if retry_after else None)
                if response.status in (400, 404, 422):
                    raise DataNotAvailableError(PROVIDER_NAME, key, "rate")
                if response.status != 200:
                    raise ProviderError(PROVIDER_NAME, f"API error {response.status}")

                data = await response.json()
                self._record_success(latency_ms)
                return data

        except aiohttp.ClientError as e:
            self._record_failure(e)
            raise ProviderError(PROVIDER_NAME, f"Connection error: {e}")
        except asyncio.TimeoutError as e:
            self._record_failure(e)
            raise ProviderError(PROVIDER_NAME, f"Request timed out after {self.config.timeout_seconds}s")

    # ==================== Rates ====================

    async def get_historical_rate(self, from_currency: str, to_currency: str, target_date: date) -> HistoricalQuote:
        """Rate published on target_date or the preceding business day."""
        base, quote = self._check_pair(from_currency, to_currency)
        data = await self._get_json(
            target_date.isoformat(),
            {"base": base, "symbols": quote},
            f"{base}{quote}",
        )
        return parse_rate_response(data, base, quote, target_date)

    async def get_latest_rate(self, from_currency: str, to_currency: str) -> HistoricalQuote:
        base, quote = self._check_pair(from_currency, to_currency)
        data = await self._get_json("latest", {"base": base, "symbols": quote}, f"{base}{quote}")
        return parse_rate_response(data, base, quote, date.today())
