"""
Stooq Adapter

Provides historical closing prices and FX rates via Stooq.com CSV
downloads. Free access, but Stooq enforces an undocumented daily hit
limit; once it is reached every download answers with a plain-text
"Exceeded the daily hits limit" body instead of CSV.

Symbol formats:
- US stocks: aapl.us
- Forex: usdtwd

Website: https://stooq.com/
"""
import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

import aiohttp
from loguru import logger

from investment_tracker.config import settings
from investment_tracker.core.enums import Market
from investment_tracker.data_providers.adapters.base import (
    BaseAdapter,
    DataNotAvailableError,
    HistoricalQuote,
    ProviderConfig,
    ProviderError,
    RateLimitError,
)


PROVIDER_NAME = "stooq"

DAILY_LIMIT_MARKER = "Exceeded the daily hits limit"
NO_DATA_MARKER = "No data"

# Symbol suffix and trading currency per market
STOOQ_MARKETS = {
    Market.US: (".us", "USD"),
}


def create_stooq_config() -> ProviderConfig:
    """Create configuration for Stooq adapter."""
    return ProviderConfig(
        name=PROVIDER_NAME,
        base_url=settings.STOOQ_BASE_URL,
        quote_url=settings.STOOQ_QUOTE_URL,
        timeout_seconds=settings.PROVIDER_TIMEOUT_SECONDS,
        lookback_days=settings.HISTORICAL_LOOKBACK_DAYS,
        supported_markets=list(STOOQ_MARKETS),
        supports_fx=True,
    )


def format_symbol(symbol: str, market: Market) -> str:
    """
    Format symbol with the Stooq market suffix.

    Raises:
        DataNotAvailableError: If the market is not covered
    """
    if market not in STOOQ_MARKETS:
        raise DataNotAvailableError(PROVIDER_NAME, symbol, f"{market.value} price")
    suffix, _ = STOOQ_MARKETS[market]
    return f"{symbol.lower()}{suffix}"


def check_body(content: str, key: str) -> None:
    """
    Translate Stooq's plain-text answers into provider errors.

    Raises:
        RateLimitError: Daily hit limit reached
        DataNotAvailableError: No data for the symbol or range
    """
    if DAILY_LIMIT_MARKER.lower() in content.lower():
        raise RateLimitError(PROVIDER_NAME)
    if not content.strip() or NO_DATA_MARKER.lower() in content.lower():
        raise DataNotAvailableError(PROVIDER_NAME, key, "historical")


def parse_daily_csv(content: str) -> list[tuple[date, Decimal]]:
    """
    Parse a Stooq daily CSV into (date, close) pairs sorted by date.

    Format: Date,Open,High,Low,Close[,Volume]
    """
    rows = []
    lines = content.strip().splitlines()
    for line in lines[1:]:
        parts = [p.strip() for p in line.split(",")]
        if len(parts) < 5 or not parts[0]:
            continue
        try:
            if "-" in parts[0]:
                day = datetime.strptime(parts[0], "%Y-%m-%d").date()
            else:
                day = datetime.strptime(parts[0], "%Y%m%d").date()
            close = Decimal(parts[4])
        except (ValueError, InvalidOperation) as e:
            logger.debug(f"Failed to parse Stooq line: {line} - {e}")
            continue
        if close > 0:
            rows.append((day, close))
    rows.sort(key=lambda r: r[0])
    return rows


def select_on_or_before(rows: list[tuple[date, Decimal]], target_date: date) -> Optional[tuple[date, Decimal]]:
    """Latest row dated on or before target_date."""
    candidates = [r for r in rows if r[0] <= target_date]
    return candidates[-1] if candidates else None


def parse_latest_csv(content: str) -> Optional[tuple[date, Decimal]]:
    """
    Parse a Stooq light-quote CSV.

    Format: Symbol,Date,Time,Open,High,Low,Close,Volume
    Unknown symbols answer with "N/D" fields.
    """
    lines = content.strip().splitlines()
    if len(lines) < 2:
        return None
    parts = [p.strip() for p in lines[1].split(",")]
    if len(parts) < 7 or "N/D" in (parts[1], parts[6]):
        return None
    try:
        return datetime.strptime(parts[1], "%Y-%m-%d").date(), Decimal(parts[6])
    except (ValueError, InvalidOperation):
        return None


class StooqAdapter(BaseAdapter):
    """
    Stooq.com data provider adapter.

    Features:
    - Free daily closes for stocks and currency pairs
    - Long historical periods

    Limitations:
    - Daily data only
    - One symbol per request
    - Daily hit limit surfaces as RateLimitError
    """

    def __init__(self, config: Optional[ProviderConfig] = None):
        super().__init__(config or create_stooq_config())
        self._session: Optional[aiohttp.ClientSession] = None

    async def initialize(self) -> None:
        """Initialize HTTP session."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
            logger.info("Stooq adapter initialized")

    async def close(self) -> None:
        """Close HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None
        logger.info("Stooq adapter closed")

    async def health_check(self) -> bool:
        """Check connectivity to Stooq."""
        try:
            await self._download(self.config.base_url, {"s": "aapl.us", "i": "d"}, "aapl.us")
            return True
        except ProviderError as e:
            logger.error(f"Stooq health check failed: {e}")
            return False

    async def _download(self, url: str, params: dict[str, str], key: str) -> str:
        if self._session is None:
            await self.initialize()

        try:
            start_time = datetime.now()
            async with self._session.get(url, params=params) as response:
                latency_ms = (datetime.now() - start_time).total_seconds() * 1000

                if response.status == 429:
                    raise self._record_rate_limit()
                if response.status == 404:
                    raise DataNotAvailableError(PROVIDER_NAME, key, "historical")
                if response.status != 200:
                    raise ProviderError(PROVIDER_NAME, f"Stooq returned status {response.status}")

                content = await response.text()
                if DAILY_LIMIT_MARKER.lower() in content.lower():
                    raise self._record_rate_limit()
                check_body(content, key)
                self._record_success(latency_ms)
                return content

        except aiohttp.ClientError as e:
            self._record_failure(e)
            raise ProviderError(PROVIDER_NAME, f"Connection error: {e}")
        except asyncio.TimeoutError as e:
            self._record_failure(e)
            raise ProviderError(PROVIDER_NAME, f"Request timed out after {self.config.timeout_seconds}s")

    async def _close_on_or_before(self, stooq_symbol: str, target_date: date) -> tuple[date, Decimal]:
        start = target_date - timedelta(days=self.config.lookback_days)
        params = {
            "s": stooq_symbol,
            "d1": start.strftime("%Y%m%d"),
            "d2": target_date.strftime("%Y%m%d"),
            "i": "d",
        }
        content = await self._download(self.config.base_url, params, stooq_symbol)
        row = select_on_or_before(parse_daily_csv(content), target_date)
        if row is None:
            raise DataNotAvailableError(PROVIDER_NAME, stooq_symbol, "historical")
        return row

    async def _latest_close(self, stooq_symbol: str) -> tuple[date, Decimal]:
        params = {"s": stooq_symbol, "f": "sd2t2ohlcv", "h": "", "e": "csv"}
        content = await self._download(self.config.quote_url, params, stooq_symbol)
        row = parse_latest_csv(content)
        if row is None:
            raise DataNotAvailableError(PROVIDER_NAME, stooq_symbol, "quote")
        return row

    # ==================== Prices ====================

    async def get_historical_price(self, symbol: str, market: Market, target_date: date) -> HistoricalQuote:
        stooq_symbol = format_symbol(symbol, market)
        actual_date, close = await self._close_on_or_before(stooq_symbol, target_date)
        return HistoricalQuote(
            key=symbol.upper(),
            requested_date=target_date,
            value=close,
            actual_date=actual_date,
            provider=PROVIDER_NAME,
            currency=STOOQ_MARKETS[market][1],
        )

    async def get_latest_price(self, symbol: str, market: Market) -> HistoricalQuote:
        stooq_symbol = format_symbol(symbol, market)
        actual_date, close = await self._latest_close(stooq_symbol)
        return HistoricalQuote(
            key=symbol.upper(),
            requested_date=date.today(),
            value=close,
            actual_date=actual_date,
            provider=PROVIDER_NAME,
            currency=STOOQ_MARKETS[market][1],
        )

    # ==================== Rates ====================

    async def get_historical_rate(self, from_currency: str, to_currency: str, target_date: date) -> HistoricalQuote:
        pair = f"{from_currency}{to_currency}".upper()
        actual_date, close = await self._close_on_or_before(pair.lower(), target_date)
        return HistoricalQuote(
            key=pair,
            requested_date=target_date,
            value=close,
            actual_date=actual_date,
            provider=PROVIDER_NAME,
            currency=to_currency.upper(),
        )

    async def get_latest_rate(self, from_currency: str, to_currency: str) -> HistoricalQuote:
        pair = f"{from_currency}{to_currency}".upper()
        actual_date, close = await self._latest_close(pair.lower())
        return HistoricalQuote(
            key=pair,
            requested_date=date.today(),
            value=close,
            actual_date=actual_date,
            provider=PROVIDER_NAME,
            currency=to_currency.upper(),
        )
