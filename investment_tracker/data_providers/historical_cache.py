"""
Historical Market Data Cache

Single point through which every historical price and exchange-rate
lookup passes. Lookups return a tagged ``MarketDataResult``
(OK / UNAVAILABLE / RATE_LIMITED) so the caller decides explicitly whether
to back off, report missing data or use the value.

Layers, checked in order for a past date:
1. Persisted entry for (kind, key, date); an unavailable marker
   short-circuits to UNAVAILABLE without any upstream call
2. Providers, in configured order
3. First success is persisted write-once; a definitive "no data" from
   every provider persists an unavailable marker

Rate limiting and transient failures are never persisted. Dates in the
still-open period (today or later) bypass the cache entirely and go to the
live-quote providers.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence
from zoneinfo import ZoneInfo

from loguru import logger

from investment_tracker.config import settings
from investment_tracker.core.enums import CacheKind, Market
from investment_tracker.core.interfaces import HistoricalCacheRepository
from investment_tracker.core.models import HistoricalCacheEntry
from investment_tracker.data_providers.adapters.base import (
    BaseAdapter,
    DataNotAvailableError,
    HistoricalQuote,
    ProviderError,
    RateLimitError,
)
from investment_tracker.utils.exceptions import CacheEntryExistsError


MANUAL_SOURCE = "manual"
IDENTITY_SOURCE = "identity"
NO_PROVIDER_SOURCE = "none"


class LookupStatus(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class MarketDataResult:
    """Outcome of a cache lookup."""
    status: LookupStatus
    kind: CacheKind
    key: str
    requested_date: date
    value: Optional[Decimal] = None
    actual_date: Optional[date] = None
    currency: Optional[str] = None
    source: Optional[str] = None
    from_cache: bool = False
    retry_after: Optional[float] = None

    @property
    def is_ok(self) -> bool:
        return self.status == LookupStatus.OK

    @property
    def is_rate_limited(self) -> bool:
        return self.status == LookupStatus.RATE_LIMITED

    @classmethod
    def ok(cls, kind: CacheKind, key: str, requested_date: date, value: Decimal,
           actual_date: Optional[date] = None, currency: Optional[str] = None,
           source: Optional[str] = None, from_cache: bool = False) -> "MarketDataResult":
        return cls(
            status=LookupStatus.OK,
            kind=kind,
            key=key,
            requested_date=requested_date,
            value=value,
            actual_date=actual_date or requested_date,
            currency=currency,
            source=source,
            from_cache=from_cache,
        )

    @classmethod
    def unavailable(cls, kind: CacheKind, key: str, requested_date: date,
                    from_cache: bool = False) -> "MarketDataResult":
        return cls(
            status=LookupStatus.UNAVAILABLE,
            kind=kind,
            key=key,
            requested_date=requested_date,
            from_cache=from_cache,
        )

    @classmethod
    def rate_limited(cls, kind: CacheKind, key: str, requested_date: date,
                     retry_after: Optional[float] = None) -> "MarketDataResult":
        return cls(
            status=LookupStatus.RATE_LIMITED,
            kind=kind,
            key=key,
            requested_date=requested_date,
            retry_after=retry_after,
        )

    @classmethod
    def from_entry(cls, entry: HistoricalCacheEntry) -> "MarketDataResult":
        if entry.is_unavailable:
            return cls.unavailable(entry.kind, entry.cache_key, entry.requested_date, from_cache=True)
        return cls.ok(
            entry.kind,
            entry.cache_key,
            entry.requested_date,
            entry.value,
            actual_date=entry.actual_date,
            currency=entry.currency,
            source=entry.source,
            from_cache=True,
        )


@dataclass
class _FetchOutcome:
    quote: Optional[HistoricalQuote] = None
    source: Optional[str] = None
    rate_limit: Optional[RateLimitError] = None
    transient_failure: bool = False
    attempted: bool = False


Fetcher = Callable[[BaseAdapter], Awaitable[HistoricalQuote]]


def price_cache_key(symbol: str, market: Market) -> str:
    return f"{symbol.strip().upper()}:{market.value}"


def fx_cache_key(from_currency: str, to_currency: str) -> str:
    return f"{from_currency.strip().upper()}{to_currency.strip().upper()}"


def market_today() -> date:
    """Current date in the market timezone."""
    return datetime.now(ZoneInfo(settings.MARKET_TIMEZONE)).date()


class HistoricalMarketDataCache:
    """
    Lookup-or-fetch-and-store cache for historical prices and rates.

    Usage:
        cache = HistoricalMarketDataCache(repository, price_providers=[stooq], fx_providers=[frankfurter, stooq])
        result = await cache.get_or_fetch_rate("USD", "TWD", date(2024, 1, 2))
        if result.is_ok:
            rate = result.value
    """

    def __init__(
        self,
        repository: HistoricalCacheRepository,
        price_providers: Sequence[BaseAdapter] = (),
        fx_providers: Sequence[BaseAdapter] = (),
        live_price_providers: Optional[Sequence[BaseAdapter]] = None,
        live_fx_providers: Optional[Sequence[BaseAdapter]] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.repository = repository
        self.price_providers = list(price_providers)
        self.fx_providers = list(fx_providers)
        self.live_price_providers = list(live_price_providers) if live_price_providers is not None else None
        self.live_fx_providers = list(live_fx_providers) if live_fx_providers is not None else None
        self._clock = clock or market_today

    def is_open_period(self, target_date: date) -> bool:
        """Today and later may still change, so they are never cached."""
        return target_date >= self._clock()

    # ==================== Public lookups ====================

    async def get_or_fetch_price(self, symbol: str, market: Market, target_date: date) -> MarketDataResult:
        """Closing price of a symbol on (or just before) target_date."""
        providers = [p for p in self.price_providers if p.supports_market(market)]
        live = None
        if self.live_price_providers is not None:
            live = [p for p in self.live_price_providers if p.supports_market(market)]

        return await self.get_or_fetch(
            CacheKind.PRICE,
            price_cache_key(symbol, market),
            target_date,
            fetch=lambda p: p.get_historical_price(symbol, market, target_date),
            providers=providers,
            live_fetch=lambda p: p.get_latest_price(symbol, market),
            live_providers=live,
        )

    async def get_or_fetch_rate(self, from_currency: str, to_currency: str, target_date: date) -> MarketDataResult:
        """Exchange rate (1 from = value to) on (or just before) target_date."""
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        key = fx_cache_key(from_currency, to_currency)

        if from_currency == to_currency:
            return MarketDataResult.ok(
                CacheKind.FX, key, target_date, Decimal("1"),
                currency=to_currency, source=IDENTITY_SOURCE,
            )

        providers = [p for p in self.fx_providers if p.supports_fx()]
        live = None
        if self.live_fx_providers is not None:
            live = [p for p in self.live_fx_providers if p.supports_fx()]

        return await self.get_or_fetch(
            CacheKind.FX,
            key,
            target_date,
            fetch=lambda p: p.get_historical_rate(from_currency, to_currency, target_date),
            providers=providers,
            live_fetch=lambda p: p.get_latest_rate(from_currency, to_currency),
            live_providers=live,
        )

    async def get_or_fetch(
        self,
        kind: CacheKind,
        key: str,
        target_date: date,
        fetch: Fetcher,
        providers: Sequence[BaseAdapter],
        live_fetch: Optional[Fetcher] = None,
        live_providers: Optional[Sequence[BaseAdapter]] = None,
    ) -> MarketDataResult:
        """
        Generic lookup-or-fetch-and-store.

        Args:
            kind: PRICE or FX
            key: Cache key (see price_cache_key / fx_cache_key)
            target_date: Requested date
            fetch: Historical lookup against one provider
            providers: Historical providers in priority order
            live_fetch: Latest-value lookup against one provider
            live_providers: Providers for the open period (defaults to providers)

        Returns:
            MarketDataResult
        """
        if self.is_open_period(target_date):
            return await self._fetch_open_period(kind, key, target_date, fetch, providers, live_fetch, live_providers)

        cached = await self.repository.get(kind, key, target_date)
        if cached is not None:
            if cached.is_unavailable:
                logger.debug(f"{kind.value} {key}@{target_date} marked unavailable; skipping upstream")
            else:
                logger.debug(f"Cache hit {kind.value} {key}@{target_date} = {cached.value} ({cached.source})")
            return MarketDataResult.from_entry(cached)

        logger.debug(f"Cache miss {kind.value} {key}@{target_date}")
        outcome = await self._fetch_from_providers(key, target_date, providers, fetch)

        if outcome.quote is not None:
            quote = outcome.quote
            entry = HistoricalCacheEntry.available(
                kind,
                key,
                target_date,
                quote.value,
                source=outcome.source,
                actual_date=quote.actual_date,
                currency=quote.currency,
            )
            await self._store(entry)
            return MarketDataResult.ok(
                kind, key, target_date, quote.value,
                actual_date=quote.actual_date, currency=quote.currency, source=outcome.source,
            )

        if outcome.rate_limit is not None:
            logger.warning(f"Rate limited fetching {kind.value} {key}@{target_date}; not caching")
            return MarketDataResult.rate_limited(kind, key, target_date, outcome.rate_limit.retry_after)

        if outcome.transient_failure or not outcome.attempted:
            logger.warning(f"{kind.value} {key}@{target_date} unavailable (transient or no provider); not caching")
            return MarketDataResult.unavailable(kind, key, target_date)

        logger.warning(f"{kind.value} {key}@{target_date} confirmed unavailable; caching negative marker")
        source = ",".join(p.name for p in providers) or NO_PROVIDER_SOURCE
        await self._store(HistoricalCacheEntry.unavailable(kind, key, target_date, source=source))
        return MarketDataResult.unavailable(kind, key, target_date)

    async def save_manual_rate(
        self,
        from_currency: str,
        to_currency: str,
        target_date: date,
        rate: Decimal,
    ) -> MarketDataResult:
        """
        Store a user-supplied exchange rate for a date.

        Raises:
            CacheEntryExistsError: If an entry already exists for the date
        """
        key = fx_cache_key(from_currency, to_currency)
        existing = await self.repository.get(CacheKind.FX, key, target_date)
        if existing is not None:
            raise CacheEntryExistsError(key, target_date)

        entry = HistoricalCacheEntry.available(
            CacheKind.FX, key, target_date, rate,
            source=MANUAL_SOURCE, currency=to_currency.upper(),
        )
        await self.repository.add(entry)
        logger.info(f"Saved manual rate {key}@{target_date} = {entry.value}")
        return MarketDataResult.from_entry(entry)

    # ==================== Internals ====================

    async def _fetch_open_period(
        self,
        kind: CacheKind,
        key: str,
        target_date: date,
        fetch: Fetcher,
        providers: Sequence[BaseAdapter],
        live_fetch: Optional[Fetcher],
        live_providers: Optional[Sequence[BaseAdapter]],
    ) -> MarketDataResult:
        if live_providers is not None and live_fetch is not None:
            outcome = await self._fetch_from_providers(key, target_date, live_providers, live_fetch)
        else:
            outcome = await self._fetch_from_providers(key, target_date, providers, fetch)

        if outcome.quote is not None:
            quote = outcome.quote
            return MarketDataResult.ok(
                kind, key, target_date, quote.value,
                actual_date=quote.actual_date, currency=quote.currency, source=outcome.source,
            )
        if outcome.rate_limit is not None:
            return MarketDataResult.rate_limited(kind, key, target_date, outcome.rate_limit.retry_after)
        return MarketDataResult.unavailable(kind, key, target_date)

    async def _fetch_from_providers(
        self,
        key: str,
        target_date: date,
        providers: Sequence[BaseAdapter],
        fetch: Fetcher,
    ) -> _FetchOutcome:
        outcome = _FetchOutcome()
        for provider in providers:
            outcome.attempted = True
            try:
                quote = await fetch(provider)
            except RateLimitError as e:
                logger.warning(f"{provider.name} rate limited for {key}@{target_date}")
                outcome.rate_limit = e
                continue
            except DataNotAvailableError:
                logger.debug(f"{provider.name} has no data for {key}@{target_date}")
                continue
            except ProviderError as e:
                if e.recoverable:
                    outcome.transient_failure = True
                logger.warning(f"{provider.name} failed for {key}@{target_date}: {e}")
                continue

            if quote.value is None or quote.value <= 0:
                logger.warning(f"{provider.name} returned non-positive value for {key}@{target_date}")
                continue

            outcome.quote = quote
            outcome.source = provider.name
            return outcome
        return outcome

    async def _store(self, entry: HistoricalCacheEntry) -> None:
        try:
            await self.repository.add(entry)
        except CacheEntryExistsError:
            # Another request stored the same past-date fact first
            logger.debug(f"Cache entry {entry.cache_key}@{entry.requested_date} already stored")
        else:
            stored = "unavailable marker" if entry.is_unavailable else entry.value
            logger.info(f"Stored {entry.kind.value} {entry.cache_key}@{entry.requested_date}: {stored}")
