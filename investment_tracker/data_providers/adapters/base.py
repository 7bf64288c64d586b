"""
Base Provider Adapter Interface

Defines the uniform "value for a date" contract every historical market
data adapter implements, plus the error types adapters use to tell the
cache apart:
- DataNotAvailableError: definitive answer, nothing exists for the key
- RateLimitError: retry later; must never be negative-cached
- ProviderError (recoverable): transient failure, retry later
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from loguru import logger

from investment_tracker.core.enums import Market


@dataclass
class ProviderConfig:
    """Configuration for a data provider."""
    name: str
    base_url: str = ""
    quote_url: Optional[str] = None

    # Timeouts
    timeout_seconds: float = 30.0

    # Days searched backwards for the last trading day on or before a date
    lookback_days: int = 7

    # Coverage
    supported_markets: list[Market] = field(default_factory=list)
    supports_fx: bool = False
    supports_prices: bool = True


@dataclass(frozen=True)
class HistoricalQuote:
    """A price or rate for a requested date, normalized across providers."""
    key: str
    requested_date: date
    value: Decimal
    actual_date: date
    provider: str
    currency: Optional[str] = None


# Consecutive transport failures before an adapter reports itself unhealthy
UNHEALTHY_AFTER_FAILURES = 5
# Weight of the newest sample in the latency moving average
LATENCY_SMOOTHING = 0.1


@dataclass
class ProviderStatus:
    """Request bookkeeping for one adapter."""
    name: str
    is_healthy: bool = True
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    last_failure: Optional[str] = None
    consecutive_failures: int = 0
    successes: int = 0
    rate_limited: int = 0
    mean_latency_ms: float = 0.0


class ProviderError(Exception):
    """A provider could not answer; ``recoverable`` failures may succeed later."""
    def __init__(self, provider: str, message: str, recoverable: bool = True):
        self.provider = provider
        self.message = message
        self.recoverable = recoverable
        super().__init__(f"[{provider}] {message}")


class RateLimitError(ProviderError):
    """The provider is throttling requests."""
    def __init__(self, provider: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        hint = f", retry after {retry_after}s" if retry_after is not None else ""
        super().__init__(provider, f"Rate limited{hint}", recoverable=True)


class DataNotAvailableError(ProviderError):
    """Definitive answer that nothing exists for the key."""
    def __init__(self, provider: str, symbol: str, data_type: str):
        self.symbol = symbol
        self.data_type = data_type
        super().__init__(provider, f"No {data_type} for {symbol}", recoverable=False)


class BaseAdapter(ABC):
    """
    Abstract base class for historical market data adapters.

    Adapters override whichever lookups they support; the defaults raise
    DataNotAvailableError so unsupported lookups read as "no data".
    """

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.name = config.name
        self._status = ProviderStatus(name=config.name)

    @property
    def status(self) -> ProviderStatus:
        """Get current provider status."""
        return self._status

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the adapter (create sessions)."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the provider is healthy and accessible."""
        pass

    async def get_historical_price(self, symbol: str, market: Market, target_date: date) -> HistoricalQuote:
        """
        Closing price on the last trading day on or before target_date.

        Raises:
            DataNotAvailableError: No price exists
            RateLimitError: Provider is throttling requests
            ProviderError: Transient failure
        """
        raise DataNotAvailableError(self.name, symbol, "historical price")

    async def get_historical_rate(self, from_currency: str, to_currency: str, target_date: date) -> HistoricalQuote:
        """Exchange rate (1 from = rate to) on or before target_date."""
        raise DataNotAvailableError(self.name, f"{from_currency}{to_currency}", "historical rate")

    async def get_latest_price(self, symbol: str, market: Market) -> HistoricalQuote:
        """Most recent price, for the still-open period."""
        raise DataNotAvailableError(self.name, symbol, "latest price")

    async def get_latest_rate(self, from_currency: str, to_currency: str) -> HistoricalQuote:
        """Most recent exchange rate, for the still-open period."""
        raise DataNotAvailableError(self.name, f"{from_currency}{to_currency}", "latest rate")

    # ==================== Bookkeeping ====================

    def _record_success(self, latency_ms: float) -> None:
        status = self._status
        status.successes += 1
        status.last_success_at = datetime.now(timezone.utc)
        status.mean_latency_ms += LATENCY_SMOOTHING * (latency_ms - status.mean_latency_ms)
        status.consecutive_failures = 0
        status.is_healthy = True

    def _record_failure(self, error: Exception) -> None:
        """Count a transport failure; answers such as "no data" are not failures."""
        status = self._status
        status.consecutive_failures += 1
        status.last_failure_at = datetime.now(timezone.utc)
        status.last_failure = str(error)
        if status.consecutive_failures >= UNHEALTHY_AFTER_FAILURES and status.is_healthy:
            status.is_healthy = False
            logger.warning(f"Provider {self.name} unhealthy after {status.consecutive_failures} consecutive failures")

    def _record_rate_limit(self, retry_after: Optional[float] = None) -> RateLimitError:
        self._status.rate_limited += 1
        logger.warning(f"Provider {self.name} rate limited (retry after {retry_after})")
        return RateLimitError(self.name, retry_after)

    def supports_market(self, market: Market) -> bool:
        """Check if this provider serves prices for a market."""
        return self.config.supports_prices and market in self.config.supported_markets

    def supports_fx(self) -> bool:
        return self.config.supports_fx

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, healthy={self._status.is_healthy})>"
