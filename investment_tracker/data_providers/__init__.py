"""
Data Providers Package

Historical market data adapters and the write-once price/FX cache that
fronts them.
"""
from investment_tracker.data_providers.historical_cache import (
    HistoricalMarketDataCache,
    LookupStatus,
    MarketDataResult,
    fx_cache_key,
    price_cache_key,
)

__all__ = [
    "HistoricalMarketDataCache",
    "LookupStatus",
    "MarketDataResult",
    "fx_cache_key",
    "price_cache_key",
]
