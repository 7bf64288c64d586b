"""
Provider Adapters Package

Each adapter implements the BaseAdapter "value for a date" contract.
"""
from investment_tracker.data_providers.adapters.base import (
    BaseAdapter,
    DataNotAvailableError,
    HistoricalQuote,
    ProviderConfig,
    ProviderError,
    ProviderStatus,
    RateLimitError,
)
from investment_tracker.data_providers.adapters.frankfurter import (
    FrankfurterAdapter,
    create_frankfurter_config,
)
from investment_tracker.data_providers.adapters.stooq import (
    StooqAdapter,
    create_stooq_config,
)

__all__ = [
    "BaseAdapter",
    "DataNotAvailableError",
    "HistoricalQuote",
    "ProviderConfig",
    "ProviderError",
    "ProviderStatus",
    "RateLimitError",
    "FrankfurterAdapter",
    "create_frankfurter_config",
    "StooqAdapter",
    "create_stooq_config",
]
