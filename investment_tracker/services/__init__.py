"""
Application services composing the calculators, cache and repositories.
"""
from investment_tracker.services.currency_ledger_service import CurrencyLedgerService, CurrencyLedgerSummary
from investment_tracker.services.performance_service import (
    NetWorthFrequency,
    NetWorthPoint,
    PerformanceService,
    PeriodPerformance,
    XirrResult,
)
from investment_tracker.services.portfolio_valuation import (
    MissingMarketData,
    PortfolioValuation,
    PortfolioValuationService,
)
from investment_tracker.services.transaction_snapshot_service import (
    SnapshotUpsertResult,
    SnapshotUpsertStatus,
    TransactionSnapshotService,
)

__all__ = [
    "CurrencyLedgerService",
    "CurrencyLedgerSummary",
    "NetWorthFrequency",
    "NetWorthPoint",
    "PerformanceService",
    "PeriodPerformance",
    "XirrResult",
    "MissingMarketData",
    "PortfolioValuation",
    "PortfolioValuationService",
    "SnapshotUpsertResult",
    "SnapshotUpsertStatus",
    "TransactionSnapshotService",
]
