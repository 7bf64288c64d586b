"""
Investment Tracker - Dependencies
Wires repositories, market data providers and services for one session.
"""
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from investment_tracker.data_providers.adapters.base import BaseAdapter
from investment_tracker.data_providers.adapters.frankfurter import FrankfurterAdapter
from investment_tracker.data_providers.adapters.stooq import StooqAdapter
from investment_tracker.data_providers.historical_cache import HistoricalMarketDataCache
from investment_tracker.db.database import get_session_maker
from investment_tracker.db.repositories import (
    SqlHistoricalCacheRepository,
    SqlLedgerRepository,
    SqlPortfolioRepository,
    SqlStockSplitRepository,
    SqlTransactionRepository,
    SqlTransactionSnapshotRepository,
)
from investment_tracker.services.currency_ledger_service import CurrencyLedgerService
from investment_tracker.services.performance_service import PerformanceService
from investment_tracker.services.portfolio_valuation import PortfolioValuationService
from investment_tracker.services.transaction_snapshot_service import TransactionSnapshotService
from investment_tracker.utils.logger import setup_logging


@dataclass
class MarketDataProviders:
    """Adapters shared across sessions; they own HTTP connection pools."""
    prices: list[BaseAdapter]
    fx: list[BaseAdapter]

    async def close(self) -> None:
        for adapter in {id(a): a for a in self.prices + self.fx}.values():
            await adapter.close()


@dataclass
class ServiceContainer:
    market_data: HistoricalMarketDataCache
    valuation: PortfolioValuationService
    snapshots: TransactionSnapshotService
    performance: PerformanceService
    ledgers: CurrencyLedgerService


def create_providers() -> MarketDataProviders:
    """
    Default provider chains.

    Prices come from Stooq. FX tries Frankfurter first (no TWD coverage)
    and falls back to Stooq.
    """
    stooq = StooqAdapter()
    frankfurter = FrankfurterAdapter()
    return MarketDataProviders(prices=[stooq], fx=[frankfurter, stooq])


def build_services(db: AsyncSession, providers: MarketDataProviders) -> ServiceContainer:
    """Build every service over one database session."""
    portfolios = SqlPortfolioRepository(db)
    transactions = SqlTransactionRepository(db)
    splits = SqlStockSplitRepository(db)
    ledgers = SqlLedgerRepository(db)

    market_data = HistoricalMarketDataCache(
        SqlHistoricalCacheRepository(db),
        price_providers=providers.prices,
        fx_providers=providers.fx,
    )
    valuation = PortfolioValuationService(transactions, splits, ledgers, market_data)
    snapshots = TransactionSnapshotService(
        portfolios,
        transactions,
        splits,
        SqlTransactionSnapshotRepository(db),
        valuation,
    )
    performance = PerformanceService(
        portfolios,
        transactions,
        splits,
        market_data,
        valuation,
        snapshots,
    )
    return ServiceContainer(
        market_data=market_data,
        valuation=valuation,
        snapshots=snapshots,
        performance=performance,
        ledgers=CurrencyLedgerService(ledgers, market_data),
    )


_providers: Optional[MarketDataProviders] = None


async def startup() -> MarketDataProviders:
    """Configure logging and open the shared provider sessions."""
    global _providers
    setup_logging()
    if _providers is None:
        _providers = create_providers()
        for adapter in {id(a): a for a in _providers.prices + _providers.fx}.values():
            await adapter.initialize()
        logger.info("Market data providers initialized")
    return _providers


async def shutdown() -> None:
    global _providers
    if _providers is not None:
        await _providers.close()
        _providers = None
        logger.info("Market data providers closed")


async def get_services() -> AsyncGenerator[ServiceContainer, None]:
    """
    Yield services bound to a fresh session.

    Yields:
        ServiceContainer: Services sharing one session
    """
    providers = await startup()
    async with get_session_maker()() as session:
        try:
            yield build_services(session, providers)
        finally:
            await session.close()
