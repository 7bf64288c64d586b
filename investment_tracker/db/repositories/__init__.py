"""
Investment Tracker - Data Repositories

SQLAlchemy implementations of the engine's repository interfaces.
"""
from investment_tracker.db.repositories.portfolio import SqlPortfolioRepository
from investment_tracker.db.repositories.stock_transaction import SqlTransactionRepository
from investment_tracker.db.repositories.stock_split import SqlStockSplitRepository
from investment_tracker.db.repositories.currency_ledger import SqlLedgerRepository
from investment_tracker.db.repositories.historical_market_data import SqlHistoricalCacheRepository
from investment_tracker.db.repositories.transaction_snapshot import SqlTransactionSnapshotRepository

__all__ = [
    "SqlPortfolioRepository",
    "SqlTransactionRepository",
    "SqlStockSplitRepository",
    "SqlLedgerRepository",
    "SqlHistoricalCacheRepository",
    "SqlTransactionSnapshotRepository",
]
