"""
Investment Tracker - Database Models
"""
from investment_tracker.db.models.portfolio import PortfolioRecord
from investment_tracker.db.models.stock_transaction import StockTransactionRecord
from investment_tracker.db.models.stock_split import StockSplitRecord
from investment_tracker.db.models.currency_ledger import CurrencyLedgerRecord, CurrencyTransactionRecord
from investment_tracker.db.models.historical_market_data import HistoricalMarketDataRecord
from investment_tracker.db.models.transaction_snapshot import TransactionSnapshotRecord

__all__ = [
    "PortfolioRecord",
    "StockTransactionRecord",
    "StockSplitRecord",
    "CurrencyLedgerRecord",
    "CurrencyTransactionRecord",
    "HistoricalMarketDataRecord",
    "TransactionSnapshotRecord",
]
