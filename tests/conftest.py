"""
Investment Tracker - Test Configuration
Shared fixtures, in-memory repositories and a scripted market data adapter.
"""
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID, uuid4

import pytest

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["POSTGRES_HOST"] = "localhost"
os.environ["POSTGRES_DB"] = "investment_tracker_test"

from investment_tracker.core.enums import CacheKind, Market, TransactionType  # noqa: E402
from investment_tracker.core.interfaces import (  # noqa: E402
    HistoricalCacheRepository,
    LedgerRepository,
    PortfolioRepository,
    StockSplitRepository,
    TransactionRepository,
    TransactionSnapshotRepository,
)
from investment_tracker.core.models import (  # noqa: E402
    HistoricalCacheEntry,
    LedgerWithTransactions,
    Portfolio,
    StockSplit,
    StockTransaction,
    TransactionPortfolioSnapshot,
)
from investment_tracker.data_providers.adapters.base import (  # noqa: E402
    BaseAdapter,
    DataNotAvailableError,
    HistoricalQuote,
    ProviderConfig,
)
from investment_tracker.data_providers.historical_cache import HistoricalMarketDataCache  # noqa: E402
from investment_tracker.services.portfolio_valuation import PortfolioValuationService  # noqa: E402
from investment_tracker.services.transaction_snapshot_service import TransactionSnapshotService  # noqa: E402
from investment_tracker.utils.exceptions import CacheEntryExistsError  # noqa: E402


TODAY = date(2024, 6, 30)
BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


# =========================
# In-memory repositories
# =========================

class InMemoryPortfolioRepository(PortfolioRepository):

    def __init__(self, portfolios: Sequence[Portfolio] = ()):
        self.portfolios = {p.id: p for p in portfolios}

    async def get_by_id(self, portfolio_id: UUID) -> Optional[Portfolio]:
        return self.portfolios.get(portfolio_id)


class InMemoryTransactionRepository(TransactionRepository):

    def __init__(self, transactions: Sequence[StockTransaction] = ()):
        self.transactions = {tx.id: tx for tx in transactions}

    def add(self, tx: StockTransaction) -> StockTransaction:
        self.transactions[tx.id] = tx
        return tx

    def soft_delete(self, transaction_id: UUID) -> None:
        self.transactions[transaction_id] = self.transactions[transaction_id].mark_deleted()

    async def get_by_portfolio(self, portfolio_id: UUID) -> list[StockTransaction]:
        rows = [
            tx for tx in self.transactions.values()
            if tx.portfolio_id == portfolio_id and not tx.is_deleted
        ]
        return sorted(rows, key=lambda tx: (tx.transaction_date, tx.created_at))

    async def get_by_id(self, transaction_id: UUID) -> Optional[StockTransaction]:
        return self.transactions.get(transaction_id)


class InMemoryStockSplitRepository(StockSplitRepository):

    def __init__(self, splits: Sequence[StockSplit] = ()):
        self.splits = list(splits)

    async def get_all(self) -> list[StockSplit]:
        return sorted(self.splits, key=lambda s: s.effective_date)

    async def get_by_symbol(self, symbol: str, market: Market) -> list[StockSplit]:
        return [s for s in await self.get_all() if s.symbol == symbol.upper() and s.market == market]


class InMemoryLedgerRepository(LedgerRepository):

    def __init__(self, bundles: Sequence[LedgerWithTransactions] = ()):
        self.bundles = {b.ledger.id: b for b in bundles}

    async def get_with_transactions(self, ledger_id: UUID) -> Optional[LedgerWithTransactions]:
        return self.bundles.get(ledger_id)


class InMemoryHistoricalCacheRepository(HistoricalCacheRepository):

    def __init__(self):
        self.entries: dict = {}
        self.get_calls = 0
        self.add_calls = 0

    async def get(self, kind: CacheKind, cache_key: str, requested_date: date) -> Optional[HistoricalCacheEntry]:
        self.get_calls += 1
        return self.entries.get((kind, cache_key, requested_date))

    async def add(self, entry: HistoricalCacheEntry) -> HistoricalCacheEntry:
        self.add_calls += 1
        key = (entry.kind, entry.cache_key, entry.requested_date)
        if key in self.entries:
            raise CacheEntryExistsError(entry.cache_key, entry.requested_date)
        self.entries[key] = entry
        return entry


class InMemoryTransactionSnapshotRepository(TransactionSnapshotRepository):

    def __init__(self):
        self.snapshots: dict = {}
        self.replace_calls = 0

    def put(self, snapshot: TransactionPortfolioSnapshot) -> None:
        self.snapshots[(snapshot.portfolio_id, snapshot.transaction_id)] = snapshot

    async def get_for_transactions(self, portfolio_id, transaction_ids):
        return [
            s for (pid, tid), s in self.snapshots.items()
            if pid == portfolio_id and tid in set(transaction_ids)
        ]

    async def get_range(self, portfolio_id, from_date, to_date):
        rows = [
            s for (pid, _), s in self.snapshots.items()
            if pid == portfolio_id and from_date <= s.snapshot_date <= to_date
        ]
        return sorted(rows, key=lambda s: (s.snapshot_date, s.created_at))

    async def replace_for_date(self, portfolio_id, snapshot_date, snapshots):
        self.replace_calls += 1
        await self.delete_for_date(portfolio_id, snapshot_date)
        for s in snapshots:
            self.put(s)
        return list(snapshots)

    async def delete_for_date(self, portfolio_id, snapshot_date) -> int:
        stale = [
            key for key, s in self.snapshots.items()
            if key[0] == portfolio_id and s.snapshot_date == snapshot_date
        ]
        for key in stale:
            del self.snapshots[key]
        return len(stale)


# =========================
# Scripted adapter
# =========================

class FakeAdapter(BaseAdapter):
    """
    Adapter answering from dictionaries.

    Values are Decimals or exception instances to raise; anything absent
    answers DataNotAvailableError.
    """

    def __init__(self, name: str = "fake", prices=None, rates=None, latest_prices=None, latest_rates=None,
                 markets=(Market.US, Market.TW), supports_fx: bool = True):
        super().__init__(ProviderConfig(name=name, supported_markets=list(markets), supports_fx=supports_fx))
        self.prices = prices or {}
        self.rates = rates or {}
        self.latest_prices = latest_prices or {}
        self.latest_rates = latest_rates or {}
        self.calls: list = []

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def health_check(self) -> bool:
        return True

    def _answer(self, value, key: str, requested: date, currency: str) -> HistoricalQuote:
        if value is None:
            raise DataNotAvailableError(self.name, key, "scripted")
        if isinstance(value, Exception):
            raise value
        return HistoricalQuote(
            key=key,
            requested_date=requested,
            value=Decimal(str(value)),
            actual_date=requested,
            provider=self.name,
            currency=currency,
        )

    async def get_historical_price(self, symbol, market, target_date):
        self.calls.append(("price", symbol, target_date))
        currency = "TWD" if market == Market.TW else "USD"
        return self._answer(self.prices.get((symbol, target_date)), symbol, target_date, currency)

    async def get_historical_rate(self, from_currency, to_currency, target_date):
        pair = f"{from_currency}{to_currency}"
        self.calls.append(("fx", pair, target_date))
        return self._answer(self.rates.get((pair, target_date)), pair, target_date, to_currency)

    async def get_latest_price(self, symbol, market):
        self.calls.append(("latest_price", symbol, None))
        currency = "TWD" if market == Market.TW else "USD"
        return self._answer(self.latest_prices.get(symbol), symbol, TODAY, currency)

    async def get_latest_rate(self, from_currency, to_currency):
        pair = f"{from_currency}{to_currency}"
        self.calls.append(("latest_fx", pair, None))
        return self._answer(self.latest_rates.get(pair), pair, TODAY, to_currency)


# =========================
# Builders
# =========================

def make_tx(
    portfolio_id: UUID,
    transaction_date: date,
    transaction_type: TransactionType = TransactionType.BUY,
    quantity="10",
    unit_price="100",
    fees="0",
    exchange_rate="30",
    symbol: str = "AAPL",
    seq: int = 0,
    **kwargs,
) -> StockTransaction:
    """Build a transaction whose creation order follows ``seq``."""
    return StockTransaction.create(
        portfolio_id=portfolio_id,
        transaction_date=transaction_date,
        symbol=symbol,
        transaction_type=transaction_type,
        quantity=quantity,
        unit_price=unit_price,
        fees=fees,
        exchange_rate=exchange_rate,
        created_at=BASE_TIME + timedelta(minutes=seq),
        **kwargs,
    )


# =========================
# Fixtures
# =========================

@pytest.fixture
def clock():
    return lambda: TODAY


@pytest.fixture
def portfolio() -> Portfolio:
    return Portfolio.create(user_id=uuid4(), base_currency="USD", home_currency="TWD")


@pytest.fixture
def portfolio_repo(portfolio):
    return InMemoryPortfolioRepository([portfolio])


@pytest.fixture
def transaction_repo():
    return InMemoryTransactionRepository()


@pytest.fixture
def split_repo():
    return InMemoryStockSplitRepository()


@pytest.fixture
def ledger_repo():
    return InMemoryLedgerRepository()


@pytest.fixture
def cache_repo():
    return InMemoryHistoricalCacheRepository()


@pytest.fixture
def snapshot_repo():
    return InMemoryTransactionSnapshotRepository()


@pytest.fixture
def adapter():
    return FakeAdapter()


@pytest.fixture
def market_data(cache_repo, adapter, clock):
    return HistoricalMarketDataCache(
        cache_repo,
        price_providers=[adapter],
        fx_providers=[adapter],
        clock=clock,
    )


@pytest.fixture
def valuation_service(transaction_repo, split_repo, ledger_repo, market_data):
    return PortfolioValuationService(transaction_repo, split_repo, ledger_repo, market_data)


@pytest.fixture
def snapshot_service(portfolio_repo, transaction_repo, split_repo, snapshot_repo, valuation_service):
    return TransactionSnapshotService(
        portfolio_repo,
        transaction_repo,
        split_repo,
        snapshot_repo,
        valuation_service,
    )
