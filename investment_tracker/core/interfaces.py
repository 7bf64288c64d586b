"""
Repository Interfaces

Abstract collaborators consumed by the engine. The SQLAlchemy
implementations live in ``investment_tracker.db.repositories``; tests use
in-memory fakes.
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional, Sequence
from uuid import UUID

from investment_tracker.core.enums import CacheKind, Market
from investment_tracker.core.models import (
    HistoricalCacheEntry,
    LedgerWithTransactions,
    Portfolio,
    StockSplit,
    StockTransaction,
    TransactionPortfolioSnapshot,
)


class PortfolioRepository(ABC):

    @abstractmethod
    async def get_by_id(self, portfolio_id: UUID) -> Optional[Portfolio]:
        pass


class TransactionRepository(ABC):

    @abstractmethod
    async def get_by_portfolio(self, portfolio_id: UUID) -> list[StockTransaction]:
        """
        Get a portfolio's transactions.

        Soft-deleted transactions are excluded; the rest are ordered by
        (transaction_date, created_at).
        """
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: UUID) -> Optional[StockTransaction]:
        pass


class StockSplitRepository(ABC):

    @abstractmethod
    async def get_all(self) -> list[StockSplit]:
        pass

    @abstractmethod
    async def get_by_symbol(self, symbol: str, market: Market) -> list[StockSplit]:
        pass


class LedgerRepository(ABC):

    @abstractmethod
    async def get_with_transactions(self, ledger_id: UUID) -> Optional[LedgerWithTransactions]:
        """Get a ledger with its non-deleted transactions in chronological order."""
        pass


class HistoricalCacheRepository(ABC):

    @abstractmethod
    async def get(self, kind: CacheKind, cache_key: str, requested_date: date) -> Optional[HistoricalCacheEntry]:
        pass

    @abstractmethod
    async def add(self, entry: HistoricalCacheEntry) -> HistoricalCacheEntry:
        """
        Persist a new entry.

        Raises:
            CacheEntryExistsError: If an entry for (kind, key, date) already exists
        """
        pass


class TransactionSnapshotRepository(ABC):

    @abstractmethod
    async def get_for_transactions(
        self,
        portfolio_id: UUID,
        transaction_ids: Sequence[UUID],
    ) -> list[TransactionPortfolioSnapshot]:
        pass

    @abstractmethod
    async def get_range(
        self,
        portfolio_id: UUID,
        from_date: date,
        to_date: date,
    ) -> list[TransactionPortfolioSnapshot]:
        """Snapshots dated within [from_date, to_date], ordered by (date, created_at)."""
        pass

    @abstractmethod
    async def replace_for_date(
        self,
        portfolio_id: UUID,
        snapshot_date: date,
        snapshots: Sequence[TransactionPortfolioSnapshot],
    ) -> list[TransactionPortfolioSnapshot]:
        """
        Atomically replace every snapshot of a portfolio on one date.

        Either all of the new snapshots are visible afterwards or none are.
        """
        pass

    @abstractmethod
    async def delete_for_date(self, portfolio_id: UUID, snapshot_date: date) -> int:
        pass
