"""
Transaction Snapshot Service

Maintains per-transaction before/after portfolio valuations used by the
time-weighted and Modified Dietz return calculations.

Same-day chaining: all buys and sells sharing a date are ordered by
creation and assigned one end-of-day valuation. Only the first carries a
real before-value (the previous day's close); every later one has
before == after == end of day, so a day never splits into overlapping
zero-length sub-periods.

Upserts are idempotent. A date whose snapshots already satisfy the chain
is left untouched without any market data lookup; otherwise the date's
snapshots are replaced together in a single repository call.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from loguru import logger

from investment_tracker.core.interfaces import (
    PortfolioRepository,
    StockSplitRepository,
    TransactionRepository,
    TransactionSnapshotRepository,
)
from investment_tracker.core.models import (
    Portfolio,
    StockSplit,
    StockTransaction,
    TransactionPortfolioSnapshot,
)
from investment_tracker.services.portfolio_valuation import (
    MissingMarketData,
    PortfolioValuationService,
)
from investment_tracker.utils.exceptions import EntityNotFoundError


class SnapshotUpsertStatus(str, Enum):
    UNCHANGED = "unchanged"
    RECHAINED = "rechained"
    RECOMPUTED = "recomputed"
    INCOMPLETE = "incomplete"
    NO_TRANSACTIONS = "no_transactions"


@dataclass(frozen=True)
class SnapshotUpsertResult:
    portfolio_id: UUID
    snapshot_date: date
    status: SnapshotUpsertStatus
    snapshots: Tuple[TransactionPortfolioSnapshot, ...] = ()
    missing: Tuple[MissingMarketData, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.status != SnapshotUpsertStatus.INCOMPLETE


def qualifying_transactions(
    transactions: Sequence[StockTransaction],
    snapshot_date: date,
) -> List[StockTransaction]:
    """Active buys/sells on a date in creation order."""
    day = [
        tx for tx in transactions
        if not tx.is_deleted
        and tx.transaction_date == snapshot_date
        and (tx.is_buy or tx.is_sell)
    ]
    return sorted(day, key=lambda tx: (tx.created_at, str(tx.id)))


class TransactionSnapshotService:
    """Creates, chains and serves transaction portfolio snapshots."""

    def __init__(
        self,
        portfolio_repository: PortfolioRepository,
        transaction_repository: TransactionRepository,
        split_repository: StockSplitRepository,
        snapshot_repository: TransactionSnapshotRepository,
        valuation_service: PortfolioValuationService,
    ):
        self.portfolio_repository = portfolio_repository
        self.transaction_repository = transaction_repository
        self.split_repository = split_repository
        self.snapshot_repository = snapshot_repository
        self.valuation_service = valuation_service

    # ==================== Queries ====================

    async def get_snapshots(
        self,
        portfolio_id: UUID,
        from_date: date,
        to_date: date,
    ) -> List[TransactionPortfolioSnapshot]:
        return await self.snapshot_repository.get_range(portfolio_id, from_date, to_date)

    # ==================== Upserts ====================

    async def upsert_snapshot(self, portfolio_id: UUID, transaction_id: UUID) -> SnapshotUpsertResult:
        """Upsert the snapshots of the date a transaction belongs to."""
        tx = await self.transaction_repository.get_by_id(transaction_id)
        if tx is None or tx.portfolio_id != portfolio_id:
            raise EntityNotFoundError("Transaction", transaction_id)
        return await self.upsert_snapshots_for_date(portfolio_id, tx.transaction_date)

    async def upsert_snapshots_for_date(self, portfolio_id: UUID, snapshot_date: date) -> SnapshotUpsertResult:
        """
        Ensure a date's snapshots exist and are chained.

        Raises:
            EntityNotFoundError: If the portfolio does not exist
            RateLimitExceededError: If market data lookups are rate limited
        """
        portfolio = await self._get_portfolio(portfolio_id)
        transactions = await self.transaction_repository.get_by_portfolio(portfolio_id)
        splits = await self.split_repository.get_all()
        return await self._upsert_for_date(portfolio, snapshot_date, transactions, splits)

    async def delete_snapshot(self, portfolio_id: UUID, transaction_id: UUID) -> SnapshotUpsertResult:
        """
        Drop a transaction's snapshot and re-chain the rest of its date.

        Call after the transaction itself has been soft-deleted.
        """
        tx = await self.transaction_repository.get_by_id(transaction_id)
        if tx is None or tx.portfolio_id != portfolio_id:
            raise EntityNotFoundError("Transaction", transaction_id)

        removed = await self.snapshot_repository.delete_for_date(portfolio_id, tx.transaction_date)
        logger.info(f"Removed {removed} snapshot(s) of portfolio {portfolio_id} on {tx.transaction_date}")
        return await self.upsert_snapshots_for_date(portfolio_id, tx.transaction_date)

    async def backfill_snapshots(
        self,
        portfolio_id: UUID,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[SnapshotUpsertResult]:
        """
        Upsert every date in range that has buys or sells.

        A rate-limited lookup aborts the remaining dates.
        """
        portfolio = await self._get_portfolio(portfolio_id)
        transactions = await self.transaction_repository.get_by_portfolio(portfolio_id)
        splits = await self.split_repository.get_all()

        dates = sorted({
            tx.transaction_date for tx in transactions
            if not tx.is_deleted
            and (from_date is None or tx.transaction_date >= from_date)
            and (to_date is None or tx.transaction_date <= to_date)
        })

        results = []
        for snapshot_date in dates:
            results.append(await self._upsert_for_date(portfolio, snapshot_date, transactions, splits))

        recomputed = sum(1 for r in results if r.status == SnapshotUpsertStatus.RECOMPUTED)
        incomplete = sum(1 for r in results if r.status == SnapshotUpsertStatus.INCOMPLETE)
        logger.info(
            f"Backfilled portfolio {portfolio_id}: {len(dates)} date(s), "
            f"{recomputed} recomputed, {incomplete} incomplete"
        )
        return results

    async def _upsert_for_date(
        self,
        portfolio: Portfolio,
        snapshot_date: date,
        transactions: Sequence[StockTransaction],
        splits: Sequence[StockSplit],
    ) -> SnapshotUpsertResult:
        day = qualifying_transactions(transactions, snapshot_date)
        if not day:
            removed = await self.snapshot_repository.delete_for_date(portfolio.id, snapshot_date)
            if removed:
                logger.info(f"Removed {removed} stale snapshot(s) of portfolio {portfolio.id} on {snapshot_date}")
            return SnapshotUpsertResult(portfolio.id, snapshot_date, SnapshotUpsertStatus.NO_TRANSACTIONS)

        existing = await self.snapshot_repository.get_for_transactions(portfolio.id, [tx.id for tx in day])
        by_id = {s.transaction_id: s for s in existing}

        if all(tx.id in by_id for tx in day):
            ordered = tuple(by_id[tx.id] for tx in day)
            if self.is_chained(day, by_id):
                logger.debug(f"Snapshots of portfolio {portfolio.id} on {snapshot_date} already chained")
                return SnapshotUpsertResult(portfolio.id, snapshot_date, SnapshotUpsertStatus.UNCHANGED, ordered)

            # Re-chain from the stored day boundaries without refetching
            first = ordered[0]
            snapshots = self.chain_snapshots(
                portfolio.id,
                snapshot_date,
                day,
                first.value_before_home,
                first.value_after_home,
                first.value_before_source,
                first.value_after_source,
            )
            await self.snapshot_repository.replace_for_date(portfolio.id, snapshot_date, snapshots)
            logger.info(f"Re-chained {len(snapshots)} snapshot(s) of portfolio {portfolio.id} on {snapshot_date}")
            return SnapshotUpsertResult(portfolio.id, snapshot_date, SnapshotUpsertStatus.RECHAINED, tuple(snapshots))

        before = await self.valuation_service.value_portfolio(
            portfolio, snapshot_date - timedelta(days=1), transactions, splits
        )
        after = await self.valuation_service.value_portfolio(
            portfolio, snapshot_date, transactions, splits
        )

        missing = tuple(dict.fromkeys(before.missing + after.missing))
        if missing:
            logger.warning(
                f"Snapshots of portfolio {portfolio.id} on {snapshot_date} not stored: "
                f"{len(missing)} missing data point(s)"
            )
            return SnapshotUpsertResult(
                portfolio.id, snapshot_date, SnapshotUpsertStatus.INCOMPLETE, missing=missing
            )

        snapshots = self.chain_snapshots(
            portfolio.id,
            snapshot_date,
            day,
            before.value_home,
            after.value_home,
            before.value_source,
            after.value_source,
        )
        await self.snapshot_repository.replace_for_date(portfolio.id, snapshot_date, snapshots)
        logger.info(f"Stored {len(snapshots)} snapshot(s) of portfolio {portfolio.id} on {snapshot_date}")
        return SnapshotUpsertResult(portfolio.id, snapshot_date, SnapshotUpsertStatus.RECOMPUTED, tuple(snapshots))

    # ==================== Chaining ====================

    @staticmethod
    def chain_snapshots(
        portfolio_id: UUID,
        snapshot_date: date,
        day_transactions: Sequence[StockTransaction],
        day_start_home: Decimal,
        day_end_home: Decimal,
        day_start_source: Decimal,
        day_end_source: Decimal,
    ) -> List[TransactionPortfolioSnapshot]:
        """
        Build chained snapshots for one date.

        The first transaction spans day start to day end; every later one
        is pinned at day end on both sides.
        """
        snapshots = []
        for index, tx in enumerate(day_transactions):
            first = index == 0
            snapshots.append(TransactionPortfolioSnapshot.create(
                portfolio_id=portfolio_id,
                transaction_id=tx.id,
                snapshot_date=snapshot_date,
                value_before_home=day_start_home if first else day_end_home,
                value_after_home=day_end_home,
                value_before_source=day_start_source if first else day_end_source,
                value_after_source=day_end_source,
            ))
        return snapshots

    @staticmethod
    def is_chained(
        day_transactions: Sequence[StockTransaction],
        snapshots_by_transaction: Dict[UUID, TransactionPortfolioSnapshot],
    ) -> bool:
        """True when every later snapshot sits at the first one's after-value."""
        first = snapshots_by_transaction[day_transactions[0].id]
        for tx in day_transactions[1:]:
            s = snapshots_by_transaction[tx.id]
            if (
                s.value_before_home != first.value_after_home
                or s.value_after_home != first.value_after_home
                or s.value_before_source != first.value_after_source
                or s.value_after_source != first.value_after_source
            ):
                return False
        return True

    async def _get_portfolio(self, portfolio_id: UUID) -> Portfolio:
        portfolio = await self.portfolio_repository.get_by_id(portfolio_id)
        if portfolio is None:
            raise EntityNotFoundError("Portfolio", portfolio_id)
        return portfolio
