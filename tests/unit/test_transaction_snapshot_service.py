"""
Unit Tests - Transaction Snapshot Service
Same-day chaining, idempotent upserts and atomic replacement.
"""
import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from conftest import FakeAdapter, make_tx
from investment_tracker.core.enums import TransactionType
from investment_tracker.core.models import TransactionPortfolioSnapshot
from investment_tracker.data_providers.adapters.base import RateLimitError
from investment_tracker.services.transaction_snapshot_service import (
    SnapshotUpsertStatus,
    TransactionSnapshotService,
    qualifying_transactions,
)
from investment_tracker.utils.exceptions import EntityNotFoundError, RateLimitExceededError


PREV = date(2024, 1, 9)
DAY = date(2024, 1, 10)


@pytest.fixture
def adapter():
    return FakeAdapter(
        prices={("AAPL", PREV): "105", ("AAPL", DAY): "110"},
        rates={("USDTWD", PREV): "31", ("USDTWD", DAY): "32"},
    )


@pytest.fixture
def same_day(portfolio, transaction_repo):
    """A holding from the 5th plus two buys on DAY."""
    held = transaction_repo.add(make_tx(portfolio.id, date(2024, 1, 5), quantity="10", seq=0))
    first = transaction_repo.add(make_tx(portfolio.id, DAY, quantity="5", seq=1))
    second = transaction_repo.add(make_tx(portfolio.id, DAY, quantity="5", seq=2))
    return held, first, second


class TestQualifyingTransactions:

    def test_creation_order(self):
        pid = uuid4()
        late = make_tx(pid, DAY, seq=5)
        early = make_tx(pid, DAY, seq=1)
        other_day = make_tx(pid, PREV, seq=0)
        deleted = make_tx(pid, DAY, seq=0).mark_deleted()
        assert qualifying_transactions([late, other_day, deleted, early], DAY) == [early, late]


class TestChainSnapshots:

    def test_only_first_has_real_before(self):
        pid = uuid4()
        txs = [make_tx(pid, DAY, seq=i) for i in range(3)]
        snapshots = TransactionSnapshotService.chain_snapshots(
            pid, DAY, txs, Decimal("100"), Decimal("300"), Decimal("10"), Decimal("30"),
        )
        assert [(s.value_before_home, s.value_after_home) for s in snapshots] == [
            (Decimal("100"), Decimal("300")),
            (Decimal("300"), Decimal("300")),
            (Decimal("300"), Decimal("300")),
        ]
        assert [s.transaction_id for s in snapshots] == [tx.id for tx in txs]
        assert TransactionSnapshotService.is_chained(txs, {s.transaction_id: s for s in snapshots})


class TestUpsertSnapshots:

    @pytest.mark.asyncio
    async def test_same_day_transactions_chained(self, portfolio, snapshot_service, snapshot_repo, same_day):
        _, first, second = same_day

        result = await snapshot_service.upsert_snapshots_for_date(portfolio.id, DAY)

        assert result.status == SnapshotUpsertStatus.RECOMPUTED
        assert result.is_complete
        snaps = {s.transaction_id: s for s in result.snapshots}
        # 10 shares at 105 x 31 the day before, 20 shares at 110 x 32 at the close
        assert snaps[first.id].value_before_home == Decimal("32550")
        assert snaps[first.id].value_after_home == Decimal("70400")
        assert snaps[second.id].value_before_home == Decimal("70400")
        assert snaps[second.id].value_after_home == Decimal("70400")
        assert snaps[first.id].value_before_source == Decimal("1050")
        assert snaps[second.id].value_before_source == Decimal("2200")
        assert snapshot_repo.replace_calls == 1

    @pytest.mark.asyncio
    async def test_second_upsert_is_noop(self, portfolio, snapshot_service, snapshot_repo, cache_repo, same_day):
        await snapshot_service.upsert_snapshots_for_date(portfolio.id, DAY)
        lookups = cache_repo.get_calls

        result = await snapshot_service.upsert_snapshots_for_date(portfolio.id, DAY)

        assert result.status == SnapshotUpsertStatus.UNCHANGED
        assert len(result.snapshots) == 2
        assert snapshot_repo.replace_calls == 1
        assert cache_repo.get_calls == lookups

    @pytest.mark.asyncio
    async def test_unchained_snapshots_rechained_without_lookups(
        self, portfolio, snapshot_service, snapshot_repo, cache_repo, adapter, same_day,
    ):
        _, first, second = same_day
        snapshot_repo.put(TransactionPortfolioSnapshot.create(
            portfolio.id, first.id, DAY, "32550", "51000", "1050", "1600",
        ))
        snapshot_repo.put(TransactionPortfolioSnapshot.create(
            portfolio.id, second.id, DAY, "51000", "70400", "1600", "2200",
        ))

        result = await snapshot_service.upsert_snapshots_for_date(portfolio.id, DAY)

        assert result.status == SnapshotUpsertStatus.RECHAINED
        snaps = {s.transaction_id: s for s in result.snapshots}
        assert snaps[first.id].value_before_home == Decimal("32550")
        assert snaps[first.id].value_after_home == Decimal("51000")
        assert snaps[second.id].value_before_home == Decimal("51000")
        assert snaps[second.id].value_after_home == Decimal("51000")
        assert cache_repo.get_calls == 0
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_new_transaction_triggers_recompute(
        self, portfolio, snapshot_service, transaction_repo, snapshot_repo, same_day,
    ):
        await snapshot_service.upsert_snapshots_for_date(portfolio.id, DAY)
        third = transaction_repo.add(make_tx(portfolio.id, DAY, TransactionType.SELL, quantity="2", seq=3))

        result = await snapshot_service.upsert_snapshot(portfolio.id, third.id)

        assert result.status == SnapshotUpsertStatus.RECOMPUTED
        assert len(result.snapshots) == 3
        assert result.snapshots[-1].transaction_id == third.id
        # 18 shares at the close
        assert result.snapshots[-1].value_after_home == Decimal("63360")
        assert snapshot_repo.replace_calls == 2

    @pytest.mark.asyncio
    async def test_missing_data_persists_nothing(self, portfolio, snapshot_service, snapshot_repo, transaction_repo):
        transaction_repo.add(make_tx(portfolio.id, DAY, symbol="GOOG"))

        result = await snapshot_service.upsert_snapshots_for_date(portfolio.id, DAY)

        assert result.status == SnapshotUpsertStatus.INCOMPLETE
        assert not result.is_complete
        assert [m.key for m in result.missing] == ["GOOG:us"]
        assert snapshot_repo.snapshots == {}
        assert snapshot_repo.replace_calls == 0

    @pytest.mark.asyncio
    async def test_rate_limit_propagates(
        self, portfolio, portfolio_repo, transaction_repo, split_repo, snapshot_repo, ledger_repo, cache_repo, clock,
    ):
        from investment_tracker.data_providers.historical_cache import HistoricalMarketDataCache
        from investment_tracker.services.portfolio_valuation import PortfolioValuationService

        limited = FakeAdapter(prices={("AAPL", DAY): RateLimitError("fake")})
        cache = HistoricalMarketDataCache(cache_repo, [limited], [limited], clock=clock)
        valuation = PortfolioValuationService(transaction_repo, split_repo, ledger_repo, cache)
        service = TransactionSnapshotService(portfolio_repo, transaction_repo, split_repo, snapshot_repo, valuation)
        transaction_repo.add(make_tx(portfolio.id, DAY))

        with pytest.raises(RateLimitExceededError):
            await service.upsert_snapshots_for_date(portfolio.id, DAY)
        assert snapshot_repo.snapshots == {}

    @pytest.mark.asyncio
    async def test_no_transactions_clears_stale(self, portfolio, snapshot_service, snapshot_repo):
        snapshot_repo.put(TransactionPortfolioSnapshot.create(portfolio.id, uuid4(), DAY, 1, 1, 1, 1))

        result = await snapshot_service.upsert_snapshots_for_date(portfolio.id, DAY)

        assert result.status == SnapshotUpsertStatus.NO_TRANSACTIONS
        assert snapshot_repo.snapshots == {}

    @pytest.mark.asyncio
    async def test_unknown_portfolio(self, snapshot_service):
        with pytest.raises(EntityNotFoundError):
            await snapshot_service.upsert_snapshots_for_date(uuid4(), DAY)

    @pytest.mark.asyncio
    async def test_transaction_of_other_portfolio(self, portfolio, snapshot_service, transaction_repo):
        foreign = transaction_repo.add(make_tx(uuid4(), DAY))
        with pytest.raises(EntityNotFoundError):
            await snapshot_service.upsert_snapshot(portfolio.id, foreign.id)


class TestDeleteSnapshot:

    @pytest.mark.asyncio
    async def test_delete_rechains_remaining(self, portfolio, snapshot_service, snapshot_repo, transaction_repo, same_day):
        _, first, second = same_day
        await snapshot_service.upsert_snapshots_for_date(portfolio.id, DAY)
        transaction_repo.soft_delete(first.id)

        result = await snapshot_service.delete_snapshot(portfolio.id, first.id)

        assert result.status == SnapshotUpsertStatus.RECOMPUTED
        assert [s.transaction_id for s in result.snapshots] == [second.id]
        only = result.snapshots[0]
        # second now carries the day boundary: 10 shares before, 15 after
        assert only.value_before_home == Decimal("32550")
        assert only.value_after_home == Decimal("52800")
        assert set(tid for _, tid in snapshot_repo.snapshots) == {second.id}

    @pytest.mark.asyncio
    async def test_delete_last_transaction_of_day(self, portfolio, snapshot_service, snapshot_repo, transaction_repo):
        tx = transaction_repo.add(make_tx(portfolio.id, DAY))
        await snapshot_service.upsert_snapshots_for_date(portfolio.id, DAY)
        transaction_repo.soft_delete(tx.id)

        result = await snapshot_service.delete_snapshot(portfolio.id, tx.id)

        assert result.status == SnapshotUpsertStatus.NO_TRANSACTIONS
        assert snapshot_repo.snapshots == {}


class TestBackfill:

    @pytest.mark.asyncio
    async def test_backfill_every_transaction_date(self, portfolio, snapshot_service, snapshot_repo, same_day):
        results = await snapshot_service.backfill_snapshots(portfolio.id)

        assert [r.snapshot_date for r in results] == [date(2024, 1, 5), DAY]
        # No price is scripted for the 5th, so that date stays incomplete
        assert results[0].status == SnapshotUpsertStatus.INCOMPLETE
        assert results[1].status == SnapshotUpsertStatus.RECOMPUTED

    @pytest.mark.asyncio
    async def test_backfill_range(self, portfolio, snapshot_service, same_day):
        results = await snapshot_service.backfill_snapshots(portfolio.id, from_date=date(2024, 1, 6))
        assert [r.snapshot_date for r in results] == [DAY]

    @pytest.mark.asyncio
    async def test_get_snapshots_in_range(self, portfolio, snapshot_service, same_day):
        await snapshot_service.upsert_snapshots_for_date(portfolio.id, DAY)
        assert len(await snapshot_service.get_snapshots(portfolio.id, DAY, DAY)) == 2
        assert await snapshot_service.get_snapshots(portfolio.id, PREV, PREV) == []
