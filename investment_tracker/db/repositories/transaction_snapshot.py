"""
Transaction Snapshot Repository
"""
from datetime import date
from typing import Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from investment_tracker.core.interfaces import TransactionSnapshotRepository
from investment_tracker.core.models import TransactionPortfolioSnapshot
from investment_tracker.db.models.transaction_snapshot import TransactionSnapshotRecord


def to_domain(record: TransactionSnapshotRecord) -> TransactionPortfolioSnapshot:
    return TransactionPortfolioSnapshot(
        id=record.id,
        portfolio_id=record.portfolio_id,
        transaction_id=record.transaction_id,
        snapshot_date=record.snapshot_date,
        value_before_home=record.value_before_home,
        value_after_home=record.value_after_home,
        value_before_source=record.value_before_source,
        value_after_source=record.value_after_source,
        created_at=record.created_at,
    )


def to_record(snapshot: TransactionPortfolioSnapshot) -> TransactionSnapshotRecord:
    return TransactionSnapshotRecord(
        id=snapshot.id,
        portfolio_id=snapshot.portfolio_id,
        transaction_id=snapshot.transaction_id,
        snapshot_date=snapshot.snapshot_date,
        value_before_home=snapshot.value_before_home,
        value_after_home=snapshot.value_after_home,
        value_before_source=snapshot.value_before_source,
        value_after_source=snapshot.value_after_source,
        created_at=snapshot.created_at,
    )


class SqlTransactionSnapshotRepository(TransactionSnapshotRepository):
    """Repository for TransactionPortfolioSnapshot database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_for_transactions(
        self,
        portfolio_id: UUID,
        transaction_ids: Sequence[UUID],
    ) -> list[TransactionPortfolioSnapshot]:
        if not transaction_ids:
            return []
        result = await self.db.execute(
            select(TransactionSnapshotRecord).where(
                TransactionSnapshotRecord.portfolio_id == portfolio_id,
                TransactionSnapshotRecord.transaction_id.in_(list(transaction_ids)),
            )
        )
        return [to_domain(record) for record in result.scalars().all()]

    async def get_range(
        self,
        portfolio_id: UUID,
        from_date: date,
        to_date: date,
    ) -> list[TransactionPortfolioSnapshot]:
        result = await self.db.execute(
            select(TransactionSnapshotRecord)
            .where(
                TransactionSnapshotRecord.portfolio_id == portfolio_id,
                TransactionSnapshotRecord.snapshot_date >= from_date,
                TransactionSnapshotRecord.snapshot_date <= to_date,
            )
            .order_by(
                TransactionSnapshotRecord.snapshot_date,
                TransactionSnapshotRecord.created_at,
            )
        )
        return [to_domain(record) for record in result.scalars().all()]

    async def replace_for_date(
        self,
        portfolio_id: UUID,
        snapshot_date: date,
        snapshots: Sequence[TransactionPortfolioSnapshot],
    ) -> list[TransactionPortfolioSnapshot]:
        """Delete and re-insert a date's snapshots in a single commit."""
        try:
            await self.db.execute(
                delete(TransactionSnapshotRecord).where(
                    TransactionSnapshotRecord.portfolio_id == portfolio_id,
                    TransactionSnapshotRecord.snapshot_date == snapshot_date,
                )
            )
            self.db.add_all([to_record(s) for s in snapshots])
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.error(f"Failed to replace snapshots for portfolio {portfolio_id} on {snapshot_date}")
            raise
        return list(snapshots)

    async def delete_for_date(self, portfolio_id: UUID, snapshot_date: date) -> int:
        result = await self.db.execute(
            delete(TransactionSnapshotRecord).where(
                TransactionSnapshotRecord.portfolio_id == portfolio_id,
                TransactionSnapshotRecord.snapshot_date == snapshot_date,
            )
        )
        await self.db.commit()
        return result.rowcount
