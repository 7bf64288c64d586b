"""
Stock Split Repository
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from investment_tracker.core.enums import Market
from investment_tracker.core.interfaces import StockSplitRepository
from investment_tracker.core.models import StockSplit
from investment_tracker.db.models.stock_split import StockSplitRecord


def to_domain(record: StockSplitRecord) -> StockSplit:
    return StockSplit(
        id=record.id,
        symbol=record.symbol,
        market=record.market,
        effective_date=record.effective_date,
        ratio=record.ratio,
        description=record.description,
    )


class SqlStockSplitRepository(StockSplitRepository):
    """Repository for StockSplit database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_all(self) -> list[StockSplit]:
        result = await self.db.execute(
            select(StockSplitRecord).order_by(StockSplitRecord.effective_date)
        )
        return [to_domain(record) for record in result.scalars().all()]

    async def get_by_symbol(self, symbol: str, market: Market) -> list[StockSplit]:
        result = await self.db.execute(
            select(StockSplitRecord)
            .where(
                StockSplitRecord.symbol == symbol.upper(),
                StockSplitRecord.market == market,
            )
            .order_by(StockSplitRecord.effective_date)
        )
        return [to_domain(record) for record in result.scalars().all()]

    async def add(self, split: StockSplit) -> StockSplit:
        self.db.add(StockSplitRecord(
            id=split.id,
            symbol=split.symbol,
            market=split.market,
            effective_date=split.effective_date,
            ratio=split.ratio,
            description=split.description,
        ))
        await self.db.commit()
        return split
