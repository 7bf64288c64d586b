"""
Portfolio Repository
"""
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from investment_tracker.core.interfaces import PortfolioRepository
from investment_tracker.core.models import Portfolio
from investment_tracker.db.models.portfolio import PortfolioRecord


def to_domain(record: PortfolioRecord) -> Portfolio:
    return Portfolio(
        id=record.id,
        user_id=record.user_id,
        base_currency=record.base_currency,
        home_currency=record.home_currency,
        bound_currency_ledger_id=record.bound_currency_ledger_id,
        description=record.description,
    )


class SqlPortfolioRepository(PortfolioRepository):
    """Repository for Portfolio database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, portfolio_id: UUID) -> Optional[Portfolio]:
        result = await self.db.execute(
            select(PortfolioRecord).where(PortfolioRecord.id == portfolio_id)
        )
        record = result.scalar_one_or_none()
        return to_domain(record) if record else None

    async def add(self, portfolio: Portfolio) -> Portfolio:
        record = PortfolioRecord(
            id=portfolio.id,
            user_id=portfolio.user_id,
            base_currency=portfolio.base_currency,
            home_currency=portfolio.home_currency,
            bound_currency_ledger_id=portfolio.bound_currency_ledger_id,
            description=portfolio.description,
        )
        self.db.add(record)
        await self.db.commit()
        return portfolio
