"""
Stock Transaction Repository

Database operations for the transaction ledger. Reads always exclude
soft-deleted rows and return transactions in (date, created_at) order.
"""
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from investment_tracker.core.interfaces import TransactionRepository
from investment_tracker.core.models import ExchangeRate, StockTransaction
from investment_tracker.db.models.stock_transaction import StockTransactionRecord


def to_domain(record: StockTransactionRecord) -> StockTransaction:
    return StockTransaction(
        id=record.id,
        portfolio_id=record.portfolio_id,
        transaction_date=record.transaction_date,
        symbol=record.symbol,
        market=record.market,
        transaction_type=record.transaction_type,
        quantity=record.quantity,
        unit_price=record.unit_price,
        fees=record.fees,
        exchange_rate=ExchangeRate.of(record.exchange_rate),
        currency=record.currency,
        created_at=record.created_at,
        currency_ledger_id=record.currency_ledger_id,
        notes=record.notes,
        is_deleted=record.is_deleted,
    )


def to_record(tx: StockTransaction) -> StockTransactionRecord:
    return StockTransactionRecord(
        id=tx.id,
        portfolio_id=tx.portfolio_id,
        symbol=tx.symbol,
        market=tx.market,
        currency=tx.currency,
        transaction_type=tx.transaction_type,
        transaction_date=tx.transaction_date,
        quantity=tx.quantity,
        unit_price=tx.unit_price,
        fees=tx.fees,
        exchange_rate=tx.exchange_rate.value,
        currency_ledger_id=tx.currency_ledger_id,
        notes=tx.notes,
        is_deleted=tx.is_deleted,
        created_at=tx.created_at,
    )


class SqlTransactionRepository(TransactionRepository):
    """Repository for StockTransaction database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_portfolio(self, portfolio_id: UUID) -> list[StockTransaction]:
        result = await self.db.execute(
            select(StockTransactionRecord)
            .where(
                StockTransactionRecord.portfolio_id == portfolio_id,
                StockTransactionRecord.is_deleted.is_(False),
            )
            .order_by(
                StockTransactionRecord.transaction_date,
                StockTransactionRecord.created_at,
            )
        )
        return [to_domain(record) for record in result.scalars().all()]

    async def get_by_id(self, transaction_id: UUID) -> Optional[StockTransaction]:
        result = await self.db.execute(
            select(StockTransactionRecord).where(StockTransactionRecord.id == transaction_id)
        )
        record = result.scalar_one_or_none()
        return to_domain(record) if record else None

    async def add(self, tx: StockTransaction) -> StockTransaction:
        self.db.add(to_record(tx))
        await self.db.commit()
        logger.info(f"Recorded {tx.transaction_type.value} {tx.quantity} {tx.symbol} on {tx.transaction_date}")
        return tx

    async def soft_delete(self, transaction_id: UUID) -> bool:
        """
        Flag a transaction as deleted.

        Returns:
            True if a row was updated
        """
        result = await self.db.execute(
            update(StockTransactionRecord)
            .where(
                StockTransactionRecord.id == transaction_id,
                StockTransactionRecord.is_deleted.is_(False),
            )
            .values(is_deleted=True)
        )
        await self.db.commit()
        return result.rowcount > 0
