"""
Currency Ledger Repository
"""
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from investment_tracker.core.interfaces import LedgerRepository
from investment_tracker.core.models import CurrencyLedger, CurrencyTransaction, LedgerWithTransactions
from investment_tracker.db.models.currency_ledger import CurrencyLedgerRecord, CurrencyTransactionRecord


def ledger_to_domain(record: CurrencyLedgerRecord) -> CurrencyLedger:
    return CurrencyLedger(
        id=record.id,
        user_id=record.user_id,
        currency_code=record.currency_code,
        home_currency=record.home_currency,
        name=record.name,
        is_active=record.is_active,
    )


def transaction_to_domain(record: CurrencyTransactionRecord) -> CurrencyTransaction:
    return CurrencyTransaction(
        id=record.id,
        ledger_id=record.ledger_id,
        transaction_date=record.transaction_date,
        transaction_type=record.transaction_type,
        foreign_amount=record.foreign_amount,
        created_at=record.created_at,
        home_amount=record.home_amount,
        exchange_rate=record.exchange_rate,
        related_stock_transaction_id=record.related_stock_transaction_id,
        notes=record.notes,
        is_deleted=record.is_deleted,
    )


class SqlLedgerRepository(LedgerRepository):
    """Repository for currency ledgers and their transactions."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_with_transactions(self, ledger_id: UUID) -> Optional[LedgerWithTransactions]:
        result = await self.db.execute(
            select(CurrencyLedgerRecord).where(CurrencyLedgerRecord.id == ledger_id)
        )
        ledger = result.scalar_one_or_none()
        if ledger is None:
            return None

        tx_result = await self.db.execute(
            select(CurrencyTransactionRecord)
            .where(
                CurrencyTransactionRecord.ledger_id == ledger_id,
                CurrencyTransactionRecord.is_deleted.is_(False),
            )
            .order_by(
                CurrencyTransactionRecord.transaction_date,
                CurrencyTransactionRecord.created_at,
            )
        )
        return LedgerWithTransactions(
            ledger=ledger_to_domain(ledger),
            transactions=[transaction_to_domain(r) for r in tx_result.scalars().all()],
        )

    async def add_transaction(self, tx: CurrencyTransaction) -> CurrencyTransaction:
        self.db.add(CurrencyTransactionRecord(
            id=tx.id,
            ledger_id=tx.ledger_id,
            transaction_date=tx.transaction_date,
            transaction_type=tx.transaction_type,
            foreign_amount=tx.foreign_amount,
            home_amount=tx.home_amount,
            exchange_rate=tx.exchange_rate,
            related_stock_transaction_id=tx.related_stock_transaction_id,
            notes=tx.notes,
            is_deleted=tx.is_deleted,
            created_at=tx.created_at,
        ))
        await self.db.commit()
        return tx
