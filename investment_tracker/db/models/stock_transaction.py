"""
Investment Tracker - Stock Transaction Model
"""
from datetime import datetime, timezone
from decimal import Decimal
import uuid

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum as SQLEnum, ForeignKey, Index, Numeric, String, Uuid,
)

from investment_tracker.core.enums import Market, TransactionType
from investment_tracker.db.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class StockTransactionRecord(Base):
    """Buy/sell row. Soft-deleted rows are kept for audit."""

    __tablename__ = "stock_transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    portfolio_id = Column(Uuid, ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False)

    # Symbol info
    symbol = Column(String(20), nullable=False, index=True)
    market = Column(SQLEnum(Market), nullable=False)
    currency = Column(String(3), nullable=False)

    transaction_type = Column(SQLEnum(TransactionType), nullable=False)
    transaction_date = Column(Date, nullable=False)

    # Quantities and prices
    quantity = Column(Numeric(18, 4), nullable=False)
    unit_price = Column(Numeric(18, 4), nullable=False)
    fees = Column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    # Null when the rate to the home currency is unknown
    exchange_rate = Column(Numeric(18, 6), nullable=True)

    currency_ledger_id = Column(Uuid, nullable=True)
    notes = Column(String(500), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_stock_transactions_portfolio_date", "portfolio_id", "transaction_date"),
    )

    def __repr__(self):
        return f"<StockTransaction {self.transaction_type.value} {self.symbol} qty={self.quantity}>"
