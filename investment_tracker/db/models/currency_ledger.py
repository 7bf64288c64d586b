"""
Investment Tracker - Currency Ledger Models
"""
from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum as SQLEnum, ForeignKey, Numeric, String, Uuid,
)
from sqlalchemy.orm import relationship

from investment_tracker.core.enums import CurrencyTransactionType
from investment_tracker.db.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class CurrencyLedgerRecord(Base):
    """Foreign-currency cash account."""

    __tablename__ = "currency_ledgers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)
    currency_code = Column(String(3), nullable=False)
    home_currency = Column(String(3), nullable=False, default="TWD")
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)

    transactions = relationship(
        "CurrencyTransactionRecord",
        back_populates="ledger",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<CurrencyLedger {self.name} {self.currency_code}>"


class CurrencyTransactionRecord(Base):

    __tablename__ = "currency_transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    ledger_id = Column(Uuid, ForeignKey("currency_ledgers.id", ondelete="CASCADE"), nullable=False, index=True)

    transaction_date = Column(Date, nullable=False)
    transaction_type = Column(SQLEnum(CurrencyTransactionType), nullable=False)

    foreign_amount = Column(Numeric(18, 4), nullable=False)
    home_amount = Column(Numeric(18, 2), nullable=True)
    exchange_rate = Column(Numeric(18, 6), nullable=True)

    related_stock_transaction_id = Column(Uuid, nullable=True)
    notes = Column(String(500), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    ledger = relationship("CurrencyLedgerRecord", back_populates="transactions")

    def __repr__(self):
        return f"<CurrencyTransaction {self.transaction_type.value} {self.foreign_amount}>"
