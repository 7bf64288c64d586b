"""
Investment Tracker - Portfolio Model
"""
from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, DateTime, Uuid

from investment_tracker.db.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class PortfolioRecord(Base):
    """Portfolio row; positions are never stored, only transactions."""

    __tablename__ = "portfolios"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, nullable=False, index=True)

    base_currency = Column(String(3), nullable=False, default="USD")
    home_currency = Column(String(3), nullable=False, default="TWD")
    bound_currency_ledger_id = Column(Uuid, nullable=True)
    description = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<Portfolio {self.id} {self.base_currency}/{self.home_currency}>"
