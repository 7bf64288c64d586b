"""
Investment Tracker - Historical Market Data Cache Model

Write-once store of historical prices and exchange rates, keyed by
(kind, cache_key, requested_date). A row with ``is_unavailable`` set is a
negative-cache marker: the upstream providers confirmed there is no data,
so the lookup is never repeated.

Example keys:
- price: "AAPL:us"
- fx: "USDTWD" (1 USD = rate TWD)
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum as SQLEnum, Index, Integer, Numeric, String, UniqueConstraint,
)

from investment_tracker.core.enums import CacheKind
from investment_tracker.db.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class HistoricalMarketDataRecord(Base):

    __tablename__ = "historical_market_data"

    id = Column(Integer, primary_key=True, autoincrement=True)

    kind = Column(SQLEnum(CacheKind), nullable=False)
    cache_key = Column(String(40), nullable=False)
    requested_date = Column(Date, nullable=False)

    # Null for unavailable markers
    value = Column(Numeric(20, 10), nullable=True)
    # Trading day the value belongs to (may precede requested_date)
    actual_date = Column(Date, nullable=True)
    currency = Column(String(3), nullable=True)

    # Source metadata
    source = Column(String(50), nullable=False)
    fetched_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    is_unavailable = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("kind", "cache_key", "requested_date", name="uq_historical_market_data_key_date"),
        Index("ix_historical_market_data_key", "kind", "cache_key"),
    )

    def __repr__(self):
        if self.is_unavailable:
            return f"<HistoricalMarketData {self.cache_key}@{self.requested_date} unavailable>"
        return f"<HistoricalMarketData {self.cache_key}@{self.requested_date}={self.value}>"
