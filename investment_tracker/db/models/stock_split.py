"""
Investment Tracker - Stock Split Model
"""
import uuid

from sqlalchemy import Column, Date, Enum as SQLEnum, Numeric, String, UniqueConstraint, Uuid

from investment_tracker.core.enums import Market
from investment_tracker.db.database import Base


class StockSplitRecord(Base):

    __tablename__ = "stock_splits"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    symbol = Column(String(20), nullable=False, index=True)
    market = Column(SQLEnum(Market), nullable=False)
    effective_date = Column(Date, nullable=False)
    ratio = Column(Numeric(18, 8), nullable=False)
    description = Column(String(200), nullable=True)

    __table_args__ = (
        UniqueConstraint("symbol", "market", "effective_date", name="uq_stock_splits_symbol_date"),
    )

    def __repr__(self):
        return f"<StockSplit {self.symbol} {self.effective_date} x{self.ratio}>"
