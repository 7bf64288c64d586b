"""
Investment Tracker - Transaction Portfolio Snapshot Model
"""
from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, Date, DateTime, Index, Numeric, UniqueConstraint, Uuid

from investment_tracker.db.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class TransactionSnapshotRecord(Base):
    """Portfolio value immediately before and after one transaction."""

    __tablename__ = "transaction_portfolio_snapshots"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    portfolio_id = Column(Uuid, nullable=False)
    transaction_id = Column(Uuid, nullable=False)
    snapshot_date = Column(Date, nullable=False)

    value_before_home = Column(Numeric(20, 4), nullable=False)
    value_after_home = Column(Numeric(20, 4), nullable=False)
    value_before_source = Column(Numeric(20, 4), nullable=False)
    value_after_source = Column(Numeric(20, 4), nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("portfolio_id", "transaction_id", name="uq_snapshots_portfolio_transaction"),
        Index("ix_snapshots_portfolio_date", "portfolio_id", "snapshot_date"),
    )

    def __repr__(self):
        return (
            f"<TransactionSnapshot {self.transaction_id} {self.snapshot_date} "
            f"{self.value_before_home}->{self.value_after_home}>"
        )
