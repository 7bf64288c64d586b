"""
Historical Market Data Repository

Write-once persistence for the price/FX cache. Concurrent requests may
race to insert the same (kind, key, date); the unique constraint turns the
loser's insert into ``CacheEntryExistsError``.
"""
from datetime import date
from typing import Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from investment_tracker.core.enums import CacheKind
from investment_tracker.core.interfaces import HistoricalCacheRepository
from investment_tracker.core.models import HistoricalCacheEntry
from investment_tracker.db.models.historical_market_data import HistoricalMarketDataRecord
from investment_tracker.utils.exceptions import CacheEntryExistsError


def to_domain(record: HistoricalMarketDataRecord) -> HistoricalCacheEntry:
    return HistoricalCacheEntry(
        kind=record.kind,
        cache_key=record.cache_key,
        requested_date=record.requested_date,
        source=record.source,
        fetched_at=record.fetched_at,
        value=record.value,
        actual_date=record.actual_date,
        currency=record.currency,
        is_unavailable=record.is_unavailable,
    )


class SqlHistoricalCacheRepository(HistoricalCacheRepository):
    """Repository for HistoricalMarketData database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(
        self,
        kind: CacheKind,
        cache_key: str,
        requested_date: date,
    ) -> Optional[HistoricalCacheEntry]:
        result = await self.db.execute(
            select(HistoricalMarketDataRecord).where(
                HistoricalMarketDataRecord.kind == kind,
                HistoricalMarketDataRecord.cache_key == cache_key,
                HistoricalMarketDataRecord.requested_date == requested_date,
            )
        )
        record = result.scalar_one_or_none()
        return to_domain(record) if record else None

    async def add(self, entry: HistoricalCacheEntry) -> HistoricalCacheEntry:
        record = HistoricalMarketDataRecord(
            kind=entry.kind,
            cache_key=entry.cache_key,
            requested_date=entry.requested_date,
            value=entry.value,
            actual_date=entry.actual_date,
            currency=entry.currency,
            source=entry.source,
            fetched_at=entry.fetched_at,
            is_unavailable=entry.is_unavailable,
        )
        self.db.add(record)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise CacheEntryExistsError(entry.cache_key, entry.requested_date) from e

        logger.debug(f"Cached {entry.kind.value} {entry.cache_key}@{entry.requested_date} from {entry.source}")
        return entry
