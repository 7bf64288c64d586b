"""
Investment Tracker - Database Connection
"""
from typing import AsyncGenerator, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from investment_tracker.config import settings


# Base class for models
Base = declarative_base()

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker] = None


def get_engine() -> AsyncEngine:
    """Create the async engine on first use."""
    global _engine
    if _engine is None:
        url = settings.database_url
        options = {"echo": settings.DEBUG, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            options.update(
                pool_size=settings.DATABASE_POOL_SIZE,
                max_overflow=settings.DATABASE_MAX_OVERFLOW,
            )
        _engine = create_async_engine(url, **options)
    return _engine


def get_session_maker() -> async_sessionmaker:
    """Async session factory bound to the engine."""
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
    return _session_maker


async def init_db() -> None:
    """Initialize database tables."""
    async with get_engine().begin() as conn:
        # Import all models here to ensure they're registered
        from investment_tracker.db.models import (  # noqa: F401
            currency_ledger,
            historical_market_data,
            portfolio,
            stock_split,
            stock_transaction,
            transaction_snapshot,
        )

        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified")


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session that commits on success and rolls back on error."""
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
