"""
Investment Tracker - Configuration Settings
"""
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # =========================
    # Application Settings
    # =========================
    APP_NAME: str = "Investment Tracker"
    APP_ENV: str = "development"
    DEBUG: bool = True

    # =========================
    # Database - PostgreSQL
    # =========================
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "investment_tracker"
    POSTGRES_USER: str = "investment_tracker"
    POSTGRES_PASSWORD: str = "dev_password_123"
    # Direct DATABASE_URL from environment (overrides individual settings)
    DATABASE_URL: str = ""
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    @property
    def database_url(self) -> str:
        """Get the async database URL."""
        if self.DATABASE_URL:
            url = self.DATABASE_URL
            # Ensure it uses asyncpg driver
            if url.startswith("postgresql://"):
                url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
            return url
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # =========================
    # Currencies
    # =========================
    HOME_CURRENCY: str = "TWD"
    DEFAULT_BASE_CURRENCY: str = "USD"
    # Timezone used to decide whether a date is still the open period
    MARKET_TIMEZONE: str = "Asia/Taipei"

    @field_validator("HOME_CURRENCY", "DEFAULT_BASE_CURRENCY", mode="before")
    @classmethod
    def normalize_currency(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    # =========================
    # Return Solver
    # =========================
    XIRR_MAX_ITERATIONS: int = 100
    XIRR_TOLERANCE: float = 1e-7
    XIRR_LOWER_BOUND: float = -0.999
    XIRR_UPPER_BOUND: float = 10.0
    XIRR_INITIAL_GUESS: float = 0.1
    SHORT_PERIOD_MONTHS: int = 3

    # =========================
    # Market Data Providers
    # =========================
    FRANKFURTER_BASE_URL: str = "https://api.frankfurter.dev/v1"
    STOOQ_BASE_URL: str = "https://stooq.com/q/d/l/"
    STOOQ_QUOTE_URL: str = "https://stooq.com/q/l/"
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    # Days searched backwards for the last trading day on or before a date
    HISTORICAL_LOOKBACK_DAYS: int = 7

    # =========================
    # Logging
    # =========================
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.APP_ENV == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in tests."""
        return self.APP_ENV == "testing"


# Global settings instance
settings = Settings()
