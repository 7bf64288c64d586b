"""
Unit Tests - Configuration
Tests for application settings.
"""
import pytest


class TestSettings:
    """Tests for Settings configuration class."""

    def test_environment_from_env(self):
        from investment_tracker.config import Settings
        settings = Settings()
        assert settings.APP_ENV == "testing"
        assert settings.is_testing
        assert not settings.is_production

    def test_currency_defaults(self):
        from investment_tracker.config import Settings
        settings = Settings()
        assert settings.HOME_CURRENCY == "TWD"
        assert settings.DEFAULT_BASE_CURRENCY == "USD"
        assert settings.MARKET_TIMEZONE == "Asia/Taipei"

    def test_currency_normalized(self, monkeypatch):
        from investment_tracker.config import Settings
        monkeypatch.setenv("HOME_CURRENCY", " jpy ")
        assert Settings().HOME_CURRENCY == "JPY"

    def test_xirr_defaults(self):
        from investment_tracker.config import Settings
        settings = Settings()
        assert settings.XIRR_MAX_ITERATIONS == 100
        assert settings.XIRR_LOWER_BOUND == pytest.approx(-0.999)
        assert settings.XIRR_UPPER_BOUND == pytest.approx(10.0)
        assert settings.SHORT_PERIOD_MONTHS == 3


class TestDatabaseUrl:

    def test_built_from_parts(self, monkeypatch):
        from investment_tracker.config import Settings
        monkeypatch.delenv("DATABASE_URL", raising=False)
        settings = Settings()
        assert settings.database_url.startswith("postgresql+asyncpg://")
        assert settings.database_url.endswith("/investment_tracker_test")

    def test_direct_url_gets_async_driver(self, monkeypatch):
        from investment_tracker.config import Settings
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/tracker")
        assert Settings().database_url == "postgresql+asyncpg://u:p@db:5432/tracker"

    def test_sqlite_url_kept(self, monkeypatch):
        from investment_tracker.config import Settings
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
        assert Settings().database_url == "sqlite+aiosqlite:///:memory:"
