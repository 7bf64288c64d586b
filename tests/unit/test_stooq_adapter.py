"""
Unit Tests - Stooq Adapter
CSV parsing and plain-text error translation.
"""
import asyncio
import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

from investment_tracker.core.enums import Market
from investment_tracker.data_providers.adapters.base import (
    UNHEALTHY_AFTER_FAILURES,
    DataNotAvailableError,
    ProviderError,
    RateLimitError,
)
from investment_tracker.data_providers.adapters.stooq import (
    StooqAdapter,
    check_body,
    format_symbol,
    parse_daily_csv,
    parse_latest_csv,
    select_on_or_before,
)


DAILY_CSV = """Date,Open,High,Low,Close,Volume
2024-01-09,183.92,185.15,182.73,185.14,42841809
2024-01-05,181.99,182.76,180.17,181.18,62303315
2024-01-08,182.09,185.60,181.50,185.56,59144470
"""


class TestParseDailyCsv:

    def test_rows_sorted_by_date(self):
        rows = parse_daily_csv(DAILY_CSV)
        assert [r[0] for r in rows] == [date(2024, 1, 5), date(2024, 1, 8), date(2024, 1, 9)]
        assert rows[-1][1] == Decimal("185.14")

    def test_compact_dates_and_bad_lines(self):
        content = "Date,Open,High,Low,Close\n20240105,1,1,1,31.25\n20240106,1,1,1,n/a\n,1,1,1,2\n"
        assert parse_daily_csv(content) == [(date(2024, 1, 5), Decimal("31.25"))]

    def test_non_positive_close_dropped(self):
        content = "Date,Open,High,Low,Close\n2024-01-05,1,1,1,0\n"
        assert parse_daily_csv(content) == []


class TestSelectOnOrBefore:

    def test_weekend_uses_previous_close(self):
        rows = parse_daily_csv(DAILY_CSV)
        assert select_on_or_before(rows, date(2024, 1, 7)) == (date(2024, 1, 5), Decimal("181.18"))

    def test_exact_date(self):
        rows = parse_daily_csv(DAILY_CSV)
        assert select_on_or_before(rows, date(2024, 1, 9))[0] == date(2024, 1, 9)

    def test_nothing_before(self):
        rows = parse_daily_csv(DAILY_CSV)
        assert select_on_or_before(rows, date(2024, 1, 1)) is None


class TestParseLatestCsv:

    def test_quote(self):
        content = "Symbol,Date,Time,Open,High,Low,Close,Volume\nAAPL.US,2024-06-28,22:00:09,215.77,216.07,210.30,210.62,82542718\n"
        assert parse_latest_csv(content) == (date(2024, 6, 28), Decimal("210.62"))

    def test_unknown_symbol(self):
        content = "Symbol,Date,Time,Open,High,Low,Close,Volume\nXXXX.US,N/D,N/D,N/D,N/D,N/D,N/D,N/D\n"
        assert parse_latest_csv(content) is None

    def test_header_only(self):
        assert parse_latest_csv("Symbol,Date,Time,Open,High,Low,Close,Volume") is None


class TestCheckBody:

    def test_daily_limit(self):
        with pytest.raises(RateLimitError):
            check_body("Exceeded the daily hits limit", "aapl.us")

    @pytest.mark.parametrize("content", ["No data", "", "   \n"])
    def test_no_data(self, content):
        with pytest.raises(DataNotAvailableError):
            check_body(content, "aapl.us")

    def test_csv_passes(self):
        check_body(DAILY_CSV, "aapl.us")


class TestSymbols:

    def test_us_suffix(self):
        assert format_symbol("AAPL", Market.US) == "aapl.us"

    def test_uncovered_market(self):
        with pytest.raises(DataNotAvailableError):
            format_symbol("2330", Market.TW)

    def test_coverage(self):
        adapter = StooqAdapter()
        assert adapter.name == "stooq"
        assert adapter.supports_market(Market.US)
        assert not adapter.supports_market(Market.TW)
        assert adapter.supports_fx()

    @pytest.mark.asyncio
    async def test_tw_price_not_available_without_request(self):
        adapter = StooqAdapter()
        with pytest.raises(DataNotAvailableError):
            await adapter.get_historical_price("2330", Market.TW, date(2024, 1, 5))
        assert adapter._session is None


class TestProviderStatus:

    def test_unhealthy_after_consecutive_failures(self):
        adapter = StooqAdapter()
        for _ in range(UNHEALTHY_AFTER_FAILURES - 1):
            adapter._record_failure(ConnectionError("reset"))
        assert adapter.status.is_healthy

        adapter._record_failure(ConnectionError("reset"))

        assert not adapter.status.is_healthy
        assert adapter.status.last_failure == "reset"

    def test_success_restores_health(self):
        adapter = StooqAdapter()
        for _ in range(UNHEALTHY_AFTER_FAILURES):
            adapter._record_failure(ConnectionError("reset"))

        adapter._record_success(100.0)

        assert adapter.status.is_healthy
        assert adapter.status.consecutive_failures == 0
        assert adapter.status.successes == 1
        assert adapter.status.mean_latency_ms == pytest.approx(10.0)

    def test_rate_limit_counted(self):
        adapter = StooqAdapter()
        error = adapter._record_rate_limit(30)
        assert isinstance(error, RateLimitError)
        assert error.retry_after == 30
        assert adapter.status.rate_limited == 1
        assert adapter.status.is_healthy


def timing_out_session():
    """Session whose requests time out while waiting for the response."""
    session = MagicMock()
    session.get.return_value.__aenter__.side_effect = asyncio.TimeoutError()
    return session


class TestTransportFailures:

    @pytest.mark.asyncio
    async def test_timeout_is_recoverable_provider_error(self):
        adapter = StooqAdapter()
        adapter._session = timing_out_session()

        with pytest.raises(ProviderError) as exc:
            await adapter.get_historical_price("AAPL", Market.US, date(2024, 1, 5))

        assert exc.value.recoverable
        assert not isinstance(exc.value, (RateLimitError, DataNotAvailableError))
        assert "timed out" in exc.value.message
        assert adapter.status.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_health_check_reports_timeout(self):
        adapter = StooqAdapter()
        adapter._session = timing_out_session()

        assert await adapter.health_check() is False
