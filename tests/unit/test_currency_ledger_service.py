"""
Unit Tests - Currency Ledger Service
"""
import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from conftest import FakeAdapter, InMemoryLedgerRepository
from investment_tracker.core.enums import CurrencyTransactionType
from investment_tracker.core.models import CurrencyLedger, CurrencyTransaction, LedgerWithTransactions
from investment_tracker.services.currency_ledger_service import CurrencyLedgerService
from investment_tracker.utils.exceptions import (
    EntityNotFoundError,
    InsufficientLedgerBalanceError,
    ValidationError,
)


DAY = date(2024, 1, 10)
T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def adapter():
    return FakeAdapter(rates={("USDTWD", DAY): "33"})


@pytest.fixture
def bundle():
    ledger = CurrencyLedger.create(uuid4(), "USD", "Brokerage USD")
    txs = [
        CurrencyTransaction.create(
            ledger.id, date(2024, 1, 2), CurrencyTransactionType.EXCHANGE_BUY, "100",
            home_amount="3150", exchange_rate="31.5", created_at=T0,
        ),
        CurrencyTransaction.create(
            ledger.id, date(2024, 1, 5), CurrencyTransactionType.EXCHANGE_SELL, "50",
            home_amount="1600", exchange_rate="32", created_at=T0 + timedelta(minutes=1),
        ),
    ]
    return LedgerWithTransactions(ledger=ledger, transactions=txs)


@pytest.fixture
def service(bundle, market_data, clock):
    return CurrencyLedgerService(InMemoryLedgerRepository([bundle]), market_data, clock=clock)


class TestGetSummary:

    @pytest.mark.asyncio
    async def test_summary_with_market_value(self, service, bundle):
        summary = await service.get_summary(bundle.ledger.id, as_of=DAY)

        assert summary.balance == Decimal("50")
        assert summary.average_cost == Decimal("31.5")
        assert summary.total_cost == Decimal("1575.00")
        assert summary.realized_pnl == Decimal("25.00")
        assert summary.current_rate == Decimal("33")
        assert summary.market_value_home == Decimal("1650.00")
        assert summary.unrealized_pnl_home == Decimal("75.00")
        assert summary.to_dict()["unrealized_pnl_home"] == 75.0

    @pytest.mark.asyncio
    async def test_history_cut_at_date(self, service, bundle, adapter):
        summary = await service.get_summary(bundle.ledger.id, as_of=date(2024, 1, 1))

        assert summary.balance == 0
        assert summary.average_cost is None
        assert summary.market_value_home is None
        assert adapter.calls == []

    @pytest.mark.asyncio
    async def test_missing_rate_leaves_market_value_empty(self, service, bundle):
        summary = await service.get_summary(bundle.ledger.id, as_of=date(2024, 1, 11))

        assert summary.balance == Decimal("50")
        assert summary.realized_pnl == Decimal("25.00")
        assert summary.current_rate is None
        assert summary.market_value_home is None
        assert summary.unrealized_pnl_home is None

    @pytest.mark.asyncio
    async def test_unknown_ledger(self, service):
        with pytest.raises(EntityNotFoundError):
            await service.get_summary(uuid4(), as_of=DAY)


class TestValidateWithdrawal:

    @pytest.mark.asyncio
    async def test_covered_amount_returns_balance(self, service, bundle):
        assert await service.validate_withdrawal(bundle.ledger.id, "50") == Decimal("50")

    @pytest.mark.asyncio
    async def test_shortfall_raises(self, service, bundle):
        with pytest.raises(InsufficientLedgerBalanceError) as exc:
            await service.validate_withdrawal(bundle.ledger.id, "60")
        assert exc.value.details["requested"] == "60"
        assert exc.value.details["ledger_id"] == str(bundle.ledger.id)

    @pytest.mark.asyncio
    async def test_balance_checked_at_date(self, service, bundle):
        assert await service.validate_withdrawal(bundle.ledger.id, "80", as_of=date(2024, 1, 3)) == Decimal("100")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["0", "-5"])
    async def test_non_positive_amount(self, service, bundle, amount):
        with pytest.raises(ValidationError):
            await service.validate_withdrawal(bundle.ledger.id, amount)

    @pytest.mark.asyncio
    async def test_unknown_ledger(self, service):
        with pytest.raises(EntityNotFoundError):
            await service.validate_withdrawal(uuid4(), "1")
