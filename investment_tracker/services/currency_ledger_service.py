"""
Currency Ledger Service

Read-side summary of a foreign-currency cash ledger and the withdrawal
boundary check used before recording a sell or spend.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from loguru import logger

from investment_tracker.core.interfaces import LedgerRepository
from investment_tracker.core.models import LedgerWithTransactions
from investment_tracker.core.rounding import round_money, to_decimal
from investment_tracker.core.trading.currency_ledger import CurrencyLedgerAccountant
from investment_tracker.data_providers.historical_cache import (
    HistoricalMarketDataCache,
    market_today,
)
from investment_tracker.services.portfolio_valuation import require_not_rate_limited
from investment_tracker.utils.exceptions import (
    EntityNotFoundError,
    InsufficientLedgerBalanceError,
    ValidationError,
)


@dataclass(frozen=True)
class CurrencyLedgerSummary:
    ledger_id: UUID
    currency_code: str
    home_currency: str
    as_of: date
    balance: Decimal
    average_cost: Optional[Decimal]
    total_cost: Decimal
    realized_pnl: Decimal
    current_rate: Optional[Decimal] = None
    market_value_home: Optional[Decimal] = None
    unrealized_pnl_home: Optional[Decimal] = None

    def to_dict(self) -> dict:
        def _f(value: Optional[Decimal]) -> Optional[float]:
            return float(value) if value is not None else None

        return {
            "ledger_id": str(self.ledger_id),
            "currency_code": self.currency_code,
            "home_currency": self.home_currency,
            "as_of": self.as_of.isoformat(),
            "balance": _f(self.balance),
            "average_cost": _f(self.average_cost),
            "total_cost": _f(self.total_cost),
            "realized_pnl": _f(self.realized_pnl),
            "current_rate": _f(self.current_rate),
            "market_value_home": _f(self.market_value_home),
            "unrealized_pnl_home": _f(self.unrealized_pnl_home),
        }


class CurrencyLedgerService:
    """Currency ledger summaries and withdrawal checks."""

    def __init__(
        self,
        ledger_repository: LedgerRepository,
        market_data: HistoricalMarketDataCache,
        accountant: Optional[CurrencyLedgerAccountant] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.ledger_repository = ledger_repository
        self.market_data = market_data
        self.accountant = accountant or CurrencyLedgerAccountant()
        self._clock = clock or market_today

    async def get_summary(self, ledger_id: UUID, as_of: Optional[date] = None) -> CurrencyLedgerSummary:
        """
        Summarize a ledger at a date.

        Market value and unrealized P&L are None when the rate to the home
        currency is unavailable.

        Raises:
            EntityNotFoundError: If the ledger does not exist
            RateLimitExceededError: If the FX lookup is rate limited
        """
        bundle = await self._get_ledger(ledger_id)
        ledger = bundle.ledger
        as_of = as_of or self._clock()
        state = self.accountant.replay(bundle.transactions, as_of=as_of)

        current_rate = None
        market_value = None
        unrealized = None
        if state.balance > 0:
            rate = require_not_rate_limited(
                await self.market_data.get_or_fetch_rate(ledger.currency_code, ledger.home_currency, as_of)
            )
            if rate.is_ok:
                current_rate = rate.value
                market_value = round_money(state.balance * rate.value)
                unrealized = round_money(state.balance * rate.value - state.total_cost)
            else:
                logger.warning(f"No {ledger.currency_code}->{ledger.home_currency} rate on {as_of} for ledger {ledger_id}")

        return CurrencyLedgerSummary(
            ledger_id=ledger.id,
            currency_code=ledger.currency_code,
            home_currency=ledger.home_currency,
            as_of=as_of,
            balance=state.balance,
            average_cost=state.average_cost,
            total_cost=round_money(state.total_cost),
            realized_pnl=round_money(state.realized_pnl),
            current_rate=current_rate,
            market_value_home=market_value,
            unrealized_pnl_home=unrealized,
        )

    async def validate_withdrawal(self, ledger_id: UUID, amount, as_of: Optional[date] = None) -> Decimal:
        """
        Check that a sell or spend of ``amount`` is covered.

        Returns:
            The balance available at as_of

        Raises:
            EntityNotFoundError: If the ledger does not exist
            ValidationError: If the amount is not positive
            InsufficientLedgerBalanceError: If the balance does not cover it
        """
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValidationError("Withdrawal amount must be positive", details={"amount": str(amount)})

        bundle = await self._get_ledger(ledger_id)
        balance = self.accountant.calculate_balance(bundle.transactions, as_of=as_of)
        if not self.accountant.can_withdraw(bundle.transactions, amount, as_of=as_of):
            raise InsufficientLedgerBalanceError(
                f"Cannot withdraw {amount} {bundle.ledger.currency_code}; balance is {balance}",
                details={
                    "ledger_id": str(ledger_id),
                    "requested": str(amount),
                    "balance": str(balance),
                },
            )
        return balance

    async def _get_ledger(self, ledger_id: UUID) -> LedgerWithTransactions:
        bundle = await self.ledger_repository.get_with_transactions(ledger_id)
        if bundle is None:
            raise EntityNotFoundError("CurrencyLedger", ledger_id)
        return bundle
