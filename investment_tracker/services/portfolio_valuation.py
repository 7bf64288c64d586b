"""
Portfolio Valuation Service

Values a portfolio at a date in its home and base (source) currency:
- Open positions are rebuilt from the transaction history with split
  adjustment up to the valuation date
- Each position is priced through the historical cache and converted
  from its trading currency
- The bound currency ledger's balance is added when the portfolio has one

Missing prices or rates are collected, never zero-filled: an incomplete
valuation has no totals and lists every missing key. A rate-limited lookup
aborts the whole valuation with RateLimitExceededError so the caller can
back off.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from loguru import logger

from investment_tracker.core.enums import CacheKind, Market
from investment_tracker.core.interfaces import (
    LedgerRepository,
    StockSplitRepository,
    TransactionRepository,
)
from investment_tracker.core.models import Portfolio, StockSplit, StockTransaction
from investment_tracker.core.rounding import round_valuation
from investment_tracker.core.trading.currency_ledger import CurrencyLedgerAccountant
from investment_tracker.core.trading.position_calculator import PositionCalculator
from investment_tracker.data_providers.historical_cache import (
    HistoricalMarketDataCache,
    MarketDataResult,
)
from investment_tracker.utils.exceptions import RateLimitExceededError


ZERO = Decimal("0")


@dataclass(frozen=True)
class MissingMarketData:
    """A price or rate needed for a calculation that could not be obtained."""
    kind: CacheKind
    key: str
    requested_date: date

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "key": self.key,
            "date": self.requested_date.isoformat(),
        }


@dataclass(frozen=True)
class PositionValuation:
    symbol: str
    market: Market
    quantity: Decimal
    price: Decimal
    price_currency: str
    price_date: date
    value_home: Decimal
    value_source: Decimal


@dataclass(frozen=True)
class LedgerValuation:
    ledger_id: UUID
    currency_code: str
    balance: Decimal
    value_home: Decimal
    value_source: Decimal


@dataclass(frozen=True)
class PortfolioValuation:
    """
    Portfolio value at a date.

    ``value_home`` and ``value_source`` are None whenever ``missing`` is
    non-empty.
    """
    portfolio_id: UUID
    valuation_date: date
    value_home: Optional[Decimal]
    value_source: Optional[Decimal]
    positions: Tuple[PositionValuation, ...] = ()
    ledger: Optional[LedgerValuation] = None
    missing: Tuple[MissingMarketData, ...] = ()

    @property
    def is_complete(self) -> bool:
        return not self.missing

    def to_dict(self) -> dict:
        return {
            "portfolio_id": str(self.portfolio_id),
            "valuation_date": self.valuation_date.isoformat(),
            "value_home": float(self.value_home) if self.value_home is not None else None,
            "value_source": float(self.value_source) if self.value_source is not None else None,
            "is_complete": self.is_complete,
            "missing": [m.to_dict() for m in self.missing],
        }


def require_not_rate_limited(result: MarketDataResult) -> MarketDataResult:
    """
    Turn a RATE_LIMITED lookup into an exception that aborts the batch.

    Raises:
        RateLimitExceededError: If the lookup was rate limited
    """
    if result.is_rate_limited:
        raise RateLimitExceededError(result.key, result.retry_after)
    return result


@dataclass
class _Accumulator:
    home: Decimal = ZERO
    source: Decimal = ZERO
    missing: List[MissingMarketData] = field(default_factory=list)

    def miss(self, result: MarketDataResult) -> None:
        item = MissingMarketData(result.kind, result.key, result.requested_date)
        if item not in self.missing:
            self.missing.append(item)


class PortfolioValuationService:
    """Values portfolios through the historical market data cache."""

    def __init__(
        self,
        transaction_repository: TransactionRepository,
        split_repository: StockSplitRepository,
        ledger_repository: LedgerRepository,
        market_data: HistoricalMarketDataCache,
        position_calculator: Optional[PositionCalculator] = None,
        ledger_accountant: Optional[CurrencyLedgerAccountant] = None,
    ):
        self.transaction_repository = transaction_repository
        self.split_repository = split_repository
        self.ledger_repository = ledger_repository
        self.market_data = market_data
        self.position_calculator = position_calculator or PositionCalculator()
        self.ledger_accountant = ledger_accountant or CurrencyLedgerAccountant()

    async def value_portfolio(
        self,
        portfolio: Portfolio,
        valuation_date: date,
        transactions: Optional[Sequence[StockTransaction]] = None,
        splits: Optional[Sequence[StockSplit]] = None,
        include_ledger: bool = True,
    ) -> PortfolioValuation:
        """
        Value a portfolio at the end of valuation_date.

        Args:
            portfolio: Portfolio to value
            valuation_date: Valuation date
            transactions: Preloaded transactions (fetched when None)
            splits: Preloaded splits (fetched when None)
            include_ledger: Add the bound currency ledger balance

        Returns:
            PortfolioValuation (incomplete when any price or rate is missing)

        Raises:
            RateLimitExceededError: If an upstream provider is rate limiting
        """
        if transactions is None:
            transactions = await self.transaction_repository.get_by_portfolio(portfolio.id)
        if splits is None:
            splits = await self.split_repository.get_all()

        currencies: Dict[Tuple[str, Market], str] = {}
        for tx in transactions:
            currencies[(tx.symbol, tx.market)] = tx.currency

        acc = _Accumulator()
        position_values: List[PositionValuation] = []

        positions = self.position_calculator.calculate_positions(transactions, splits, as_of=valuation_date)
        for position in positions:
            if not position.is_open:
                continue

            price = require_not_rate_limited(
                await self.market_data.get_or_fetch_price(position.symbol, position.market, valuation_date)
            )
            if not price.is_ok:
                acc.miss(price)
                continue

            price_currency = price.currency or currencies.get((position.symbol, position.market), "USD")
            market_value = position.total_quantity * price.value
            converted = await self._convert(market_value, price_currency, portfolio, valuation_date, acc)
            if converted is None:
                continue

            value_home, value_source = converted
            acc.home += value_home
            acc.source += value_source
            position_values.append(PositionValuation(
                symbol=position.symbol,
                market=position.market,
                quantity=position.total_quantity,
                price=price.value,
                price_currency=price_currency,
                price_date=price.actual_date,
                value_home=value_home,
                value_source=value_source,
            ))

        ledger_value = None
        if include_ledger:
            ledger_value = await self._value_ledger(portfolio, valuation_date, acc)

        if acc.missing:
            logger.warning(
                f"Valuation of portfolio {portfolio.id} on {valuation_date} incomplete: "
                f"{len(acc.missing)} missing data point(s)"
            )
            return PortfolioValuation(
                portfolio_id=portfolio.id,
                valuation_date=valuation_date,
                value_home=None,
                value_source=None,
                positions=tuple(position_values),
                ledger=ledger_value,
                missing=tuple(acc.missing),
            )

        return PortfolioValuation(
            portfolio_id=portfolio.id,
            valuation_date=valuation_date,
            value_home=round_valuation(acc.home),
            value_source=round_valuation(acc.source),
            positions=tuple(position_values),
            ledger=ledger_value,
        )

    async def _convert(
        self,
        amount: Decimal,
        currency: str,
        portfolio: Portfolio,
        valuation_date: date,
        acc: _Accumulator,
    ) -> Optional[Tuple[Decimal, Decimal]]:
        """Convert an amount to (home, source); None when a rate is missing."""
        to_home = require_not_rate_limited(
            await self.market_data.get_or_fetch_rate(currency, portfolio.home_currency, valuation_date)
        )
        to_source = require_not_rate_limited(
            await self.market_data.get_or_fetch_rate(currency, portfolio.base_currency, valuation_date)
        )

        if not to_home.is_ok:
            acc.miss(to_home)
        if not to_source.is_ok:
            acc.miss(to_source)
        if not (to_home.is_ok and to_source.is_ok):
            return None
        return amount * to_home.value, amount * to_source.value

    async def _value_ledger(
        self,
        portfolio: Portfolio,
        valuation_date: date,
        acc: _Accumulator,
    ) -> Optional[LedgerValuation]:
        if portfolio.bound_currency_ledger_id is None:
            return None

        bundle = await self.ledger_repository.get_with_transactions(portfolio.bound_currency_ledger_id)
        if bundle is None or not bundle.ledger.is_active:
            logger.debug(f"Bound ledger {portfolio.bound_currency_ledger_id} missing or inactive; skipped")
            return None

        state = self.ledger_accountant.replay(bundle.transactions, as_of=valuation_date)
        if state.balance <= 0:
            return LedgerValuation(
                ledger_id=bundle.ledger.id,
                currency_code=bundle.ledger.currency_code,
                balance=ZERO,
                value_home=ZERO,
                value_source=ZERO,
            )

        converted = await self._convert(state.balance, bundle.ledger.currency_code, portfolio, valuation_date, acc)
        if converted is None:
            return None

        value_home, value_source = converted
        acc.home += value_home
        acc.source += value_source
        return LedgerValuation(
            ledger_id=bundle.ledger.id,
            currency_code=bundle.ledger.currency_code,
            balance=state.balance,
            value_home=value_home,
            value_source=value_source,
        )
