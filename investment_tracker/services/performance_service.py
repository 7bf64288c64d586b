"""
Performance Service

Portfolio-level performance use cases built on the calculators:
- Annualized return (XIRR) for a portfolio or a single position
- Period time-weighted and Modified Dietz returns from chained snapshots
- Monthly / annual net-worth series with cumulative contributions

Exchange rates for historical cash flows resolve in order: the rate
recorded on the transaction, 1 for home-currency transactions, then the
historical FX cache. Transactions whose rate cannot be resolved are listed
in the result rather than silently dropped.
"""
import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from loguru import logger

from investment_tracker.config import settings
from investment_tracker.core.analytics.returns import (
    ExternalCashFlow,
    ReturnCalculator,
    ValuationPoint,
)
from investment_tracker.core.analytics.xirr import CashFlow, XirrSolver
from investment_tracker.core.enums import CacheKind
from investment_tracker.core.interfaces import (
    PortfolioRepository,
    StockSplitRepository,
    TransactionRepository,
)
from investment_tracker.core.models import Portfolio, StockSplit, StockTransaction
from investment_tracker.core.rounding import round_money
from investment_tracker.core.trading.position_calculator import PositionCalculator
from investment_tracker.data_providers.historical_cache import (
    HistoricalMarketDataCache,
    market_today,
    price_cache_key,
)
from investment_tracker.services.portfolio_valuation import (
    MissingMarketData,
    PortfolioValuationService,
    require_not_rate_limited,
)
from investment_tracker.services.transaction_snapshot_service import TransactionSnapshotService
from investment_tracker.utils.exceptions import EntityNotFoundError


class NetWorthFrequency(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


@dataclass(frozen=True)
class MissingExchangeRate:
    """A transaction whose rate to the home currency could not be resolved."""
    transaction_id: UUID
    transaction_date: date
    currency: str

    def to_dict(self) -> dict:
        return {
            "transaction_id": str(self.transaction_id),
            "transaction_date": self.transaction_date.isoformat(),
            "currency": self.currency,
        }


@dataclass(frozen=True)
class CurrentPrice:
    """Caller-supplied price and its rate to the home currency."""
    price: Decimal
    exchange_rate: Decimal


@dataclass(frozen=True)
class XirrResult:
    xirr: Optional[float]
    cash_flow_count: int
    as_of: date
    earliest_transaction_date: Optional[date] = None
    missing_exchange_rates: Tuple[MissingExchangeRate, ...] = ()
    missing_market_data: Tuple[MissingMarketData, ...] = ()
    is_short_period: bool = False

    @property
    def xirr_percentage(self) -> Optional[float]:
        return round(self.xirr * 100, 4) if self.xirr is not None else None

    def to_dict(self) -> dict:
        return {
            "xirr": self.xirr,
            "xirr_percentage": self.xirr_percentage,
            "cash_flow_count": self.cash_flow_count,
            "as_of": self.as_of.isoformat(),
            "earliest_transaction_date": (
                self.earliest_transaction_date.isoformat() if self.earliest_transaction_date else None
            ),
            "missing_exchange_rates": [m.to_dict() for m in self.missing_exchange_rates],
            "missing_market_data": [m.to_dict() for m in self.missing_market_data],
            "is_short_period": self.is_short_period,
        }


@dataclass(frozen=True)
class PeriodPerformance:
    portfolio_id: UUID
    start_date: date
    end_date: date
    start_value_home: Optional[Decimal]
    end_value_home: Optional[Decimal]
    start_value_source: Optional[Decimal]
    end_value_source: Optional[Decimal]
    time_weighted_return_home: Optional[Decimal] = None
    time_weighted_return_source: Optional[Decimal] = None
    modified_dietz_return_home: Optional[Decimal] = None
    modified_dietz_return_source: Optional[Decimal] = None
    net_contributions_home: Optional[Decimal] = None
    missing_exchange_rates: Tuple[MissingExchangeRate, ...] = ()
    missing_market_data: Tuple[MissingMarketData, ...] = ()

    @property
    def is_complete(self) -> bool:
        return not self.missing_exchange_rates and not self.missing_market_data


@dataclass(frozen=True)
class NetWorthPoint:
    period: str
    valuation_date: date
    value_home: Optional[Decimal]
    net_contributions_home: Optional[Decimal]
    missing_market_data: Tuple[MissingMarketData, ...] = ()

    @property
    def is_complete(self) -> bool:
        return not self.missing_market_data and self.value_home is not None


def add_months(value: date, months: int) -> date:
    """Shift a date by calendar months, clamping to the target month's end."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def period_ends(start: date, end: date, frequency: NetWorthFrequency) -> List[Tuple[str, date]]:
    """
    Labelled valuation dates from start's period through end's period.

    The last period is valued at ``end`` rather than its calendar end.
    """
    periods = []
    if frequency == NetWorthFrequency.ANNUAL:
        for year in range(start.year, end.year + 1):
            periods.append((str(year), min(date(year, 12, 31), end)))
        return periods

    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        periods.append((f"{year:04d}-{month:02d}", min(month_end(year, month), end)))
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return periods


class PerformanceService:
    """XIRR, period return and net-worth use cases for a portfolio."""

    def __init__(
        self,
        portfolio_repository: PortfolioRepository,
        transaction_repository: TransactionRepository,
        split_repository: StockSplitRepository,
        market_data: HistoricalMarketDataCache,
        valuation_service: PortfolioValuationService,
        snapshot_service: TransactionSnapshotService,
        solver: Optional[XirrSolver] = None,
        return_calculator: Optional[ReturnCalculator] = None,
        position_calculator: Optional[PositionCalculator] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.portfolio_repository = portfolio_repository
        self.transaction_repository = transaction_repository
        self.split_repository = split_repository
        self.market_data = market_data
        self.valuation_service = valuation_service
        self.snapshot_service = snapshot_service
        self.solver = solver or XirrSolver()
        self.return_calculator = return_calculator or ReturnCalculator()
        self.position_calculator = position_calculator or PositionCalculator()
        self._clock = clock or market_today

    # ==================== XIRR ====================

    async def calculate_xirr(
        self,
        portfolio_id: UUID,
        as_of: Optional[date] = None,
        current_prices: Optional[Mapping[str, CurrentPrice]] = None,
    ) -> XirrResult:
        """
        Annualized return of a portfolio's stock holdings.

        Args:
            portfolio_id: Portfolio to evaluate
            as_of: Terminal valuation date (defaults to today)
            current_prices: Optional symbol -> CurrentPrice used for the
                terminal value instead of historical lookups

        Returns:
            XirrResult; ``xirr`` is None when the solver finds no root or
            terminal market data is missing

        Raises:
            EntityNotFoundError: If the portfolio does not exist
            RateLimitExceededError: If market data lookups are rate limited
        """
        portfolio = await self._get_portfolio(portfolio_id)
        as_of = as_of or self._clock()
        transactions = [
            tx for tx in await self.transaction_repository.get_by_portfolio(portfolio_id)
            if tx.transaction_date <= as_of
        ]
        return await self._xirr(portfolio, transactions, as_of, current_prices)

    async def calculate_position_xirr(
        self,
        portfolio_id: UUID,
        symbol: str,
        as_of: Optional[date] = None,
        current_price: Optional[CurrentPrice] = None,
    ) -> XirrResult:
        """Annualized return of a single position."""
        portfolio = await self._get_portfolio(portfolio_id)
        as_of = as_of or self._clock()
        symbol = symbol.upper()
        transactions = [
            tx for tx in await self.transaction_repository.get_by_portfolio(portfolio_id)
            if tx.symbol == symbol and tx.transaction_date <= as_of
        ]
        current_prices = {symbol: current_price} if current_price is not None else None
        return await self._xirr(portfolio, transactions, as_of, current_prices)

    async def _xirr(
        self,
        portfolio: Portfolio,
        transactions: Sequence[StockTransaction],
        as_of: date,
        current_prices: Optional[Mapping[str, CurrentPrice]],
    ) -> XirrResult:
        if not transactions:
            return XirrResult(xirr=None, cash_flow_count=0, as_of=as_of)

        flows: List[CashFlow] = []
        missing_rates: List[MissingExchangeRate] = []
        for tx in transactions:
            rate = await self._rate_to(tx, portfolio.home_currency, tx.exchange_rate.value)
            if rate is None:
                logger.warning(f"No {tx.currency}->{portfolio.home_currency} rate for {tx.symbol} on {tx.transaction_date}")
                missing_rates.append(MissingExchangeRate(tx.id, tx.transaction_date, tx.currency))
                continue
            flows.append(CashFlow(tx.transaction_date, self._signed_amount(tx) * rate * -1))

        splits = await self.split_repository.get_all()
        terminal, missing_data = await self._terminal_value(portfolio, transactions, splits, as_of, current_prices)
        if terminal is not None and terminal > 0:
            flows.append(CashFlow(as_of, terminal))

        earliest = min(tx.transaction_date for tx in transactions)
        is_short = as_of < add_months(earliest, settings.SHORT_PERIOD_MONTHS)

        xirr = None if missing_data else self.solver.solve(flows)
        return XirrResult(
            xirr=xirr,
            cash_flow_count=len(flows),
            as_of=as_of,
            earliest_transaction_date=earliest,
            missing_exchange_rates=tuple(missing_rates),
            missing_market_data=tuple(missing_data),
            is_short_period=is_short,
        )

    async def _terminal_value(
        self,
        portfolio: Portfolio,
        transactions: Sequence[StockTransaction],
        splits: Sequence[StockSplit],
        as_of: date,
        current_prices: Optional[Mapping[str, CurrentPrice]],
    ) -> Tuple[Optional[Decimal], List[MissingMarketData]]:
        if current_prices is None:
            valuation = await self.valuation_service.value_portfolio(
                portfolio, as_of, transactions, splits, include_ledger=False
            )
            return valuation.value_home, list(valuation.missing)

        total = Decimal("0")
        missing: List[MissingMarketData] = []
        for position in self.position_calculator.calculate_positions(transactions, splits, as_of=as_of):
            if not position.is_open:
                continue
            quote = current_prices.get(position.symbol)
            if quote is None:
                missing.append(MissingMarketData(
                    CacheKind.PRICE, price_cache_key(position.symbol, position.market), as_of
                ))
                continue
            total += position.total_quantity * quote.price * quote.exchange_rate
        return (None if missing else total), missing

    # ==================== Period returns ====================

    async def calculate_period_performance(
        self,
        portfolio_id: UUID,
        start_date: date,
        end_date: date,
    ) -> PeriodPerformance:
        """
        Time-weighted and Modified Dietz returns for [start_date, end_date].

        The period opens at the close of the day before start_date. Snapshots
        for transaction dates inside the period are backfilled first.

        Raises:
            EntityNotFoundError: If the portfolio does not exist
            RateLimitExceededError: If market data lookups are rate limited
        """
        portfolio = await self._get_portfolio(portfolio_id)
        transactions = await self.transaction_repository.get_by_portfolio(portfolio_id)
        splits = await self.split_repository.get_all()
        period_open = start_date - timedelta(days=1)

        start = await self.valuation_service.value_portfolio(portfolio, period_open, transactions, splits)
        end = await self.valuation_service.value_portfolio(portfolio, end_date, transactions, splits)

        backfill = await self.snapshot_service.backfill_snapshots(portfolio_id, start_date, end_date)
        missing_data = list(dict.fromkeys(
            list(start.missing) + list(end.missing) + [m for r in backfill for m in r.missing]
        ))

        flows_home: List[ExternalCashFlow] = []
        flows_source: List[ExternalCashFlow] = []
        missing_rates: List[MissingExchangeRate] = []
        for tx in transactions:
            if not (start_date <= tx.transaction_date <= end_date):
                continue
            home_rate = await self._rate_to(tx, portfolio.home_currency, tx.exchange_rate.value)
            source_rate = await self._rate_to(tx, portfolio.base_currency)
            if home_rate is None or source_rate is None:
                missing_rates.append(MissingExchangeRate(tx.id, tx.transaction_date, tx.currency))
                continue
            amount = self._signed_amount(tx)
            flows_home.append(ExternalCashFlow(tx.transaction_date, amount * home_rate))
            flows_source.append(ExternalCashFlow(tx.transaction_date, amount * source_rate))

        performance = PeriodPerformance(
            portfolio_id=portfolio_id,
            start_date=start_date,
            end_date=end_date,
            start_value_home=start.value_home,
            end_value_home=end.value_home,
            start_value_source=start.value_source,
            end_value_source=end.value_source,
            missing_exchange_rates=tuple(missing_rates),
            missing_market_data=tuple(missing_data),
        )
        if not performance.is_complete:
            logger.warning(
                f"Period performance of portfolio {portfolio_id} {start_date}..{end_date} incomplete"
            )
            return performance

        snapshots = await self.snapshot_service.get_snapshots(portfolio_id, start_date, end_date)
        points_home = [ValuationPoint(s.snapshot_date, s.value_before_home, s.value_after_home) for s in snapshots]
        points_source = [ValuationPoint(s.snapshot_date, s.value_before_source, s.value_after_source) for s in snapshots]
        calc = self.return_calculator

        return PeriodPerformance(
            portfolio_id=portfolio_id,
            start_date=start_date,
            end_date=end_date,
            start_value_home=start.value_home,
            end_value_home=end.value_home,
            start_value_source=start.value_source,
            end_value_source=end.value_source,
            time_weighted_return_home=calc.time_weighted_return(start.value_home, end.value_home, points_home),
            time_weighted_return_source=calc.time_weighted_return(start.value_source, end.value_source, points_source),
            modified_dietz_return_home=calc.modified_dietz(
                start.value_home, end.value_home, period_open, end_date, flows_home
            ),
            modified_dietz_return_source=calc.modified_dietz(
                start.value_source, end.value_source, period_open, end_date, flows_source
            ),
            net_contributions_home=round_money(sum((f.amount for f in flows_home), Decimal("0"))),
        )

    # ==================== Net worth ====================

    async def get_net_worth_series(
        self,
        portfolio_id: UUID,
        frequency: NetWorthFrequency = NetWorthFrequency.MONTHLY,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> List[NetWorthPoint]:
        """
        Net worth at each period end with cumulative net contributions.

        The current period is valued at today. Periods whose valuation is
        incomplete carry ``value_home=None`` and the missing keys.
        """
        portfolio = await self._get_portfolio(portfolio_id)
        transactions = await self.transaction_repository.get_by_portfolio(portfolio_id)
        if not transactions:
            return []
        splits = await self.split_repository.get_all()

        today = self._clock()
        end_date = min(end_date or today, today)
        start_date = start_date or min(tx.transaction_date for tx in transactions)
        if start_date > end_date:
            return []

        contributions: Dict[UUID, Optional[Decimal]] = {}
        for tx in transactions:
            if tx.transaction_date > end_date:
                continue
            rate = await self._rate_to(tx, portfolio.home_currency, tx.exchange_rate.value)
            contributions[tx.id] = self._signed_amount(tx) * rate if rate is not None else None

        points = []
        for label, valuation_date in period_ends(start_date, end_date, frequency):
            valuation = await self.valuation_service.value_portfolio(
                portfolio, valuation_date, transactions, splits
            )
            amounts = [
                contributions[tx.id] for tx in transactions
                if tx.transaction_date <= valuation_date and tx.id in contributions
            ]
            net = None if any(a is None for a in amounts) else round_money(sum(amounts, Decimal("0")))
            points.append(NetWorthPoint(
                period=label,
                valuation_date=valuation_date,
                value_home=valuation.value_home,
                net_contributions_home=net,
                missing_market_data=valuation.missing,
            ))
        return points

    # ==================== Helpers ====================

    @staticmethod
    def _signed_amount(tx: StockTransaction) -> Decimal:
        """Money put in (buy, positive) or taken out (sell, negative), source currency."""
        if tx.is_buy:
            return tx.total_cost_source
        return -tx.net_proceeds_source

    async def _rate_to(
        self,
        tx: StockTransaction,
        currency: str,
        recorded_rate: Optional[Decimal] = None,
    ) -> Optional[Decimal]:
        """Resolve a transaction's rate to a currency; None when unavailable."""
        if recorded_rate is not None:
            return recorded_rate
        if tx.currency == currency:
            return Decimal("1")
        result = require_not_rate_limited(
            await self.market_data.get_or_fetch_rate(tx.currency, currency, tx.transaction_date)
        )
        return result.value if result.is_ok else None

    async def _get_portfolio(self, portfolio_id: UUID) -> Portfolio:
        portfolio = await self.portfolio_repository.get_by_id(portfolio_id)
        if portfolio is None:
            raise EntityNotFoundError("Portfolio", portfolio_id)
        return portfolio
