"""
Position & Cost-Basis Calculator

Rebuilds positions from a transaction history using the weighted-average
cost method:
- Buys add quantity and cost (source currency, and home currency while
  every buy's exchange rate is known)
- Sells remove quantity at the current average cost and realize
  net proceeds minus the removed cost
- Quantities and prices are split-adjusted up to the valuation date;
  total cost is never restated

Positions are never mutated incrementally. Every call is a pure fold over
the ordered history, so recomputation is always safe.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from loguru import logger

from investment_tracker.core.enums import Market, TransactionType
from investment_tracker.core.models import ExchangeRate, StockSplit, StockTransaction
from investment_tracker.core.rounding import round_money, round_shares
from investment_tracker.core.trading.split_adjustment import adjusted
from investment_tracker.utils.exceptions import InsufficientSharesError


ZERO = Decimal("0")


@dataclass(frozen=True)
class RealizedSale:
    """P&L crystallized by one sell."""
    transaction_id: UUID
    transaction_date: date
    quantity: Decimal
    proceeds_source: Decimal
    cost_basis_source: Decimal
    realized_pnl_source: Decimal
    realized_pnl_home: Optional[Decimal] = None


@dataclass(frozen=True)
class Position:
    """
    Holding in one symbol derived from its transactions.

    Home-currency figures are ``None`` once any contributing transaction
    lacks an exchange rate.
    """
    symbol: str
    market: Market
    total_quantity: Decimal
    total_cost_source: Decimal
    total_cost_home: Optional[Decimal]
    realized_pnl_source: Decimal
    realized_pnl_home: Optional[Decimal]
    realized_sales: Tuple[RealizedSale, ...] = ()
    missing_rate_transaction_ids: Tuple[UUID, ...] = ()

    @property
    def is_open(self) -> bool:
        return self.total_quantity > 0

    @property
    def average_cost_source(self) -> Optional[Decimal]:
        if self.total_quantity <= 0:
            return None
        return self.total_cost_source / self.total_quantity

    @property
    def average_cost_home(self) -> Optional[Decimal]:
        if self.total_quantity <= 0 or self.total_cost_home is None:
            return None
        return self.total_cost_home / self.total_quantity

    def to_dict(self) -> Dict:
        """Convert to dictionary for presentation layers."""
        avg_source = self.average_cost_source
        avg_home = self.average_cost_home
        return {
            "symbol": self.symbol,
            "market": self.market.value,
            "total_quantity": float(round_shares(self.total_quantity)),
            "total_cost_source": float(round_money(self.total_cost_source)),
            "total_cost_home": float(round_money(self.total_cost_home)) if self.total_cost_home is not None else None,
            "average_cost_source": float(avg_source) if avg_source is not None else None,
            "average_cost_home": float(avg_home) if avg_home is not None else None,
            "realized_pnl_source": float(round_money(self.realized_pnl_source)),
            "realized_pnl_home": float(round_money(self.realized_pnl_home)) if self.realized_pnl_home is not None else None,
        }


@dataclass(frozen=True)
class UnrealizedPnL:
    """Mark-to-market figures for an open position."""
    market_value_source: Decimal
    unrealized_pnl_source: Decimal
    unrealized_pnl_pct: Decimal
    market_value_home: Optional[Decimal] = None
    unrealized_pnl_home: Optional[Decimal] = None
    unrealized_pnl_home_pct: Optional[Decimal] = None


@dataclass
class _RunningPosition:
    quantity: Decimal = ZERO
    cost_source: Decimal = ZERO
    cost_home: Optional[Decimal] = ZERO
    realized_source: Decimal = ZERO
    realized_home: Optional[Decimal] = ZERO
    sales: List[RealizedSale] = field(default_factory=list)
    missing_rate_ids: List[UUID] = field(default_factory=list)


def _ordered(transactions: Iterable[StockTransaction], as_of: Optional[date]) -> List[StockTransaction]:
    """Active transactions up to as_of in (date, created_at) order."""
    active = [
        tx for tx in transactions
        if not tx.is_deleted and (as_of is None or tx.transaction_date <= as_of)
    ]
    return sorted(active, key=lambda tx: (tx.transaction_date, tx.created_at))


class PositionCalculator:
    """
    Weighted-average cost calculator.

    The calculator assumes a valid transaction stream; business rules such
    as oversell are enforced at the boundary by ``ensure_sell_covered``.
    """

    def calculate_position(
        self,
        transactions: Sequence[StockTransaction],
        symbol: str,
        market: Optional[Market] = None,
        splits: Sequence[StockSplit] = (),
        as_of: Optional[date] = None,
    ) -> Position:
        """
        Fold one symbol's transactions into a position.

        Args:
            transactions: Portfolio transactions (any symbol, any order)
            symbol: Symbol to fold
            market: Restrict to one market (all markets when None)
            splits: Known stock splits
            as_of: Valuation cutoff; later transactions and splits are ignored

        Returns:
            Position (zero quantity if nothing matched)
        """
        symbol = symbol.upper()
        selected = [
            tx for tx in transactions
            if tx.symbol == symbol and (market is None or tx.market == market)
        ]
        if market is None:
            market = selected[0].market if selected else Market.US

        state = _RunningPosition()
        for tx in _ordered(selected, as_of):
            self._apply(state, tx, splits, as_of)

        return Position(
            symbol=symbol,
            market=market,
            total_quantity=state.quantity,
            total_cost_source=state.cost_source,
            total_cost_home=state.cost_home,
            realized_pnl_source=state.realized_source,
            realized_pnl_home=state.realized_home,
            realized_sales=tuple(state.sales),
            missing_rate_transaction_ids=tuple(state.missing_rate_ids),
        )

    def calculate_positions(
        self,
        transactions: Sequence[StockTransaction],
        splits: Sequence[StockSplit] = (),
        as_of: Optional[date] = None,
    ) -> List[Position]:
        """Positions for every (symbol, market) pair, in first-traded order."""
        keys: "OrderedDict[Tuple[str, Market], None]" = OrderedDict()
        for tx in _ordered(transactions, as_of):
            keys[(tx.symbol, tx.market)] = None

        return [
            self.calculate_position(transactions, symbol, market, splits, as_of)
            for symbol, market in keys
        ]

    def _apply(
        self,
        state: _RunningPosition,
        tx: StockTransaction,
        splits: Sequence[StockSplit],
        as_of: Optional[date],
    ) -> None:
        quantity = adjusted(tx, splits, as_of).adjusted_quantity

        if not tx.exchange_rate.is_known:
            state.missing_rate_ids.append(tx.id)

        if tx.transaction_type == TransactionType.BUY:
            state.quantity += quantity
            state.cost_source += tx.total_cost_source
            home_cost = tx.total_cost_home
            if state.cost_home is not None and home_cost is not None:
                state.cost_home += home_cost
            else:
                state.cost_home = None
            return

        # Sell
        if state.quantity <= 0:
            logger.warning(
                f"Sell of {tx.symbol} on {tx.transaction_date} with no open position; ignored"
            )
            return

        proceeds_source = tx.net_proceeds_source
        if quantity > state.quantity:
            logger.warning(
                f"Sell of {quantity} {tx.symbol} on {tx.transaction_date} exceeds held "
                f"{state.quantity}; clamping to zero"
            )
            # Only the held shares are sold, at the recorded per-share proceeds
            proceeds_source = proceeds_source * state.quantity / quantity
            quantity = state.quantity

        avg_source = state.cost_source / state.quantity
        cost_basis_source = avg_source * quantity
        realized_source = proceeds_source - cost_basis_source

        realized_home = None
        cost_basis_home = None
        if state.cost_home is not None:
            cost_basis_home = state.cost_home / state.quantity * quantity
            proceeds_home = tx.exchange_rate.convert(proceeds_source)
            if proceeds_home is not None:
                realized_home = proceeds_home - cost_basis_home

        state.realized_source += realized_source
        if state.realized_home is not None and realized_home is not None:
            state.realized_home += realized_home
        else:
            state.realized_home = None

        state.quantity -= quantity
        state.cost_source -= cost_basis_source
        if cost_basis_home is not None:
            state.cost_home -= cost_basis_home

        if state.quantity <= 0:
            state.quantity = ZERO
            state.cost_source = ZERO
            if state.cost_home is not None:
                state.cost_home = ZERO

        state.sales.append(RealizedSale(
            transaction_id=tx.id,
            transaction_date=tx.transaction_date,
            quantity=quantity,
            proceeds_source=proceeds_source,
            cost_basis_source=cost_basis_source,
            realized_pnl_source=realized_source,
            realized_pnl_home=realized_home,
        ))

    def calculate_unrealized_pnl(
        self,
        position: Position,
        current_price: Decimal,
        current_rate: Optional[ExchangeRate] = None,
    ) -> UnrealizedPnL:
        """
        Mark an open position to market.

        Args:
            position: Position to value
            current_price: Price in the position's trading currency
            current_rate: Trading currency to home currency rate

        Returns:
            UnrealizedPnL; home figures are None without a known rate
            or a known home cost basis
        """
        market_value = position.total_quantity * current_price
        pnl_source = market_value - position.total_cost_source
        pnl_pct = (
            pnl_source / position.total_cost_source * 100
            if position.total_cost_source > 0 else ZERO
        )

        market_value_home = None
        pnl_home = None
        pnl_home_pct = None
        if current_rate is not None and current_rate.is_known:
            market_value_home = current_rate.convert(market_value)
            if position.total_cost_home is not None:
                pnl_home = market_value_home - position.total_cost_home
                pnl_home_pct = (
                    pnl_home / position.total_cost_home * 100
                    if position.total_cost_home > 0 else ZERO
                )

        return UnrealizedPnL(
            market_value_source=market_value,
            unrealized_pnl_source=pnl_source,
            unrealized_pnl_pct=pnl_pct,
            market_value_home=market_value_home,
            unrealized_pnl_home=pnl_home,
            unrealized_pnl_home_pct=pnl_home_pct,
        )


def ensure_sell_covered(
    transactions: Sequence[StockTransaction],
    sell: StockTransaction,
    splits: Sequence[StockSplit] = (),
) -> None:
    """
    Reject a sell that would take the position below zero.

    Called at the boundary before a sell is accepted; the calculators
    themselves never re-validate.

    Raises:
        InsufficientSharesError: If the sell exceeds the held quantity
    """
    if not sell.is_sell:
        return

    prior = [tx for tx in transactions if tx.id != sell.id]
    position = PositionCalculator().calculate_position(
        prior,
        sell.symbol,
        sell.market,
        splits,
        as_of=sell.transaction_date,
    )
    held = position.total_quantity
    if sell.quantity > held:
        raise InsufficientSharesError(
            f"Cannot sell {sell.quantity} {sell.symbol}; only {round_shares(held)} held",
            details={
                "symbol": sell.symbol,
                "requested": str(sell.quantity),
                "available": str(round_shares(held)),
            },
        )
