"""
Trading calculators: positions, stock splits and currency ledgers.
"""
from investment_tracker.core.trading.currency_ledger import CurrencyLedgerAccountant, LedgerState
from investment_tracker.core.trading.position_calculator import (
    Position,
    PositionCalculator,
    RealizedSale,
    UnrealizedPnL,
    ensure_sell_covered,
)
from investment_tracker.core.trading.split_adjustment import (
    AdjustedTransactionValues,
    adjusted,
    cumulative_split_ratio,
)

__all__ = [
    "CurrencyLedgerAccountant",
    "LedgerState",
    "Position",
    "PositionCalculator",
    "RealizedSale",
    "UnrealizedPnL",
    "ensure_sell_covered",
    "AdjustedTransactionValues",
    "adjusted",
    "cumulative_split_ratio",
]
