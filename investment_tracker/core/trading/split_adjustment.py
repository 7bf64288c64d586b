"""
Stock Split Adjustment

Restates a transaction's quantity and price in post-split terms. A
transaction is affected by every split of the same symbol and market whose
effective date falls after the transaction and on or before the valuation
date. Total cost is never restated.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from investment_tracker.core.enums import Market
from investment_tracker.core.models import StockSplit, StockTransaction


@dataclass(frozen=True)
class AdjustedTransactionValues:
    """Original and split-adjusted quantity and price of one transaction."""
    original_quantity: Decimal
    adjusted_quantity: Decimal
    original_price: Decimal
    adjusted_price: Decimal
    split_ratio: Decimal

    @property
    def has_split_adjustment(self) -> bool:
        return self.split_ratio != Decimal("1")


def applicable_splits(
    symbol: str,
    market: Market,
    transaction_date: date,
    splits: Iterable[StockSplit],
    as_of: Optional[date] = None,
) -> list[StockSplit]:
    """Splits in (transaction_date, as_of] for the symbol, oldest first."""
    symbol = symbol.upper()
    matching = [
        s for s in splits
        if s.symbol == symbol
        and s.market == market
        and s.effective_date > transaction_date
        and (as_of is None or s.effective_date <= as_of)
    ]
    return sorted(matching, key=lambda s: s.effective_date)


def cumulative_split_ratio(
    symbol: str,
    market: Market,
    transaction_date: date,
    splits: Iterable[StockSplit],
    as_of: Optional[date] = None,
) -> Decimal:
    """
    Product of the ratios of every split affecting a transaction.

    Returns 1 when no split applies.
    """
    ratio = Decimal("1")
    for split in applicable_splits(symbol, market, transaction_date, splits, as_of):
        ratio *= split.ratio
    return ratio


def adjusted(
    tx: StockTransaction,
    splits: Iterable[StockSplit],
    as_of: Optional[date] = None,
) -> AdjustedTransactionValues:
    """
    Split-adjusted quantity and price of a transaction.

    Args:
        tx: Transaction to restate
        splits: Known splits (any symbol)
        as_of: Valuation date; later splits are ignored

    Returns:
        AdjustedTransactionValues with quantity multiplied and price divided
        by the cumulative ratio
    """
    ratio = cumulative_split_ratio(tx.symbol, tx.market, tx.transaction_date, splits, as_of)
    return AdjustedTransactionValues(
        original_quantity=tx.quantity,
        adjusted_quantity=tx.quantity * ratio,
        original_price=tx.unit_price,
        adjusted_price=tx.unit_price / ratio,
        split_ratio=ratio,
    )
