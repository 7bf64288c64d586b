"""
Fixed-point precision helpers.

All monetary rounding is round-half-away-from-zero (``ROUND_HALF_UP`` in
the decimal module) at the precisions below. Transaction subtotals follow
a market-keyed policy table; markets without an entry use the default.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR
from typing import Optional

from investment_tracker.core.enums import Market


SHARES_QUANTUM = Decimal("0.0001")
PRICE_QUANTUM = Decimal("0.0001")
MONEY_QUANTUM = Decimal("0.01")
RATE_QUANTUM = Decimal("0.000001")
VALUATION_QUANTUM = Decimal("0.0001")


def to_decimal(value) -> Decimal:
    """Convert ints, strings and floats to Decimal without binary artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_shares(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(SHARES_QUANTUM, rounding=ROUND_HALF_UP)


def round_price(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def round_money(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def round_rate(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)


def round_valuation(value: Decimal) -> Decimal:
    return to_decimal(value).quantize(VALUATION_QUANTUM, rounding=ROUND_HALF_UP)


def round_optional_money(value: Optional[Decimal]) -> Optional[Decimal]:
    return round_money(value) if value is not None else None


@dataclass(frozen=True)
class RoundingPolicy:
    """Quantum and rounding mode applied to a transaction subtotal."""
    quantum: Decimal
    rounding: str

    def apply(self, value: Decimal) -> Decimal:
        return to_decimal(value).quantize(self.quantum, rounding=self.rounding)


DEFAULT_SUBTOTAL_POLICY = RoundingPolicy(MONEY_QUANTUM, ROUND_HALF_UP)

# Taiwan brokers truncate the share subtotal to whole dollars before fees
MARKET_SUBTOTAL_POLICIES = {
    Market.TW: RoundingPolicy(Decimal("1"), ROUND_FLOOR),
}


def subtotal_policy_for(market: Market) -> RoundingPolicy:
    """Rounding policy for a market's transaction subtotals."""
    return MARKET_SUBTOTAL_POLICIES.get(market, DEFAULT_SUBTOTAL_POLICY)
