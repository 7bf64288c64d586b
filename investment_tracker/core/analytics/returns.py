"""
Period Return Calculator

Modified Dietz and time-weighted return over a valuation period.
Both isolate market performance from the timing of contributions.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence


@dataclass(frozen=True)
class ExternalCashFlow:
    """Money moved into (positive) or out of (negative) the portfolio."""
    date: date
    amount: Decimal


@dataclass(frozen=True)
class ValuationPoint:
    """Portfolio value immediately before and after a cash-flow event."""
    date: date
    value_before: Decimal
    value_after: Decimal


class ReturnCalculator:

    def modified_dietz(
        self,
        start_value: Decimal,
        end_value: Decimal,
        period_start: date,
        period_end: date,
        cash_flows: Sequence[ExternalCashFlow],
    ) -> Optional[Decimal]:
        """
        Modified Dietz return.

            (End - Start - sum(CF)) / (Start + sum(CF x W)),  W = (T - d) / T

        where T is the period length in days and d the days from period start
        to the flow.

        Returns:
            Return as a fraction, or None when the period is empty or the
            weighted capital is not positive
        """
        total_days = (period_end - period_start).days
        if total_days <= 0:
            return None

        total_days_dec = Decimal(total_days)
        net_flow = Decimal("0")
        weighted_flow = Decimal("0")
        for flow in cash_flows:
            days_from_start = (flow.date - period_start).days
            weight = (total_days_dec - Decimal(days_from_start)) / total_days_dec
            net_flow += flow.amount
            weighted_flow += flow.amount * weight

        denominator = start_value + weighted_flow
        if denominator <= 0:
            return None
        return (end_value - start_value - net_flow) / denominator

    def time_weighted_return(
        self,
        start_value: Decimal,
        end_value: Decimal,
        snapshots: Sequence[ValuationPoint],
    ) -> Optional[Decimal]:
        """
        Chain sub-period returns between cash-flow events.

        Each event closes the running sub-period at its before-value and
        opens the next one at its after-value. Sub-periods that start from
        zero carry no return and are skipped.

        Returns:
            Return as a fraction, or None when no sub-period has capital
        """
        growth = Decimal("1")
        has_period = False
        current = start_value

        for snapshot in sorted(snapshots, key=lambda s: s.date):
            if current > 0:
                growth *= snapshot.value_before / current
                has_period = True
            current = snapshot.value_after

        if current > 0:
            growth *= end_value / current
            has_period = True

        if not has_period:
            return None
        return growth - Decimal("1")
