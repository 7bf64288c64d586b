"""
Return Solver (XIRR)

Annualized internal rate of return for irregularly dated cash flows.
Finds r such that

    sum(CF_i / (1 + r) ** (d_i / 365)) == 0

with Newton-Raphson, falling back to bisection on the configured bounds
when Newton diverges, leaves the bounds or meets a flat derivative.
Non-convergence is an expected outcome and yields None, never an exception.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from investment_tracker.config import settings


DAYS_PER_YEAR = 365.0
MIN_DERIVATIVE = 1e-10


@dataclass(frozen=True)
class CashFlow:
    """Signed cash flow: negative for money invested, positive for money returned."""
    date: date
    amount: Decimal


class XirrSolver:
    """Newton-Raphson XIRR solver with a bisection fallback."""

    def __init__(
        self,
        max_iterations: Optional[int] = None,
        tolerance: Optional[float] = None,
        lower_bound: Optional[float] = None,
        upper_bound: Optional[float] = None,
        initial_guess: Optional[float] = None,
    ):
        self.max_iterations = max_iterations or settings.XIRR_MAX_ITERATIONS
        self.tolerance = tolerance or settings.XIRR_TOLERANCE
        self.lower_bound = lower_bound if lower_bound is not None else settings.XIRR_LOWER_BOUND
        self.upper_bound = upper_bound if upper_bound is not None else settings.XIRR_UPPER_BOUND
        self.initial_guess = initial_guess if initial_guess is not None else settings.XIRR_INITIAL_GUESS

    def solve(self, cash_flows: Sequence[CashFlow]) -> Optional[float]:
        """
        Solve for the annualized rate.

        Args:
            cash_flows: Dated signed flows in any order

        Returns:
            Rate as a fraction (0.1 == 10%) rounded to 6 places, or None when
            fewer than two distinct dates exist, all flows share a sign, or
            no root lies within the bounds
        """
        if len(cash_flows) < 2:
            return None
        if len({cf.date for cf in cash_flows}) < 2:
            logger.debug("XIRR needs at least two distinct dates")
            return None

        amounts, years = self._vectorize(cash_flows)
        if not (amounts > 0).any() or not (amounts < 0).any():
            logger.debug("XIRR needs both positive and negative cash flows")
            return None

        rate = self._newton(amounts, years)
        if rate is None:
            rate = self._bisection(amounts, years)
        if rate is None:
            logger.debug(f"XIRR found no root within [{self.lower_bound}, {self.upper_bound}]")
            return None
        return round(rate, 6)

    @staticmethod
    def _vectorize(cash_flows: Sequence[CashFlow]) -> Tuple[np.ndarray, np.ndarray]:
        ordered = sorted(cash_flows, key=lambda cf: cf.date)
        first = ordered[0].date
        amounts = np.array([float(cf.amount) for cf in ordered], dtype=np.float64)
        years = np.array([(cf.date - first).days / DAYS_PER_YEAR for cf in ordered], dtype=np.float64)
        return amounts, years

    @staticmethod
    def _npv(amounts: np.ndarray, years: np.ndarray, rate: float) -> float:
        with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
            return float(np.sum(amounts / np.power(1.0 + rate, years)))

    @staticmethod
    def _npv_derivative(amounts: np.ndarray, years: np.ndarray, rate: float) -> float:
        with np.errstate(over="ignore", divide="ignore", invalid="ignore"):
            return float(np.sum(-years * amounts / np.power(1.0 + rate, years + 1.0)))

    def _newton(self, amounts: np.ndarray, years: np.ndarray) -> Optional[float]:
        rate = self.initial_guess
        for _ in range(self.max_iterations):
            npv = self._npv(amounts, years, rate)
            if not np.isfinite(npv):
                return None
            if abs(npv) < self.tolerance:
                return rate

            derivative = self._npv_derivative(amounts, years, rate)
            if not np.isfinite(derivative) or abs(derivative) < MIN_DERIVATIVE:
                return None

            new_rate = rate - npv / derivative
            if not np.isfinite(new_rate) or new_rate < self.lower_bound or new_rate > self.upper_bound:
                return None
            if abs(new_rate - rate) < self.tolerance:
                return new_rate
            rate = new_rate
        return None

    def _bisection(self, amounts: np.ndarray, years: np.ndarray) -> Optional[float]:
        low, high = self.lower_bound, self.upper_bound
        npv_low = self._npv(amounts, years, low)
        npv_high = self._npv(amounts, years, high)

        if not (np.isfinite(npv_low) and np.isfinite(npv_high)):
            return None
        if abs(npv_low) < self.tolerance:
            return low
        if abs(npv_high) < self.tolerance:
            return high
        if npv_low * npv_high > 0:
            return None

        for _ in range(self.max_iterations * 2):
            mid = (low + high) / 2.0
            npv_mid = self._npv(amounts, years, mid)
            if abs(npv_mid) < self.tolerance or (high - low) / 2.0 < self.tolerance:
                return mid
            if npv_low * npv_mid < 0:
                high = mid
            else:
                low, npv_low = mid, npv_mid
        return (low + high) / 2.0


def calculate_xirr(cash_flows: Sequence[CashFlow], **solver_options) -> Optional[float]:
    """Solve XIRR with a default-configured solver."""
    return XirrSolver(**solver_options).solve(cash_flows)
