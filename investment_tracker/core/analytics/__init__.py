"""
Analytics: annualized and period return calculations.
"""
from investment_tracker.core.analytics.returns import ExternalCashFlow, ReturnCalculator, ValuationPoint
from investment_tracker.core.analytics.xirr import CashFlow, XirrSolver, calculate_xirr

__all__ = [
    "ExternalCashFlow",
    "ReturnCalculator",
    "ValuationPoint",
    "CashFlow",
    "XirrSolver",
    "calculate_xirr",
]
