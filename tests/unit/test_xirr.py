"""
Unit Tests - XIRR Solver
"""
import pytest
from datetime import date
from decimal import Decimal

from investment_tracker.core.analytics.xirr import CashFlow, XirrSolver, calculate_xirr


@pytest.fixture
def solver():
    return XirrSolver()


class TestXirrSolver:

    def test_one_year_ten_percent(self, solver):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("-1000")),
            CashFlow(date(2024, 1, 1), Decimal("1100")),
        ]
        assert solver.solve(flows) == pytest.approx(0.1, abs=1e-6)

    def test_order_independent(self, solver):
        flows = [
            CashFlow(date(2024, 1, 1), Decimal("1100")),
            CashFlow(date(2023, 1, 1), Decimal("-1000")),
        ]
        assert solver.solve(flows) == pytest.approx(0.1, abs=1e-6)

    def test_multiple_contributions(self, solver):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("-1000")),
            CashFlow(date(2023, 7, 1), Decimal("-1000")),
            CashFlow(date(2024, 1, 1), Decimal("2200")),
        ]
        rate = solver.solve(flows)
        assert rate is not None
        # The NPV at the returned rate is (near) zero
        npv = sum(
            float(cf.amount) / (1 + rate) ** ((cf.date - date(2023, 1, 1)).days / 365)
            for cf in flows
        )
        assert abs(npv) < 0.01
        assert 0.1 < rate < 0.2

    def test_loss(self, solver):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("-1000")),
            CashFlow(date(2024, 1, 1), Decimal("500")),
        ]
        assert solver.solve(flows) == pytest.approx(-0.5, abs=1e-6)

    def test_result_rounded_to_six_places(self, solver):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("-1000")),
            CashFlow(date(2023, 9, 17), Decimal("1037.21")),
        ]
        rate = solver.solve(flows)
        assert rate == round(rate, 6)


class TestXirrEdgeCases:

    def test_single_flow(self, solver):
        assert solver.solve([CashFlow(date(2023, 1, 1), Decimal("-1000"))]) is None

    def test_empty(self, solver):
        assert solver.solve([]) is None

    def test_same_date(self, solver):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("-1000")),
            CashFlow(date(2023, 1, 1), Decimal("1100")),
        ]
        assert solver.solve(flows) is None

    def test_all_same_sign(self, solver):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("-1000")),
            CashFlow(date(2024, 1, 1), Decimal("-100")),
        ]
        assert solver.solve(flows) is None

    def test_root_beyond_upper_bound(self, solver):
        # 100x in one day is far above 1000% annualized
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("-1")),
            CashFlow(date(2023, 1, 2), Decimal("100")),
        ]
        assert solver.solve(flows) is None

    def test_bisection_fallback(self):
        # A poor initial guess makes Newton leave the bounds first
        solver = XirrSolver(initial_guess=9.9)
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("-1000")),
            CashFlow(date(2024, 1, 1), Decimal("1100")),
        ]
        assert solver.solve(flows) == pytest.approx(0.1, abs=1e-5)

    def test_helper(self):
        flows = [
            CashFlow(date(2023, 1, 1), Decimal("-1000")),
            CashFlow(date(2024, 1, 1), Decimal("1100")),
        ]
        assert calculate_xirr(flows) == pytest.approx(0.1, abs=1e-6)
