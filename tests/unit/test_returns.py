"""
Unit Tests - Period Return Calculator
"""
import pytest
from datetime import date
from decimal import Decimal

from investment_tracker.core.analytics.returns import ExternalCashFlow, ReturnCalculator, ValuationPoint


@pytest.fixture
def calc():
    return ReturnCalculator()


class TestModifiedDietz:

    def test_no_flows_is_simple_return(self, calc):
        result = calc.modified_dietz(
            Decimal("1000"), Decimal("1100"), date(2024, 1, 1), date(2024, 12, 31), [],
        )
        assert result == Decimal("0.1")

    def test_flow_weighted_by_time_remaining(self, calc):
        # 10-day period, contribution of 500 after 5 days carries half weight
        result = calc.modified_dietz(
            Decimal("1000"),
            Decimal("1600"),
            date(2024, 1, 1),
            date(2024, 1, 11),
            [ExternalCashFlow(date(2024, 1, 6), Decimal("500"))],
        )
        assert result == Decimal("100") / Decimal("1250")

    def test_empty_period(self, calc):
        assert calc.modified_dietz(Decimal("1"), Decimal("1"), date(2024, 1, 1), date(2024, 1, 1), []) is None

    def test_non_positive_capital(self, calc):
        result = calc.modified_dietz(
            Decimal("0"), Decimal("0"), date(2024, 1, 1), date(2024, 1, 31), [],
        )
        assert result is None


class TestTimeWeightedReturn:

    def test_no_events(self, calc):
        assert calc.time_weighted_return(Decimal("100"), Decimal("110"), []) == Decimal("0.1")

    def test_contribution_does_not_count_as_growth(self, calc):
        # +10% before the contribution, +0% after it
        points = [ValuationPoint(date(2024, 6, 1), Decimal("110"), Decimal("1110"))]
        result = calc.time_weighted_return(Decimal("100"), Decimal("1110"), points)
        assert result == Decimal("0.1")

    def test_first_purchase_from_empty_portfolio(self, calc):
        points = [ValuationPoint(date(2024, 1, 10), Decimal("0"), Decimal("30000"))]
        result = calc.time_weighted_return(Decimal("0"), Decimal("36000"), points)
        assert result == Decimal("0.2")

    def test_chained_same_day_points(self, calc):
        points = [
            ValuationPoint(date(2024, 1, 10), Decimal("100"), Decimal("300")),
            ValuationPoint(date(2024, 1, 10), Decimal("300"), Decimal("300")),
        ]
        result = calc.time_weighted_return(Decimal("100"), Decimal("330"), points)
        assert result == Decimal("0.1")

    def test_no_capital_at_all(self, calc):
        assert calc.time_weighted_return(Decimal("0"), Decimal("0"), []) is None
