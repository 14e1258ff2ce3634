"""
Tests for cost roll-up and pricing
"""
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from analysis.cost import calculate_costs
from pricing.client import PriceTable


@pytest.fixture
def prices():
    return PriceTable(cpu_per_core_hour=0.02, memory_per_gb_hour=0.004, currency='USD')


class TestCalculateCosts:
    """Tests for calculate_costs"""

    def test_hourly_figures(self, prices):
        costs = calculate_costs(1000, 1024, 500, 512, prices, exchange_rate=1.0, currency='USD')
        assert costs.current.hourly.cpu == pytest.approx(0.02)
        assert costs.current.hourly.memory == pytest.approx(0.004)
        assert costs.current.hourly.total == pytest.approx(0.024)
        assert costs.recommended.hourly.total == pytest.approx(0.012)

    def test_roll_up_identity(self, prices):
        """daily = hourly x 24 and monthly = hourly x 730, per dimension and total"""
        costs = calculate_costs(1500, 3000, 700, 512, prices, exchange_rate=5.4, currency='BRL')
        for breakdown in (costs.current, costs.recommended):
            for attr in ('cpu', 'memory', 'total'):
                hourly = getattr(breakdown.hourly, attr)
                assert getattr(breakdown.daily, attr) == pytest.approx(hourly * 24)
                assert getattr(breakdown.monthly, attr) == pytest.approx(hourly * 730)

    def test_exchange_rate_applies_uniformly(self, prices):
        base = calculate_costs(1000, 1024, 500, 512, prices, exchange_rate=1.0)
        converted = calculate_costs(1000, 1024, 500, 512, prices, exchange_rate=5.0, currency='BRL')
        assert converted.current.monthly.total == pytest.approx(base.current.monthly.total * 5)
        assert converted.savings.total == pytest.approx(base.savings.total * 5)
        assert converted.savings_percent == pytest.approx(base.savings_percent)
        assert converted.currency == 'BRL'
        assert converted.exchange_rate == 5.0

    def test_savings(self, prices):
        costs = calculate_costs(1000, 1024, 500, 512, prices)
        assert costs.savings.cpu == pytest.approx((0.02 - 0.01) * 730)
        assert costs.savings.total == pytest.approx(costs.current.monthly.total - costs.recommended.monthly.total)
        assert costs.savings_percent == pytest.approx(50.0)

    def test_negative_savings_when_scaling_up(self, prices):
        costs = calculate_costs(500, 512, 1000, 1024, prices)
        assert costs.savings.total < 0
        assert costs.savings_percent == pytest.approx(-100.0)

    def test_zero_current_cost(self, prices):
        costs = calculate_costs(0, 0, 100, 128, prices)
        assert costs.savings_percent == 0.0

    def test_negative_inputs_rejected(self, prices):
        with pytest.raises(ValueError):
            calculate_costs(100, 100, 100, 100, prices, exchange_rate=-1)
        with pytest.raises(ValueError):
            calculate_costs(-1, 100, 100, 100, prices)
        with pytest.raises(ValueError):
            calculate_costs(100, 100, 100, 100, PriceTable(cpu_per_core_hour=-0.1))

    def test_to_dict(self, prices):
        data = calculate_costs(1000, 1024, 500, 512, prices).to_dict()
        assert set(data) == {'current', 'recommended', 'savings', 'savings_percent', 'currency', 'exchange_rate'}
        assert set(data['current']) == {'hourly', 'daily', 'monthly'}
