"""
Tests unitaires pour simulator.py
"""

from decimal import Decimal

import pytest

from subscription_pricing.exceptions import ValidationError
from subscription_pricing.simulator import simulate_revenue


class TestSimulateRevenue:
    """Tests pour simulate_revenue."""

    def test_zero_delta_is_flat(self):
        projections = simulate_revenue(100, Decimal("50.00"), Decimal("0"), -1.5, months=12)

        assert len(projections) == 12
        assert [p.month for p in projections] == list(range(1, 13))
        assert all(p.subscribers == 100 for p in projections)
        assert all(p.churn_rate == 0.0 for p in projections)
        assert all(p.revenue == Decimal("5000.00") for p in projections)

    def test_price_increase_with_negative_elasticity(self):
        projections = simulate_revenue(100, Decimal("50.00"), Decimal("5.00"), -1.0, months=2)

        # Mois 1 : 100 -> 90 (adoption) -> 81 (churn 10 %)
        assert projections[0].subscribers == 81
        assert projections[0].churn_rate == pytest.approx(10.0)
        assert projections[0].revenue == Decimal("4455.00")
        assert projections[1].subscribers < projections[0].subscribers

    def test_price_cut_has_no_churn(self):
        projections = simulate_revenue(100, Decimal("50.00"), Decimal("-5.00"), -1.0, months=1)

        assert projections[0].churn_rate == 0.0
        assert projections[0].subscribers == 110

    def test_to_dict(self):
        data = simulate_revenue(10, Decimal("50.00"), Decimal("0"), 0.0, months=1)[0].to_dict()
        assert data == {"month": 1, "subscribers": 10, "revenue": "500.00", "churn_rate": 0.0}

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"months": 0},
            {"current_price": Decimal("0")},
            {"price_delta": Decimal("-50.00")},
            {"current_subscribers": -1},
        ],
    )
    def test_invalid_inputs(self, kwargs):
        params = {
            "current_subscribers": 100,
            "current_price": Decimal("50.00"),
            "price_delta": Decimal("5.00"),
            "elasticity": -1.0,
            "months": 12,
        }
        params.update(kwargs)
        with pytest.raises(ValidationError):
            simulate_revenue(**params)
