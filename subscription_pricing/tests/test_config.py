"""
Tests unitaires pour la configuration et l'arithmétique monétaire.
"""

from decimal import Decimal

import pytest

from subscription_pricing.config.pricing_config import (
    FactorWeights,
    PricingConfig,
    get_pricing_config_for_plan,
)
from subscription_pricing.config.settings import Settings
from subscription_pricing.exceptions import ValidationError
from subscription_pricing.money import require_positive, scale_money, to_money


class TestPricingConfig:
    """Tests pour PricingConfig."""

    def test_defaults(self):
        config = get_pricing_config_for_plan("plan-pro")

        assert config.min_data_points == 100
        assert config.price_change_threshold == 0.05
        assert config.max_price_change == 0.20
        assert config.weights.total() == pytest.approx(1.0)

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ValidationError, match="sommer à 1"):
            PricingConfig(weights=FactorWeights(historical_performance=0.5))

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"min_data_points": 0},
            {"price_change_threshold": 1.0},
            {"max_price_change": 0.0},
            {"default_market_demand": 1.5},
            {"default_min_confidence": 1.0},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValidationError):
            PricingConfig(**kwargs)


class TestSettings:
    """Tests pour Settings.from_env."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_URL", "https://mock.supabase.co")
        monkeypatch.delenv("SUPABASE_SERVICE_ROLE_KEY", raising=False)
        monkeypatch.setenv("SUPABASE_KEY", "mock_key")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("ELASTICITY_WINDOW_DAYS", "30")

        settings = Settings.from_env()

        assert settings.supabase_url == "https://mock.supabase.co"
        assert settings.supabase_key == "mock_key"
        assert settings.log_level == "DEBUG"
        assert settings.elasticity_window_days == 30

    def test_service_role_key_preferred(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "service_key")
        monkeypatch.setenv("SUPABASE_KEY", "anon_key")

        assert Settings.from_env().supabase_key == "service_key"


class TestMoney:
    """Tests pour money.py."""

    def test_float_goes_through_str(self):
        assert to_money(0.1) == Decimal("0.10")
        assert to_money(2.675) == Decimal("2.68")

    def test_half_up(self):
        assert to_money(Decimal("1.005")) == Decimal("1.01")
        assert to_money("49.994") == Decimal("49.99")

    @pytest.mark.parametrize("value", ["abc", None, "NaN", "Infinity"])
    def test_invalid_amounts(self, value):
        with pytest.raises(ValidationError):
            to_money(value)

    def test_scale_money(self):
        assert scale_money(Decimal("50.00"), 1.006) == Decimal("50.30")

    def test_require_positive(self):
        assert require_positive(Decimal("1.00")) == Decimal("1.00")
        with pytest.raises(ValidationError):
            require_positive(Decimal("0.00"))
