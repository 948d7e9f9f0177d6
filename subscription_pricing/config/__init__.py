"""Configuration du moteur de pricing d'abonnements."""

from .pricing_config import (
    FactorWeights,
    PricingConfig,
    get_default_pricing_config,
    get_pricing_config_for_plan,
)
from .settings import Settings, configure_logging

__all__ = [
    "FactorWeights",
    "PricingConfig",
    "Settings",
    "configure_logging",
    "get_default_pricing_config",
    "get_pricing_config_for_plan",
]
