"""
Configuration centrale pour le moteur de pricing d'abonnements.

Ce module définit les paramètres globaux utilisés par le moteur :
- seuils de données minimales avant toute recommandation,
- seuil de variation en dessous duquel un prix n'est pas appliqué,
- plafond de variation induit par l'élasticité,
- pondérations des facteurs de la recommandation,
- valeurs de repli lorsque les signaux externes sont absents.

La configuration est validée à la construction : une config incohérente
est rejetée avant d'atteindre la logique métier.
"""

from dataclasses import dataclass
from typing import Optional

from ..exceptions import ValidationError


@dataclass(frozen=True)
class FactorWeights:
    """Pondérations des quatre facteurs de la recommandation de prix."""

    historical_performance: float = 0.3
    market_conditions: float = 0.3
    customer_segment: float = 0.2
    elasticity: float = 0.2

    def total(self) -> float:
        return (
            self.historical_performance
            + self.market_conditions
            + self.customer_segment
            + self.elasticity
        )


@dataclass(frozen=True)
class PricingConfig:
    """
    Paramètres de haut niveau pour le moteur de pricing.

    Ces paramètres pourront ensuite être surchargés par plan
    ou stockés dans la base.
    """

    # Nombre minimum d'entrées d'historique de prix avant de recommander
    min_data_points: int = 100

    # Variation relative minimale pour appliquer un prix (0.05 = 5 %)
    price_change_threshold: float = 0.05

    # Variation maximale induite par l'élasticité (0.20 = ±20 %)
    max_price_change: float = 0.20

    # Nombre d'entrées d'historique lues pour l'optimisation
    history_lookback: int = 100

    # Nombre de points utilisés pour la tendance historique
    historical_trend_points: int = 12

    # Fenêtre d'estimation de l'élasticité (en jours)
    elasticity_window_days: int = 90

    # Élasticité de repli pour un segment non estimable (0.0 = facteur neutre)
    default_segment_elasticity: float = 0.0

    # Demande marché de repli (échelle 0-1) si aucun fournisseur n'en donne
    default_market_demand: float = 0.7

    # Seuil de confiance par défaut des tests de prix
    default_min_confidence: float = 0.95

    # Métrique cible par défaut des tests de prix
    default_target_metric: str = "conversion_rate"

    weights: FactorWeights = FactorWeights()

    def __post_init__(self) -> None:
        if self.min_data_points < 1:
            raise ValidationError("min_data_points doit être >= 1")
        if not 0 <= self.price_change_threshold < 1:
            raise ValidationError("price_change_threshold doit être dans [0, 1)")
        if not 0 < self.max_price_change < 1:
            raise ValidationError("max_price_change doit être dans (0, 1)")
        if self.historical_trend_points < 2:
            raise ValidationError("historical_trend_points doit être >= 2")
        if self.elasticity_window_days < 1:
            raise ValidationError("elasticity_window_days doit être >= 1")
        if not 0 <= self.default_market_demand <= 1:
            raise ValidationError("default_market_demand doit être dans [0, 1]")
        if not 0 < self.default_min_confidence < 1:
            raise ValidationError("default_min_confidence doit être dans (0, 1)")
        if abs(self.weights.total() - 1.0) > 1e-9:
            raise ValidationError(
                f"Les pondérations des facteurs doivent sommer à 1 (reçu {self.weights.total()})"
            )


def get_default_pricing_config() -> PricingConfig:
    """Retourne une instance de configuration par défaut."""
    return PricingConfig()


def get_pricing_config_for_plan(plan_id: Optional[str] = None) -> PricingConfig:
    """
    Retourne la configuration à utiliser pour un plan donné.

    Pour l'instant, renvoie simplement la configuration par défaut.
    TODO : charger une surcharge par plan depuis la table `pricing_config_overrides`.
    """
    _ = plan_id
    return get_default_pricing_config()
