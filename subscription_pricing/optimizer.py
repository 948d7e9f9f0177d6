"""
Logique d'optimisation de prix pour les plans d'abonnement.

Ce module est responsable de :
- combiner quatre facteurs (tendance historique, marché, segments,
  élasticité) en un prix recommandé,
- calculer un score de confiance à partir de la qualité des données,
- décider si l'écart avec le prix courant justifie une application.

Chaque facteur est un multiplicateur autour de 1.0 (1.0 = garder le prix
courant), borné à ±`max_price_change`. Le prix recommandé vaut :

    prix_courant * (historique*0.3 + marché*0.3 + segment*0.2 + élasticité*0.2)

arrondi au centime. Un écart relatif inférieur à `price_change_threshold`
est considéré comme du bruit : la recommandation est exposée mais jamais
appliquée.

Sans assez d'historique (`min_data_points`), aucune recommandation n'est
produite : ce n'est pas une erreur.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

import numpy as np  # type: ignore

from .config.pricing_config import PricingConfig, get_pricing_config_for_plan
from .exceptions import NotFoundError
from .interfaces.data_access import OptimizationFactors, PriceHistoryEntry, PricingPlan, PricingRepository
from .models.churn_model import ChurnRiskEstimator
from .models.elasticity import ElasticityEstimator, average_elasticity
from .models.market_model import MarketConditions, MarketPositionAnalyzer, market_price_factor
from .models.segment_model import CustomerSegmentAnalyzer, SegmentAnalysis, segment_price_factor
from .money import scale_money

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceRecommendation:
    plan_id: str
    current_price: Decimal
    recommended_price: Decimal
    confidence: float
    factors: OptimizationFactors
    elasticity: float
    data_points: int
    churn_probability: float
    should_apply: bool

    @property
    def relative_change(self) -> float:
        return float((self.recommended_price - self.current_price) / self.current_price)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "current_price": str(self.current_price),
            "recommended_price": str(self.recommended_price),
            "confidence": self.confidence,
            "factors": self.factors.to_dict(),
            "elasticity": self.elasticity,
            "data_points": self.data_points,
            "churn_probability": self.churn_probability,
            "should_apply": self.should_apply,
        }


@dataclass(frozen=True)
class OptimizationSummary:
    """Vue synthétique des signaux d'un plan (sans seuil de données)."""

    plan_id: str
    current_price: Decimal
    average_elasticity: float
    market_pressure: Optional[float]
    churn_probability: float


def _bounded(value: float, max_change: float) -> float:
    return max(1.0 - max_change, min(1.0 + max_change, value))


def historical_price_factor(history: Sequence[PriceHistoryEntry], points: int = 12) -> float:
    """
    Tendance des derniers prix : moyenne des ratios prix(n-1) / prix(n).

    Une hausse récente donne un facteur < 1 (on freine), une baisse un
    facteur > 1. `history` peut être dans n'importe quel ordre ; seuls les
    `points` plus récents sont utilisés. Moins de deux points -> 1.0.
    """
    ordered = sorted(history, key=lambda e: e.effective_from)[-points:]
    ratios = [
        float(previous.price / current.price)
        for previous, current in zip(ordered, ordered[1:])
        if current.price > 0
    ]
    if not ratios:
        return 1.0
    return float(np.mean(ratios))


def elasticity_price_factor(elasticity: float, max_change: float) -> float:
    """Forte élasticité (négative) -> baisse ; faible -> hausse ; bornée à ±max_change."""
    if elasticity == 0:
        return 1.0
    adjustment = -0.1 * elasticity
    return 1.0 + max(-max_change, min(max_change, adjustment))


def calculate_confidence_score(
    data_points: int,
    min_data_points: int,
    elasticity: float,
    conditions: MarketConditions,
    segments: Sequence[SegmentAnalysis],
) -> float:
    scores = [
        min(data_points / min_data_points, 1.0),
        0.8 if abs(elasticity) > 0.1 else 0.4,
        0.7 if conditions.competitor_prices else 0.3,
        0.9 if segments else 0.5,
    ]
    return float(np.mean(scores))


def should_update_price(current_price: Decimal, recommended_price: Decimal, threshold: float) -> bool:
    if current_price <= 0:
        return False
    change = abs(recommended_price - current_price) / current_price
    return float(change) >= threshold


class PriceOptimizer:
    def __init__(
        self,
        repository: PricingRepository,
        elasticity_estimator: ElasticityEstimator,
        market_analyzer: MarketPositionAnalyzer,
        segment_analyzer: CustomerSegmentAnalyzer,
        churn_estimator: ChurnRiskEstimator,
        config_loader: Callable[[Optional[str]], PricingConfig] = get_pricing_config_for_plan,
    ) -> None:
        self.repository = repository
        self.elasticity_estimator = elasticity_estimator
        self.market_analyzer = market_analyzer
        self.segment_analyzer = segment_analyzer
        self.churn_estimator = churn_estimator
        self.config_loader = config_loader
        self.applier = None
        self._rerun_requested: Set[str] = set()

    def attach_applier(self, applier) -> None:
        self.applier = applier

    def _get_plan(self, plan_id: str) -> PricingPlan:
        plan = self.repository.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("PricingPlan", plan_id)
        return plan

    def calculate_optimal_price(
        self,
        plan: PricingPlan,
        history: Sequence[PriceHistoryEntry],
        data_points: int,
        conditions: MarketConditions,
        elasticity: float,
        segments: Sequence[SegmentAnalysis],
        config: PricingConfig,
    ) -> tuple:
        """Retourne (prix recommandé, confiance, facteurs) ; fonction pure."""
        max_change = config.max_price_change
        factors = OptimizationFactors(
            historical_performance=_bounded(
                historical_price_factor(history, config.historical_trend_points), max_change
            ),
            market_conditions=_bounded(
                market_price_factor(conditions, plan.base_price, max_change), max_change
            ),
            customer_segment=_bounded(segment_price_factor(segments), max_change),
            elasticity=elasticity_price_factor(elasticity, max_change),
        )
        weights = config.weights
        combined = (
            factors.historical_performance * weights.historical_performance
            + factors.market_conditions * weights.market_conditions
            + factors.customer_segment * weights.customer_segment
            + factors.elasticity * weights.elasticity
        )
        recommended = scale_money(plan.base_price, combined)
        confidence = calculate_confidence_score(
            data_points, config.min_data_points, elasticity, conditions, segments
        )
        return recommended, confidence, factors

    def optimize_price(self, plan_id: str) -> Optional[PriceRecommendation]:
        """
        Recommandation de prix pour un plan, sans effet de bord.

        Retourne None si l'historique est insuffisant.
        """
        plan = self._get_plan(plan_id)
        config = self.config_loader(plan_id)

        data_points = self.repository.count_price_history(plan_id)
        if data_points < config.min_data_points:
            logger.info(
                "Pas de recommandation pour %s: %d points d'historique (< %d)",
                plan_id,
                data_points,
                config.min_data_points,
            )
            return None

        history = self.repository.get_price_history(
            plan_id, limit=config.history_lookback, newest_first=True
        )
        conditions = self.market_analyzer.get_market_conditions(plan)
        elasticity = average_elasticity(self.elasticity_estimator.estimate(plan_id))
        segments = self.segment_analyzer.analyze(self.repository.get_subscriptions(plan_id))
        churn = self.churn_estimator.estimate(plan_id)

        recommended, confidence, factors = self.calculate_optimal_price(
            plan, history, data_points, conditions, elasticity, segments, config
        )
        recommendation = PriceRecommendation(
            plan_id=plan_id,
            current_price=plan.base_price,
            recommended_price=recommended,
            confidence=confidence,
            factors=factors,
            elasticity=elasticity,
            data_points=data_points,
            churn_probability=churn.probability,
            should_apply=should_update_price(
                plan.base_price, recommended, config.price_change_threshold
            ),
        )
        logger.info(
            "Recommandation %s: %s -> %s (confiance %.2f, appliquer=%s)",
            plan_id,
            plan.base_price,
            recommended,
            confidence,
            recommendation.should_apply,
        )
        return recommendation

    def update_price_optimization(self, plan_id: str, apply_changes: bool = True):
        """
        Optimise puis applique le prix si l'écart dépasse le seuil.

        Retourne (recommandation, changement appliqué ou None).
        """
        recommendation = self.optimize_price(plan_id)
        self._rerun_requested.discard(plan_id)
        if recommendation is None or not recommendation.should_apply or not apply_changes:
            return recommendation, None
        if self.applier is None:
            raise RuntimeError("Aucun PriceUpdateApplier n'est branché sur l'optimiseur")
        applied = self.applier.apply_recommendation(recommendation)
        return recommendation, applied

    def notify_price_applied(self, plan_id: str) -> None:
        """Signal de l'applier : le plan pourra être ré-optimisé au prochain cycle."""
        self._rerun_requested.add(plan_id)

    def pending_reruns(self) -> List[str]:
        return sorted(self._rerun_requested)

    def get_optimization_summary(self, plan_id: str) -> OptimizationSummary:
        plan = self._get_plan(plan_id)
        position = self.market_analyzer.analyze(plan_id)
        elasticity = average_elasticity(self.elasticity_estimator.estimate(plan_id))
        churn = self.churn_estimator.estimate(plan_id)
        return OptimizationSummary(
            plan_id=plan_id,
            current_price=plan.base_price,
            average_elasticity=elasticity,
            market_pressure=position.market_pressure if position else None,
            churn_probability=churn.probability,
        )
