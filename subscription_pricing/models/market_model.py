"""
Positionnement marché d'un plan.

Ce module fournit :
- `MarketPositionAnalyzer` : compare le prix d'un plan au benchmark de son
  segment (percentile dans [min, max], écart à la médiane, recommandation),
- `MarketConditions` et `calculate_seasonality` : signaux marché consommés
  par l'optimiseur,
- `market_price_factor` : facteur multiplicatif (autour de 1.0) combinant
  prix concurrents (60 %), demande (20 %) et saisonnalité (20 %).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from ..exceptions import NotFoundError
from ..interfaces.data_access import MarketBenchmark, PricingPlan, PricingRepository
from ..interfaces.providers import MarketDataProvider
from ..timeutils import Clock, utc_now

logger = logging.getLogger(__name__)

# Écart à la médiane au-delà duquel on recommande de bouger le prix
MEDIAN_GAP_THRESHOLD = 0.2

# Niveaux neutres des signaux (échelle 0-1) : à ce niveau le terme vaut 1.0
NEUTRAL_MARKET_DEMAND = 0.5
NEUTRAL_SEASONALITY = 0.9

COMPETITOR_WEIGHT = 0.6
DEMAND_WEIGHT = 0.2
SEASONALITY_WEIGHT = 0.2


@dataclass(frozen=True)
class MarketPosition:
    current_price: Decimal
    market_average: Decimal
    market_median: Decimal
    percentile: float
    market_pressure: float
    recommendation: str
    message: str


@dataclass(frozen=True)
class MarketConditions:
    competitor_prices: List[Decimal] = field(default_factory=list)
    market_demand: float = 0.7
    seasonality: float = NEUTRAL_SEASONALITY


def calculate_seasonality(now: datetime) -> float:
    """
    Saisonnalité simple sur une échelle 0-1.

    Sinusoïde annuelle autour de 0.9 (±0.1), atténuée de 20 % le week-end.
    """
    month_factor = math.sin((now.month - 1) / 12 * 2 * math.pi) * 0.1 + 0.9
    week_factor = 1.0 if now.weekday() < 5 else 0.8
    return month_factor * week_factor


def _bounded_term(value: float, neutral: float, max_change: float) -> float:
    return 1.0 + max(-max_change, min(max_change, value - neutral))


def market_price_factor(
    conditions: MarketConditions,
    current_price: Decimal,
    max_change: float = 0.2,
) -> float:
    """
    Facteur marché autour de 1.0.

    Le prix concurrent moyen est exprimé en ratio du prix courant, la
    demande et la saisonnalité en écart à leur niveau neutre ; chaque terme
    est borné à ±max_change.
    """
    if conditions.competitor_prices and current_price > 0:
        competitor_avg = sum(conditions.competitor_prices) / len(conditions.competitor_prices)
        competitor_term = _bounded_term(float(competitor_avg / current_price), 1.0, max_change)
    else:
        competitor_term = 1.0

    demand_term = _bounded_term(conditions.market_demand, NEUTRAL_MARKET_DEMAND, max_change)
    seasonality_term = _bounded_term(conditions.seasonality, NEUTRAL_SEASONALITY, max_change)

    return (
        competitor_term * COMPETITOR_WEIGHT
        + demand_term * DEMAND_WEIGHT
        + seasonality_term * SEASONALITY_WEIGHT
    )


def describe_position(current_price: Decimal, benchmark: MarketBenchmark) -> MarketPosition:
    spread = benchmark.max_price - benchmark.min_price
    if spread > 0:
        percentile = float((current_price - benchmark.min_price) / spread)
        percentile = max(0.0, min(1.0, percentile))
    else:
        percentile = 0.5

    if benchmark.median_price > 0:
        median_gap = float((current_price - benchmark.median_price) / benchmark.median_price)
        market_pressure = -median_gap
    else:
        median_gap = 0.0
        market_pressure = 0.0

    if median_gap < -MEDIAN_GAP_THRESHOLD:
        recommendation = "INCREASE"
        message = "Prix sous le marché : envisager une hausse pour s'aligner."
    elif median_gap > MEDIAN_GAP_THRESHOLD:
        recommendation = "OPTIMIZE"
        message = "Prix au-dessus du marché : optimiser la compétitivité."
    else:
        recommendation = "ALIGNED"
        message = "Prix aligné sur le marché."

    return MarketPosition(
        current_price=current_price,
        market_average=benchmark.avg_price,
        market_median=benchmark.median_price,
        percentile=percentile,
        market_pressure=market_pressure,
        recommendation=recommendation,
        message=message,
    )


class MarketPositionAnalyzer:
    def __init__(
        self,
        repository: PricingRepository,
        provider: MarketDataProvider,
        default_market_demand: float = 0.7,
        clock: Clock = utc_now,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.default_market_demand = default_market_demand
        self.clock = clock

    def analyze(self, plan_id: str) -> Optional[MarketPosition]:
        """Position marché du plan ; None si aucun benchmark n'existe pour son segment."""
        plan = self.repository.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("PricingPlan", plan_id)

        benchmark = self.provider.get_market_benchmark(plan.market_segment)
        if benchmark is None:
            return None
        return describe_position(plan.base_price, benchmark)

    def get_market_conditions(self, plan: PricingPlan) -> MarketConditions:
        benchmark = self.provider.get_market_benchmark(plan.market_segment)
        competitor_prices: List[Decimal] = []
        if benchmark is not None:
            competitor_prices = [benchmark.avg_price, benchmark.median_price]

        demand = self.provider.get_market_demand(plan.market_segment)
        if demand is None:
            demand = self.default_market_demand
        demand = max(0.0, min(1.0, demand))

        return MarketConditions(
            competitor_prices=competitor_prices,
            market_demand=demand,
            seasonality=calculate_seasonality(self.clock()),
        )
