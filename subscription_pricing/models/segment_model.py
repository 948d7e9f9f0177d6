"""
Analyse des segments de clientèle d'un plan.

Les souscriptions sont regroupées par segment (colonne `segment` fournie
par la facturation). Pour chaque segment :
- taille = nombre de souscriptions actives,
- revenu moyen = prix moyen payé par les souscriptions actives,
- taux de churn = part des souscriptions résiliées,
- élasticité = élasticité arc entre les paliers de prix payés dans le
  segment (repli sur l'élasticité par défaut si non estimable).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence

import pandas as pd  # type: ignore

from ..interfaces.data_access import SubscriptionObservation, SubscriptionStatus
from ..money import to_money
from .elasticity import DemandObservation, average_elasticity, compute_arc_elasticities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SegmentAnalysis:
    segment: str
    size: int
    average_revenue: Decimal
    churn_rate: float
    price_elasticity: float


class CustomerSegmentAnalyzer:
    def __init__(self, default_elasticity: float = 0.0) -> None:
        self.default_elasticity = default_elasticity

    def _segment_elasticity(self, group: pd.DataFrame) -> float:
        counts = group.groupby("price").size().sort_index()
        observations = [
            DemandObservation(price=Decimal(str(price)), quantity=float(count))
            for price, count in counts.items()
        ]
        points = compute_arc_elasticities(observations)
        if not points:
            return self.default_elasticity
        return average_elasticity(points)

    def analyze(self, subscriptions: Sequence[SubscriptionObservation]) -> List[SegmentAnalysis]:
        if not subscriptions:
            return []

        df = pd.DataFrame(
            {
                "segment": [s.segment or "default" for s in subscriptions],
                "price": [float(s.price) for s in subscriptions],
                "amount": [s.price for s in subscriptions],
                "active": [s.status == SubscriptionStatus.ACTIVE for s in subscriptions],
                "canceled": [s.status == SubscriptionStatus.CANCELED for s in subscriptions],
            }
        )

        segments: List[SegmentAnalysis] = []
        for segment, group in df.groupby("segment", sort=True):
            active = group[group["active"]]
            size = int(len(active))
            if size:
                average_revenue = to_money(sum(active["amount"], Decimal("0")) / size)
            else:
                average_revenue = to_money(0)
            segments.append(
                SegmentAnalysis(
                    segment=str(segment),
                    size=size,
                    average_revenue=average_revenue,
                    churn_rate=float(group["canceled"].mean()),
                    price_elasticity=self._segment_elasticity(group),
                )
            )

        logger.debug("Segments analysés: %s", [s.segment for s in segments])
        return segments


def segment_price_factor(segments: Sequence[SegmentAnalysis]) -> float:
    """Moyenne pondérée par la taille de (1 + élasticité) ; 1.0 sans segment actif."""
    total_size = sum(s.size for s in segments)
    if total_size == 0:
        return 1.0
    return sum((s.size / total_size) * (1 + s.price_elasticity) for s in segments)
