"""
Estimation de l'élasticité-prix de la demande.

Ce module fournit :
- `compute_arc_elasticities` : élasticité « arc » (formule du point milieu)
  pour chaque paire d'observations (prix, quantité) consécutives,
- `build_demand_observations` : construction des observations à partir de
  l'historique de prix et des souscriptions (une observation par ère de prix),
- `ElasticityEstimator` : lecture des données d'un plan sur une fenêtre
  et calcul de la séquence d'élasticités.

Formule, pour deux observations (p1, q1) -> (p2, q2) :

    e = ((q2 - q1) / ((q2 + q1) / 2)) / ((p2 - p1) / ((p2 + p1) / 2))

Une paire sans variation de prix ne porte aucune information et est ignorée,
de même qu'une paire sans aucune demande (q1 + q2 == 0).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Sequence

import numpy as np  # type: ignore
import pandas as pd  # type: ignore

from ..interfaces.data_access import PriceHistoryEntry, PricingRepository, SubscriptionObservation
from ..timeutils import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DemandObservation:
    price: Decimal
    quantity: float
    date: Optional[datetime] = None


@dataclass(frozen=True)
class ElasticityPoint:
    elasticity: float
    date: Optional[datetime] = None


def arc_elasticity(p1: float, q1: float, p2: float, q2: float) -> Optional[float]:
    """Élasticité arc entre deux points ; None si la paire n'est pas exploitable."""
    if p2 == p1 or (p1 + p2) == 0:
        return None
    if (q1 + q2) == 0:
        return None
    quantity_change = (q2 - q1) / ((q2 + q1) / 2)
    price_change = (p2 - p1) / ((p2 + p1) / 2)
    return quantity_change / price_change


def compute_arc_elasticities(observations: Sequence[DemandObservation]) -> List[ElasticityPoint]:
    """
    Calcule une élasticité par paire d'observations consécutives.

    Les observations doivent être triées dans le temps. Moins de deux
    observations -> séquence vide.
    """
    results: List[ElasticityPoint] = []
    for previous, current in zip(observations, observations[1:]):
        value = arc_elasticity(
            float(previous.price),
            float(previous.quantity),
            float(current.price),
            float(current.quantity),
        )
        if value is None:
            continue
        results.append(ElasticityPoint(elasticity=value, date=current.date))
    return results


def average_elasticity(points: Sequence[ElasticityPoint]) -> float:
    """Moyenne de la séquence ; 0.0 (aucun signal) si elle est vide."""
    if not points:
        return 0.0
    return float(np.mean([p.elasticity for p in points]))


def build_demand_observations(
    history: Sequence[PriceHistoryEntry],
    subscriptions: Sequence[SubscriptionObservation],
) -> List[DemandObservation]:
    """
    Associe à chaque ère de prix le nombre de souscriptions créées pendant l'ère.

    Une ère commence à `effective_from` d'une entrée d'historique et se termine
    à l'entrée suivante ; la dernière ère reste ouverte. Les souscriptions
    antérieures à la première ère sont ignorées.
    """
    if not history:
        return []

    ordered = sorted(history, key=lambda e: e.effective_from)
    edges = pd.DatetimeIndex(pd.to_datetime([e.effective_from for e in ordered], utc=True))

    counts = np.zeros(len(ordered), dtype=int)
    if subscriptions:
        created = pd.DatetimeIndex(pd.to_datetime([s.created_at for s in subscriptions], utc=True))
        era_index = edges.searchsorted(created, side="right") - 1
        era_index = era_index[era_index >= 0]
        if len(era_index):
            bincount = np.bincount(era_index, minlength=len(ordered))
            counts = bincount[: len(ordered)]

    return [
        DemandObservation(price=entry.price, quantity=float(count), date=entry.effective_from)
        for entry, count in zip(ordered, counts)
    ]


class ElasticityEstimator:
    """
    Calcule l'élasticité d'un plan à partir des données de facturation.

    Utilisation typique :
        estimator = ElasticityEstimator(repository)
        points = estimator.estimate(plan_id)
        e = average_elasticity(points)
    """

    def __init__(
        self,
        repository: PricingRepository,
        window_days: int = 90,
        clock: Clock = utc_now,
    ) -> None:
        self.repository = repository
        self.window_days = window_days
        self.clock = clock

    def estimate(
        self,
        plan_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ElasticityPoint]:
        end = end or self.clock()
        start = start or end - timedelta(days=self.window_days)

        history = self.repository.get_price_history(plan_id, start=start, end=end)
        subscriptions = self.repository.get_subscriptions(plan_id, start=start, end=end)
        observations = build_demand_observations(history, subscriptions)
        points = compute_arc_elasticities(observations)

        logger.debug(
            "Élasticité plan=%s: %d ères de prix, %d souscriptions, %d points",
            plan_id,
            len(observations),
            len(subscriptions),
            len(points),
        )
        return points

    def estimate_average(
        self,
        plan_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> float:
        return average_elasticity(self.estimate(plan_id, start=start, end=end))
