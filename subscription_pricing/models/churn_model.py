"""
Estimation du risque de churn d'un plan.

Le risque vient en priorité du modèle de churn amont (`ChurnRiskProvider`).
À défaut, il est approché par le taux de résiliation observé sur les
souscriptions de la fenêtre. Sans aucune donnée, on retombe sur la
probabilité de référence (10 %).
"""

import logging
from datetime import timedelta
from typing import Optional

from ..interfaces.data_access import PricingRepository, SubscriptionStatus
from ..interfaces.providers import ChurnRisk, ChurnRiskProvider
from ..timeutils import Clock, utc_now

logger = logging.getLogger(__name__)

DEFAULT_CHURN_PROBABILITY = 0.1


def _clamp_probability(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


class ChurnRiskEstimator:
    def __init__(
        self,
        repository: PricingRepository,
        provider: Optional[ChurnRiskProvider] = None,
        window_days: int = 90,
        clock: Clock = utc_now,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.window_days = window_days
        self.clock = clock

    def estimate(self, plan_id: str) -> ChurnRisk:
        if self.provider is not None:
            risk = self.provider.get_churn_risk(plan_id)
            if risk is not None:
                return ChurnRisk(probability=_clamp_probability(risk.probability), factors=dict(risk.factors))

        end = self.clock()
        subscriptions = self.repository.get_subscriptions(
            plan_id, start=end - timedelta(days=self.window_days), end=end
        )
        if not subscriptions:
            logger.info("Pas de souscriptions pour %s, churn de référence utilisé", plan_id)
            return ChurnRisk(probability=DEFAULT_CHURN_PROBABILITY, factors={"fallback": 1.0})

        canceled = sum(1 for s in subscriptions if s.status == SubscriptionStatus.CANCELED)
        probability = canceled / len(subscriptions)
        return ChurnRisk(
            probability=_clamp_probability(probability),
            factors={"observed_cancellations": float(canceled), "observed_subscriptions": float(len(subscriptions))},
        )
