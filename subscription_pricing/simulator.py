"""
Simulation de revenu sur plusieurs mois pour un changement de prix hypothétique.

Pour chaque mois, avec r = delta_prix / prix_courant et e l'élasticité moyenne :
- adoption : abonnés += abonnés * e * r,
- churn    : taux = max(0, -e * r), abonnés -= abonnés * taux,
- revenu   : abonnés * (prix_courant + delta_prix).

Simulation pure : aucun état stocké n'est modifié.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List

from .exceptions import ValidationError
from .money import to_money


@dataclass(frozen=True)
class RevenueProjection:
    month: int
    subscribers: int
    revenue: Decimal
    churn_rate: float  # en pourcentage

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "subscribers": self.subscribers,
            "revenue": str(self.revenue),
            "churn_rate": self.churn_rate,
        }


def simulate_revenue(
    current_subscribers: int,
    current_price: Decimal,
    price_delta: Decimal,
    elasticity: float,
    months: int = 12,
) -> List[RevenueProjection]:
    if months < 1:
        raise ValidationError(f"months doit être >= 1 (reçu {months})")
    if current_subscribers < 0:
        raise ValidationError("current_subscribers ne peut pas être négatif")
    current_price = to_money(current_price)
    price_delta = to_money(price_delta)
    if current_price <= 0:
        raise ValidationError(f"Le prix courant doit être strictement positif (reçu {current_price})")
    new_price = current_price + price_delta
    if new_price <= 0:
        raise ValidationError(f"Le nouveau prix doit être strictement positif (reçu {new_price})")

    relative_change = float(price_delta / current_price)
    churn_rate = max(0.0, -elasticity * relative_change)
    subscribers = float(current_subscribers)

    projections: List[RevenueProjection] = []
    for month in range(1, months + 1):
        subscribers += subscribers * elasticity * relative_change
        subscribers -= subscribers * churn_rate
        subscribers = max(subscribers, 0.0)

        projections.append(
            RevenueProjection(
                month=month,
                subscribers=int(round(subscribers)),
                revenue=to_money(Decimal(str(subscribers)) * new_price),
                churn_rate=round(churn_rate * 100, 2),
            )
        )
    return projections
