"""
Fournisseurs de signaux externes pour le moteur de pricing.

- `MarketDataProvider` : benchmark marché d'un segment (min/max/moyenne/médiane)
  et indicateur de demande,
- `ChurnRiskProvider` : probabilité de résiliation d'un plan.

Ces signaux sont calculés ailleurs (pipeline marché, modèle de churn) ;
le moteur ne fait que les consommer.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

import pytz  # type: ignore
from supabase import Client  # type: ignore

from ..money import to_money
from .data_access import MarketBenchmark, _parse_datetime, _response_data, _safe_float

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChurnRisk:
    probability: float
    factors: Dict[str, float] = field(default_factory=dict)


class MarketDataProvider(ABC):
    @abstractmethod
    def get_market_benchmark(self, segment: str) -> Optional[MarketBenchmark]:
        """Dernier benchmark connu pour le segment, None si aucun."""

    @abstractmethod
    def get_market_demand(self, segment: str) -> Optional[float]:
        """Demande marché sur une échelle 0-1, None si inconnue."""


class ChurnRiskProvider(ABC):
    @abstractmethod
    def get_churn_risk(self, plan_id: str) -> Optional[ChurnRisk]:
        """Risque de churn calculé en amont, None si indisponible."""


class StaticMarketDataProvider(MarketDataProvider):
    """
    Benchmark fixe, utilisé tant qu'aucune collecte marché n'alimente le segment.

    Les valeurs par défaut reprennent le snapshot SaaS de référence
    (10 / 100 / 50 / 45).
    """

    def __init__(
        self,
        min_price: Decimal = Decimal("10"),
        max_price: Decimal = Decimal("100"),
        avg_price: Decimal = Decimal("50"),
        median_price: Decimal = Decimal("45"),
        product_type: str = "saas",
        market_demand: Optional[float] = 0.7,
    ) -> None:
        self.min_price = to_money(min_price)
        self.max_price = to_money(max_price)
        self.avg_price = to_money(avg_price)
        self.median_price = to_money(median_price)
        self.product_type = product_type
        self.market_demand = market_demand

    def get_market_benchmark(self, segment: str) -> Optional[MarketBenchmark]:
        return MarketBenchmark(
            segment=segment or "default",
            product_type=self.product_type,
            min_price=self.min_price,
            max_price=self.max_price,
            avg_price=self.avg_price,
            median_price=self.median_price,
            collected_at=datetime.now(pytz.UTC),
        )

    def get_market_demand(self, segment: str) -> Optional[float]:
        return self.market_demand


class SupabaseMarketDataProvider(MarketDataProvider):
    """Lit les snapshots de la table `market_benchmarks` (le plus récent par segment)."""

    def __init__(self, client: Client, product_type: str = "saas") -> None:
        self.client = client
        self.product_type = product_type

    def _latest_row(self, segment: str) -> Optional[dict]:
        rows = _response_data(
            self.client.table("market_benchmarks")
            .select("*")
            .eq("segment", segment)
            .eq("product_type", self.product_type)
            .order("collected_at", desc=True)
            .limit(1)
            .execute()
        )
        return rows[0] if rows else None

    def get_market_benchmark(self, segment: str) -> Optional[MarketBenchmark]:
        row = self._latest_row(segment)
        if row is None:
            logger.info("Aucun benchmark marché pour le segment %s", segment)
            return None
        return MarketBenchmark(
            segment=row["segment"],
            product_type=row.get("product_type") or self.product_type,
            min_price=to_money(row["min_price"]),
            max_price=to_money(row["max_price"]),
            avg_price=to_money(row["avg_price"]),
            median_price=to_money(row["median_price"]),
            collected_at=_parse_datetime(row["collected_at"]),
        )

    def get_market_demand(self, segment: str) -> Optional[float]:
        row = self._latest_row(segment)
        if row is None:
            return None
        return _safe_float(row.get("market_demand"))


class StaticChurnRiskProvider(ChurnRiskProvider):
    """Risque de churn fixe (valeur de référence : 10 %)."""

    def __init__(self, probability: float = 0.1, factors: Optional[Dict[str, float]] = None) -> None:
        self.risk = ChurnRisk(
            probability=probability,
            factors=factors
            if factors is not None
            else {
                "price_elasticity": 0.3,
                "competitor_pricing": 0.2,
                "customer_satisfaction": 0.5,
            },
        )

    def get_churn_risk(self, plan_id: str) -> Optional[ChurnRisk]:
        return self.risk


class NullChurnRiskProvider(ChurnRiskProvider):
    """Aucun modèle de churn amont : l'estimateur se rabat sur les abonnements observés."""

    def get_churn_risk(self, plan_id: str) -> Optional[ChurnRisk]:
        return None
