"""
Accès aux données nécessaires au moteur de pricing d'abonnements.

Ce module fournit une couche d'abstraction entre le moteur et la base
(Supabase/PostgreSQL) :
- les enregistrements manipulés par le moteur (plans, historique de prix,
  abonnements, tests de prix et variantes),
- l'interface `PricingRepository` consommée par les composants,
- son implémentation Supabase.

Le moteur ne possède pas ces données : les plans et abonnements sont gérés
par le sous-système de facturation. Il ne fait que les lire, incrémenter
les compteurs des variantes et demander des mises à jour de prix.

Les écritures composées (création d'un test avec ses variantes, prix +
historique) passent par des fonctions PostgreSQL appelées en RPC afin
d'être exécutées dans une seule transaction.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser  # type: ignore
from postgrest.exceptions import APIError  # type: ignore
from supabase import Client, create_client  # type: ignore

from ..config.settings import Settings
from ..exceptions import NotFoundError, StorageError
from ..money import to_money
from ..timeutils import ensure_utc

logger = logging.getLogger(__name__)

IMPRESSION_COUNTER = "impression_count"
CONVERSION_COUNTER = "conversion_count"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"


class PriceTestStatus(str, Enum):
    """Cycle de vie d'un test de prix : ACTIVE -> COMPLETED, sans retour."""

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


@dataclass
class PricingPlan:
    id: str
    base_price: Decimal
    market_segment: str = "default"
    features: List[str] = field(default_factory=list)
    currency: str = "EUR"


@dataclass(frozen=True)
class OptimizationFactors:
    """Décomposition d'une recommandation ; chaque facteur est un multiplicateur autour de 1.0."""

    historical_performance: float
    market_conditions: float
    customer_segment: float
    elasticity: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "historical_performance": self.historical_performance,
            "market_conditions": self.market_conditions,
            "customer_segment": self.customer_segment,
            "elasticity": self.elasticity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OptimizationFactors":
        return cls(
            historical_performance=float(data["historical_performance"]),
            market_conditions=float(data["market_conditions"]),
            customer_segment=float(data["customer_segment"]),
            elasticity=float(data["elasticity"]),
        )


@dataclass(frozen=True)
class PriceChangeMetadata:
    """
    Métadonnées structurées d'une entrée d'historique de prix.

    Sérialisées en JSON uniquement à la frontière du stockage.
    """

    source: str
    confidence: Optional[float] = None
    factors: Optional[OptimizationFactors] = None
    test_id: Optional[str] = None
    expected_improvement: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "confidence": self.confidence,
            "factors": self.factors.to_dict() if self.factors else None,
            "test_id": self.test_id,
            "expected_improvement": self.expected_improvement,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PriceChangeMetadata":
        data = data or {}
        factors = data.get("factors")
        return cls(
            source=data.get("source", "unknown"),
            confidence=_safe_float(data.get("confidence")),
            factors=OptimizationFactors.from_dict(factors) if factors else None,
            test_id=data.get("test_id"),
            expected_improvement=_safe_float(data.get("expected_improvement")),
        )


@dataclass(frozen=True)
class PriceHistoryEntry:
    """Entrée d'historique de prix ; jamais modifiée ni supprimée."""

    plan_id: str
    price: Decimal
    effective_from: datetime
    reason: str
    metadata: PriceChangeMetadata
    id: Optional[str] = None


@dataclass(frozen=True)
class SubscriptionObservation:
    plan_id: str
    price: Decimal
    status: SubscriptionStatus
    created_at: datetime
    canceled_at: Optional[datetime] = None
    customer_id: Optional[str] = None
    segment: str = "default"


@dataclass(frozen=True)
class MarketBenchmark:
    segment: str
    product_type: str
    min_price: Decimal
    max_price: Decimal
    avg_price: Decimal
    median_price: Decimal
    collected_at: datetime


@dataclass
class PriceTestVariant:
    name: str
    price: Decimal
    is_control: bool
    traffic_allocation: Decimal
    impression_count: int = 0
    conversion_count: int = 0
    id: Optional[str] = None
    test_id: Optional[str] = None

    @property
    def conversion_rate(self) -> Optional[float]:
        if self.impression_count <= 0:
            return None
        return self.conversion_count / self.impression_count


@dataclass
class PriceTest:
    plan_id: str
    name: str
    status: PriceTestStatus
    start_date: datetime
    end_date: datetime
    target_metric: str = "conversion_rate"
    min_confidence: float = 0.95
    description: Optional[str] = None
    variants: List[PriceTestVariant] = field(default_factory=list)
    results: Optional[Dict[str, Any]] = None
    id: Optional[str] = None

    def is_active(self, now: datetime) -> bool:
        """Un test expiré reste ACTIVE en base mais n'est plus servi."""
        return self.status == PriceTestStatus.ACTIVE and self.end_date >= now

    @property
    def control(self) -> Optional[PriceTestVariant]:
        for variant in self.variants:
            if variant.is_control:
                return variant
        return None


class PricingRepository(ABC):
    """
    Interface de stockage consommée par le moteur.

    Les implémentations doivent garantir :
    - des incréments de compteurs atomiques côté stockage,
    - l'atomicité de `apply_price_change` (prix + historique, et
      éventuellement clôture du test, tout ou rien).
    """

    @abstractmethod
    def get_plan(self, plan_id: str) -> Optional[PricingPlan]:
        ...

    @abstractmethod
    def get_price_history(
        self,
        plan_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[PriceHistoryEntry]:
        ...

    @abstractmethod
    def count_price_history(self, plan_id: str) -> int:
        ...

    @abstractmethod
    def get_subscriptions(
        self,
        plan_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[SubscriptionObservation]:
        ...

    @abstractmethod
    def count_active_subscriptions(self, plan_id: str) -> int:
        ...

    @abstractmethod
    def create_price_test(self, test: PriceTest) -> PriceTest:
        """Persiste le test et ses variantes ; retourne le test avec ses identifiants."""

    @abstractmethod
    def get_price_test(self, test_id: str) -> Optional[PriceTest]:
        ...

    @abstractmethod
    def get_active_price_tests(self, plan_id: str) -> List[PriceTest]:
        """Tests au statut ACTIVE (expirés compris), ordre de création."""

    @abstractmethod
    def get_variant(self, variant_id: str) -> Optional[PriceTestVariant]:
        ...

    @abstractmethod
    def increment_variant_counter(self, variant_id: str, counter: str) -> PriceTestVariant:
        """
        Incrémente atomiquement `impression_count` ou `conversion_count`.

        Doit refuser l'incrément si le test est COMPLETED ou si une
        conversion dépasserait le nombre d'impressions.
        """

    @abstractmethod
    def apply_price_change(
        self,
        entry: PriceHistoryEntry,
        complete_test_id: Optional[str] = None,
        test_results: Optional[Dict[str, Any]] = None,
    ) -> PriceHistoryEntry:
        """Met à jour le prix du plan et ajoute l'entrée d'historique dans une seule transaction."""

    @abstractmethod
    def complete_price_test(self, test_id: str, results: Optional[Dict[str, Any]] = None) -> PriceTest:
        ...


def _safe_int(value: Any) -> int:
    try:
        if value is None:
            return 0
        return int(value)
    except (TypeError, ValueError):
        return 0


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, datetime):
        value = date_parser.isoparse(value)
    return ensure_utc(value)


def _response_data(response: Any) -> Any:
    # Vérifier si response.data existe (compatible avec différentes versions de Supabase)
    if response is None or not hasattr(response, "data"):
        raise StorageError("Réponse Supabase invalide: pas d'attribut 'data'")
    return response.data


def _row_to_plan(row: Dict[str, Any]) -> PricingPlan:
    return PricingPlan(
        id=str(row["id"]),
        base_price=to_money(row["base_price"]),
        market_segment=row.get("market_segment") or "default",
        features=list(row.get("features") or []),
        currency=row.get("currency") or "EUR",
    )


def _row_to_history(row: Dict[str, Any]) -> PriceHistoryEntry:
    return PriceHistoryEntry(
        id=str(row["id"]) if row.get("id") is not None else None,
        plan_id=str(row["plan_id"]),
        price=to_money(row["price"]),
        effective_from=_parse_datetime(row["effective_from"]),
        reason=row.get("reason") or "",
        metadata=PriceChangeMetadata.from_dict(row.get("metadata")),
    )


def _row_to_subscription(row: Dict[str, Any]) -> SubscriptionObservation:
    return SubscriptionObservation(
        plan_id=str(row["plan_id"]),
        price=to_money(row["price"]),
        status=SubscriptionStatus(str(row["status"]).lower()),
        created_at=_parse_datetime(row["created_at"]),
        canceled_at=_parse_datetime(row.get("canceled_at")),
        customer_id=row.get("customer_id"),
        segment=row.get("segment") or "default",
    )


def _row_to_variant(row: Dict[str, Any]) -> PriceTestVariant:
    return PriceTestVariant(
        id=str(row["id"]),
        test_id=str(row["test_id"]),
        name=row["name"],
        price=to_money(row["price"]),
        is_control=bool(row.get("is_control")),
        traffic_allocation=Decimal(str(row["traffic_allocation"])),
        impression_count=_safe_int(row.get("impression_count")),
        conversion_count=_safe_int(row.get("conversion_count")),
    )


def _row_to_test(row: Dict[str, Any]) -> PriceTest:
    # Ordre de création : il fixe le parcours des allocations cumulées
    variant_rows = sorted(
        row.get("price_test_variants") or [],
        key=lambda v: (_safe_int(v.get("position")), str(v.get("id"))),
    )
    variants = [_row_to_variant(v) for v in variant_rows]
    return PriceTest(
        id=str(row["id"]),
        plan_id=str(row["plan_id"]),
        name=row["name"],
        status=PriceTestStatus(row["status"]),
        start_date=_parse_datetime(row["start_date"]),
        end_date=_parse_datetime(row["end_date"]),
        target_metric=row.get("target_metric") or "conversion_rate",
        min_confidence=float(row.get("min_confidence") or 0.95),
        description=row.get("description"),
        variants=variants,
        results=row.get("results"),
    )


def _variant_to_row(variant: PriceTestVariant, position: int) -> Dict[str, Any]:
    return {
        "position": position,
        "name": variant.name,
        "price": str(variant.price),
        "is_control": variant.is_control,
        "traffic_allocation": str(variant.traffic_allocation),
    }


def create_supabase_client(settings: Settings) -> Client:
    """
    Crée un client Supabase à partir des settings.

    Le client est injecté dans le repository ; aucune instance globale.
    """
    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError(
            "Les variables d'environnement SUPABASE_URL et SUPABASE_SERVICE_ROLE_KEY/SUPABASE_KEY "
            "doivent être configurées pour utiliser le moteur de pricing."
        )
    return create_client(settings.supabase_url, settings.supabase_key)


class SupabasePricingRepository(PricingRepository):
    """
    Implémentation Supabase/PostgreSQL.

    Tables : `pricing_plans`, `price_history`, `subscriptions`,
    `price_tests`, `price_test_variants`.
    RPC (voir `supabase/migrations/`) : `create_price_test_with_variants`,
    `increment_price_test_variant_counter`, `apply_plan_price_change`,
    `complete_price_test`.
    """

    TEST_SELECT = "*, price_test_variants(*)"

    def __init__(self, client: Client) -> None:
        self.client = client

    def _rpc(self, function: str, params: Dict[str, Any]) -> Any:
        try:
            response = self.client.rpc(function, params).execute()
        except APIError as exc:
            logger.error("RPC %s en échec: %s", function, exc)
            raise StorageError(f"RPC {function} en échec: {exc}") from exc
        return _response_data(response)

    def get_plan(self, plan_id: str) -> Optional[PricingPlan]:
        response = (
            self.client.table("pricing_plans")
            .select("id, base_price, market_segment, features, currency")
            .eq("id", plan_id)
            .maybe_single()
            .execute()
        )
        # maybe_single() renvoie None quand la ligne n'existe pas (selon la version)
        if response is None or not getattr(response, "data", None):
            return None
        return _row_to_plan(response.data)

    def get_price_history(
        self,
        plan_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[PriceHistoryEntry]:
        query = self.client.table("price_history").select("*").eq("plan_id", plan_id)
        if start is not None:
            query = query.gte("effective_from", start.isoformat())
        if end is not None:
            query = query.lte("effective_from", end.isoformat())
        query = query.order("effective_from", desc=newest_first)
        if limit is not None:
            query = query.limit(limit)
        rows = _response_data(query.execute()) or []
        return [_row_to_history(row) for row in rows]

    def count_price_history(self, plan_id: str) -> int:
        response = (
            self.client.table("price_history")
            .select("id", count="exact")
            .eq("plan_id", plan_id)
            .execute()
        )
        _response_data(response)
        return _safe_int(getattr(response, "count", 0))

    def get_subscriptions(
        self,
        plan_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[SubscriptionObservation]:
        query = (
            self.client.table("subscriptions")
            .select("plan_id, price, status, created_at, canceled_at, customer_id, segment")
            .eq("plan_id", plan_id)
        )
        if start is not None:
            query = query.gte("created_at", start.isoformat())
        if end is not None:
            query = query.lte("created_at", end.isoformat())
        rows = _response_data(query.order("created_at", desc=False).execute()) or []
        return [_row_to_subscription(row) for row in rows]

    def count_active_subscriptions(self, plan_id: str) -> int:
        response = (
            self.client.table("subscriptions")
            .select("id", count="exact")
            .eq("plan_id", plan_id)
            .eq("status", SubscriptionStatus.ACTIVE.value)
            .execute()
        )
        _response_data(response)
        return _safe_int(getattr(response, "count", 0))

    def create_price_test(self, test: PriceTest) -> PriceTest:
        data = self._rpc(
            "create_price_test_with_variants",
            {
                "p_plan_id": test.plan_id,
                "p_name": test.name,
                "p_description": test.description,
                "p_start_date": test.start_date.isoformat(),
                "p_end_date": test.end_date.isoformat(),
                "p_target_metric": test.target_metric,
                "p_min_confidence": test.min_confidence,
                "p_variants": [_variant_to_row(v, i) for i, v in enumerate(test.variants)],
            },
        )
        if not data:
            raise StorageError("create_price_test_with_variants n'a retourné aucune ligne")
        return _row_to_test(data)

    def get_price_test(self, test_id: str) -> Optional[PriceTest]:
        rows = _response_data(
            self.client.table("price_tests").select(self.TEST_SELECT).eq("id", test_id).execute()
        )
        if not rows:
            return None
        return _row_to_test(rows[0])

    def get_active_price_tests(self, plan_id: str) -> List[PriceTest]:
        rows = _response_data(
            self.client.table("price_tests")
            .select(self.TEST_SELECT)
            .eq("plan_id", plan_id)
            .eq("status", PriceTestStatus.ACTIVE.value)
            .order("start_date", desc=False)
            .execute()
        ) or []
        return [_row_to_test(row) for row in rows]

    def get_variant(self, variant_id: str) -> Optional[PriceTestVariant]:
        rows = _response_data(
            self.client.table("price_test_variants").select("*").eq("id", variant_id).execute()
        )
        if not rows:
            return None
        return _row_to_variant(rows[0])

    def increment_variant_counter(self, variant_id: str, counter: str) -> PriceTestVariant:
        if counter not in (IMPRESSION_COUNTER, CONVERSION_COUNTER):
            raise ValueError(f"Compteur inconnu: {counter}")
        data = self._rpc(
            "increment_price_test_variant_counter",
            {"p_variant_id": variant_id, "p_counter": counter},
        )
        if not data:
            raise NotFoundError("PriceTestVariant", variant_id)
        row = data[0] if isinstance(data, list) else data
        return _row_to_variant(row)

    def apply_price_change(
        self,
        entry: PriceHistoryEntry,
        complete_test_id: Optional[str] = None,
        test_results: Optional[Dict[str, Any]] = None,
    ) -> PriceHistoryEntry:
        data = self._rpc(
            "apply_plan_price_change",
            {
                "p_plan_id": entry.plan_id,
                "p_price": str(entry.price),
                "p_effective_from": entry.effective_from.isoformat(),
                "p_reason": entry.reason,
                "p_metadata": entry.metadata.to_dict(),
                "p_complete_test_id": complete_test_id,
                "p_test_results": test_results,
            },
        )
        if not data:
            raise NotFoundError("PricingPlan", entry.plan_id)
        row = data[0] if isinstance(data, list) else data
        return _row_to_history(row)

    def complete_price_test(self, test_id: str, results: Optional[Dict[str, Any]] = None) -> PriceTest:
        data = self._rpc("complete_price_test", {"p_test_id": test_id, "p_results": results})
        if not data:
            raise NotFoundError("PriceTest", test_id)
        test = self.get_price_test(test_id)
        if test is None:
            raise NotFoundError("PriceTest", test_id)
        return test
