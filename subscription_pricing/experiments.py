"""
Gestion des tests de prix (expérimentations A/B sur le prix d'un plan).

Ce module est responsable de :
- créer un test et ses variantes après validation complète des entrées,
- servir à chaque client une variante de façon déterministe,
- compter impressions et conversions (incréments atomiques côté stockage),
- clôturer un test (ACTIVE -> COMPLETED, sans retour).

Affectation des clients : on hache `customer_id + test_id` avec MD5, on
garde les 4 premiers octets (entier 32 bits big-endian) et on divise par
2**32 pour obtenir une valeur dans [0, 1). Les variantes sont parcourues
dans leur ordre de création en cumulant `traffic_allocation / 100` ; la
première dont le cumul atteint la valeur est servie. Cette fonction de
hachage ne doit jamais changer pendant la vie d'un test, sinon les clients
seraient réaffectés silencieusement.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .config.pricing_config import PricingConfig, get_default_pricing_config
from .exceptions import NotFoundError, ValidationError
from .interfaces.data_access import (
    CONVERSION_COUNTER,
    IMPRESSION_COUNTER,
    PriceTest,
    PriceTestStatus,
    PriceTestVariant,
    PricingPlan,
    PricingRepository,
)
from .money import require_positive, scale_money, to_money
from .timeutils import Clock, utc_now

logger = logging.getLogger(__name__)

TOTAL_ALLOCATION = Decimal("100")
CONTROL_NAME = "Control"


@dataclass(frozen=True)
class VariantSpec:
    """Variante demandée par l'appelant : prix absolu OU multiplicateur du prix courant."""

    name: str
    traffic_allocation: Decimal
    price: Optional[Decimal] = None
    price_multiplier: Optional[float] = None
    is_control: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VariantSpec":
        allocation = data.get("traffic_allocation", data.get("trafficAllocation"))
        if allocation is None:
            raise ValidationError(f"traffic_allocation manquant pour la variante {data.get('name')!r}")
        price = data.get("price")
        multiplier = data.get("price_multiplier", data.get("priceMultiplier"))
        return cls(
            name=str(data.get("name") or "").strip(),
            traffic_allocation=_to_allocation(allocation),
            price=to_money(price) if price is not None else None,
            price_multiplier=float(multiplier) if multiplier is not None else None,
            is_control=bool(data.get("is_control", data.get("isControl", False))),
        )


@dataclass(frozen=True)
class VariantAssignment:
    price: Decimal
    variant_id: Optional[str] = None
    test_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": str(self.price),
            "variant_id": self.variant_id,
            "test_id": self.test_id,
        }


def _to_allocation(value: Any) -> Decimal:
    try:
        allocation = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"traffic_allocation invalide: {value!r}") from exc
    if not allocation.is_finite():
        raise ValidationError(f"traffic_allocation invalide: {value!r}")
    return allocation


def bucket_value(customer_id: str, test_id: str) -> float:
    """Valeur déterministe dans [0, 1) pour un couple (client, test)."""
    digest = hashlib.md5(f"{customer_id}{test_id}".encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "big") / 2 ** 32


def select_variant(variants: Sequence[PriceTestVariant], normalized: float) -> PriceTestVariant:
    if not variants:
        raise ValidationError("Aucune variante à servir")
    cumulative = 0.0
    for variant in variants:
        if variant.traffic_allocation <= 0:
            continue
        cumulative += float(variant.traffic_allocation) / 100
        if cumulative >= normalized:
            return variant
    # Bord flottant : le cumul peut finir juste sous 1.0
    served = [v for v in variants if v.traffic_allocation > 0]
    return served[-1] if served else variants[-1]


def _resolve_price(spec: VariantSpec, plan: PricingPlan) -> Decimal:
    if spec.price is not None and spec.price_multiplier is not None:
        raise ValidationError(f"Variante {spec.name!r}: fournir price OU price_multiplier, pas les deux")
    if spec.price is not None:
        return require_positive(spec.price, f"prix de la variante {spec.name!r}")
    if spec.price_multiplier is not None:
        if spec.price_multiplier <= 0:
            raise ValidationError(f"Variante {spec.name!r}: price_multiplier doit être > 0")
        return require_positive(
            scale_money(plan.base_price, spec.price_multiplier),
            f"prix de la variante {spec.name!r}",
        )
    raise ValidationError(f"Variante {spec.name!r}: price ou price_multiplier requis")


def validate_variant_specs(specs: Sequence[VariantSpec]) -> None:
    """Contrôles indépendants du plan ; lève ValidationError avec la contrainte violée."""
    if not specs:
        raise ValidationError("Un test de prix nécessite au moins une variante")

    names = [s.name for s in specs]
    if any(not name for name in names):
        raise ValidationError("Chaque variante doit avoir un nom")
    if len(set(names)) != len(names):
        raise ValidationError("Les noms de variantes doivent être uniques")

    for spec in specs:
        if spec.traffic_allocation < 0 or spec.traffic_allocation > TOTAL_ALLOCATION:
            raise ValidationError(
                f"Variante {spec.name!r}: traffic_allocation doit être dans [0, 100] "
                f"(reçu {spec.traffic_allocation})"
            )

    total = sum((s.traffic_allocation for s in specs), Decimal("0"))
    if total != TOTAL_ALLOCATION:
        raise ValidationError(f"Le total des allocations de trafic doit être égal à 100% (reçu {total})")

    if sum(1 for s in specs if s.is_control) > 1:
        raise ValidationError("Un test ne peut avoir qu'une seule variante contrôle")
    if all(s.is_control for s in specs):
        raise ValidationError("Un test nécessite au moins une variante hors contrôle")


class ExperimentManager:
    def __init__(
        self,
        repository: PricingRepository,
        config: Optional[PricingConfig] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.repository = repository
        self.config = config or get_default_pricing_config()
        self.clock = clock

    def _get_plan(self, plan_id: str) -> PricingPlan:
        plan = self.repository.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("PricingPlan", plan_id)
        return plan

    def create_test(
        self,
        plan_id: str,
        variants: Sequence[Union[VariantSpec, Mapping[str, Any]]],
        duration_days: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        min_confidence: Optional[float] = None,
        target_metric: Optional[str] = None,
    ) -> PriceTest:
        specs = [v if isinstance(v, VariantSpec) else VariantSpec.from_dict(v) for v in variants]
        validate_variant_specs(specs)
        if not isinstance(duration_days, int) or duration_days <= 0:
            raise ValidationError(f"duration_days doit être un entier > 0 (reçu {duration_days!r})")
        confidence = min_confidence if min_confidence is not None else self.config.default_min_confidence
        if not 0 < confidence < 1:
            raise ValidationError(f"min_confidence doit être dans (0, 1) (reçu {confidence})")

        plan = self._get_plan(plan_id)
        now = self.clock()

        # Un seul test actif par plan
        running = self.get_active_test(plan_id)
        if running is not None:
            raise ValidationError(f"Le plan {plan_id} a déjà un test actif ({running.id})")

        built: List[PriceTestVariant] = [
            PriceTestVariant(
                name=spec.name,
                price=_resolve_price(spec, plan),
                is_control=spec.is_control,
                traffic_allocation=spec.traffic_allocation,
            )
            for spec in specs
        ]

        if not any(v.is_control for v in built):
            at_current_price = [v for v in built if v.price == plan.base_price]
            if at_current_price:
                at_current_price[0].is_control = True
            else:
                if CONTROL_NAME in {v.name for v in built}:
                    raise ValidationError(f"Le nom {CONTROL_NAME!r} est réservé à la variante contrôle")
                built.append(
                    PriceTestVariant(
                        name=CONTROL_NAME,
                        price=plan.base_price,
                        is_control=True,
                        traffic_allocation=Decimal("0"),
                    )
                )

        test = PriceTest(
            plan_id=plan_id,
            name=name or f"Price Test {now.isoformat()}",
            description=description,
            status=PriceTestStatus.ACTIVE,
            start_date=now,
            end_date=now + timedelta(days=duration_days),
            target_metric=target_metric or self.config.default_target_metric,
            min_confidence=confidence,
            variants=built,
        )
        created = self.repository.create_price_test(test)
        logger.info(
            "Test de prix %s créé pour le plan %s (%d variantes, %d jours)",
            created.id,
            plan_id,
            len(created.variants),
            duration_days,
        )
        return created

    def get_test(self, test_id: str) -> PriceTest:
        test = self.repository.get_price_test(test_id)
        if test is None:
            raise NotFoundError("PriceTest", test_id)
        return test

    def get_active_test(self, plan_id: str) -> Optional[PriceTest]:
        """Test servi pour le plan : statut ACTIVE et non expiré."""
        now = self.clock()
        live = [t for t in self.repository.get_active_price_tests(plan_id) if t.is_active(now)]
        if not live:
            return None
        if len(live) > 1:
            logger.warning(
                "Plusieurs tests actifs pour le plan %s: %s ; le plus récent est servi",
                plan_id,
                [t.id for t in live],
            )
        return max(live, key=lambda t: t.start_date)

    def assign_variant(self, plan_id: str, customer_id: str) -> VariantAssignment:
        """
        Variante servie au client ; enregistre une impression par appel.

        Sans test actif, le prix de base du plan est servi sans identifiants.
        """
        if not customer_id:
            raise ValidationError("customer_id est requis")
        plan = self._get_plan(plan_id)

        test = self.get_active_test(plan_id)
        if test is None or not test.variants:
            return VariantAssignment(price=plan.base_price)

        variant = select_variant(test.variants, bucket_value(customer_id, test.id))
        self.repository.increment_variant_counter(variant.id, IMPRESSION_COUNTER)
        return VariantAssignment(price=variant.price, variant_id=variant.id, test_id=test.id)

    def record_conversion(self, variant_id: str) -> None:
        variant = self.repository.get_variant(variant_id)
        if variant is None:
            raise NotFoundError("PriceTestVariant", variant_id)
        test = self.get_test(variant.test_id)
        if test.status == PriceTestStatus.COMPLETED:
            raise ValidationError(f"Le test {test.id} est terminé, ses compteurs sont figés")
        self.repository.increment_variant_counter(variant_id, CONVERSION_COUNTER)

    def complete_test(self, test_id: str, results: Optional[Dict[str, Any]] = None) -> PriceTest:
        test = self.get_test(test_id)
        if test.status == PriceTestStatus.COMPLETED:
            raise ValidationError(f"Le test {test_id} est déjà terminé")
        completed = self.repository.complete_price_test(test_id, results)
        logger.info("Test de prix %s terminé", test_id)
        return completed
