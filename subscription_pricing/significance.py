"""
Significativité statistique des tests de prix.

Test z de comparaison de deux proportions (taux de conversion d'une
variante vs contrôle) :

    p1 = conv_controle / impressions_controle
    p2 = conv_variante / impressions_variante
    p  = (p1*n1 + p2*n2) / (n1 + n2)           (proportion poolée)
    se = sqrt(p * (1 - p) * (1/n1 + 1/n2))
    z  = |p1 - p2| / se
    significativité = 0.5 * (1 + erf(z / sqrt(2)))   (unilatérale)

`erf` est l'approximation rationnelle d'Abramowitz-Stegun (erreur max
~1.5e-7), déterministe et sans dépendance.

Sans impression d'un côté, la significativité est indéfinie : le résultat
est marqué `sufficient_data=False` au lieu d'être calculé.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .exceptions import ValidationError
from .interfaces.data_access import PriceTest, PriceTestVariant
from .money import to_money

logger = logging.getLogger(__name__)

_ERF_COEFFICIENTS = (
    1.00002368,
    0.37409196,
    0.09678418,
    -0.18628806,
    0.27886807,
    -1.13520398,
    1.48851587,
    -0.82215223,
    0.17087277,
)

UPDATE_PRICE = "UPDATE_PRICE"
MAINTAIN_PRICE = "MAINTAIN_PRICE"


def erf(x: float) -> float:
    t = 1.0 / (1.0 + 0.5 * abs(x))
    # Horner sur le polynôme de degré 9 en t
    poly = 0.0
    for coefficient in reversed(_ERF_COEFFICIENTS):
        poly = coefficient + t * poly
    tau = t * math.exp(-x * x - 1.26551223 + t * poly)
    return 1.0 - tau if x >= 0 else tau - 1.0


@dataclass(frozen=True)
class SignificanceResult:
    sufficient_data: bool
    p_control: Optional[float] = None
    p_candidate: Optional[float] = None
    pooled: Optional[float] = None
    standard_error: Optional[float] = None
    z_score: Optional[float] = None
    significance: Optional[float] = None

    def is_significant(self, min_confidence: float) -> bool:
        return (
            self.sufficient_data
            and self.significance is not None
            and self.significance >= min_confidence
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sufficient_data": self.sufficient_data,
            "p_control": self.p_control,
            "p_candidate": self.p_candidate,
            "pooled": self.pooled,
            "standard_error": self.standard_error,
            "z_score": self.z_score,
            "significance": self.significance,
        }


INSUFFICIENT_DATA = SignificanceResult(sufficient_data=False)


def calculate_significance(
    control_conversions: int,
    control_impressions: int,
    candidate_conversions: int,
    candidate_impressions: int,
) -> SignificanceResult:
    if control_impressions <= 0 or candidate_impressions <= 0:
        return INSUFFICIENT_DATA
    if control_conversions < 0 or candidate_conversions < 0:
        raise ValidationError("Le nombre de conversions ne peut pas être négatif")
    if control_conversions > control_impressions or candidate_conversions > candidate_impressions:
        raise ValidationError("Le nombre de conversions dépasse le nombre d'impressions")

    n1 = control_impressions
    n2 = candidate_impressions
    p1 = control_conversions / n1
    p2 = candidate_conversions / n2
    pooled = (p1 * n1 + p2 * n2) / (n1 + n2)
    se = math.sqrt(pooled * (1 - pooled) * (1 / n1 + 1 / n2))

    if se == 0:
        # Proportion poolée de 0 ou 1 : aucune dispersion, aucune preuve de différence
        z = 0.0
    else:
        z = abs(p1 - p2) / se
    significance = 0.5 * (1 + erf(z / math.sqrt(2)))

    return SignificanceResult(
        sufficient_data=True,
        p_control=p1,
        p_candidate=p2,
        pooled=pooled,
        standard_error=se,
        z_score=z,
        significance=significance,
    )


def compare_variants(control: PriceTestVariant, candidate: PriceTestVariant) -> SignificanceResult:
    return calculate_significance(
        control.conversion_count,
        control.impression_count,
        candidate.conversion_count,
        candidate.impression_count,
    )


@dataclass(frozen=True)
class VariantResult:
    variant_id: Optional[str]
    name: str
    price: Decimal
    is_control: bool
    impressions: int
    conversions: int
    conversion_rate: float
    revenue: Decimal
    revenue_per_impression: Optional[float]
    improvement: Optional[float] = None
    significance: Optional[SignificanceResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "name": self.name,
            "price": str(self.price),
            "is_control": self.is_control,
            "impressions": self.impressions,
            "conversions": self.conversions,
            "conversion_rate": self.conversion_rate,
            "revenue": str(self.revenue),
            "revenue_per_impression": self.revenue_per_impression,
            "improvement": self.improvement,
            "significance": self.significance.to_dict() if self.significance else None,
        }


@dataclass(frozen=True)
class PriceTestRecommendation:
    action: str
    new_price: Optional[Decimal] = None
    expected_improvement: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "new_price": str(self.new_price) if self.new_price is not None else None,
            "expected_improvement": self.expected_improvement,
        }


@dataclass(frozen=True)
class PriceTestAnalysis:
    test_id: Optional[str]
    plan_id: str
    min_confidence: float
    per_variant: List[VariantResult] = field(default_factory=list)
    winning_variant: Optional[VariantResult] = None
    recommendation: PriceTestRecommendation = PriceTestRecommendation(action=MAINTAIN_PRICE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "plan_id": self.plan_id,
            "min_confidence": self.min_confidence,
            "per_variant": [v.to_dict() for v in self.per_variant],
            "winning_variant": self.winning_variant.to_dict() if self.winning_variant else None,
            "recommendation": self.recommendation.to_dict(),
        }


def _revenue_per_impression(variant: PriceTestVariant) -> Optional[float]:
    if variant.impression_count <= 0:
        return None
    return float(variant.price) * variant.conversion_count / variant.impression_count


def _has_positive_rate(result: VariantResult) -> bool:
    return result.impressions > 0 and result.conversion_rate > 0


def _summarize(variant: PriceTestVariant) -> VariantResult:
    rate = variant.conversion_rate
    return VariantResult(
        variant_id=variant.id,
        name=variant.name,
        price=variant.price,
        is_control=variant.is_control,
        impressions=variant.impression_count,
        conversions=variant.conversion_count,
        conversion_rate=round(rate * 100, 4) if rate is not None else 0.0,
        revenue=to_money(variant.price * variant.conversion_count),
        revenue_per_impression=_revenue_per_impression(variant),
    )


def analyze_test(test: PriceTest, current_price: Decimal) -> PriceTestAnalysis:
    """
    Analyse un test de prix.

    Le gagnant est, parmi les variantes non contrôle dont le revenu par
    impression dépasse celui du contrôle ET dont la significativité atteint
    `min_confidence`, celle de plus haut revenu par impression. Égalités :
    significativité la plus haute, puis prix le plus bas, puis ordre de création.
    """
    control = test.control
    if control is None:
        raise ValidationError(f"Le test {test.id} n'a pas de variante contrôle")

    control_result = _summarize(control)
    control_rpi = control_result.revenue_per_impression

    per_variant: List[VariantResult] = [control_result]
    candidates = []
    for position, variant in enumerate(test.variants):
        if variant.is_control:
            continue
        summary = _summarize(variant)
        significance = compare_variants(control, variant)
        improvement = None
        if _has_positive_rate(control_result) and summary.impressions > 0:
            improvement = (
                (summary.conversion_rate - control_result.conversion_rate)
                / control_result.conversion_rate
                * 100
            )
        result = VariantResult(
            variant_id=summary.variant_id,
            name=summary.name,
            price=summary.price,
            is_control=False,
            impressions=summary.impressions,
            conversions=summary.conversions,
            conversion_rate=summary.conversion_rate,
            revenue=summary.revenue,
            revenue_per_impression=summary.revenue_per_impression,
            improvement=improvement,
            significance=significance,
        )
        per_variant.append(result)

        if (
            control_rpi is not None
            and result.revenue_per_impression is not None
            and result.revenue_per_impression > control_rpi
            and significance.is_significant(test.min_confidence)
        ):
            candidates.append((position, result))

    winner: Optional[VariantResult] = None
    if candidates:
        _, winner = min(
            candidates,
            key=lambda item: (
                -item[1].revenue_per_impression,
                -(item[1].significance.significance or 0.0),
                item[1].price,
                item[0],
            ),
        )

    if winner is not None and winner.price != current_price:
        expected = None
        if control_rpi:
            expected = (winner.revenue_per_impression - control_rpi) / control_rpi * 100
        recommendation = PriceTestRecommendation(
            action=UPDATE_PRICE, new_price=winner.price, expected_improvement=expected
        )
    else:
        recommendation = PriceTestRecommendation(action=MAINTAIN_PRICE)

    logger.info(
        "Analyse du test %s: gagnant=%s, action=%s",
        test.id,
        winner.name if winner else None,
        recommendation.action,
    )
    return PriceTestAnalysis(
        test_id=test.id,
        plan_id=test.plan_id,
        min_confidence=test.min_confidence,
        per_variant=per_variant,
        winning_variant=winner,
        recommendation=recommendation,
    )
