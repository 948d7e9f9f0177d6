"""
Application d'un nouveau prix à un plan.

La mise à jour du prix et l'ajout de l'entrée d'historique forment une seule
opération atomique côté stockage : un lecteur ne voit jamais un prix sans
sa trace dans l'historique. Le passage d'un test en COMPLETED, quand le prix
vient d'un test, fait partie de la même transaction.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from .exceptions import NotFoundError, ValidationError
from .interfaces.data_access import PriceChangeMetadata, PriceHistoryEntry, PricingRepository
from .money import require_positive, to_money
from .optimizer import PriceRecommendation
from .significance import UPDATE_PRICE, PriceTestAnalysis
from .timeutils import Clock, utc_now

logger = logging.getLogger(__name__)

OPTIMIZER_REASON = "Dynamic pricing optimization"


@dataclass(frozen=True)
class AppliedPriceChange:
    plan_id: str
    previous_price: Decimal
    new_price: Decimal
    history_entry: PriceHistoryEntry

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "previous_price": str(self.previous_price),
            "new_price": str(self.new_price),
            "history_entry_id": self.history_entry.id,
            "effective_from": self.history_entry.effective_from.isoformat(),
            "reason": self.history_entry.reason,
            "metadata": self.history_entry.metadata.to_dict(),
        }


class PriceUpdateApplier:
    def __init__(self, repository: PricingRepository, clock: Clock = utc_now) -> None:
        self.repository = repository
        self.clock = clock
        self._listeners: List[Callable[[str], None]] = []

    def add_listener(self, listener: Callable[[str], None]) -> None:
        """Appelé avec le plan_id après chaque application réussie."""
        self._listeners.append(listener)

    def apply(
        self,
        plan_id: str,
        new_price: Decimal,
        reason: str,
        metadata: PriceChangeMetadata,
        complete_test_id: Optional[str] = None,
        test_results: Optional[Dict[str, Any]] = None,
    ) -> AppliedPriceChange:
        new_price = require_positive(to_money(new_price))
        plan = self.repository.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("PricingPlan", plan_id)

        entry = PriceHistoryEntry(
            plan_id=plan_id,
            price=new_price,
            effective_from=self.clock(),
            reason=reason,
            metadata=metadata,
        )
        stored = self.repository.apply_price_change(
            entry, complete_test_id=complete_test_id, test_results=test_results
        )
        logger.info("Prix du plan %s: %s -> %s (%s)", plan_id, plan.base_price, new_price, reason)

        for listener in self._listeners:
            listener(plan_id)

        return AppliedPriceChange(
            plan_id=plan_id,
            previous_price=plan.base_price,
            new_price=new_price,
            history_entry=stored,
        )

    def apply_recommendation(self, recommendation: PriceRecommendation) -> AppliedPriceChange:
        return self.apply(
            recommendation.plan_id,
            recommendation.recommended_price,
            OPTIMIZER_REASON,
            PriceChangeMetadata(
                source="optimizer",
                confidence=recommendation.confidence,
                factors=recommendation.factors,
            ),
        )

    def apply_test_analysis(self, analysis: PriceTestAnalysis) -> AppliedPriceChange:
        recommendation = analysis.recommendation
        if recommendation.action != UPDATE_PRICE or recommendation.new_price is None:
            raise ValidationError(f"Le test {analysis.test_id} ne recommande pas de changement de prix")
        return self.apply(
            analysis.plan_id,
            recommendation.new_price,
            f"Price test {analysis.test_id} results applied",
            PriceChangeMetadata(
                source="price_test",
                test_id=analysis.test_id,
                expected_improvement=recommendation.expected_improvement,
            ),
            complete_test_id=analysis.test_id,
            test_results=analysis.to_dict(),
        )
