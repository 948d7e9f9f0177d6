"""
Stockage en mémoire du moteur de pricing.

Implémentation complète de `PricingRepository` utilisée pour les tests,
les simulations locales et les scripts hors-ligne. Un verrou unique
sérialise les écritures : les incréments de compteurs sont atomiques et
`apply_price_change` est tout-ou-rien.
"""

from __future__ import annotations

import copy
import itertools
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..exceptions import NotFoundError, ValidationError
from .data_access import (
    CONVERSION_COUNTER,
    IMPRESSION_COUNTER,
    PriceHistoryEntry,
    PriceTest,
    PriceTestStatus,
    PriceTestVariant,
    PricingPlan,
    PricingRepository,
    SubscriptionObservation,
    SubscriptionStatus,
)


class InMemoryPricingRepository(PricingRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._plans: Dict[str, PricingPlan] = {}
        self._history: Dict[str, List[PriceHistoryEntry]] = {}
        self._subscriptions: Dict[str, List[SubscriptionObservation]] = {}
        self._tests: Dict[str, PriceTest] = {}
        self._variant_index: Dict[str, str] = {}  # variant_id -> test_id

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    # Alimentation (données possédées par la facturation)

    def add_plan(self, plan: PricingPlan) -> PricingPlan:
        with self._lock:
            self._plans[plan.id] = copy.deepcopy(plan)
            self._history.setdefault(plan.id, [])
            self._subscriptions.setdefault(plan.id, [])
        return plan

    def add_price_history(self, entry: PriceHistoryEntry) -> PriceHistoryEntry:
        with self._lock:
            if entry.id is None:
                entry = PriceHistoryEntry(
                    id=self._next_id("ph"),
                    plan_id=entry.plan_id,
                    price=entry.price,
                    effective_from=entry.effective_from,
                    reason=entry.reason,
                    metadata=entry.metadata,
                )
            self._history.setdefault(entry.plan_id, []).append(entry)
        return entry

    def add_subscription(self, subscription: SubscriptionObservation) -> SubscriptionObservation:
        with self._lock:
            self._subscriptions.setdefault(subscription.plan_id, []).append(subscription)
        return subscription

    # PricingRepository

    def get_plan(self, plan_id: str) -> Optional[PricingPlan]:
        with self._lock:
            plan = self._plans.get(plan_id)
            return copy.deepcopy(plan) if plan else None

    def get_price_history(
        self,
        plan_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[PriceHistoryEntry]:
        with self._lock:
            entries = list(self._history.get(plan_id, []))
        if start is not None:
            entries = [e for e in entries if e.effective_from >= start]
        if end is not None:
            entries = [e for e in entries if e.effective_from <= end]
        # Tri stable : deux entrées au même instant gardent leur ordre d'insertion
        entries.sort(key=lambda e: e.effective_from)
        if newest_first:
            entries.reverse()
        if limit is not None:
            entries = entries[:limit]
        return entries

    def count_price_history(self, plan_id: str) -> int:
        with self._lock:
            return len(self._history.get(plan_id, []))

    def get_subscriptions(
        self,
        plan_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[SubscriptionObservation]:
        with self._lock:
            subscriptions = list(self._subscriptions.get(plan_id, []))
        if start is not None:
            subscriptions = [s for s in subscriptions if s.created_at >= start]
        if end is not None:
            subscriptions = [s for s in subscriptions if s.created_at <= end]
        return sorted(subscriptions, key=lambda s: s.created_at)

    def count_active_subscriptions(self, plan_id: str) -> int:
        with self._lock:
            return sum(
                1
                for s in self._subscriptions.get(plan_id, [])
                if s.status == SubscriptionStatus.ACTIVE
            )

    def create_price_test(self, test: PriceTest) -> PriceTest:
        with self._lock:
            stored = copy.deepcopy(test)
            stored.id = self._next_id("pt")
            for variant in stored.variants:
                variant.id = self._next_id("ptv")
                variant.test_id = stored.id
                self._variant_index[variant.id] = stored.id
            self._tests[stored.id] = stored
            return copy.deepcopy(stored)

    def get_price_test(self, test_id: str) -> Optional[PriceTest]:
        with self._lock:
            test = self._tests.get(test_id)
            return copy.deepcopy(test) if test else None

    def get_active_price_tests(self, plan_id: str) -> List[PriceTest]:
        with self._lock:
            return [
                copy.deepcopy(t)
                for t in self._tests.values()
                if t.plan_id == plan_id and t.status == PriceTestStatus.ACTIVE
            ]

    def _find_variant(self, variant_id: str) -> tuple:
        test_id = self._variant_index.get(variant_id)
        if test_id is None:
            raise NotFoundError("PriceTestVariant", variant_id)
        test = self._tests[test_id]
        for variant in test.variants:
            if variant.id == variant_id:
                return test, variant
        raise NotFoundError("PriceTestVariant", variant_id)

    def get_variant(self, variant_id: str) -> Optional[PriceTestVariant]:
        with self._lock:
            try:
                _, variant = self._find_variant(variant_id)
            except NotFoundError:
                return None
            return copy.deepcopy(variant)

    def increment_variant_counter(self, variant_id: str, counter: str) -> PriceTestVariant:
        if counter not in (IMPRESSION_COUNTER, CONVERSION_COUNTER):
            raise ValueError(f"Compteur inconnu: {counter}")
        with self._lock:
            test, variant = self._find_variant(variant_id)
            if test.status == PriceTestStatus.COMPLETED:
                raise ValidationError(f"Le test {test.id} est terminé, ses compteurs sont figés")
            if counter == CONVERSION_COUNTER and variant.conversion_count >= variant.impression_count:
                raise ValidationError(
                    f"Conversion refusée pour {variant_id}: conversions > impressions"
                )
            setattr(variant, counter, getattr(variant, counter) + 1)
            return copy.deepcopy(variant)

    def apply_price_change(
        self,
        entry: PriceHistoryEntry,
        complete_test_id: Optional[str] = None,
        test_results: Optional[Dict[str, Any]] = None,
    ) -> PriceHistoryEntry:
        with self._lock:
            plan = self._plans.get(entry.plan_id)
            if plan is None:
                raise NotFoundError("PricingPlan", entry.plan_id)
            test = None
            if complete_test_id is not None:
                test = self._tests.get(complete_test_id)
                if test is None:
                    raise NotFoundError("PriceTest", complete_test_id)
                if test.status == PriceTestStatus.COMPLETED:
                    raise ValidationError(f"Le test {complete_test_id} est déjà terminé")

            # Toutes les vérifications sont faites : les écritures ne peuvent plus échouer
            stored = PriceHistoryEntry(
                id=self._next_id("ph"),
                plan_id=entry.plan_id,
                price=entry.price,
                effective_from=entry.effective_from,
                reason=entry.reason,
                metadata=entry.metadata,
            )
            plan.base_price = entry.price
            self._history.setdefault(entry.plan_id, []).append(stored)
            if test is not None:
                test.status = PriceTestStatus.COMPLETED
                test.results = test_results
            return stored

    def complete_price_test(self, test_id: str, results: Optional[Dict[str, Any]] = None) -> PriceTest:
        with self._lock:
            test = self._tests.get(test_id)
            if test is None:
                raise NotFoundError("PriceTest", test_id)
            if test.status == PriceTestStatus.COMPLETED:
                raise ValidationError(f"Le test {test_id} est déjà terminé")
            test.status = PriceTestStatus.COMPLETED
            test.results = results
            return copy.deepcopy(test)
