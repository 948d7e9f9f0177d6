"""
Tests du parcours complet via PricingService (stockage en mémoire).
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from subscription_pricing.config.settings import Settings
from subscription_pricing.exceptions import NotFoundError
from subscription_pricing.interfaces.data_access import (
    CONVERSION_COUNTER,
    IMPRESSION_COUNTER,
    PriceTestStatus,
    SubscriptionStatus,
)
from subscription_pricing.service import build_pricing_service
from subscription_pricing.significance import MAINTAIN_PRICE, UPDATE_PRICE


def _record(repository, variant_id, impressions, conversions):
    for _ in range(impressions):
        repository.increment_variant_counter(variant_id, IMPRESSION_COUNTER)
    for _ in range(conversions):
        repository.increment_variant_counter(variant_id, CONVERSION_COUNTER)


@pytest.fixture
def running_test(service, plan):
    return service.create_price_test(
        plan.id,
        [
            {"name": "High", "price": "55.00", "traffic_allocation": 50},
            {"name": "Premium", "price": "60.00", "traffic_allocation": 50},
        ],
        duration_days=14,
        min_confidence=0.9,
    )


class TestPriceTestLifecycle:
    """Création, analyse et application d'un test de prix."""

    def test_winning_test_is_applied_and_completed(self, service, repository, plan, running_test):
        variants = {v.name: v for v in running_test.variants}
        _record(repository, variants["Control"].id, 1000, 100)
        _record(repository, variants["High"].id, 1000, 120)

        analysis = service.analyze_test_results(running_test.id)
        assert analysis.recommendation.action == UPDATE_PRICE
        assert analysis.winning_variant.name == "High"

        applied = service.apply_test_results(running_test.id)

        assert applied.new_price == Decimal("55.00")
        assert repository.get_plan(plan.id).base_price == Decimal("55.00")
        history = repository.get_price_history(plan.id)
        assert len(history) == 1
        assert history[0].metadata.source == "price_test"
        assert history[0].metadata.test_id == running_test.id
        stored = repository.get_price_test(running_test.id)
        assert stored.status == PriceTestStatus.COMPLETED
        assert stored.results["recommendation"]["new_price"] == "55.00"
        # Signal de l'applier en attente du prochain cycle d'optimisation
        assert service.optimizer.pending_reruns() == [plan.id]

        # Le plan ne sert plus de test ; le nouveau prix est servi
        assignment = service.assign_variant(plan.id, "customer-1")
        assert assignment.price == Decimal("55.00")
        assert assignment.test_id is None

        # Le gagnant est désormais le prix courant : plus rien à appliquer
        assert service.apply_test_results(running_test.id) is None
        assert len(repository.get_price_history(plan.id)) == 1

    def test_apply_leaves_rerun_pending(self, service, repository, plan, running_test):
        variants = {v.name: v for v in running_test.variants}
        _record(repository, variants["Control"].id, 1000, 100)
        _record(repository, variants["High"].id, 1000, 120)
        optimizer = service.optimizer

        with patch.object(
            optimizer, "update_price_optimization", wraps=optimizer.update_price_optimization
        ) as rerun:
            service.apply_test_results(running_test.id)

        rerun.assert_not_called()
        assert optimizer.pending_reruns() == [plan.id]
        assert service.health()["pending_reruns"] == [plan.id]

        # Le cycle suivant consomme le signal
        service.update_price_optimization(plan.id)
        assert optimizer.pending_reruns() == []

    def test_maintain_price_leaves_test_running(self, service, repository, plan, running_test):
        analysis = service.analyze_test_results(running_test.id)
        assert analysis.recommendation.action == MAINTAIN_PRICE

        assert service.apply_test_results(running_test.id) is None
        assert repository.get_price_test(running_test.id).status == PriceTestStatus.ACTIVE
        assert repository.count_price_history(plan.id) == 0

    def test_assign_then_convert(self, service, repository, plan, running_test):
        assignment = service.assign_variant(plan.id, "customer-7")
        service.record_conversion(assignment.variant_id)

        variant = repository.get_variant(assignment.variant_id)
        assert variant.name in ("High", "Premium")
        assert assignment.price == variant.price
        assert (variant.impression_count, variant.conversion_count) == (1, 1)

    def test_manual_completion_archives_analysis(self, service, repository, running_test):
        completed = service.complete_price_test(running_test.id)

        assert completed.status == PriceTestStatus.COMPLETED
        assert completed.results["recommendation"]["action"] == MAINTAIN_PRICE

    def test_unknown_test(self, service):
        with pytest.raises(NotFoundError):
            service.analyze_test_results("pt_missing")


class TestSimulateRevenueService:
    """Tests pour PricingService.simulate_revenue."""

    def test_uses_active_subscribers(self, service, plan, add_subscriptions):
        add_subscriptions(plan.id, 10)
        add_subscriptions(plan.id, 4, status=SubscriptionStatus.CANCELED)

        projections = service.simulate_revenue(plan.id, Decimal("5.00"), months=3)

        # Sans variation de prix observée, élasticité nulle : abonnés stables
        assert [p.subscribers for p in projections] == [10, 10, 10]
        assert projections[0].revenue == Decimal("550.00")

    def test_unknown_plan(self, service):
        with pytest.raises(NotFoundError):
            service.simulate_revenue("missing", Decimal("5.00"))


class TestBuildPricingService:
    """Tests pour build_pricing_service."""

    @patch("subscription_pricing.service.create_supabase_client")
    def test_wires_supabase_implementations(self, mock_create_client):
        mock_create_client.return_value = MagicMock()
        settings = Settings(supabase_url="https://mock.supabase.co", supabase_key="mock_key")

        service = build_pricing_service(settings)

        mock_create_client.assert_called_once_with(settings)
        assert type(service.repository).__name__ == "SupabasePricingRepository"
        assert service.repository.client is mock_create_client.return_value
        assert service.config.elasticity_window_days == 90

    def test_missing_credentials(self):
        with pytest.raises(RuntimeError, match="SUPABASE_URL"):
            build_pricing_service(Settings(supabase_url="", supabase_key=""))
