"""
Fixtures partagées pour les tests.
"""

import sys
from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
import pytz

# Ajouter la racine du projet au path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from subscription_pricing.interfaces.data_access import (
    PriceChangeMetadata,
    PriceHistoryEntry,
    PricingPlan,
    SubscriptionObservation,
    SubscriptionStatus,
)
from subscription_pricing.interfaces.memory_store import InMemoryPricingRepository
from subscription_pricing.interfaces.providers import StaticChurnRiskProvider, StaticMarketDataProvider
from subscription_pricing.service import PricingService

# Lundi 15 juin 2026, midi UTC
FIXED_NOW = datetime(2026, 6, 15, 12, 0, tzinfo=pytz.UTC)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def clock():
    """Horloge figée."""
    return lambda: FIXED_NOW


@pytest.fixture
def repository():
    return InMemoryPricingRepository()


@pytest.fixture
def plan(repository):
    """Plan Pro à 50.00 EUR, segment smb."""
    plan = PricingPlan(id="plan-pro", base_price=Decimal("50.00"), market_segment="smb")
    repository.add_plan(plan)
    return plan


@pytest.fixture
def add_history(repository):
    """Ajoute des entrées d'historique espacées d'une heure, la dernière juste avant FIXED_NOW."""

    def _add(plan_id, prices):
        start = FIXED_NOW - timedelta(hours=len(prices))
        for i, price in enumerate(prices):
            repository.add_price_history(
                PriceHistoryEntry(
                    plan_id=plan_id,
                    price=Decimal(str(price)),
                    effective_from=start + timedelta(hours=i),
                    reason="seed",
                    metadata=PriceChangeMetadata(source="billing"),
                )
            )

    return _add


@pytest.fixture
def add_subscriptions(repository):
    """Ajoute `count` souscriptions créées la veille de FIXED_NOW."""

    def _add(plan_id, count, price="50.00", status=SubscriptionStatus.ACTIVE, segment="default"):
        for i in range(count):
            repository.add_subscription(
                SubscriptionObservation(
                    plan_id=plan_id,
                    price=Decimal(price),
                    status=status,
                    created_at=FIXED_NOW - timedelta(days=1, minutes=i),
                    customer_id=f"cust-{segment}-{status.value}-{i}",
                    segment=segment,
                )
            )

    return _add


@pytest.fixture
def service(repository, plan, clock):
    return PricingService(
        repository=repository,
        market_provider=StaticMarketDataProvider(),
        churn_provider=StaticChurnRiskProvider(),
        clock=clock,
    )
