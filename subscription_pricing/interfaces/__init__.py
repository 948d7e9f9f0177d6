"""
Sous-package `interfaces` du moteur de pricing d'abonnements.

Responsabilités :
- fournir une couche d'abstraction entre le moteur et les systèmes
  externes (base de facturation, données marché, modèle de churn),
- centraliser les appels à Supabase/PostgreSQL,
- faciliter le test (implémentation en mémoire du stockage).
"""

from .data_access import (
    MarketBenchmark,
    OptimizationFactors,
    PriceChangeMetadata,
    PriceHistoryEntry,
    PriceTest,
    PriceTestStatus,
    PriceTestVariant,
    PricingPlan,
    PricingRepository,
    SubscriptionObservation,
    SubscriptionStatus,
    SupabasePricingRepository,
    create_supabase_client,
)
from .memory_store import InMemoryPricingRepository
from .providers import (
    ChurnRisk,
    ChurnRiskProvider,
    MarketDataProvider,
    NullChurnRiskProvider,
    StaticChurnRiskProvider,
    StaticMarketDataProvider,
    SupabaseMarketDataProvider,
)

__all__ = [
    "ChurnRisk",
    "ChurnRiskProvider",
    "InMemoryPricingRepository",
    "MarketBenchmark",
    "MarketDataProvider",
    "NullChurnRiskProvider",
    "OptimizationFactors",
    "PriceChangeMetadata",
    "PriceHistoryEntry",
    "PriceTest",
    "PriceTestStatus",
    "PriceTestVariant",
    "PricingPlan",
    "PricingRepository",
    "StaticChurnRiskProvider",
    "StaticMarketDataProvider",
    "SubscriptionObservation",
    "SubscriptionStatus",
    "SupabaseMarketDataProvider",
    "SupabasePricingRepository",
    "create_supabase_client",
]
