"""
Façade du moteur de pricing d'abonnements.

`PricingService` expose les opérations externes du moteur (tests de prix,
optimisation, simulation) et câble les composants entre eux. Toutes les
dépendances sont injectées : stockage, fournisseurs de signaux, configuration
et horloge. Aucun état global.

Utilisation typique :
    service = build_pricing_service(Settings.from_env())
    recommendation = service.optimize_price(plan_id)
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .applier import AppliedPriceChange, PriceUpdateApplier
from .config.pricing_config import PricingConfig, get_default_pricing_config
from .config.settings import Settings
from .exceptions import NotFoundError
from .experiments import ExperimentManager, VariantAssignment, VariantSpec
from .interfaces.data_access import (
    PriceTest,
    PricingRepository,
    SupabasePricingRepository,
    create_supabase_client,
)
from .interfaces.providers import (
    ChurnRiskProvider,
    MarketDataProvider,
    NullChurnRiskProvider,
    SupabaseMarketDataProvider,
)
from .models.churn_model import ChurnRiskEstimator
from .models.elasticity import ElasticityEstimator
from .models.market_model import MarketPosition, MarketPositionAnalyzer
from .models.segment_model import CustomerSegmentAnalyzer
from .optimizer import OptimizationSummary, PriceOptimizer, PriceRecommendation
from .significance import UPDATE_PRICE, PriceTestAnalysis, analyze_test
from .simulator import RevenueProjection, simulate_revenue
from .timeutils import Clock, utc_now

logger = logging.getLogger(__name__)


class PricingService:
    def __init__(
        self,
        repository: PricingRepository,
        market_provider: MarketDataProvider,
        churn_provider: Optional[ChurnRiskProvider] = None,
        config: Optional[PricingConfig] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.repository = repository
        self.config = config or get_default_pricing_config()
        self.clock = clock

        window = self.config.elasticity_window_days
        self.elasticity_estimator = ElasticityEstimator(repository, window_days=window, clock=clock)
        self.market_analyzer = MarketPositionAnalyzer(
            repository,
            market_provider,
            default_market_demand=self.config.default_market_demand,
            clock=clock,
        )
        self.segment_analyzer = CustomerSegmentAnalyzer(
            default_elasticity=self.config.default_segment_elasticity
        )
        self.churn_estimator = ChurnRiskEstimator(
            repository, provider=churn_provider, window_days=window, clock=clock
        )
        self.experiments = ExperimentManager(repository, config=self.config, clock=clock)

        config_for_plan = self.config
        self.optimizer = PriceOptimizer(
            repository,
            self.elasticity_estimator,
            self.market_analyzer,
            self.segment_analyzer,
            self.churn_estimator,
            config_loader=lambda plan_id: config_for_plan,
        )
        self.applier = PriceUpdateApplier(repository, clock=clock)
        self.applier.add_listener(self.optimizer.notify_price_applied)
        self.optimizer.attach_applier(self.applier)

    # Tests de prix

    def create_price_test(
        self,
        plan_id: str,
        variants: Sequence[Union[VariantSpec, Mapping[str, Any]]],
        duration_days: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        min_confidence: Optional[float] = None,
        target_metric: Optional[str] = None,
    ) -> PriceTest:
        return self.experiments.create_test(
            plan_id,
            variants,
            duration_days,
            name=name,
            description=description,
            min_confidence=min_confidence,
            target_metric=target_metric,
        )

    def assign_variant(self, plan_id: str, customer_id: str) -> VariantAssignment:
        return self.experiments.assign_variant(plan_id, customer_id)

    def record_conversion(self, variant_id: str) -> None:
        self.experiments.record_conversion(variant_id)

    def analyze_test_results(self, test_id: str) -> PriceTestAnalysis:
        test = self.experiments.get_test(test_id)
        plan = self.repository.get_plan(test.plan_id)
        if plan is None:
            raise NotFoundError("PricingPlan", test.plan_id)
        return analyze_test(test, plan.base_price)

    def apply_test_results(self, test_id: str) -> Optional[AppliedPriceChange]:
        """
        Applique le prix gagnant d'un test et le clôture.

        Retourne None si l'analyse recommande de garder le prix (le test
        reste alors dans son état courant). L'optimiseur n'est pas relancé
        ici : le plan reste dans `pending_reruns()` jusqu'au prochain cycle.
        """
        analysis = self.analyze_test_results(test_id)
        if analysis.recommendation.action != UPDATE_PRICE:
            logger.info("Test %s: prix maintenu, rien à appliquer", test_id)
            return None

        return self.applier.apply_test_analysis(analysis)

    def complete_price_test(self, test_id: str) -> PriceTest:
        """Clôture manuelle, sans changement de prix ; les résultats de l'analyse sont archivés."""
        analysis = self.analyze_test_results(test_id)
        return self.experiments.complete_test(test_id, analysis.to_dict())

    # Optimisation

    def optimize_price(self, plan_id: str) -> Optional[PriceRecommendation]:
        return self.optimizer.optimize_price(plan_id)

    def update_price_optimization(self, plan_id: str, apply_changes: bool = True):
        return self.optimizer.update_price_optimization(plan_id, apply_changes=apply_changes)

    def get_market_position(self, plan_id: str) -> Optional[MarketPosition]:
        return self.market_analyzer.analyze(plan_id)

    def get_optimization_summary(self, plan_id: str) -> OptimizationSummary:
        return self.optimizer.get_optimization_summary(plan_id)

    # Simulation

    def simulate_revenue(
        self, plan_id: str, price_delta: Decimal, months: int = 12
    ) -> List[RevenueProjection]:
        plan = self.repository.get_plan(plan_id)
        if plan is None:
            raise NotFoundError("PricingPlan", plan_id)
        subscribers = self.repository.count_active_subscriptions(plan_id)
        elasticity = self.elasticity_estimator.estimate_average(plan_id)
        return simulate_revenue(subscribers, plan.base_price, price_delta, elasticity, months=months)

    def health(self) -> Dict[str, Any]:
        return {
            "min_data_points": self.config.min_data_points,
            "pending_reruns": self.optimizer.pending_reruns(),
        }


def build_pricing_service(settings: Settings, config: Optional[PricingConfig] = None) -> PricingService:
    """Service branché sur Supabase (stockage et benchmarks marché)."""
    client = create_supabase_client(settings)
    if config is None:
        config = PricingConfig(elasticity_window_days=settings.elasticity_window_days)
    return PricingService(
        repository=SupabasePricingRepository(client),
        market_provider=SupabaseMarketDataProvider(client),
        churn_provider=NullChurnRiskProvider(),
        config=config,
    )
