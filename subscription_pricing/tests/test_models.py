"""
Tests unitaires pour models/market_model.py, models/segment_model.py et models/churn_model.py
"""

from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import pytz

from subscription_pricing.exceptions import NotFoundError
from subscription_pricing.interfaces.data_access import (
    MarketBenchmark,
    SubscriptionObservation,
    SubscriptionStatus,
)
from subscription_pricing.interfaces.providers import (
    ChurnRisk,
    MarketDataProvider,
    NullChurnRiskProvider,
    StaticChurnRiskProvider,
    StaticMarketDataProvider,
)
from subscription_pricing.models.churn_model import ChurnRiskEstimator
from subscription_pricing.models.market_model import (
    MarketConditions,
    MarketPositionAnalyzer,
    calculate_seasonality,
    describe_position,
    market_price_factor,
)
from subscription_pricing.models.segment_model import (
    CustomerSegmentAnalyzer,
    SegmentAnalysis,
    segment_price_factor,
)


@pytest.fixture
def benchmark(now):
    return MarketBenchmark(
        segment="smb",
        product_type="saas",
        min_price=Decimal("10.00"),
        max_price=Decimal("100.00"),
        avg_price=Decimal("50.00"),
        median_price=Decimal("45.00"),
        collected_at=now,
    )


def _subscription(segment, price, status=SubscriptionStatus.ACTIVE):
    return SubscriptionObservation(
        plan_id="plan-pro",
        price=Decimal(price),
        status=status,
        created_at=datetime(2026, 6, 1, tzinfo=pytz.UTC),
        segment=segment,
    )


class TestMarketPosition:
    """Tests pour describe_position et MarketPositionAnalyzer."""

    def test_below_market(self, benchmark):
        position = describe_position(Decimal("30.00"), benchmark)

        assert position.percentile == pytest.approx(20 / 90)
        assert position.recommendation == "INCREASE"
        assert position.market_pressure == pytest.approx(15 / 45)

    def test_above_market(self, benchmark):
        assert describe_position(Decimal("60.00"), benchmark).recommendation == "OPTIMIZE"

    def test_aligned(self, benchmark):
        position = describe_position(Decimal("45.00"), benchmark)
        assert position.recommendation == "ALIGNED"
        assert position.market_pressure == 0.0

    def test_percentile_clamped(self, benchmark):
        assert describe_position(Decimal("500.00"), benchmark).percentile == 1.0

    def test_no_benchmark_gives_none(self, repository, plan, clock):
        provider = MagicMock(spec=MarketDataProvider)
        provider.get_market_benchmark.return_value = None

        analyzer = MarketPositionAnalyzer(repository, provider, clock=clock)

        assert analyzer.analyze(plan.id) is None
        provider.get_market_benchmark.assert_called_once_with("smb")

    def test_unknown_plan(self, repository, clock):
        analyzer = MarketPositionAnalyzer(repository, StaticMarketDataProvider(), clock=clock)
        with pytest.raises(NotFoundError):
            analyzer.analyze("missing")

    def test_conditions_fall_back_to_default_demand(self, repository, plan, clock):
        analyzer = MarketPositionAnalyzer(
            repository, StaticMarketDataProvider(market_demand=None), default_market_demand=0.6, clock=clock
        )

        conditions = analyzer.get_market_conditions(plan)

        assert conditions.market_demand == 0.6
        assert conditions.competitor_prices == [Decimal("50.00"), Decimal("45.00")]
        assert conditions.seasonality == pytest.approx(0.95)


class TestMarketFactor:
    """Tests pour market_price_factor et calculate_seasonality."""

    def test_neutral_conditions(self):
        conditions = MarketConditions(competitor_prices=[Decimal("50.00")], market_demand=0.5, seasonality=0.9)
        assert market_price_factor(conditions, Decimal("50.00")) == pytest.approx(1.0)

    def test_without_competitors(self):
        conditions = MarketConditions(competitor_prices=[], market_demand=0.5, seasonality=0.9)
        assert market_price_factor(conditions, Decimal("50.00")) == pytest.approx(1.0)

    def test_terms_bounded(self):
        conditions = MarketConditions(competitor_prices=[Decimal("1000.00")], market_demand=1.0, seasonality=1.0)
        assert market_price_factor(conditions, Decimal("10.00"), max_change=0.2) == pytest.approx(
            1.2 * 0.6 + 1.2 * 0.2 + 1.1 * 0.2
        )

    def test_seasonality(self):
        # 5 janvier 2026 : lundi ; 3 janvier : samedi
        assert calculate_seasonality(datetime(2026, 1, 5, tzinfo=pytz.UTC)) == pytest.approx(0.9)
        assert calculate_seasonality(datetime(2026, 1, 3, tzinfo=pytz.UTC)) == pytest.approx(0.72)


class TestCustomerSegmentAnalyzer:
    """Tests pour CustomerSegmentAnalyzer."""

    def test_groups_by_segment(self):
        subscriptions = [
            _subscription("smb", "50.00"),
            _subscription("smb", "50.00"),
            _subscription("smb", "50.00"),
            _subscription("smb", "50.00", SubscriptionStatus.CANCELED),
            _subscription("enterprise", "100.00"),
            _subscription("enterprise", "120.00"),
        ]

        segments = {s.segment: s for s in CustomerSegmentAnalyzer().analyze(subscriptions)}

        assert segments["smb"].size == 3
        assert segments["smb"].average_revenue == Decimal("50.00")
        assert segments["smb"].churn_rate == pytest.approx(0.25)
        # Un seul palier de prix : élasticité par défaut
        assert segments["smb"].price_elasticity == 0.0
        assert segments["enterprise"].average_revenue == Decimal("110.00")
        assert segments["enterprise"].churn_rate == 0.0

    def test_elasticity_between_price_levels(self):
        subscriptions = [_subscription("smb", "10.00") for _ in range(4)]
        subscriptions += [_subscription("smb", "12.00") for _ in range(2)]

        segment = CustomerSegmentAnalyzer().analyze(subscriptions)[0]

        # ((2-4)/3) / ((12-10)/11)
        assert segment.price_elasticity == pytest.approx(-11 / 3)

    def test_empty(self):
        assert CustomerSegmentAnalyzer().analyze([]) == []

    def test_segment_price_factor(self):
        segments = [
            SegmentAnalysis("smb", 3, Decimal("50.00"), 0.0, 0.0),
            SegmentAnalysis("enterprise", 1, Decimal("100.00"), 0.0, -0.4),
        ]
        assert segment_price_factor(segments) == pytest.approx(0.9)
        assert segment_price_factor([]) == 1.0


class TestChurnRiskEstimator:
    """Tests pour ChurnRiskEstimator."""

    def test_provider_first(self, repository, plan, clock):
        estimator = ChurnRiskEstimator(repository, StaticChurnRiskProvider(probability=0.3), clock=clock)
        assert estimator.estimate(plan.id).probability == 0.3

    def test_provider_probability_clamped(self, repository, plan, clock):
        provider = MagicMock()
        provider.get_churn_risk.return_value = ChurnRisk(probability=1.5)

        assert ChurnRiskEstimator(repository, provider, clock=clock).estimate(plan.id).probability == 1.0

    def test_observed_cancellations(self, repository, plan, clock, add_subscriptions):
        add_subscriptions(plan.id, 3)
        add_subscriptions(plan.id, 1, status=SubscriptionStatus.CANCELED)

        risk = ChurnRiskEstimator(repository, NullChurnRiskProvider(), clock=clock).estimate(plan.id)

        assert risk.probability == pytest.approx(0.25)

    def test_fallback_without_data(self, repository, plan, clock):
        risk = ChurnRiskEstimator(repository, clock=clock).estimate(plan.id)
        assert risk.probability == 0.1
