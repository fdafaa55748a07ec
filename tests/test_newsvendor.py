"""
Tests for the newsvendor optimizer.
"""

import pytest
from scipy import stats

from freshcast.distributions import DemandDistribution, negative_binomial_cdf, poisson_cdf
from freshcast.newsvendor import (
    NewsvendorOptimizer,
    critical_ratio,
    expected_economics,
    find_quantile,
    prediction_interval,
)


class TestCriticalRatio:
    def test_basic_ratio(self):
        # Cu = 20, Co = 10
        assert critical_ratio(30, 10) == pytest.approx(2 / 3)

    def test_disposal_cost_lowers_ratio(self):
        assert critical_ratio(30, 10, disposal_cost=10) == pytest.approx(0.5)

    def test_high_margin_is_clamped(self):
        assert critical_ratio(1000, 1) == 0.90

    def test_no_margin_is_clamped(self):
        assert critical_ratio(10, 10) == 0.10

    def test_degenerate_economics_default(self):
        assert critical_ratio(0, 0) == 0.5

    @pytest.mark.parametrize("price,cost,disposal", [
        (0, 0, 0), (5, 50, 0), (50, 5, 0), (10, 10, 100), (1e9, 0, 0),
        (-5, 3, 0), (float('nan'), 2, 0), (3, float('inf'), 1), (0, 0, -10),
    ])
    def test_always_inside_bounds(self, price, cost, disposal):
        ratio = critical_ratio(price, cost, disposal)
        assert 0.10 <= ratio <= 0.90


class TestFindQuantile:
    @pytest.mark.parametrize("lam", [0.5, 3.0, 7.2, 20.0, 57.3])
    @pytest.mark.parametrize("target", [0.10, 0.30, 0.50, 2 / 3, 0.90])
    def test_poisson_quantile_property(self, lam, target):
        q = find_quantile(DemandDistribution.poisson(lam), target)
        assert poisson_cdf(q - 1, lam) < target <= poisson_cdf(q, lam)

    @pytest.mark.parametrize("r,p", [(2.43, 0.108), (5.0, 0.4)])
    @pytest.mark.parametrize("target", [0.10, 0.50, 0.90])
    def test_negative_binomial_quantile_property(self, r, p, target):
        q = find_quantile(DemandDistribution.negative_binomial(r, p), target)
        assert negative_binomial_cdf(q - 1, r, p) < target <= negative_binomial_cdf(q, r, p)

    def test_zero_mean(self):
        assert find_quantile(DemandDistribution.poisson(0.0), 0.9) == 0

    def test_scan_is_bounded(self):
        assert find_quantile(DemandDistribution.poisson(10.0), 0.9999, max_quantity=12) == 12


class TestNewsvendorOptimizer:
    def test_twenty_unit_scenario(self):
        result = NewsvendorOptimizer().optimize(DemandDistribution.poisson(20.0), 30, 10)

        expected = next(k for k in range(100) if stats.poisson.cdf(k, 20.0) >= 2 / 3)
        assert result.critical_ratio == pytest.approx(0.667, abs=1e-3)
        assert result.cost_underage == 20
        assert result.cost_overage == 10
        assert result.optimal_quantity == expected
        assert not result.capped

    def test_risk_metrics(self):
        result = NewsvendorOptimizer().optimize(DemandDistribution.poisson(20.0), 30, 10)
        q = result.optimal_quantity

        assert result.stockout_probability == pytest.approx(1 - stats.poisson.cdf(q, 20.0), rel=1e-9)
        assert result.waste_probability == pytest.approx(stats.poisson.cdf(q - 1, 20.0), rel=1e-9)
        assert result.prediction_interval.lower == 14
        assert result.prediction_interval.upper == 26

    def test_sanity_cap(self):
        # Very skewed demand with mean 7.5: the 90% quantile is well above 11
        dist = DemandDistribution.negative_binomial(0.5, 0.0625)
        result = NewsvendorOptimizer().optimize(dist, 1000, 1)

        assert result.capped
        assert result.optimal_quantity == 11
        assert result.distribution_type == 'negative_binomial'

    def test_zero_demand(self):
        result = NewsvendorOptimizer().optimize(DemandDistribution.poisson(0.0), 30, 10)
        assert result.optimal_quantity == 0
        assert result.stockout_probability == 0.0
        assert result.waste_probability == 0.0

    def test_default_disposal_cost_from_config(self, config):
        config.newsvendor.default_disposal_cost = 10
        result = NewsvendorOptimizer(config).optimize(DemandDistribution.poisson(20.0), 30, 10)
        assert result.critical_ratio == pytest.approx(0.5)


def test_prediction_interval_is_non_negative():
    interval = prediction_interval(0.5, 0.5)
    assert interval.lower == 0
    assert interval.upper == 2


def test_expected_economics():
    economics = expected_economics(20.0, 22, 30.0, 10.0)
    assert economics.expected_sales == 20.0
    assert economics.expected_waste == 2.0
    assert economics.expected_revenue == 600.0
    assert economics.expected_cost == 220.0
    assert economics.expected_profit == 380.0
