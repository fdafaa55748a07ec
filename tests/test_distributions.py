"""
Tests for the distribution library.
"""

import math

import pytest
from scipy import stats

from freshcast.distributions import (
    DemandDistribution,
    calculate_iqr,
    coefficient_of_variation,
    fit_demand_distribution,
    holt_winters_smoothing,
    linear_regression_slope,
    mean,
    median,
    negative_binomial_cdf,
    negative_binomial_pmf,
    poisson_cdf,
    poisson_pmf,
    remove_outliers,
    safe_number,
    standard_deviation,
    time_decay_weight,
    variance,
    weighted_moving_average,
)


class TestPoisson:
    @pytest.mark.parametrize("lam", [0.5, 3.0, 20.0, 57.3])
    @pytest.mark.parametrize("k", [0, 1, 5, 20, 60])
    def test_cdf_matches_scipy(self, k, lam):
        assert poisson_cdf(k, lam) == pytest.approx(stats.poisson.cdf(k, lam), rel=1e-9, abs=1e-12)

    def test_pmf_large_values_do_not_overflow(self):
        value = poisson_pmf(500, 480.0)
        assert math.isfinite(value)
        assert value == pytest.approx(stats.poisson.pmf(500, 480.0), rel=1e-9)

    def test_zero_mean_puts_all_mass_at_zero(self):
        assert poisson_pmf(0, 0.0) == 1.0
        assert poisson_pmf(3, 0.0) == 0.0
        assert poisson_cdf(0, 0.0) == 1.0

    def test_negative_k(self):
        assert poisson_pmf(-1, 4.0) == 0.0
        assert poisson_cdf(-1, 4.0) == 0.0


class TestNegativeBinomial:
    @pytest.mark.parametrize("r,p", [(2.43, 0.108), (5.0, 0.5), (0.5, 0.0476)])
    @pytest.mark.parametrize("k", [0, 3, 15, 40])
    def test_cdf_matches_scipy(self, k, r, p):
        assert negative_binomial_cdf(k, r, p) == pytest.approx(stats.nbinom.cdf(k, r, p), rel=1e-9, abs=1e-12)

    def test_pmf_matches_scipy(self):
        assert negative_binomial_pmf(7, 3.2, 0.3) == pytest.approx(stats.nbinom.pmf(7, 3.2, 0.3), rel=1e-9)

    def test_invalid_parameters(self):
        assert negative_binomial_pmf(2, 0.0, 0.5) == 0.0
        assert negative_binomial_pmf(2, 1.0, 1.5) == 0.0
        assert negative_binomial_pmf(0, 1.0, 1.0) == 1.0

    def test_distribution_moments(self):
        dist = DemandDistribution.negative_binomial(r=4.0, p=0.2)
        assert dist.mean == pytest.approx(16.0)
        assert dist.variance == pytest.approx(80.0)


class TestFitDemandDistribution:
    def test_stable_history_is_poisson(self):
        dist = fit_demand_distribution(20.0, [20] * 10)
        assert dist.type == 'poisson'
        assert dist.mean == 20.0

    def test_overdispersed_history_is_negative_binomial(self):
        history = [5, 40, 10, 35, 8, 30]
        dist = fit_demand_distribution(20.0, history)

        ratio = variance(history) / mean(history)
        assert dist.type == 'negative_binomial'
        assert dist.mean == pytest.approx(20.0)
        assert dist.variance == pytest.approx(20.0 * ratio)

    def test_short_history_is_poisson(self):
        assert fit_demand_distribution(20.0, [5, 40]).type == 'poisson'

    def test_huge_r_falls_back_to_poisson(self):
        # variance/mean 1.36 on a mean of 1000 gives r in the thousands
        dist = fit_demand_distribution(1000.0, [5, 15, 7, 13, 10])
        assert dist.type == 'poisson'
        assert dist.mean == 1000.0

    def test_non_positive_mean(self):
        dist = fit_demand_distribution(-3.0, [5, 40, 10])
        assert dist.type == 'poisson'
        assert dist.mean == 0.0


class TestIQR:
    def test_index_based_quartiles(self):
        iqr = calculate_iqr([8, 1, 7, 2, 6, 3, 5, 4])
        assert iqr.q1 == 3
        assert iqr.q3 == 7
        assert iqr.median == 5
        assert iqr.iqr == 4
        assert iqr.lower_bound == -3
        assert iqr.upper_bound == 13

    def test_remove_outliers(self):
        kept, outliers, iqr = remove_outliers([10, 11, 12, 13, 100])
        assert outliers == [100]
        assert kept == [10, 11, 12, 13]
        assert iqr.is_outlier(100)

    def test_empty(self):
        iqr = calculate_iqr([])
        assert iqr.iqr == 0.0
        assert not iqr.is_outlier(0.0)


class TestWeightedAverages:
    def test_decay_weight(self):
        assert time_decay_weight(0) == 1.0
        assert time_decay_weight(10, 0.05) == pytest.approx(math.exp(-0.5))

    def test_weighted_moving_average(self):
        w = math.exp(-0.5)
        expected = (10 * 1.0 + 20 * w) / (1.0 + w)
        assert weighted_moving_average([10, 20], [0, 10]) == pytest.approx(expected)

    def test_identical_values(self):
        assert weighted_moving_average([20] * 10, list(range(10))) == pytest.approx(20.0)

    def test_degenerate_input(self):
        assert weighted_moving_average([], []) == 0.0
        assert weighted_moving_average([1, 2], [0]) == 0.0


class TestHoltWinters:
    def test_short_series(self):
        assert holt_winters_smoothing([]) == 0.0
        assert holt_winters_smoothing([10, 20]) == 15.0

    def test_weekly_series_forecast_is_plausible(self):
        week = [10, 12, 14, 16, 18, 30, 25]
        forecast = holt_winters_smoothing(week * 3)
        assert math.isfinite(forecast)
        assert 0 <= forecast <= 60


class TestDescriptiveHelpers:
    def test_empty_inputs(self):
        assert mean([]) == 0.0
        assert variance([]) == 0.0
        assert standard_deviation([]) == 0.0
        assert median([]) == 1.0
        assert median([], default=0.0) == 0.0

    def test_population_statistics(self):
        data = [2, 4, 4, 4, 5, 5, 7, 9]
        assert mean(data) == 5.0
        assert variance(data) == 4.0
        assert standard_deviation(data) == 2.0
        assert coefficient_of_variation(data) == pytest.approx(0.4)

    def test_median_averages_middle_pair(self):
        assert median([1, 2, 3, 4]) == 2.5

    def test_regression_slope(self):
        assert linear_regression_slope([1, 2, 3, 4]) == pytest.approx(1.0)
        assert linear_regression_slope([10, 8, 6]) == pytest.approx(-2.0)
        assert linear_regression_slope([5]) == 0.0

    def test_safe_number(self):
        assert safe_number(float('nan')) == 0.0
        assert safe_number(float('inf'), 1.0) == 1.0
        assert safe_number(-2.0, 5.0) == 5.0
        assert safe_number(3.5) == 3.5
