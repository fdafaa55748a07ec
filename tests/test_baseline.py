"""
Tests for the baseline estimator.
"""

import math
from datetime import date

import pytest

from conftest import REFERENCE, make_sales
from freshcast.baseline import BaselineEstimator, calculate_baseline
from freshcast.data_cleaner import DataCleaner
from freshcast.exceptions import InvalidInputError
from freshcast.models import CleaningResult


def _clean(quantities, **kwargs):
    return DataCleaner().clean(make_sales(quantities, **kwargs), 'P001', 'M1',
                               target_date=REFERENCE, reference_date=REFERENCE)


def test_identical_sales_give_same_baseline():
    result = _clean([20] * 10)
    assert BaselineEstimator().estimate(result) == pytest.approx(20.0)


def test_recent_days_weigh_more():
    # Old days sold 10, the most recent days sold 30
    result = _clean([10] * 5 + [30] * 5)
    baseline = BaselineEstimator().estimate(result)
    assert 20.0 < baseline < 30.0


def test_decay_weights():
    result = _clean([10, 30], start=date(2026, 3, 5))
    # Mar 5 is 11 days ago (payday, kept as is), Mar 6 is 10 days ago
    w_old, w_new = math.exp(-0.05 * 11), math.exp(-0.05 * 10)
    expected = (10 * w_old + 30 * w_new) / (w_old + w_new)
    assert calculate_baseline(result.samples) == pytest.approx(expected)


def test_empty_history_gives_zero():
    assert BaselineEstimator().estimate(CleaningResult()) == 0.0


def test_same_weekday_method():
    # Mondays (9th, 16th) sold 30, other days 14-28
    quantities = [14, 28, 16, 30, 26, 18, 24, 20, 22, 15, 30]
    sales = make_sales(quantities)
    result = DataCleaner().clean(sales, 'P001', 'M1', target_date=date(2026, 3, 23),
                                 reference_date=date(2026, 3, 17))

    assert [s.cleaned_quantity for s in result.same_weekday_samples] == [30, 30]
    assert BaselineEstimator().estimate(result, method='same_weekday') == pytest.approx(30.0)


def test_same_weekday_falls_back_to_all_samples():
    result = _clean([20] * 3)
    assert BaselineEstimator().estimate(result, method='same_weekday') == pytest.approx(20.0)


def test_holt_winters_method():
    week = [10, 12, 14, 16, 18, 30, 25]
    sales = make_sales(week * 3, start=date(2026, 2, 1))
    result = DataCleaner().clean(sales, 'P001', 'M1', reference_date=date(2026, 2, 23))

    baseline = BaselineEstimator().estimate(result, method='holt_winters')
    assert math.isfinite(baseline)
    assert baseline >= 0.0


def test_configured_method(config):
    config.baseline.method = 'same_weekday'
    result = _clean([20] * 3)
    assert BaselineEstimator(config).estimate(result) == pytest.approx(20.0)


def test_unknown_method_raises():
    with pytest.raises(InvalidInputError):
        BaselineEstimator().estimate(_clean([20] * 3), method='magic')
