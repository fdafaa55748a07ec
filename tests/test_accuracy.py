"""
Tests for forecast accuracy analysis.
"""

from datetime import date

import pytest

from conftest import make_log, make_sales
from freshcast.accuracy import analyze_accuracy, record_accuracy


CATALOG = {'P001': {'unit_price': 30.0, 'unit_cost': 10.0}}


@pytest.mark.parametrize("forecast,actual,expected", [
    (25, 20, 75.0),
    (18, 20, 90.0),
    (60, 20, 0.0),
    (0, 0, 100.0),
    (10, 0, 0.0),
])
def test_record_accuracy(forecast, actual, expected):
    assert record_accuracy(forecast, actual) == pytest.approx(expected)


def test_empty_log():
    report = analyze_accuracy([], make_sales([20] * 3))
    assert report.records.empty
    assert report.summary == {'total_forecasts': 0}


class TestAnalyzeAccuracy:
    def setup_method(self):
        # Over by 5 on Friday, under by 2 on Saturday, nothing sold on Sunday
        log = make_log([date(2026, 3, 6), date(2026, 3, 7), date(2026, 3, 8)], [25, 18, 10])
        self.report = analyze_accuracy(log, make_sales([20, 20]), CATALOG)

    def test_records(self):
        records = self.report.records
        assert records['actual_qty'].tolist() == [20.0, 20.0, 0.0]
        assert records['accuracy'].tolist() == pytest.approx([75.0, 90.0, 0.0])
        assert records['waste_cost'].tolist() == pytest.approx([50.0, 0.0, 100.0])
        assert records['lost_margin'].tolist() == pytest.approx([0.0, 40.0, 0.0])
        assert records['market_name'].tolist() == ['M1'] * 3

    def test_summary(self):
        summary = self.report.summary
        assert summary['total_forecasts'] == 3
        assert summary['total_days'] == 3
        assert summary['days_with_data'] == 2
        # Days without sales are left out of the accuracy average
        assert summary['overall_accuracy'] == pytest.approx(82.5)
        assert summary['overall_bias_percent'] == pytest.approx(32.5)
        assert summary['total_waste_qty'] == 15.0
        assert summary['total_stockout_qty'] == 2.0
        assert summary['total_waste_cost'] == pytest.approx(150.0)
        assert summary['total_lost_margin'] == pytest.approx(40.0)

    def test_rollups(self):
        market = self.report.market_accuracy[0]
        assert market['market_id'] == 'M1'
        assert market['accuracy'] == pytest.approx(82.5)
        assert market['sample_size'] == 2
        assert market['total_forecasts'] == 3

        friday = self.report.day_accuracy[4]
        assert friday['day_name'] == 'Friday'
        assert friday['accuracy'] == pytest.approx(75.0)
        assert self.report.day_accuracy[6]['sample_size'] == 0

        assert [d['date'] for d in self.report.daily_trend] == ['2026-03-06', '2026-03-07', '2026-03-08']
        assert self.report.daily_trend[2]['match_count'] == 0

    def test_over_production_recommendation(self):
        recommendations = self.report.recommendations
        assert len(recommendations) == 1
        rec = recommendations[0]
        assert rec['type'] == 'product'
        assert rec['priority'] == 'high'
        assert rec['suggestion'] == 'Reduce production by ~4 units'

    def test_serializable(self):
        payload = self.report.to_dict()
        assert payload['records'][0]['date'] == '2026-03-06'
        assert payload['summary']['total_forecasts'] == 3


def test_poor_market_accuracy_is_flagged():
    days = [date(2026, 3, 9), date(2026, 3, 10), date(2026, 3, 11)]
    log = make_log(days, [5, 5, 5])
    report = analyze_accuracy(log, make_sales([20, 20, 20], start=date(2026, 3, 9)))

    market_recs = [r for r in report.recommendations if r['type'] == 'market']
    assert len(market_recs) == 1
    assert market_recs[0]['suggestion'] == 'Increase production'
    assert report.summary['total_lost_margin'] == 0.0
