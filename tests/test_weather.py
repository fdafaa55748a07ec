"""
Tests for weather impact ratios and the weather forecast service.
"""

from datetime import date
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import REFERENCE, make_sales
from freshcast.data_cleaner import DataCleaner
from freshcast.weather import (
    LOCATIONS,
    WeatherAdjuster,
    WeatherCache,
    WeatherService,
    default_weather,
    get_weather_factor,
    wmo_code_to_condition,
)


def _samples(quantities, weather):
    sales = make_sales(quantities, weather=weather)
    return DataCleaner().clean(sales, 'P001', 'M1', reference_date=REFERENCE).samples


class TestWeatherFactors:
    def test_static_table(self):
        assert get_weather_factor('sunny') == 1.0
        assert get_weather_factor('cloudy') == 0.90
        assert get_weather_factor('rain') == 0.60
        assert get_weather_factor('storm') == 0.05
        assert get_weather_factor('hail') == 1.0
        assert get_weather_factor(None) == 1.0

    def test_storm_nearly_stops_production(self):
        adjuster = WeatherAdjuster()
        adjusted, factor = adjuster.adjust(20.0, 'storm')
        assert factor == 0.05
        assert adjusted == pytest.approx(1.0)

    def test_unseen_condition_is_neutral(self):
        adjusted, factor = WeatherAdjuster().adjust(20.0, 'fog')
        assert factor == 1.0
        assert adjusted == 20.0


class TestWeatherImpact:
    def test_learned_ratios(self):
        samples = _samples(
            [20, 20, 20, 20, 12, 12, 12, 18],
            ['sunny'] * 4 + ['rain'] * 3 + ['cloudy'],
        )
        impact = WeatherAdjuster().calculate_impact(samples)

        assert impact.baseline_condition == 'sunny'
        assert impact.ratio('sunny') == 1.0
        assert impact.ratio('rain') == pytest.approx(0.6)
        # A single cloudy day is not enough to replace the default
        assert impact.ratio('cloudy') == 0.90
        assert impact.sample_counts == {'sunny': 4, 'rain': 3, 'cloudy': 1}
        assert 'rain' in impact.learned

    def test_most_frequent_condition_is_baseline_without_sunny(self):
        samples = _samples([20, 20, 20, 20, 10, 10, 10], ['cloudy'] * 4 + ['rain'] * 3)
        impact = WeatherAdjuster().calculate_impact(samples)

        assert impact.baseline_condition == 'cloudy'
        assert impact.ratio('cloudy') == 1.0
        assert impact.ratio('rain') == pytest.approx(0.5)
        assert impact.ratio('sunny') == 1.0

    def test_sparse_history_uses_defaults(self):
        samples = _samples([20, 20], ['sunny', 'rain'])
        impact = WeatherAdjuster().calculate_impact(samples)
        assert impact.factors == {'sunny': 1.0, 'cloudy': 0.90, 'rain': 0.60, 'storm': 0.05}
        assert impact.learned == []

    def test_samples_without_weather_are_ignored(self):
        samples = _samples([20] * 6, None)
        impact = WeatherAdjuster().calculate_impact(samples)
        assert impact.ratio('rain') == 0.60

    def test_identical_sunny_history(self, flat_sales):
        samples = DataCleaner().clean(flat_sales, 'P001', 'M1', reference_date=REFERENCE).samples
        adjusted, factor = WeatherAdjuster().adjust(20.0, 'sunny', WeatherAdjuster().calculate_impact(samples))
        assert factor == 1.0
        assert adjusted == 20.0


@pytest.mark.parametrize("code,condition", [
    (0, 'sunny'), (1, 'sunny'), (2, 'cloudy'), (45, 'cloudy'), (51, 'rain'),
    (63, 'rain'), (65, 'storm'), (80, 'rain'), (82, 'storm'), (95, 'storm'), (99, 'storm'),
])
def test_wmo_code_mapping(code, condition):
    assert wmo_code_to_condition(code) == condition


def _response(status=200, payload=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    return response


PAYLOAD = {
    'daily': {
        'time': ['2026-03-16', '2026-03-17'],
        'weather_code': [0, 95],
        'temperature_2m_max': [33.5, 29.0],
        'precipitation_sum': [0.0, 41.2],
        'relative_humidity_2m_mean': [60, 88],
    }
}


class TestWeatherService:
    @patch('freshcast.weather.requests.get')
    def test_fetch_forecast(self, mock_get):
        mock_get.return_value = _response(payload=PAYLOAD)
        service = WeatherService(cache=WeatherCache())

        forecast = service.fetch_forecast('2026-03-17', 'bangkok', today=REFERENCE)

        assert forecast.condition == 'storm'
        assert forecast.temperature == 29.0
        assert forecast.precipitation == 41.2
        assert forecast.description == 'Thunderstorm'
        assert not forecast.is_default

        _, kwargs = mock_get.call_args
        assert kwargs['timeout'] == 5.0
        assert kwargs['params']['latitude'] == LOCATIONS['bangkok'].latitude
        assert len(service.cache) == 1

    @patch('freshcast.weather.requests.get')
    def test_timeout_gives_default(self, mock_get):
        mock_get.side_effect = requests.Timeout("timed out")
        forecast = WeatherService(cache=WeatherCache()).fetch_forecast('2026-03-17', 'bangkok', today=REFERENCE)

        assert forecast.is_default
        assert forecast.condition == 'sunny'
        assert forecast.temperature == 32.0
        assert forecast.humidity == 65.0

    @patch('freshcast.weather.requests.get')
    def test_failure_uses_cached_forecast(self, mock_get):
        cache = WeatherCache()
        service = WeatherService(cache=cache)

        mock_get.return_value = _response(payload=PAYLOAD)
        service.fetch_forecast('2026-03-17', 'bangkok', today=REFERENCE)

        mock_get.return_value = _response(status=503)
        forecast = service.fetch_forecast('2026-03-17', 'bangkok', today=REFERENCE)

        assert forecast.condition == 'storm'
        assert not forecast.is_default

    @patch('freshcast.weather.requests.get')
    def test_unusable_payload_gives_default(self, mock_get):
        mock_get.return_value = _response(payload={'daily': {'time': ['2026-03-16']}})
        forecast = WeatherService(cache=WeatherCache()).fetch_forecast('2026-03-17', today=REFERENCE)
        assert forecast.is_default

    @patch('freshcast.weather.requests.get')
    def test_outside_horizon_does_not_call_service(self, mock_get):
        service = WeatherService(cache=WeatherCache())

        assert service.fetch_forecast(date(2026, 4, 30), today=REFERENCE).is_default
        assert service.fetch_forecast(date(2026, 3, 1), today=REFERENCE).is_default
        mock_get.assert_not_called()

    def test_unknown_location_uses_default(self):
        key, location = WeatherService().resolve_location('atlantis')
        assert key == 'sisaket'
        assert location == LOCATIONS['sisaket']

    def test_cache_is_injectable_and_resettable(self):
        cache = WeatherCache()
        service = WeatherService(cache=cache)
        assert service.cache is cache

        cache.set(('2026-03-17', 'sisaket'), default_weather('2026-03-17'))
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0
