"""
Tests for configuration loading and logging setup.
"""

import logging
from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from freshcast.config import DEFAULT_HOLIDAYS_PATH, Config, load_holidays
from freshcast.utils.logger import LogContext, get_logger, set_level


def test_defaults():
    config = Config()
    assert config.newsvendor.max_critical_ratio == 0.90
    assert config.cleaning.lookback_days == 180
    assert config.get_month_factor(12) == 1.30
    assert config.get_month_factor(13) == 1.0
    assert config.holidays_path == DEFAULT_HOLIDAYS_PATH


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv('FRESHCAST_LOG_LEVEL', 'debug')
    monkeypatch.setenv('FRESHCAST_LOOKBACK_DAYS', '60')
    monkeypatch.setenv('FRESHCAST_WEATHER_TIMEOUT', '2.5')
    monkeypatch.setenv('FRESHCAST_WEATHER_LOCATION', 'bangkok')
    monkeypatch.setenv('FRESHCAST_HOLIDAYS_FILE', str(tmp_path / 'h.json'))

    config = Config.from_env()

    assert config.log_level == 'DEBUG'
    assert config.cleaning.lookback_days == 60
    assert config.weather.timeout_seconds == 2.5
    assert config.weather.default_location == 'bangkok'
    assert config.holidays_path == Path(tmp_path / 'h.json')


def test_load_holidays_sorted():
    events = load_holidays(DEFAULT_HOLIDAYS_PATH)
    dates = [e['date'] for e in events]

    assert dates == sorted(dates)
    assert all(isinstance(d, date) for d in dates)
    assert {'date', 'name', 'type', 'demand_factor'} == set(events[0])


def test_set_level():
    logger = get_logger('freshcast.test_config')
    set_level('warning')
    assert logger.level == logging.WARNING
    assert all(h.level == logging.WARNING for h in logger.handlers)
    set_level(logging.INFO)
    assert logger.level == logging.INFO


def test_log_context_does_not_swallow_errors():
    logger = get_logger('freshcast.test_config')
    with pytest.raises(ValueError, match='bad'):
        with LogContext(logger, "failing step"):
            raise ValueError("bad")


def test_log_context_expected_errors_log_warning():
    logger = MagicMock()
    with pytest.raises(ValueError):
        with LogContext(logger, "checked step", expected=(ValueError,)):
            raise ValueError("not enough history")

    logger.warning.assert_called_once()
    logger.error.assert_not_called()


def test_log_context_unexpected_errors_log_error():
    logger = MagicMock()
    with pytest.raises(KeyError):
        with LogContext(logger, "checked step", expected=(ValueError,)):
            raise KeyError("sale_date")

    logger.error.assert_called_once()
    logger.warning.assert_not_called()
