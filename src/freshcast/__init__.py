"""
FreshCast - Perishable Goods Production Forecasting
====================================================

Per-product, per-market demand forecasting and newsvendor production
quantities for sellers of perishable goods.

Modules:
- config: Configuration management and the holiday table
- data_cleaner: History filtering and special-event-aware outlier correction
- baseline: Time-decay / Holt-Winters baseline demand
- weather: Weather impact ratios and the live forecast service
- holiday_calendar: Holidays, paydays and month seasonality
- seasonality: Self-learned weekday, payday and weather factors
- market_profile: Market behavior profiles
- newsvendor: Optimal production quantity
- self_learning: Bias, momentum and pattern correction from past errors
- forecaster: End-to-end orchestration
- accuracy, production, explanation: Reporting and planning helpers

Usage:
    from freshcast import SmartForecaster

    forecaster = SmartForecaster()
    output = forecaster.forecast(sales, 'P001', 'M1', '2026-03-07',
                                 selling_price=30, unit_cost=10)
    print(output.optimal_quantity)
"""

__version__ = "1.0.0"
__author__ = "FreshCast Team"

from .config import Config, DEFAULT_CONFIG
from .data_cleaner import DataCleaner
from .baseline import BaselineEstimator
from .weather import WeatherAdjuster, WeatherCache, WeatherService
from .holiday_calendar import HolidayCalendar
from .seasonality import SeasonalityLearner
from .market_profile import MarketProfiler
from .newsvendor import NewsvendorOptimizer
from .self_learning import SelfLearningCorrector
from .forecaster import ForecastRequest, HistoryCache, SmartForecaster
from .explanation import ExplanationGenerator
from .models import ForecastLogEntry, ForecastOutput, ForecastStatus, SaleRecord

__all__ = [
    'Config',
    'DEFAULT_CONFIG',
    'DataCleaner',
    'BaselineEstimator',
    'WeatherAdjuster',
    'WeatherCache',
    'WeatherService',
    'HolidayCalendar',
    'SeasonalityLearner',
    'MarketProfiler',
    'NewsvendorOptimizer',
    'SelfLearningCorrector',
    'ForecastRequest',
    'HistoryCache',
    'SmartForecaster',
    'ExplanationGenerator',
    'ForecastLogEntry',
    'ForecastOutput',
    'ForecastStatus',
    'SaleRecord',
]
