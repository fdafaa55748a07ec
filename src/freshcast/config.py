"""
FreshCast - Configuration Module
=================================

Centralized configuration for the production forecasting engine.
Supports environment-based settings and an external holiday table.

Every tunable constant used by the pipeline lives in one of the component
configs below, so a deployment can adjust thresholds without touching code.
"""

import json
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional


DATA_DIR = Path(__file__).parent / 'data'
DEFAULT_HOLIDAYS_PATH = DATA_DIR / 'holidays.json'


@dataclass
class CleaningConfig:
    """Configuration for sales history cleaning"""
    lookback_days: int = 180
    iqr_multiplier: float = 1.5
    min_iqr_samples: int = 3
    # Payday window: day-of-month >= payday_start_day or <= payday_end_day
    payday_start_day: int = 25
    payday_end_day: int = 5


@dataclass
class BaselineConfig:
    """Configuration for the baseline estimator"""
    decay_rate: float = 0.05
    method: str = 'decay'  # decay, holt_winters, same_weekday
    seasonal_periods: int = 7
    min_same_weekday_samples: int = 2


@dataclass
class WeatherConfig:
    """Weather adjustment and live weather fetch settings"""
    default_factors: Dict[str, float] = field(default_factory=lambda: {
        'sunny': 1.0,
        'cloudy': 0.90,
        'rain': 0.60,
        'storm': 0.05,  # do not produce for storm days
    })
    baseline_condition: str = 'sunny'
    min_samples_per_condition: int = 2
    min_total_samples: int = 3

    # Live forecast service
    api_url: str = 'https://api.open-meteo.com/v1/forecast'
    timeout_seconds: float = 5.0
    forecast_horizon_days: int = 16
    timezone: str = 'Asia/Bangkok'
    default_location: str = 'sisaket'


@dataclass
class SeasonalityConfig:
    """Self-learned seasonality and static calendar settings"""
    rolling_window_days: int = 30
    min_prior_days: int = 5
    min_history_points: int = 10
    full_confidence_points: int = 30
    factor_clip: tuple = (0.1, 5.0)
    residual_clip: tuple = (0.2, 4.0)
    min_payday_samples: int = 3
    default_payday_factor: float = 1.1
    min_weather_samples: int = 2
    # Self-learned factors replace the generic ones above this confidence
    min_confidence: float = 0.5

    # Static calendar
    static_payday_factor: float = 1.20
    near_holiday_days: int = 2
    near_holiday_strength: float = 0.3
    month_factors: Dict[int, float] = field(default_factory=lambda: {
        1: 0.90,   # post New Year spending slowdown
        2: 1.15,   # Valentine's
        3: 0.80,   # school break
        4: 0.50,   # school break + Songkran
        5: 0.85,   # term starts mid-month
        6: 0.90,   # rainy season
        7: 0.85,
        8: 0.90,
        9: 0.80,   # peak rain
        10: 0.80,  # October school break
        11: 1.10,  # Loy Krathong
        12: 1.30,  # year-end festivals
    })
    month_descriptions: Dict[int, str] = field(default_factory=lambda: {
        1: 'Post New Year - customers spend less',
        2: "Valentine's month - strong sales",
        3: 'School break - students away',
        4: 'School break and Songkran government holidays',
        5: 'School term resumes mid-month',
        6: 'Rainy season - fewer market visitors',
        7: 'Rainy season - fewer market visitors',
        8: 'Buddhist Lent - quiet period',
        9: 'Heavy rain season - watch for storms',
        10: 'October school break',
        11: 'Loy Krathong - busy markets',
        12: 'Year-end festival season',
    })


@dataclass
class NewsvendorConfig:
    """Newsvendor optimization settings"""
    min_critical_ratio: float = 0.10
    max_critical_ratio: float = 0.90
    default_critical_ratio: float = 0.5
    default_disposal_cost: float = 0.0
    overdispersion_threshold: float = 1.3
    max_nb_r: float = 500.0
    max_nb_p: float = 0.9
    interval_z: float = 1.28  # 80% prediction interval
    sanity_cap_multiplier: float = 1.5
    sanity_cap_min_mean: float = 5.0


@dataclass
class LearningConfig:
    """Self-learning corrector settings"""
    min_error_samples: int = 3
    stockout_threshold: float = 0.95
    uncensor_multiplier: float = 1.25
    ewma_alpha: float = 0.3
    min_weekday_bucket: int = 2
    momentum_window: int = 5
    momentum_threshold: float = 0.3
    momentum_strength: float = 0.8
    gain_step: float = 0.1
    max_gain_steps: int = 5
    min_bias_confidence: float = 20.0
    min_pattern_errors: int = 5


@dataclass
class MarketConfig:
    """Market profiling settings"""
    default_payday_sensitivity: float = 1.2
    default_weather_sensitivity: float = 0.5
    high_traffic_revenue: float = 5000.0
    medium_traffic_revenue: float = 2000.0
    high_reliability_days: int = 30
    medium_reliability_days: int = 14
    top_products: int = 5
    # Generic weekday multipliers (0=Monday) for markets without a profile
    default_day_factors: Dict[int, float] = field(default_factory=lambda: {
        0: 0.85,
        1: 0.90,
        2: 0.95,
        3: 1.00,
        4: 1.10,
        5: 1.20,  # Saturday - busiest
        6: 1.15,  # Sunday
    })


@dataclass
class OrchestratorConfig:
    """End-to-end forecast settings"""
    min_cleaned_samples: int = 3
    fallback_quantity: int = 10
    upcoming_event_days: int = 14


@dataclass
class Config:
    """
    Master configuration for FreshCast

    Usage:
        config = Config()
        config.newsvendor.max_critical_ratio = 0.85
        config = Config.from_env()
    """

    cleaning: CleaningConfig = field(default_factory=CleaningConfig)
    baseline: BaselineConfig = field(default_factory=BaselineConfig)
    weather: WeatherConfig = field(default_factory=WeatherConfig)
    seasonality: SeasonalityConfig = field(default_factory=SeasonalityConfig)
    newsvendor: NewsvendorConfig = field(default_factory=NewsvendorConfig)
    learning: LearningConfig = field(default_factory=LearningConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)

    holidays_path: Path = DEFAULT_HOLIDAYS_PATH
    log_level: str = 'INFO'

    def __post_init__(self):
        """Convert string paths to Path objects"""
        if isinstance(self.holidays_path, str):
            self.holidays_path = Path(self.holidays_path)
        self._holidays: Optional[List[dict]] = None

    @classmethod
    def from_env(cls) -> 'Config':
        """
        Create config with overrides from FRESHCAST_* environment variables.

        Recognized variables:
            FRESHCAST_LOG_LEVEL, FRESHCAST_LOOKBACK_DAYS,
            FRESHCAST_WEATHER_TIMEOUT, FRESHCAST_WEATHER_LOCATION,
            FRESHCAST_HOLIDAYS_FILE

        FRESHCAST_LOG_FILE is read by the logger itself.
        """
        config = cls()
        config.log_level = os.getenv('FRESHCAST_LOG_LEVEL', config.log_level).upper()

        lookback = os.getenv('FRESHCAST_LOOKBACK_DAYS')
        if lookback:
            config.cleaning.lookback_days = int(lookback)

        timeout = os.getenv('FRESHCAST_WEATHER_TIMEOUT')
        if timeout:
            config.weather.timeout_seconds = float(timeout)

        location = os.getenv('FRESHCAST_WEATHER_LOCATION')
        if location:
            config.weather.default_location = location

        holidays_file = os.getenv('FRESHCAST_HOLIDAYS_FILE')
        if holidays_file:
            config.holidays_path = Path(holidays_file)

        return config

    @property
    def holidays(self) -> List[dict]:
        """Holiday table loaded from ``holidays_path`` on first access."""
        if self._holidays is None:
            self._holidays = load_holidays(self.holidays_path)
        return self._holidays

    def holiday_dates(self) -> List[date]:
        """Dates of all configured holidays and festivals."""
        return [event['date'] for event in self.holidays]

    def get_month_factor(self, month: int) -> float:
        """Get the static month seasonality factor (1=January)"""
        return self.seasonality.month_factors.get(month, 1.0)


def load_holidays(path: Path) -> List[dict]:
    """
    Load the holiday table from a JSON file.

    The file holds ``{"events": [{"date", "name", "type", "demand_factor"}]}``.
    Dates are parsed to ``datetime.date``.

    Returns:
        List of event dictionaries sorted by date
    """
    with open(path, encoding='utf-8') as f:
        payload = json.load(f)

    events = []
    for raw in payload.get('events', []):
        events.append({
            'date': datetime.strptime(raw['date'], '%Y-%m-%d').date(),
            'name': raw['name'],
            'type': raw.get('type', 'holiday'),
            'demand_factor': float(raw['demand_factor']),
        })

    events.sort(key=lambda e: e['date'])
    return events


# Default configuration instance
DEFAULT_CONFIG = Config()
