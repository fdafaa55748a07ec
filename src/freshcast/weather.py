"""
FreshCast - Weather Module
===========================

Weather impact on demand plus an optional live forecast lookup.

Features:
- Learned per-condition impact ratios, normalized to the baseline condition
- Static fallback table (storm days are effectively not produced for)
- Open-Meteo daily forecast client with timeout, injected cache and a
  deterministic default when the service is unavailable
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd
import requests

from .config import Config, DEFAULT_CONFIG
from .exceptions import WeatherServiceError
from .models import CleanedSample, DateLike, to_date
from .utils.logger import get_logger

logger = get_logger(__name__)

CONDITIONS = ('sunny', 'cloudy', 'rain', 'storm')
UNKNOWN = 'unknown'


# =============================================================================
# IMPACT RATIOS
# =============================================================================

def get_weather_factor(condition: Optional[str], factors: Optional[Dict[str, float]] = None) -> float:
    """Static demand multiplier for a condition (1.0 when unknown)."""
    factors = factors or DEFAULT_CONFIG.weather.default_factors
    return factors.get(condition, 1.0)


@dataclass
class WeatherImpact:
    """
    Demand ratio per weather condition.

    Attributes:
        factors: condition -> multiplier relative to the baseline condition
        baseline_condition: condition whose mean defines ratio 1.0
        learned: conditions whose ratio comes from history
        sample_counts: number of samples seen per condition
    """
    factors: Dict[str, float] = field(default_factory=dict)
    baseline_condition: str = 'sunny'
    learned: List[str] = field(default_factory=list)
    sample_counts: Dict[str, int] = field(default_factory=dict)

    def ratio(self, condition: Optional[str]) -> float:
        return self.factors.get(condition, 1.0)


class WeatherAdjuster:
    """
    Learns weather impact ratios and applies them to a baseline.

    Usage:
        adjuster = WeatherAdjuster(config)
        impact = adjuster.calculate_impact(cleaning_result.samples)
        adjusted, factor = adjuster.adjust(baseline, 'rain', impact)
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or DEFAULT_CONFIG
        self.weather_config = self.config.weather

    def default_impact(self) -> WeatherImpact:
        return WeatherImpact(
            factors=dict(self.weather_config.default_factors),
            baseline_condition=self.weather_config.baseline_condition,
        )

    def calculate_impact(self, samples: List[CleanedSample]) -> WeatherImpact:
        """
        Compute per-condition ratios from cleaned history.

        Samples without a recorded condition are ignored. A condition needs
        a minimum number of samples before its learned ratio replaces the
        static default. The baseline condition is 'sunny' when observed,
        otherwise the most frequent condition.
        """
        cfg = self.weather_config
        observed = [
            (s.weather_condition, s.cleaned_quantity) for s in samples
            if s.weather_condition and s.weather_condition != UNKNOWN
        ]
        if len(observed) < cfg.min_total_samples:
            return self.default_impact()

        df = pd.DataFrame(observed, columns=['condition', 'quantity'])
        grouped = df.groupby('condition', sort=False)['quantity'].agg(['mean', 'count'])
        counts = grouped['count'].astype(int).to_dict()

        if cfg.baseline_condition in grouped.index:
            baseline_condition = cfg.baseline_condition
        else:
            baseline_condition = df['condition'].value_counts(sort=True).index[0]

        baseline_mean = float(grouped.loc[baseline_condition, 'mean'])
        if baseline_mean <= 0:
            logger.debug("Baseline weather mean is zero, using default impact table")
            impact = self.default_impact()
            impact.sample_counts = counts
            return impact

        factors = dict(cfg.default_factors)
        learned = []
        for condition, row in grouped.iterrows():
            if condition == baseline_condition:
                factors[condition] = 1.0
                learned.append(condition)
            elif row['count'] >= cfg.min_samples_per_condition:
                factors[condition] = float(row['mean']) / baseline_mean
                learned.append(condition)

        factors[cfg.baseline_condition] = 1.0

        logger.debug(f"Weather impact (baseline={baseline_condition}): {factors}")
        return WeatherImpact(
            factors=factors,
            baseline_condition=baseline_condition,
            learned=learned,
            sample_counts=counts,
        )

    def adjust(
        self,
        baseline: float,
        condition: Optional[str],
        impact: Optional[WeatherImpact] = None
    ) -> Tuple[float, float]:
        """Return (adjusted forecast, factor) for the target-day condition."""
        impact = impact or self.default_impact()
        factor = impact.ratio(condition)
        return max(0.0, baseline * factor), factor


# =============================================================================
# LIVE FORECAST SERVICE
# =============================================================================

@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    name: str


LOCATIONS: Dict[str, Location] = {
    'sisaket': Location(15.1186, 104.3220, 'Sisaket'),
    'bangkok': Location(13.7563, 100.5018, 'Bangkok'),
    'chiangmai': Location(18.7883, 98.9853, 'Chiang Mai'),
    'khonkaen': Location(16.4419, 102.8360, 'Khon Kaen'),
    'udonthani': Location(17.4156, 102.7872, 'Udon Thani'),
    'ubon': Location(15.2448, 104.8473, 'Ubon Ratchathani'),
    'nakhonratchasima': Location(14.9799, 102.0978, 'Nakhon Ratchasima'),
}

WMO_DESCRIPTIONS = {
    0: 'Clear sky',
    1: 'Mainly clear',
    2: 'Partly cloudy',
    3: 'Overcast',
    45: 'Fog',
    48: 'Depositing rime fog',
    51: 'Light drizzle',
    53: 'Drizzle',
    55: 'Dense drizzle',
    61: 'Slight rain',
    63: 'Moderate rain',
    65: 'Heavy rain',
    80: 'Slight rain showers',
    81: 'Rain showers',
    82: 'Violent rain showers',
    95: 'Thunderstorm',
    96: 'Thunderstorm with slight hail',
    99: 'Thunderstorm with heavy hail',
}


def wmo_code_to_condition(code: int) -> str:
    """Map a WMO weather code onto sunny / cloudy / rain / storm."""
    if code <= 1:
        return 'sunny'
    if code <= 49:
        return 'cloudy'
    if code <= 63:
        return 'rain'
    if code == 65:
        return 'storm'  # heavy rain
    if code <= 80:
        return 'rain'
    if code <= 82:
        return 'storm'  # violent showers
    if code <= 86:
        return 'rain'
    if code >= 95:
        return 'storm'
    return 'cloudy'


@dataclass
class WeatherForecast:
    date: date
    condition: str
    temperature: float
    precipitation: float  # mm
    humidity: float
    description: str
    is_default: bool = False


def default_weather(target_date: DateLike) -> WeatherForecast:
    """Deterministic fallback used when no forecast can be obtained."""
    return WeatherForecast(
        date=to_date(target_date),
        condition='sunny',
        temperature=32.0,
        precipitation=0.0,
        humidity=65.0,
        description='Default (weather service unavailable)',
        is_default=True,
    )


class WeatherCache:
    """Process-local forecast cache keyed by (ISO date, location key)."""

    def __init__(self):
        self._entries: Dict[Tuple[str, str], WeatherForecast] = {}

    def get(self, key: Tuple[str, str]) -> Optional[WeatherForecast]:
        return self._entries.get(key)

    def set(self, key: Tuple[str, str], forecast: WeatherForecast) -> None:
        self._entries[key] = forecast

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class WeatherService:
    """
    Best-effort daily weather forecast lookup.

    Never raises to the caller: failures resolve to the cached forecast for
    the same (date, location), else to ``default_weather``.

    Usage:
        service = WeatherService(cache=WeatherCache())
        forecast = service.fetch_forecast('2026-03-07', 'sisaket')
    """

    def __init__(self, config: Optional[Config] = None, cache: Optional[WeatherCache] = None):
        self.config = config or DEFAULT_CONFIG
        self.weather_config = self.config.weather
        self.cache = cache if cache is not None else WeatherCache()

    def resolve_location(self, location: Union[str, Location, None]) -> Tuple[str, Location]:
        """Return (cache key, coordinates); unknown names use the default location."""
        if isinstance(location, Location):
            return location.name, location
        key = (location or self.weather_config.default_location).lower()
        if key not in LOCATIONS:
            logger.warning(f"Unknown location '{key}', using {self.weather_config.default_location}")
            key = self.weather_config.default_location
        return key, LOCATIONS[key]

    def fetch_forecast(
        self,
        target_date: DateLike,
        location: Union[str, Location, None] = None,
        today: Optional[DateLike] = None
    ) -> WeatherForecast:
        target = to_date(target_date)
        current = to_date(today) if today else date.today()
        key, coords = self.resolve_location(location)
        cache_key = (target.isoformat(), key)

        days_ahead = (target - current).days
        if days_ahead < 0 or days_ahead > self.weather_config.forecast_horizon_days:
            logger.info(f"{target} outside the {self.weather_config.forecast_horizon_days}-day "
                        f"forecast horizon, using cached/default weather")
            return self.cache.get(cache_key) or default_weather(target)

        try:
            forecast = self._request(target, coords)
        except WeatherServiceError as e:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.warning(f"Weather lookup failed ({e}), using cached forecast")
                return cached
            logger.warning(f"Weather lookup failed ({e}), using default sunny")
            return default_weather(target)

        self.cache.set(cache_key, forecast)
        return forecast

    def _request(self, target: date, coords: Location) -> WeatherForecast:
        cfg = self.weather_config
        params = {
            'latitude': coords.latitude,
            'longitude': coords.longitude,
            'daily': 'weather_code,temperature_2m_max,precipitation_sum,relative_humidity_2m_mean',
            'timezone': cfg.timezone,
        }

        try:
            response = requests.get(cfg.api_url, params=params, timeout=cfg.timeout_seconds)
        except requests.RequestException as e:
            raise WeatherServiceError(f"request error: {e}", stage='weather') from e

        if response.status_code != 200:
            raise WeatherServiceError(
                f"HTTP {response.status_code}", stage='weather',
                details={'status_code': response.status_code}
            )

        try:
            daily = response.json()['daily']
            index = daily['time'].index(target.isoformat())
            code = int(daily['weather_code'][index])
            return WeatherForecast(
                date=target,
                condition=wmo_code_to_condition(code),
                temperature=float(daily['temperature_2m_max'][index]),
                precipitation=float(daily['precipitation_sum'][index]),
                humidity=float(daily['relative_humidity_2m_mean'][index]),
                description=WMO_DESCRIPTIONS.get(code, 'Unknown'),
            )
        except (KeyError, ValueError, TypeError, IndexError) as e:
            raise WeatherServiceError(f"unusable payload: {e}", stage='weather') from e
