"""
FreshCast - Distribution Library
=================================

Statistical building blocks shared by the forecasting stages:

- Poisson and Negative Binomial PMF/CDF for discrete demand
- IQR statistics for outlier detection
- Time-decay weighting and weighted moving averages
- Holt-Winters exponential smoothing (statsmodels)
- Descriptive helpers (mean, variance, median, regression slope)

All functions are pure and return a defined value (usually 0) for empty
or degenerate input instead of NaN.
"""

import math
import warnings
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from scipy.special import gammaln
from statsmodels.tsa.holtwinters import ExponentialSmoothing

from .utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# DISCRETE DEMAND DISTRIBUTIONS
# =============================================================================

def poisson_pmf(k: int, lam: float) -> float:
    """
    Poisson probability mass P(X = k).

    Computed in log space (k*ln(lam) - lam - ln(k!)) so large k and lam
    do not overflow.
    """
    if k < 0 or lam <= 0:
        return 1.0 if (k == 0 and lam <= 0) else 0.0
    log_p = k * math.log(lam) - lam - gammaln(k + 1)
    return float(math.exp(log_p))


def poisson_cdf(k: int, lam: float) -> float:
    """Poisson cumulative probability P(X <= k)."""
    if k < 0:
        return 0.0
    if lam <= 0:
        return 1.0
    total = sum(poisson_pmf(i, lam) for i in range(int(k) + 1))
    return min(total, 1.0)


def negative_binomial_pmf(k: int, r: float, p: float) -> float:
    """
    Negative Binomial probability mass P(X = k) with ``r`` successes and
    success probability ``p``: mean r(1-p)/p.

    Uses the log-gamma form of the binomial coefficient.
    """
    if k < 0 or r <= 0 or p <= 0 or p > 1:
        return 0.0
    if p == 1:
        return 1.0 if k == 0 else 0.0
    log_coef = gammaln(k + r) - gammaln(k + 1) - gammaln(r)
    log_p = log_coef + r * math.log(p) + k * math.log(1 - p)
    return float(math.exp(log_p))


def negative_binomial_cdf(k: int, r: float, p: float) -> float:
    """Negative Binomial cumulative probability P(X <= k)."""
    if k < 0:
        return 0.0
    total = sum(negative_binomial_pmf(i, r, p) for i in range(int(k) + 1))
    return min(total, 1.0)


@dataclass
class DemandDistribution:
    """
    Discrete demand distribution used by the newsvendor optimizer.

    Attributes:
        type: 'poisson' or 'negative_binomial'
        lam: Poisson mean
        r, p: Negative Binomial parameters
    """
    type: str = 'poisson'
    lam: float = 0.0
    r: Optional[float] = None
    p: Optional[float] = None

    @classmethod
    def poisson(cls, lam: float) -> 'DemandDistribution':
        return cls(type='poisson', lam=max(0.0, lam))

    @classmethod
    def negative_binomial(cls, r: float, p: float) -> 'DemandDistribution':
        mean = r * (1 - p) / p
        return cls(type='negative_binomial', lam=mean, r=r, p=p)

    @property
    def mean(self) -> float:
        return self.lam

    @property
    def variance(self) -> float:
        if self.type == 'negative_binomial':
            return self.r * (1 - self.p) / (self.p ** 2)
        return self.lam

    def cdf(self, k: int) -> float:
        if self.type == 'negative_binomial':
            return negative_binomial_cdf(k, self.r, self.p)
        return poisson_cdf(k, self.lam)

    def pmf(self, k: int) -> float:
        if self.type == 'negative_binomial':
            return negative_binomial_pmf(k, self.r, self.p)
        return poisson_pmf(k, self.lam)


def fit_demand_distribution(
    mean_demand: float,
    history: Sequence[float],
    overdispersion_threshold: float = 1.3,
    max_r: float = 500.0,
    max_p: float = 0.9
) -> DemandDistribution:
    """
    Choose Poisson or Negative Binomial for a forecast mean.

    The historical variance-to-mean ratio is transferred onto the forecast
    mean. Negative Binomial is used only for clear overdispersion with at
    least 3 observations; unstable parameters (huge r, p near 1) fall back
    to Poisson.
    """
    mean_demand = max(0.0, mean_demand)
    if mean_demand <= 0 or len(history) < 3:
        return DemandDistribution.poisson(mean_demand)

    hist_var = variance(history)
    if hist_var <= 0 or not math.isfinite(hist_var):
        hist_var = mean_demand * 0.1 + 1

    ratio = hist_var / (mean(history) or 1.0)
    estimated_var = max(mean_demand, mean_demand * ratio)

    if estimated_var <= mean_demand * overdispersion_threshold:
        return DemandDistribution.poisson(mean_demand)

    p = mean_demand / estimated_var
    r = mean_demand * p / (1 - p)

    if not (math.isfinite(r) and math.isfinite(p)) or r > max_r or p > max_p:
        logger.debug(f"NB params unstable (r={r:.2f}, p={p:.3f}), using Poisson")
        return DemandDistribution.poisson(mean_demand)

    return DemandDistribution.negative_binomial(r, p)


# =============================================================================
# ROBUST STATISTICS
# =============================================================================

@dataclass
class IQRStats:
    q1: float
    q3: float
    iqr: float
    median: float
    lower_bound: float
    upper_bound: float

    def is_outlier(self, value: float) -> bool:
        return value < self.lower_bound or value > self.upper_bound


def calculate_iqr(data: Sequence[float], multiplier: float = 1.5) -> IQRStats:
    """
    Interquartile range with Tukey fences.

    Quartiles are taken by index into the sorted data (floor(n*0.25),
    floor(n*0.75), floor(n*0.5)) without interpolation.
    """
    if len(data) == 0:
        return IQRStats(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)

    ordered = sorted(data)
    n = len(ordered)
    q1 = float(ordered[int(n * 0.25)])
    q3 = float(ordered[int(n * 0.75)])
    med = float(ordered[int(n * 0.5)])
    iqr = q3 - q1

    return IQRStats(
        q1=q1,
        q3=q3,
        iqr=iqr,
        median=med,
        lower_bound=q1 - multiplier * iqr,
        upper_bound=q3 + multiplier * iqr,
    )


def remove_outliers(data: Sequence[float], multiplier: float = 1.5):
    """Split values into (kept, outliers, stats) using IQR fences."""
    stats = calculate_iqr(data, multiplier)
    kept = [v for v in data if not stats.is_outlier(v)]
    outliers = [v for v in data if stats.is_outlier(v)]
    return kept, outliers, stats


# =============================================================================
# WEIGHTED AVERAGES & SMOOTHING
# =============================================================================

def time_decay_weight(days_ago: float, decay_rate: float = 0.05) -> float:
    """w = exp(-decay_rate * days_ago)"""
    return math.exp(-decay_rate * days_ago)


def weighted_moving_average(
    values: Sequence[float],
    days_ago: Sequence[float],
    decay_rate: float = 0.05
) -> float:
    """Time-decay weighted average; 0 for empty or mismatched input."""
    if len(values) == 0 or len(values) != len(days_ago):
        return 0.0

    weights = np.exp(-decay_rate * np.asarray(days_ago, dtype=float))
    total_weight = weights.sum()
    if total_weight <= 0:
        return 0.0
    return float(np.dot(np.asarray(values, dtype=float), weights) / total_weight)


def holt_winters_smoothing(
    values: Sequence[float],
    seasonal_periods: int = 7,
    decay_rate: float = 0.05
) -> float:
    """
    One-step-ahead Holt-Winters level for a chronologically ordered series.

    Uses a damped additive trend, plus additive weekly seasonality once two
    full seasons are available. If the fit fails the time-decay weighted
    average of the series is returned.
    """
    series = np.asarray(values, dtype=float)
    if len(series) == 0:
        return 0.0
    if len(series) < 3:
        return float(series.mean())

    seasonal = 'add' if len(series) >= 2 * seasonal_periods else None

    try:
        with warnings.catch_warnings():
            warnings.simplefilter('ignore')
            model = ExponentialSmoothing(
                series,
                trend='add',
                damped_trend=True,
                seasonal=seasonal,
                seasonal_periods=seasonal_periods if seasonal else None,
                initialization_method='estimated'
            )
            fitted = model.fit(optimized=True)
            forecast = float(fitted.forecast(1)[0])
    except (ValueError, np.linalg.LinAlgError) as e:
        logger.warning(f"Holt-Winters fit failed ({e}), using weighted average")
        days_ago = np.arange(len(series) - 1, -1, -1)
        return weighted_moving_average(series, days_ago, decay_rate)

    if not math.isfinite(forecast):
        days_ago = np.arange(len(series) - 1, -1, -1)
        return weighted_moving_average(series, days_ago, decay_rate)

    return max(0.0, forecast)


# =============================================================================
# DESCRIPTIVE HELPERS
# =============================================================================

def mean(data: Sequence[float]) -> float:
    if len(data) == 0:
        return 0.0
    return float(np.mean(data))


def variance(data: Sequence[float]) -> float:
    """Population variance"""
    if len(data) == 0:
        return 0.0
    return float(np.var(data))


def standard_deviation(data: Sequence[float]) -> float:
    """Population standard deviation"""
    if len(data) == 0:
        return 0.0
    return float(np.std(data))


def median(data: Sequence[float], default: float = 1.0) -> float:
    """Median with averaging of the middle pair; ``default`` when empty."""
    if len(data) == 0:
        return default
    return float(np.median(data))


def coefficient_of_variation(data: Sequence[float]) -> float:
    m = mean(data)
    if m <= 0:
        return 0.0
    return standard_deviation(data) / m


def linear_regression_slope(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index 0..n-1."""
    n = len(values)
    if n < 2:
        return 0.0
    x = np.arange(n, dtype=float)
    y = np.asarray(values, dtype=float)
    denom = n * (x * x).sum() - x.sum() ** 2
    if denom == 0:
        return 0.0
    return float((n * (x * y).sum() - x.sum() * y.sum()) / denom)


def safe_number(value: float, default: float = 0.0) -> float:
    """Replace NaN/inf/negative values with ``default``."""
    if value is None or not math.isfinite(value) or value < 0:
        return default
    return float(value)
