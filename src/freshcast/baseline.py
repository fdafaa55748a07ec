"""
FreshCast - Baseline Estimator
===============================

Single continuous baseline demand value from cleaned history.

Methods:
- decay: time-decay weighted moving average, w = exp(-rate * days_ago)
- holt_winters: statsmodels exponential smoothing on the daily series
- same_weekday: time-decay average over same-weekday samples only
"""

from typing import List, Optional

from .config import Config, DEFAULT_CONFIG
from .distributions import holt_winters_smoothing, weighted_moving_average
from .exceptions import InvalidInputError
from .models import CleanedSample, CleaningResult
from .utils.logger import get_logger

logger = get_logger(__name__)

METHODS = ('decay', 'holt_winters', 'same_weekday')


def calculate_baseline(samples: List[CleanedSample], decay_rate: float = 0.05) -> float:
    """Time-decay weighted average of cleaned quantities (0 for no samples)."""
    if not samples:
        return 0.0
    quantities = [s.cleaned_quantity for s in samples]
    days_ago = [s.days_ago for s in samples]
    return max(0.0, weighted_moving_average(quantities, days_ago, decay_rate))


class BaselineEstimator:
    """
    Baseline demand estimator.

    Usage:
        estimator = BaselineEstimator(config)
        baseline = estimator.estimate(cleaning_result)
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or DEFAULT_CONFIG
        self.baseline_config = self.config.baseline

    def estimate(self, result: CleaningResult, method: Optional[str] = None) -> float:
        """
        Estimate baseline demand.

        Args:
            result: Output of DataCleaner.clean
            method: One of 'decay', 'holt_winters', 'same_weekday'
                    (defaults to the configured method)

        Returns:
            Non-negative baseline demand; 0.0 for empty history
        """
        method = method or self.baseline_config.method
        if method not in METHODS:
            raise InvalidInputError(
                f"Unknown baseline method '{method}'",
                stage='baseline',
                details={'allowed': list(METHODS)}
            )

        if result.is_empty:
            return 0.0

        decay_rate = self.baseline_config.decay_rate

        if method == 'holt_winters':
            ordered = sorted(result.samples, key=lambda s: s.sale_date)
            baseline = holt_winters_smoothing(
                [s.cleaned_quantity for s in ordered],
                seasonal_periods=self.baseline_config.seasonal_periods,
                decay_rate=decay_rate
            )
        elif method == 'same_weekday':
            same_day = result.same_weekday_samples
            if len(same_day) >= self.baseline_config.min_same_weekday_samples:
                baseline = calculate_baseline(same_day, decay_rate)
            else:
                logger.debug("Too few same-weekday samples, using all history")
                baseline = calculate_baseline(result.samples, decay_rate)
        else:
            baseline = calculate_baseline(result.samples, decay_rate)

        logger.debug(f"Baseline ({method}): {baseline:.2f} from {len(result.samples)} samples")
        return baseline
