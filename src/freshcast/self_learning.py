"""
FreshCast - Self-Learning Corrector
====================================

Learns from realized forecast errors (error = forecast - actual) and
corrects new recommendations.

Features:
- Demand uncensoring: sold-out days hide excess demand, so their actuals
  are inflated before errors are learned
- EWMA bias with per-weekday buckets and an adaptive gain that grows
  while errors keep the same direction
- Momentum (regression slope of recent demand) and volatility
- Conditional pattern detection (mid-month, rainy weekends, weekdays)
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import Config, DEFAULT_CONFIG
from .data_cleaner import is_payday
from .distributions import linear_regression_slope, mean, standard_deviation
from .models import (
    BiasCorrection,
    DateLike,
    ForecastError,
    ForecastLogEntry,
    LearningStats,
    PatternInsight,
    SaleRecord,
    records_to_frame,
    to_date,
)
from .utils.logger import get_logger
from .validators import validate_sales

logger = get_logger(__name__)

DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']

MID_MONTH = 'dayOfMonth:14-16'
RAIN_WEEKEND = 'rain+weekend'


@dataclass
class BiasResult:
    corrected_forecast: float
    correction_applied: float = 0.0
    source: str = 'none'


@dataclass
class SmartAdjustment:
    """Learned correction of one raw quantity, with its contributing steps."""
    adjusted_forecast: int
    adjustments: List[Dict[str, Any]] = field(default_factory=list)
    total_confidence: float = 0.0
    bias: Optional[BiasCorrection] = None

    @property
    def total_delta(self) -> float:
        return sum(a['delta'] for a in self.adjustments)


def calculate_forecast_errors(
    forecast_log: List[ForecastLogEntry],
    sales: List[SaleRecord],
    config: Optional[Config] = None
) -> List[ForecastError]:
    """
    Join prior forecasts with realized sales.

    The actual quantity is the sum sold on the forecast date for the
    product (or a variant with that id) at the forecast's market. Forecasts
    without any matching sale are skipped.
    """
    config = config or DEFAULT_CONFIG
    valid_sales, _ = validate_sales(sales)
    df = records_to_frame(valid_sales)
    if df.empty or not forecast_log:
        return []

    df['day'] = df['sale_date'].dt.date
    stockout_threshold = config.learning.stockout_threshold
    payday_start = config.cleaning.payday_start_day
    payday_end = config.cleaning.payday_end_day

    errors = []
    for entry in forecast_log:
        mask = (df['day'] == entry.forecast_for_date) & (
            (df['product_id'] == entry.product_id) | (df['variant_id'] == entry.product_id)
        )
        if entry.market_id:
            mask &= df['market_id'] == entry.market_id
        matched = df[mask]
        if matched.empty:
            continue

        actual = float(matched['quantity_sold'].sum())
        forecast_qty = float(entry.optimal_quantity)
        error = forecast_qty - actual
        day = entry.forecast_for_date

        errors.append(ForecastError(
            product_id=entry.product_id,
            market_id=entry.market_id,
            forecast_date=day,
            forecast_qty=forecast_qty,
            actual_qty=actual,
            error=error,
            error_percent=(error / actual) * 100 if actual > 0 else 0.0,
            day_of_week=day.weekday(),
            day_of_month=day.day,
            weather=entry.weather_forecast,
            is_payday=is_payday(day, payday_start, payday_end),
            is_stockout=actual >= forecast_qty * stockout_threshold,
            product_name=entry.product_name,
        ))

    logger.debug(f"Matched {len(errors)} of {len(forecast_log)} logged forecasts with actual sales")
    return errors


class SelfLearningCorrector:
    """
    Error-driven forecast correction.

    Usage:
        corrector = SelfLearningCorrector(config)
        bias = corrector.calculate_bias_correction(errors, 'P1', 'M1')
        result = corrector.smart_adjustment(42, 'P1', 'M1', target_date, 'rain', errors)
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or DEFAULT_CONFIG
        self.learning_config = self.config.learning

    def calculate_bias_correction(
        self,
        errors: List[ForecastError],
        product_id: str,
        market_id: Optional[str] = None
    ) -> Optional[BiasCorrection]:
        """
        Bias statistics for a product at a market.

        Returns None when fewer than ``min_error_samples`` errors exist.
        """
        cfg = self.learning_config
        relevant = [
            e for e in errors
            if e.product_id == product_id and (not market_id or e.market_id == market_id)
        ]
        if len(relevant) < cfg.min_error_samples:
            return None

        relevant = sorted(relevant, key=lambda e: e.forecast_date)

        # Uncensor suspected stockouts before learning
        actuals = []
        biases = []
        for e in relevant:
            actual = e.actual_qty
            if e.is_stockout:
                actual = math.ceil(actual * cfg.uncensor_multiplier)
            actuals.append(actual)
            biases.append(e.forecast_qty - actual)

        alpha = cfg.ewma_alpha
        ewma = biases[0]
        consistency = 0
        for bias in biases[1:]:
            ewma = alpha * bias + (1 - alpha) * ewma
            if (bias > 0 and ewma > 0) or (bias < 0 and ewma < 0):
                consistency += 1
            else:
                consistency = 0

        adaptive_gain = 1.0 + min(consistency, cfg.max_gain_steps) * cfg.gain_step

        recent = actuals[-cfg.momentum_window:]
        momentum = linear_regression_slope(recent) if len(recent) >= 3 else 0.0

        day_of_week_bias = {}
        for day in range(7):
            day_biases = [b for b, e in zip(biases, relevant) if e.day_of_week == day]
            if len(day_biases) >= cfg.min_weekday_bucket:
                day_of_week_bias[day] = sum(day_biases) / len(day_biases)

        mean_demand = mean(actuals)
        volatility = standard_deviation(actuals)

        confidence = min(100, len(relevant) * 10)
        if volatility > mean_demand * 0.5:
            confidence *= 0.8

        return BiasCorrection(
            product_id=product_id,
            market_id=market_id or '',
            avg_bias=sum(biases) / len(biases),
            exponential_bias=ewma,
            bias_count=len(relevant),
            day_of_week_bias=day_of_week_bias,
            momentum_slope=momentum,
            volatility=volatility,
            mean_demand=mean_demand,
            adaptive_gain=adaptive_gain,
            confidence_score=float(round(confidence)),
        )

    def apply_bias_correction(
        self,
        raw_forecast: float,
        bias: Optional[BiasCorrection],
        day_of_week: Optional[int] = None
    ) -> BiasResult:
        """
        Subtract the combined bias (weekday bucket and EWMA, averaged) scaled
        by the adaptive gain. A no-op without enough error history.
        """
        if bias is None or bias.bias_count < self.learning_config.min_error_samples:
            return BiasResult(corrected_forecast=raw_forecast)

        day_bias = bias.day_of_week_bias.get(day_of_week, bias.exponential_bias) \
            if day_of_week is not None else bias.exponential_bias
        combined = (day_bias + bias.exponential_bias) / 2
        correction = combined * bias.adaptive_gain

        source = f"smart-adapt-{bias.adaptive_gain:.1f}x" if bias.adaptive_gain > 1.2 else 'smart-bias'
        corrected = max(0, round(raw_forecast - correction))
        return BiasResult(corrected_forecast=corrected, correction_applied=correction, source=source)

    def detect_patterns(self, errors: List[ForecastError], product_id: str) -> List[PatternInsight]:
        """
        Recurring deviations of actual demand from its overall average,
        sorted by confidence (highest first).
        """
        product_errors = [e for e in errors if e.product_id == product_id]
        if len(product_errors) < self.learning_config.min_pattern_errors:
            return []

        total_avg = mean([e.actual_qty for e in product_errors])
        if total_avg <= 0:
            return []

        patterns = []

        mid_month = [e for e in product_errors if 14 <= e.day_of_month <= 16]
        if len(mid_month) >= 2:
            factor = mean([e.actual_qty for e in mid_month]) / total_avg
            if abs(factor - 1) > 0.15:
                direction = 'spikes' if factor > 1 else 'drops'
                patterns.append(PatternInsight(
                    type='micro-cycle',
                    product_id=product_id,
                    description=f"Mid-month (days 14-16) demand {direction} {abs(factor - 1) * 100:.0f}%",
                    factor=factor,
                    confidence=80,
                    data_points=len(mid_month),
                    condition=MID_MONTH,
                ))

        rainy_weekends = [
            e for e in product_errors
            if e.day_of_week >= 5 and e.weather in ('rain', 'storm')
        ]
        if len(rainy_weekends) >= 2:
            factor = mean([e.actual_qty for e in rainy_weekends]) / total_avg
            if abs(factor - 1) > 0.2:
                direction = 'busier' if factor > 1 else 'quieter'
                patterns.append(PatternInsight(
                    type='weather',
                    product_id=product_id,
                    description=f"Rainy weekends are unusually {direction}",
                    factor=factor,
                    confidence=90,
                    data_points=len(rainy_weekends),
                    condition=RAIN_WEEKEND,
                ))

        for day in range(7):
            day_errors = [e for e in product_errors if e.day_of_week == day]
            if len(day_errors) >= 3:
                factor = mean([e.actual_qty for e in day_errors]) / total_avg
                if abs(factor - 1) > 0.15:
                    direction = 'strong' if factor > 1 else 'weak'
                    patterns.append(PatternInsight(
                        type='weekday',
                        product_id=product_id,
                        description=f"{DAY_NAMES[day]} is {direction} ({abs(factor - 1) * 100:.0f}%)",
                        factor=factor,
                        confidence=min(100, len(day_errors) * 15),
                        data_points=len(day_errors),
                        condition=f"weekday:{day}",
                    ))

        patterns.sort(key=lambda p: p.confidence, reverse=True)
        return patterns

    def learning_stats(self, errors: List[ForecastError], product_id: Optional[str] = None) -> LearningStats:
        """Accuracy, bias and improvement over the error history."""
        relevant = [e for e in errors if e.product_id == product_id] if product_id else list(errors)
        if not relevant:
            return LearningStats()

        relevant = sorted(relevant, key=lambda e: e.forecast_date)
        avg_error_pct = mean([abs(e.error_percent) for e in relevant])
        avg_bias = mean([e.error for e in relevant])

        recent = relevant[-5:]
        older = relevant[:max(1, len(relevant) - 5)]
        recent_err = mean([abs(e.error) for e in recent])
        older_err = mean([abs(e.error) for e in older])

        patterns = self.detect_patterns(errors, product_id) if product_id else []

        return LearningStats(
            total_forecasts=len(relevant),
            avg_accuracy=max(0.0, 100 - avg_error_pct),
            avg_bias=avg_bias,
            improvement_trend=older_err - recent_err,
            top_patterns=patterns[:5],
        )

    def smart_adjustment(
        self,
        raw_forecast: float,
        product_id: str,
        market_id: Optional[str],
        target_date: DateLike,
        weather: Optional[str],
        errors: List[ForecastError]
    ) -> SmartAdjustment:
        """
        Combine bias correction, momentum and matching patterns.

        Bias correction needs a minimum confidence; momentum is added when
        the recent demand slope is steep enough; mid-month and rainy-weekend
        patterns apply only when their condition matches the target day.
        """
        cfg = self.learning_config
        target = to_date(target_date)
        adjustments = []
        adjusted = float(raw_forecast)

        bias = self.calculate_bias_correction(errors, product_id, market_id)
        if bias is not None and bias.confidence_score >= cfg.min_bias_confidence:
            result = self.apply_bias_correction(raw_forecast, bias, target.weekday())
            if result.correction_applied != 0:
                adjustments.append({
                    'source': f"Bias correction ({result.source})",
                    'delta': -round(result.correction_applied),
                    'confidence': bias.confidence_score,
                })
                adjusted = float(result.corrected_forecast)

            if abs(bias.momentum_slope) > cfg.momentum_threshold:
                momentum_delta = round(bias.momentum_slope * cfg.momentum_strength)
                if momentum_delta != 0:
                    direction = 'upward' if momentum_delta > 0 else 'downward'
                    adjustments.append({
                        'source': f"Momentum: {direction}",
                        'delta': momentum_delta,
                        'confidence': 80,
                    })
                    adjusted += momentum_delta

        patterns = self.detect_patterns(errors, product_id)
        for pattern in patterns:
            if pattern.condition not in (MID_MONTH, RAIN_WEEKEND):
                continue
            if pattern.matches(target, weather):
                delta = adjusted * (pattern.factor - 1)
                adjustments.append({
                    'source': pattern.description,
                    'delta': delta,
                    'confidence': pattern.confidence,
                })
                adjusted += delta

        total_confidence = mean([a['confidence'] for a in adjustments]) if adjustments else 0.0

        return SmartAdjustment(
            adjusted_forecast=max(0, int(round(adjusted))),
            adjustments=adjustments,
            total_confidence=total_confidence,
            bias=bias,
        )


def calculate_bias_correction(errors, product_id, market_id=None, config=None):
    return SelfLearningCorrector(config).calculate_bias_correction(errors, product_id, market_id)


def apply_bias_correction(raw_forecast, bias, day_of_week=None, config=None):
    return SelfLearningCorrector(config).apply_bias_correction(raw_forecast, bias, day_of_week)


def detect_patterns(errors, product_id, config=None):
    return SelfLearningCorrector(config).detect_patterns(errors, product_id)


def calculate_learning_stats(errors, product_id=None, config=None):
    return SelfLearningCorrector(config).learning_stats(errors, product_id)
