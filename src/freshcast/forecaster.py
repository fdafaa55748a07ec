"""
FreshCast - Smart Forecaster
=============================

End-to-end production recommendation for one product at one market.

Pipeline:
    clean -> baseline -> weather -> seasonality/calendar -> market
    -> newsvendor -> self-learning -> final integer quantity

Every call returns a ForecastOutput. When a stage cannot produce a
supported number the output carries the conservative fallback quantity,
``success=False`` and a Diagnostic naming the stage, instead of raising.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from .baseline import BaselineEstimator
from .config import Config, DEFAULT_CONFIG
from .data_cleaner import DataCleaner
from .distributions import fit_demand_distribution, mean, safe_number
from .exceptions import ComputationError, FreshcastError, InsufficientDataError
from .holiday_calendar import HolidayCalendar
from .market_profile import DAY_NAMES, MarketProfiler
from .models import (
    DateLike,
    Diagnostic,
    ForecastError,
    ForecastLogEntry,
    ForecastOutput,
    ForecastStatus,
    SaleRecord,
    StageAdjustment,
    to_date,
)
from .newsvendor import NewsvendorOptimizer, expected_economics
from .seasonality import SeasonalityLearner
from .self_learning import SelfLearningCorrector, calculate_forecast_errors
from .utils.logger import LogContext, get_logger
from .validators import validate_sales
from .weather import WeatherAdjuster, WeatherService

logger = get_logger(__name__)

CONFIDENCE_SCORES = {
    'high': 85.0,
    'medium': 65.0,
    'low': 45.0,
    'none': 20.0,
}


def confidence_level(total_points: int, same_day_points: int) -> str:
    """Confidence tier from the amount of cleaned history."""
    if same_day_points >= 4:
        return 'high'
    if same_day_points >= 2 or total_points >= 3:
        return 'medium'
    return 'low'


@dataclass
class ForecastRequest:
    """One (product, market) pair of a batch run."""
    product_id: str
    market_id: str
    selling_price: float
    unit_cost: float
    disposal_cost: Optional[float] = None
    variant_id: Optional[str] = None
    market_name: Optional[str] = None
    weather: Optional[str] = None
    location: Optional[str] = None


@dataclass
class BatchForecastResult:
    forecasts: List[ForecastOutput] = field(default_factory=list)
    summary: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'forecasts': [f.to_dict() for f in self.forecasts],
            'summary': self.summary,
        }


class HistoryCache:
    """
    Memoizes history-derived data per (kind, key, history_version).

    The host bumps ``history_version`` whenever sales or forecast-log rows
    are appended; entries of older versions are simply never hit again.
    Nothing is cached for calls without a history version.

    Usage:
        cache = HistoryCache()
        forecaster = SmartForecaster(history_cache=cache)
        forecaster.forecast(..., history_version=42)
    """

    def __init__(self):
        self._entries: Dict[Tuple, Any] = {}
        self.hits = 0
        self.misses = 0

    def get_or_compute(
        self,
        kind: str,
        key: Tuple[Hashable, ...],
        history_version: Optional[Hashable],
        compute: Callable[[], Any]
    ) -> Any:
        if history_version is None:
            return compute()

        cache_key = (kind,) + tuple(key) + (history_version,)
        if cache_key in self._entries:
            self.hits += 1
            return self._entries[cache_key]

        self.misses += 1
        value = compute()
        self._entries[cache_key] = value
        return value

    def invalidate(self, history_version: Optional[Hashable] = None) -> None:
        """Drop every entry, or only those of one history version."""
        if history_version is None:
            self._entries.clear()
            return
        stale = [k for k in self._entries if k[-1] == history_version]
        for k in stale:
            del self._entries[k]

    def __len__(self) -> int:
        return len(self._entries)


class SmartForecaster:
    """
    Orchestrates all pipeline stages into one forecast call.

    Usage:
        forecaster = SmartForecaster(config)
        output = forecaster.forecast(sales, 'P1', 'M1', '2026-03-07',
                                     selling_price=30, unit_cost=10)
        output.optimal_quantity
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        weather_service: Optional[WeatherService] = None,
        history_cache: Optional[HistoryCache] = None
    ):
        self.config = config or DEFAULT_CONFIG
        self.weather_service = weather_service or WeatherService(self.config)
        self.history_cache = history_cache

        self.cleaner = DataCleaner(self.config)
        self.baseline_estimator = BaselineEstimator(self.config)
        self.weather_adjuster = WeatherAdjuster(self.config)
        self.calendar = HolidayCalendar(self.config)
        self.seasonality_learner = SeasonalityLearner(self.config)
        self.market_profiler = MarketProfiler(self.config)
        self.optimizer = NewsvendorOptimizer(self.config)
        self.corrector = SelfLearningCorrector(self.config)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def forecast(
        self,
        sales: List[SaleRecord],
        product_id: str,
        market_id: str,
        target_date: DateLike,
        selling_price: float,
        unit_cost: float,
        *,
        disposal_cost: Optional[float] = None,
        variant_id: Optional[str] = None,
        market_name: Optional[str] = None,
        weather: Optional[str] = None,
        fetch_weather: bool = False,
        location: Optional[str] = None,
        forecast_log: Optional[List[ForecastLogEntry]] = None,
        forecast_errors: Optional[List[ForecastError]] = None,
        reference_date: Optional[DateLike] = None,
        history_version: Optional[Hashable] = None
    ) -> ForecastOutput:
        """
        Recommend a production quantity.

        Args:
            sales: Full sales ledger (read-only)
            product_id: Target product
            market_id: Target market
            target_date: Day the quantity is produced for
            selling_price: Unit selling price
            unit_cost: Unit production cost
            disposal_cost: Cost of disposing an unsold unit (default from config)
            variant_id: Target variant; its id is also the learning key
            market_name: Alternative market match by name
            weather: Known condition for the target day (skips any lookup)
            fetch_weather: Look the condition up with the weather service
            location: Weather location preset name
            forecast_log: Prior forecasts, joined with sales for self-learning
            forecast_errors: Precomputed errors (takes precedence over the log)
            reference_date: "Today" for recency and lookback (default: today)
            history_version: Memoization key for the injected HistoryCache

        Returns:
            ForecastOutput; never raises on degenerate input
        """
        learn_id = variant_id or product_id
        try:
            target = to_date(target_date)
            reference = to_date(reference_date) if reference_date else date.today()
        except (TypeError, ValueError) as e:
            logger.warning(f"Unparseable date for {learn_id}@{market_id}: {e}")
            return self._fallback(
                product_id, market_id, date.today(), ForecastStatus.COMPUTATION_ERROR,
                Diagnostic(stage='input', message=f"Invalid date: {e}")
            )

        try:
            operation = f"Forecast {learn_id} @ {market_id} for {target}"
            with LogContext(logger, operation, expected=(FreshcastError,)):
                return self._run(
                    sales, product_id, market_id, target, reference, selling_price, unit_cost,
                    disposal_cost=disposal_cost,
                    variant_id=variant_id,
                    market_name=market_name,
                    weather=weather,
                    fetch_weather=fetch_weather,
                    location=location,
                    forecast_log=forecast_log,
                    forecast_errors=forecast_errors,
                    history_version=history_version,
                )
        except InsufficientDataError as e:
            logger.warning(f"Insufficient data for {learn_id}@{market_id}: {e.message}")
            return self._fallback(
                product_id, market_id, target, ForecastStatus.INSUFFICIENT_DATA,
                Diagnostic(stage=e.stage or 'cleaning', message=e.message, details=e.details)
            )
        except FreshcastError as e:
            logger.warning(f"Forecast failed for {learn_id}@{market_id} in {e.stage}: {e.message}")
            return self._fallback(
                product_id, market_id, target, ForecastStatus.COMPUTATION_ERROR,
                Diagnostic(stage=e.stage or 'unknown', message=e.message, details=e.details)
            )
        except Exception as e:
            logger.error(f"Unexpected error forecasting {learn_id}@{market_id}: {e}", exc_info=True)
            return self._fallback(
                product_id, market_id, target, ForecastStatus.COMPUTATION_ERROR,
                Diagnostic(stage='unknown', message=str(e), details={'error_type': type(e).__name__})
            )

    def forecast_batch(
        self,
        sales: List[SaleRecord],
        requests: List[ForecastRequest],
        target_date: DateLike,
        *,
        fetch_weather: bool = False,
        forecast_log: Optional[List[ForecastLogEntry]] = None,
        forecast_errors: Optional[List[ForecastError]] = None,
        reference_date: Optional[DateLike] = None,
        history_version: Optional[Hashable] = None
    ) -> BatchForecastResult:
        """
        Forecast several (product, market) pairs for one date.

        Each forecast is independent; the summary adds the average
        confidence, the strongest learned patterns, learning stats over
        the requested products and the upcoming calendar events.
        """
        try:
            target = to_date(target_date)
        except (TypeError, ValueError) as e:
            logger.warning(f"Unparseable batch date {target_date!r}: {e}")
            diagnostic = Diagnostic(stage='input', message=f"Invalid date: {e}")
            forecasts = [
                self._fallback(r.product_id, r.market_id, date.today(), ForecastStatus.COMPUTATION_ERROR, diagnostic)
                for r in requests
            ]
            return BatchForecastResult(
                forecasts=forecasts,
                summary=self._batch_summary(forecasts, [], self.corrector.learning_stats([]), []),
            )

        logger.info(f"Batch forecast: {len(requests)} products for {target}")

        forecasts = [
            self.forecast(
                sales, r.product_id, r.market_id, target, r.selling_price, r.unit_cost,
                disposal_cost=r.disposal_cost,
                variant_id=r.variant_id,
                market_name=r.market_name,
                weather=r.weather,
                fetch_weather=fetch_weather,
                location=r.location,
                forecast_log=forecast_log,
                forecast_errors=forecast_errors,
                reference_date=reference_date,
                history_version=history_version,
            )
            for r in requests
        ]

        errors: List[ForecastError] = []
        patterns = []
        seen = set()
        for r in requests:
            key = (r.variant_id or r.product_id, r.market_id)
            if key in seen:
                continue
            seen.add(key)
            relevant = self._relevant_errors(
                sales, key[0], r.market_id, forecast_log, forecast_errors, history_version
            )
            errors.extend(relevant)
            patterns.extend(self.corrector.detect_patterns(relevant, key[0]))

        patterns.sort(key=lambda p: p.confidence, reverse=True)
        stats = self.corrector.learning_stats(errors)
        upcoming = self.calendar.upcoming_events(target, self.config.orchestrator.upcoming_event_days)

        summary = self._batch_summary(forecasts, patterns, stats, upcoming)

        logger.info(
            f"Batch complete: {summary['successful']}/{len(forecasts)} supported forecasts, "
            f"avg confidence {summary['avg_confidence']:.0f}"
        )
        return BatchForecastResult(forecasts=forecasts, summary=summary)

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _run(
        self,
        sales: List[SaleRecord],
        product_id: str,
        market_id: str,
        target: date,
        reference: date,
        selling_price: float,
        unit_cost: float,
        *,
        disposal_cost: Optional[float],
        variant_id: Optional[str],
        market_name: Optional[str],
        weather: Optional[str],
        fetch_weather: bool,
        location: Optional[str],
        forecast_log: Optional[List[ForecastLogEntry]],
        forecast_errors: Optional[List[ForecastError]],
        history_version: Optional[Hashable]
    ) -> ForecastOutput:
        learn_id = variant_id or product_id
        dow = target.weekday()
        adjustments: List[StageAdjustment] = []
        explanation: List[str] = []

        # 1. Clean
        cleaning = self.cleaner.clean(
            sales, product_id, market_id, variant_id,
            target_date=target,
            holidays=self.calendar.holiday_dates(),
            reference_date=reference,
            market_name=market_name,
        )
        stats = cleaning.stats
        required = self.config.orchestrator.min_cleaned_samples
        if stats.total_points < required:
            raise InsufficientDataError(
                f"Only {stats.total_points} days of sales history (need {required})",
                stage='cleaning',
                details={'data_points': stats.total_points, 'required': required},
            )

        # 2. Baseline
        baseline = self.baseline_estimator.estimate(cleaning)
        if not math.isfinite(baseline):
            raise ComputationError("Baseline is not a finite number", stage='baseline')
        adjustments.append(StageAdjustment('baseline', 'Time-decay baseline', value_after=baseline))
        explanation.append(
            f"Baseline {baseline:.1f} units from {stats.total_points} days of history "
            f"({stats.same_day_points} on {DAY_NAMES[dow]}, {stats.outliers_detected} outliers corrected)"
        )

        # 3. Weather
        condition, weather_source = self._resolve_weather(target, weather, fetch_weather, location, reference)
        impact = self.weather_adjuster.calculate_impact(cleaning.samples)
        value, weather_factor = self.weather_adjuster.adjust(baseline, condition, impact)
        weather_adjusted = value
        adjustments.append(StageAdjustment('weather', condition, factor=weather_factor, value_after=value))
        explanation.append(f"Weather {condition} ({weather_source}): x{weather_factor:.2f} -> {value:.1f}")

        # 4. Seasonality and calendar
        valid_sales, _ = validate_sales(sales)
        seasonality = self._cached(
            'seasonality', (learn_id, market_id, reference), history_version,
            lambda: self.seasonality_learner.calculate(valid_sales, learn_id, market_id, reference)
        )
        profile = self._cached(
            'market', (market_id,), history_version,
            lambda: self.market_profiler.build_profile(market_id, market_name or '', valid_sales)
        )
        learned = seasonality.confidence > self.config.seasonality.min_confidence

        seasonality_factor = 1.0
        if learned:
            weekday_factor = seasonality.weekday_factors.get(dow, 1.0) or 1.0
            value *= weekday_factor
            seasonality_factor *= weekday_factor
            adjustments.append(StageAdjustment(
                'seasonality', f"Learned {DAY_NAMES[dow]} factor", factor=weekday_factor, value_after=value
            ))
            explanation.append(
                f"Learned {DAY_NAMES[dow]} pattern ({seasonality.confidence:.0%} confidence): "
                f"x{weekday_factor:.2f}"
            )
            payday_factor = seasonality.payday_factor
        else:
            payday_factor = profile.payday_sensitivity

        calendar_info = self.calendar.get_calendar_factors(target, payday_factor=payday_factor)
        calendar_factors = list(calendar_info.factors)
        month = self.calendar.month_seasonality(target)
        if abs(month['factor'] - 1) > 0.05:
            calendar_factors.append({'name': month['description'], 'factor': month['factor']})

        for entry in calendar_factors:
            value *= entry['factor']
            seasonality_factor *= entry['factor']
            adjustments.append(StageAdjustment('calendar', entry['name'], factor=entry['factor'], value_after=value))
            explanation.append(f"{entry['name']}: x{entry['factor']:.2f}")

        # 5. Market
        market_factor, market_entries = self.market_profiler.market_factors(
            profile, dow, calendar_info.is_payday, include_day=not learned, include_payday=False
        )
        value *= market_factor
        for entry in market_entries:
            adjustments.append(StageAdjustment('market', entry['name'], factor=entry['factor'], value_after=value))
            explanation.append(f"{entry['name']}: x{entry['factor']:.2f}")

        if not math.isfinite(value):
            raise ComputationError(
                "Adjusted demand is not a finite number", stage='adjustment',
                details={'baseline': baseline, 'weather_factor': weather_factor,
                         'seasonality_factor': seasonality_factor, 'market_factor': market_factor}
            )
        lambda_ = max(0.0, value)

        # 6. Newsvendor
        nv_cfg = self.config.newsvendor
        distribution = fit_demand_distribution(
            lambda_,
            [s.cleaned_quantity for s in cleaning.samples],
            overdispersion_threshold=nv_cfg.overdispersion_threshold,
            max_r=nv_cfg.max_nb_r,
            max_p=nv_cfg.max_nb_p,
        )
        result = self.optimizer.optimize(distribution, selling_price, unit_cost, disposal_cost)
        quantity = result.optimal_quantity
        adjustments.append(StageAdjustment(
            'newsvendor', f"Q* at service level {result.critical_ratio:.2f}", value_after=float(quantity)
        ))
        explanation.append(
            f"Demand {lambda_:.1f} ({distribution.type.replace('_', ' ')}), "
            f"service level {result.critical_ratio:.0%} -> {quantity} units"
            + (" (capped)" if result.capped else "")
        )

        # 7. Self-learning
        level = confidence_level(stats.total_points, stats.same_day_points)
        smart_confidence = CONFIDENCE_SCORES[level]
        learning_applied = False
        bias_correction = 0.0
        volatility = 0.0
        momentum = 0.0

        errors = self._relevant_errors(sales, learn_id, market_id, forecast_log, forecast_errors, history_version)
        if len(errors) >= self.config.learning.min_error_samples:
            smart = self.corrector.smart_adjustment(quantity, learn_id, market_id, target, condition, errors)
            if smart.bias is not None:
                volatility = smart.bias.volatility
                momentum = smart.bias.momentum_slope
            if smart.adjustments:
                quantity = smart.adjusted_forecast
                learning_applied = True
                bias_correction = smart.total_delta
                smart_confidence = min(100.0, smart_confidence + smart.total_confidence * 0.2)
                for adj in smart.adjustments:
                    adjustments.append(StageAdjustment('learning', adj['source'], delta=adj['delta']))
                    explanation.append(f"{adj['source']}: {adj['delta']:+.0f}")
        else:
            logger.debug(f"{len(errors)} forecast errors for {learn_id}@{market_id}, self-learning skipped")

        # 8. Final quantity and its risk profile
        quantity = max(0, int(quantity))
        if lambda_ > 0:
            stockout = 1 - distribution.cdf(quantity)
            waste = distribution.cdf(quantity - 1)
        else:
            stockout, waste = 0.0, 0.0
        economics = expected_economics(lambda_, quantity, safe_number(selling_price), safe_number(unit_cost))
        explanation.append(f"Recommended production: {quantity} units")

        upcoming = self.calendar.upcoming_events(target, self.config.orchestrator.upcoming_event_days)

        return ForecastOutput(
            product_id=product_id,
            market_id=market_id,
            target_date=target,
            optimal_quantity=quantity,
            baseline_forecast=baseline,
            weather_adjusted_forecast=weather_adjusted,
            lambda_=lambda_,
            distribution_type=distribution.type,
            variance=result.variance,
            critical_ratio=result.critical_ratio,
            service_level_target=result.service_level_target,
            stockout_probability=min(1.0, max(0.0, safe_number(stockout, 0.5))),
            waste_probability=min(1.0, max(0.0, safe_number(waste, 0.5))),
            confidence_level=level,
            smart_confidence=smart_confidence,
            data_points=stats.total_points,
            same_day_points=stats.same_day_points,
            outliers_removed=stats.outliers_detected,
            prediction_interval=result.prediction_interval,
            economics=economics,
            weather_condition=condition,
            weather_factor=weather_factor,
            calendar_factors=calendar_factors,
            seasonality_factor=seasonality_factor,
            market_factor=market_factor,
            learning_applied=learning_applied,
            bias_correction=bias_correction,
            volatility=volatility,
            momentum_trend=momentum,
            adjustments=adjustments,
            explanation=explanation,
            upcoming_events=[e.to_dict() for e in upcoming],
            seasonality=seasonality,
            cleaning_stats=stats,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _cached(self, kind: str, key: Tuple, history_version: Optional[Hashable], compute: Callable[[], Any]):
        if self.history_cache is None:
            return compute()
        return self.history_cache.get_or_compute(kind, key, history_version, compute)

    def _resolve_weather(
        self,
        target: date,
        weather: Optional[str],
        fetch_weather: bool,
        location: Optional[str],
        reference: date
    ) -> Tuple[str, str]:
        """Return (condition, source) for the target day."""
        if weather:
            return weather.lower(), 'given'
        if fetch_weather:
            forecast = self.weather_service.fetch_forecast(target, location, today=reference)
            return forecast.condition, 'default' if forecast.is_default else 'forecast'
        return self.config.weather.baseline_condition, 'default'

    def _relevant_errors(
        self,
        sales: List[SaleRecord],
        learn_id: str,
        market_id: Optional[str],
        forecast_log: Optional[List[ForecastLogEntry]],
        forecast_errors: Optional[List[ForecastError]],
        history_version: Optional[Hashable]
    ) -> List[ForecastError]:
        """Errors of prior forecasts for this product at this market."""
        if forecast_errors is not None:
            return [
                e for e in forecast_errors
                if e.product_id == learn_id and (not market_id or e.market_id == market_id)
            ]
        if not forecast_log:
            return []

        entries = [
            e for e in forecast_log
            if e.product_id == learn_id and (not market_id or e.market_id == market_id)
        ]
        return self._cached(
            'errors', (learn_id, market_id), history_version,
            lambda: calculate_forecast_errors(entries, sales, self.config)
        )

    def _batch_summary(self, forecasts, patterns, stats, upcoming) -> Dict[str, Any]:
        return {
            'total_products': len(forecasts),
            'successful': sum(1 for f in forecasts if f.success),
            'avg_confidence': mean([f.smart_confidence for f in forecasts]),
            'top_patterns': [
                {
                    'product_id': p.product_id,
                    'type': p.type,
                    'description': p.description,
                    'factor': p.factor,
                    'confidence': p.confidence,
                }
                for p in patterns[:5]
            ],
            'learning_stats': {
                'total_forecasts': stats.total_forecasts,
                'avg_accuracy': stats.avg_accuracy,
                'avg_bias': stats.avg_bias,
                'improvement_trend': stats.improvement_trend,
            },
            'upcoming_events': [e.to_dict() for e in upcoming],
            'weather_summary': dict(Counter(f.weather_condition for f in forecasts)),
        }

    def _fallback(
        self,
        product_id: str,
        market_id: str,
        target: date,
        status: ForecastStatus,
        diagnostic: Diagnostic
    ) -> ForecastOutput:
        """
        Conservative fixed quantity for when no supported forecast exists.

        Returns a low-confidence output flagged ``success=False``.
        """
        quantity = self.config.orchestrator.fallback_quantity
        data_points = int(diagnostic.details.get('data_points', 0) or 0)

        if status == ForecastStatus.INSUFFICIENT_DATA:
            reason = f"Insufficient data: {diagnostic.message}"
        else:
            reason = f"Forecast error in {diagnostic.stage}: {diagnostic.message}"

        return ForecastOutput(
            product_id=product_id,
            market_id=market_id,
            target_date=target,
            optimal_quantity=quantity,
            success=False,
            status=status,
            diagnostic=diagnostic,
            no_data=data_points == 0,
            confidence_level='low',
            smart_confidence=CONFIDENCE_SCORES['none'],
            data_points=data_points,
            explanation=[reason, f"Using conservative default of {quantity} units"],
        )
