"""
FreshCast - Self-Learned Seasonality
=====================================

Learns weekday, payday and weather multipliers for one product at one
market from its daily sales totals.

Method:
1. Daily totals, each compared against the 30-day rolling mean strictly
   before that day (at least 5 prior days required)
2. Weekday factor = median of actual / rolling mean per weekday
3. Residual = actual / (rolling mean * weekday factor) isolates payday and
   weather effects, again aggregated by median
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional

import pandas as pd

from .config import Config, DEFAULT_CONFIG
from .data_cleaner import is_payday
from .distributions import median
from .models import DateLike, SaleRecord, SeasonalityFactors, records_to_frame, to_date
from .utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class SeasonalityAdjustment:
    adjusted_forecast: float
    baseline: float
    weekday_factor: float
    payday_factor: float
    weather_factor: float


def daily_totals(records: List[SaleRecord], product_id: str, market_id: str) -> pd.DataFrame:
    """
    Total quantity per calendar day for a product (or variant id) at a market.

    Returns a frame indexed by date with columns ``qty`` and ``weather``
    (first recorded condition of the day).
    """
    df = records_to_frame(records)
    if df.empty:
        return pd.DataFrame(columns=['qty', 'weather'])

    mask = ((df['product_id'] == product_id) | (df['variant_id'] == product_id)) \
        & (df['market_id'] == market_id)
    history = df[mask]
    if history.empty:
        return pd.DataFrame(columns=['qty', 'weather'])

    daily = history.groupby(history['sale_date'].dt.normalize()).agg(
        qty=('quantity_sold', 'sum'),
        weather=('weather_condition', 'first'),
        records=('quantity_sold', 'size'),
    )
    return daily.sort_index()


class SeasonalityLearner:
    """
    Self-learning seasonality engine.

    Usage:
        learner = SeasonalityLearner(config)
        factors = learner.calculate(sales, 'P1', 'M1')
        result = learner.apply(factors, target_date, weather='rain')
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or DEFAULT_CONFIG
        self.seasonality_config = self.config.seasonality

    def _is_payday(self, day) -> bool:
        cfg = self.config.cleaning
        return is_payday(day, cfg.payday_start_day, cfg.payday_end_day)

    def calculate(
        self,
        records: List[SaleRecord],
        product_id: str,
        market_id: str,
        reference_date: Optional[DateLike] = None
    ) -> SeasonalityFactors:
        """
        Learn seasonality factors from sales history.

        With fewer than ``min_history_points`` matching records all factors
        are neutral (1.0) and confidence is 0.

        Args:
            records: Sales ledger
            product_id: Product (or variant) id
            market_id: Market id
            reference_date: Day the current baseline is computed for
                            (default: today)
        """
        cfg = self.seasonality_config
        daily = daily_totals(records, product_id, market_id)
        n_records = int(daily['records'].sum()) if not daily.empty else 0

        if n_records < cfg.min_history_points:
            return SeasonalityFactors(
                product_id=product_id,
                market_id=market_id,
                payday_factor=1.0,
                data_points=n_records,
                confidence=0.0,
            )

        window = f"{cfg.rolling_window_days}D"
        rolling = daily['qty'].rolling(window, closed='left')
        daily['ma_sum'] = rolling.sum().fillna(0.0)
        daily['ma_count'] = rolling.count().fillna(0).astype(int)

        eligible = daily[(daily['ma_count'] >= cfg.min_prior_days) & (daily['ma_sum'] > 0)].copy()
        eligible['ma'] = eligible['ma_sum'] / eligible['ma_count']
        eligible['weekday'] = eligible.index.dayofweek
        eligible['raw_factor'] = eligible['qty'] / eligible['ma']

        low, high = cfg.factor_clip
        kept = eligible[(eligible['raw_factor'] > low) & (eligible['raw_factor'] < high)]
        weekday_factors = {
            day: median(kept.loc[kept['weekday'] == day, 'raw_factor'].tolist())
            for day in range(7)
        }

        # Residual analysis
        eligible['expected'] = eligible['ma'] * eligible['weekday'].map(weekday_factors)
        eligible = eligible[eligible['expected'] > 0].copy()
        eligible['residual'] = eligible['qty'] / eligible['expected']

        low, high = cfg.residual_clip
        residuals = eligible[(eligible['residual'] > low) & (eligible['residual'] < high)]

        payday_mask = [self._is_payday(ts) for ts in residuals.index]
        payday_samples = residuals.loc[payday_mask, 'residual'].tolist()
        payday_factor = (
            median(payday_samples)
            if len(payday_samples) >= cfg.min_payday_samples
            else cfg.default_payday_factor
        )

        weather_factors: Dict[str, float] = {}
        with_weather = residuals.dropna(subset=['weather'])
        for condition, group in with_weather.groupby('weather'):
            if len(group) >= cfg.min_weather_samples:
                weather_factors[condition] = median(group['residual'].tolist())

        reference = to_date(reference_date) if reference_date else date.today()
        start = pd.Timestamp(reference - timedelta(days=cfg.rolling_window_days))
        recent = daily.loc[(daily.index >= start) & (daily.index < pd.Timestamp(reference)), 'qty']
        baseline = float(recent.mean()) if len(recent) > 0 else 0.0

        n_dates = len(daily)
        confidence = min(1.0, n_dates / cfg.full_confidence_points)

        logger.debug(
            f"Seasonality {product_id}@{market_id}: {n_dates} days, "
            f"payday={payday_factor:.2f}, confidence={confidence:.2f}"
        )

        return SeasonalityFactors(
            product_id=product_id,
            market_id=market_id,
            baseline=baseline,
            weekday_factors=weekday_factors,
            weather_factors=weather_factors,
            payday_factor=payday_factor,
            data_points=n_dates,
            confidence=confidence,
        )

    def apply(
        self,
        factors: SeasonalityFactors,
        target_date: DateLike,
        weather: Optional[str] = None,
        baseline: Optional[float] = None
    ) -> SeasonalityAdjustment:
        """
        baseline * weekday * payday (in the payday window) * weather.

        ``baseline`` overrides the learned rolling baseline; a zero baseline
        always yields a zero forecast.
        """
        target = to_date(target_date)
        base = factors.baseline if baseline is None else baseline

        weekday_factor = factors.weekday_factors.get(target.weekday(), 1.0) or 1.0
        payday_factor = factors.payday_factor if self._is_payday(target) else 1.0
        weather_factor = factors.weather_factors.get(weather, 1.0) if weather else 1.0

        adjusted = base * weekday_factor * payday_factor * weather_factor
        return SeasonalityAdjustment(
            adjusted_forecast=max(0.0, float(round(adjusted))),
            baseline=round(base, 1),
            weekday_factor=round(weekday_factor, 2),
            payday_factor=round(payday_factor, 2),
            weather_factor=round(weather_factor, 2),
        )


def calculate_seasonality_factors(
    records: List[SaleRecord],
    product_id: str,
    market_id: str,
    reference_date: Optional[DateLike] = None,
    config: Optional[Config] = None
) -> SeasonalityFactors:
    return SeasonalityLearner(config).calculate(records, product_id, market_id, reference_date)


def apply_seasonality_factors(
    factors: SeasonalityFactors,
    target_date: DateLike,
    weather: Optional[str] = None,
    baseline: Optional[float] = None,
    config: Optional[Config] = None
) -> SeasonalityAdjustment:
    return SeasonalityLearner(config).apply(factors, target_date, weather, baseline)
