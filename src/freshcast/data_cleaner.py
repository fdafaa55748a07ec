"""
FreshCast - Data Cleaner Module
================================

Turns raw sales ledger lines into an analysis-ready series for one
product at one market.

Features:
- Product / variant / market / lookback filtering
- Recency (days ago) and weekday annotation
- Special-event tagging (payday window, holidays)
- Special-event-aware IQR outlier correction (median replacement)
"""

from datetime import date, timedelta
from typing import Iterable, List, Optional

import pandas as pd

from .config import Config, DEFAULT_CONFIG
from .distributions import calculate_iqr
from .models import (
    CleanedSample,
    CleaningResult,
    CleaningStats,
    DateLike,
    SaleRecord,
    records_to_frame,
    to_date,
)
from .utils.logger import get_logger
from .validators import validate_sales

logger = get_logger(__name__)


def is_payday(day: DateLike, start_day: int = 25, end_day: int = 5) -> bool:
    """True when the day of month falls in the payday window (>= 25 or <= 5)."""
    day_of_month = to_date(day).day
    return day_of_month >= start_day or day_of_month <= end_day


class DataCleaner:
    """
    Sales history cleaning engine.

    Usage:
        cleaner = DataCleaner(config)
        result = cleaner.clean(sales, product_id='P1', market_id='M1',
                               target_date='2026-03-07')
        series = [s.cleaned_quantity for s in result.samples]
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or DEFAULT_CONFIG
        self.cleaning_config = self.config.cleaning

    def is_special_event(self, day: date, holidays: set) -> bool:
        cfg = self.cleaning_config
        return is_payday(day, cfg.payday_start_day, cfg.payday_end_day) or day in holidays

    def filter_history(
        self,
        records: List[SaleRecord],
        product_id: str,
        market_id: Optional[str] = None,
        variant_id: Optional[str] = None,
        reference_date: Optional[DateLike] = None,
        market_name: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Select the records of one product (and variant) at one market
        inside the lookback window.

        A record matches the market by id, or by name when ``market_name``
        is given. Without ``variant_id`` only records without a variant
        are used. An empty ``market_id`` matches every market.
        """
        df = records_to_frame(records)
        if df.empty:
            return df

        reference = to_date(reference_date) if reference_date else date.today()
        cutoff = reference - timedelta(days=self.cleaning_config.lookback_days)

        mask = df['product_id'] == product_id
        if variant_id:
            mask &= df['variant_id'] == variant_id
        else:
            mask &= df['variant_id'].isna()

        if market_id:
            market_mask = df['market_id'] == market_id
            if market_name:
                market_mask |= df['market_name'] == market_name
            mask &= market_mask

        mask &= df['sale_date'] >= pd.Timestamp(cutoff)

        return df[mask].sort_values('sale_date').reset_index(drop=True)

    def clean(
        self,
        records: List[SaleRecord],
        product_id: str,
        market_id: Optional[str] = None,
        variant_id: Optional[str] = None,
        target_date: Optional[DateLike] = None,
        holidays: Optional[Iterable[DateLike]] = None,
        reference_date: Optional[DateLike] = None,
        market_name: Optional[str] = None
    ) -> CleaningResult:
        """
        Filter, annotate and outlier-correct sales history.

        Args:
            records: Full sales ledger
            product_id: Target product
            market_id: Target market
            variant_id: Target variant (None = base product only)
            target_date: Forecast date, used for weekday matching
            holidays: Holiday dates exempt from outlier suppression
            reference_date: "Today" for recency and lookback (default: today)
            market_name: Alternative market match by name

        Returns:
            CleaningResult. An empty result (no samples, zero stats) when
            nothing matches; callers treat that as insufficient data.
        """
        valid, validation = validate_sales(records)
        rejected = validation.info.get('rejected', 0)

        reference = to_date(reference_date) if reference_date else date.today()
        target = to_date(target_date) if target_date else reference
        holiday_set = {to_date(h) for h in (holidays or [])}

        df = self.filter_history(
            valid, product_id, market_id, variant_id, reference, market_name
        )

        if df.empty:
            logger.info(f"No sales history for product={product_id} market={market_id}")
            return CleaningResult(stats=CleaningStats(rejected_records=rejected))

        df['day'] = df['sale_date'].dt.date
        df['days_ago'] = df['day'].apply(lambda d: max(0, (reference - d).days))
        df['day_of_week'] = df['sale_date'].dt.dayofweek
        df['is_special'] = df['day'].apply(lambda d: self.is_special_event(d, holiday_set))

        # Quartiles from normal days only, unless too few of them exist
        min_samples = self.cleaning_config.min_iqr_samples
        normal = df.loc[~df['is_special'], 'quantity_sold'].tolist()
        quantities = normal if len(normal) >= min_samples else df['quantity_sold'].tolist()

        if len(quantities) >= min_samples:
            iqr = calculate_iqr(quantities, self.cleaning_config.iqr_multiplier)
            df['is_outlier'] = (
                ((df['quantity_sold'] < iqr.lower_bound) | (df['quantity_sold'] > iqr.upper_bound))
                & ~df['is_special']
            )
            q1, q3, iqr_value, med = iqr.q1, iqr.q3, iqr.iqr, iqr.median
        else:
            df['is_outlier'] = False
            q1, iqr_value = 0.0, 0.0
            q3 = med = float(quantities[0]) if quantities else 0.0

        df['cleaned'] = df['quantity_sold'].where(~df['is_outlier'], med)

        samples = []
        for row in df.itertuples(index=False):
            weather = row.weather_condition if isinstance(row.weather_condition, str) else 'unknown'
            waste = row.waste_qty if row.waste_qty is not None and not pd.isna(row.waste_qty) else 0.0
            samples.append(CleanedSample(
                sale_date=row.day,
                quantity=float(row.quantity_sold),
                cleaned_quantity=float(row.cleaned),
                days_ago=int(row.days_ago),
                day_of_week=int(row.day_of_week),
                is_outlier=bool(row.is_outlier),
                is_special_event=bool(row.is_special),
                is_same_weekday=int(row.day_of_week) == target.weekday(),
                weather_condition=weather,
                waste_qty=float(waste),
                unit_price=float(row.unit_price),
                unit_cost=float(row.unit_cost),
            ))

        same_day = [s for s in samples if s.is_same_weekday]
        outliers = sum(1 for s in samples if s.is_outlier)
        average = sum(s.cleaned_quantity for s in samples) / len(samples)
        same_day_average = (
            sum(s.cleaned_quantity for s in same_day) / len(same_day) if same_day else average
        )

        stats = CleaningStats(
            total_points=len(samples),
            same_day_points=len(same_day),
            outliers_detected=outliers,
            outlier_rate=outliers / len(samples),
            q1=q1,
            q3=q3,
            iqr=iqr_value,
            median=med,
            average_sales=average,
            same_day_average=same_day_average,
            rejected_records=rejected,
        )

        logger.debug(
            f"Cleaned {len(samples)} samples for {product_id}@{market_id}: "
            f"{outliers} outliers, {len(same_day)} same-weekday"
        )

        return CleaningResult(samples=samples, same_weekday_samples=same_day, stats=stats)
