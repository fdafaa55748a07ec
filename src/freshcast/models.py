"""
FreshCast - Data Models
========================

Records exchanged between the pipeline stages and with host applications.

Input records (SaleRecord, ForecastLogEntry) are owned by the host and
treated as read-only. Everything else is derived per forecast call.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import pandas as pd


DateLike = Union[str, date, datetime, pd.Timestamp]

SALE_COLUMNS = [
    'sale_date', 'product_id', 'variant_id', 'market_id', 'quantity_sold',
    'unit_price', 'unit_cost', 'waste_qty', 'weather_condition',
    'product_name', 'market_name',
]


def to_date(value: DateLike) -> date:
    """Normalize a date-like value (ISO string, datetime, Timestamp) to a date."""
    if value is None or value is pd.NaT:
        raise ValueError("missing date")
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()


class ForecastStatus(Enum):
    """Outcome tag of a forecast call"""
    OK = "ok"
    INSUFFICIENT_DATA = "insufficient_data"
    COMPUTATION_ERROR = "computation_error"


@dataclass(frozen=True)
class SaleRecord:
    """One historical sales line for a product at a market on a date."""
    sale_date: date
    product_id: str
    market_id: str
    quantity_sold: float
    unit_price: float
    unit_cost: float
    variant_id: Optional[str] = None
    waste_qty: Optional[float] = None
    weather_condition: Optional[str] = None
    product_name: Optional[str] = None
    market_name: Optional[str] = None

    @property
    def total_revenue(self) -> float:
        return self.quantity_sold * self.unit_price


@dataclass(frozen=True)
class ForecastLogEntry:
    """A forecast previously issued by the engine and stored by the host."""
    product_id: str
    market_id: str
    forecast_for_date: date
    optimal_quantity: float
    weather_forecast: Optional[str] = None
    product_name: Optional[str] = None
    market_name: Optional[str] = None


@dataclass
class CleanedSample:
    """A sale record after filtering and outlier correction"""
    sale_date: date
    quantity: float
    cleaned_quantity: float
    days_ago: int
    day_of_week: int  # 0=Monday
    is_outlier: bool = False
    is_special_event: bool = False
    is_same_weekday: bool = False
    weather_condition: Optional[str] = None
    waste_qty: float = 0.0
    unit_price: float = 0.0
    unit_cost: float = 0.0


@dataclass
class CleaningStats:
    total_points: int = 0
    same_day_points: int = 0
    outliers_detected: int = 0
    outlier_rate: float = 0.0
    q1: float = 0.0
    q3: float = 0.0
    iqr: float = 0.0
    median: float = 0.0
    average_sales: float = 0.0
    same_day_average: float = 0.0
    rejected_records: int = 0


@dataclass
class CleaningResult:
    samples: List[CleanedSample] = field(default_factory=list)
    same_weekday_samples: List[CleanedSample] = field(default_factory=list)
    stats: CleaningStats = field(default_factory=CleaningStats)

    @property
    def is_empty(self) -> bool:
        return len(self.samples) == 0


@dataclass
class SeasonalityFactors:
    """Self-learned multipliers for one product at one market."""
    product_id: str
    market_id: str
    baseline: float = 0.0
    weekday_factors: Dict[int, float] = field(
        default_factory=lambda: {day: 1.0 for day in range(7)}
    )
    weather_factors: Dict[str, float] = field(default_factory=dict)
    payday_factor: float = 1.0
    data_points: int = 0
    confidence: float = 0.0


@dataclass
class MarketProfile:
    """Behavioral profile of a market learned from all of its sales."""
    market_id: str
    market_name: str = ''
    avg_basket_size: float = 1.0
    avg_transaction_value: float = 0.0
    avg_daily_revenue: float = 0.0
    peak_day_of_week: int = 5
    worst_day_of_week: int = 0
    day_of_week_factors: Dict[int, float] = field(default_factory=dict)
    weather_sensitivity: float = 0.5
    payday_sensitivity: float = 1.2
    holiday_sensitivity: float = 1.0
    top_products: List[Dict[str, Any]] = field(default_factory=list)
    product_mix: Dict[str, float] = field(default_factory=dict)
    volatility: float = 0.3
    data_points: int = 0
    market_type: str = 'medium-traffic'
    reliability: str = 'low'

    @property
    def has_data(self) -> bool:
        return self.data_points > 0


@dataclass
class ForecastError:
    """Realized error of one past forecast (error = forecast - actual)."""
    product_id: str
    market_id: str
    forecast_date: date
    forecast_qty: float
    actual_qty: float
    error: float
    error_percent: float = 0.0
    day_of_week: int = 0
    day_of_month: int = 1
    weather: Optional[str] = None
    is_payday: bool = False
    is_stockout: bool = False
    product_name: Optional[str] = None


@dataclass
class BiasCorrection:
    product_id: str
    market_id: str
    avg_bias: float
    exponential_bias: float
    bias_count: int
    day_of_week_bias: Dict[int, float] = field(default_factory=dict)
    momentum_slope: float = 0.0
    volatility: float = 0.0
    mean_demand: float = 0.0
    adaptive_gain: float = 1.0
    confidence_score: float = 0.0


@dataclass
class PatternInsight:
    """A recurring conditional deviation found in the forecast error log."""
    type: str  # weekday, micro-cycle, weather
    product_id: str
    description: str
    factor: float
    confidence: float
    data_points: int
    condition: Optional[str] = None

    def matches(self, target_date: date, weather: Optional[str] = None) -> bool:
        """Whether the pattern's trigger condition holds for the target day."""
        if self.condition == 'dayOfMonth:14-16':
            return 14 <= target_date.day <= 16
        if self.condition == 'rain+weekend':
            return target_date.weekday() >= 5 and weather in ('rain', 'storm')
        if self.condition and self.condition.startswith('weekday:'):
            return target_date.weekday() == int(self.condition.split(':')[1])
        return False


@dataclass
class LearningStats:
    total_forecasts: int = 0
    avg_accuracy: float = 0.0
    avg_bias: float = 0.0
    improvement_trend: float = 0.0
    top_patterns: List[PatternInsight] = field(default_factory=list)


@dataclass
class PredictionInterval:
    lower: int = 0
    upper: int = 0


@dataclass
class Economics:
    unit_price: float = 0.0
    unit_cost: float = 0.0
    expected_demand: float = 0.0
    expected_sales: float = 0.0
    expected_waste: float = 0.0
    expected_revenue: float = 0.0
    expected_cost: float = 0.0
    expected_profit: float = 0.0


@dataclass
class Diagnostic:
    """Structured reason attached to a non-OK forecast."""
    stage: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StageAdjustment:
    """One entry of the per-stage breakdown."""
    stage: str
    name: str
    factor: Optional[float] = None
    delta: Optional[float] = None
    value_after: Optional[float] = None


@dataclass
class ForecastOutput:
    """
    Final recommendation for one product at one market on one date.

    ``success`` is False and ``status`` is not OK when a fallback quantity
    was substituted; ``diagnostic`` then says which stage gave up and why.
    """
    product_id: str
    market_id: str
    target_date: date
    optimal_quantity: int
    success: bool = True
    status: ForecastStatus = ForecastStatus.OK
    diagnostic: Optional[Diagnostic] = None
    no_data: bool = False

    baseline_forecast: float = 0.0
    weather_adjusted_forecast: float = 0.0
    lambda_: float = 0.0
    distribution_type: str = 'poisson'
    variance: float = 0.0

    critical_ratio: float = 0.0
    service_level_target: float = 0.0
    stockout_probability: float = 0.0
    waste_probability: float = 0.0

    confidence_level: str = 'low'
    smart_confidence: float = 0.0
    data_points: int = 0
    same_day_points: int = 0
    outliers_removed: int = 0

    prediction_interval: PredictionInterval = field(default_factory=PredictionInterval)
    economics: Economics = field(default_factory=Economics)

    weather_condition: str = 'sunny'
    weather_factor: float = 1.0
    calendar_factors: List[Dict[str, Any]] = field(default_factory=list)
    seasonality_factor: float = 1.0
    market_factor: float = 1.0
    learning_applied: bool = False
    bias_correction: float = 0.0
    volatility: float = 0.0
    momentum_trend: float = 0.0

    adjustments: List[StageAdjustment] = field(default_factory=list)
    explanation: List[str] = field(default_factory=list)
    upcoming_events: List[Dict[str, Any]] = field(default_factory=list)
    seasonality: Optional[SeasonalityFactors] = None
    cleaning_stats: Optional[CleaningStats] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result['status'] = self.status.value
        result['lambda'] = result.pop('lambda_')
        return result


def records_to_frame(records: List[SaleRecord]) -> pd.DataFrame:
    """Convert sale records into a DataFrame with one row per record."""
    if not records:
        return pd.DataFrame(columns=SALE_COLUMNS)
    frame = pd.DataFrame([asdict(r) for r in records], columns=SALE_COLUMNS)
    frame['sale_date'] = pd.to_datetime(frame['sale_date'].map(to_date))
    return frame


def _optional(row: Dict[str, Any], key: str) -> Any:
    value = row.get(key)
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    return value


def records_from_frame(df: pd.DataFrame) -> List[SaleRecord]:
    """
    Build sale records from a DataFrame (e.g. a CSV export of the ledger).

    Missing optional columns are tolerated; NaN optional values become None.
    """
    records = []
    for row in df.to_dict('records'):
        variant_id = _optional(row, 'variant_id')
        records.append(SaleRecord(
            sale_date=to_date(row['sale_date']),
            product_id=str(row['product_id']),
            market_id=str(row['market_id']),
            quantity_sold=float(row['quantity_sold']),
            unit_price=float(_optional(row, 'unit_price') or 0.0),
            unit_cost=float(_optional(row, 'unit_cost') or 0.0),
            variant_id=str(variant_id) if variant_id is not None else None,
            waste_qty=_optional(row, 'waste_qty'),
            weather_condition=_optional(row, 'weather_condition'),
            product_name=_optional(row, 'product_name'),
            market_name=_optional(row, 'market_name'),
        ))
    return records


def log_entries_from_frame(df: pd.DataFrame) -> List[ForecastLogEntry]:
    """Build forecast log entries from a DataFrame of stored forecasts."""
    entries = []
    for row in df.to_dict('records'):
        entries.append(ForecastLogEntry(
            product_id=str(row['product_id']),
            market_id=str(row['market_id']),
            forecast_for_date=to_date(row['forecast_for_date']),
            optimal_quantity=float(row['optimal_quantity']),
            weather_forecast=_optional(row, 'weather_forecast'),
            product_name=_optional(row, 'product_name'),
            market_name=_optional(row, 'market_name'),
        ))
    return entries
