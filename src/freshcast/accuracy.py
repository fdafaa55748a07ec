"""
FreshCast - Forecast Accuracy Analysis
=======================================

Compares logged production forecasts with realized sales and rolls the
comparison up per market, weekday, product and date, with actionable
recommendations where accuracy is poor or bias is persistent.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

from .models import ForecastLogEntry, SaleRecord, records_to_frame
from .utils.logger import get_logger
from .validators import validate_sales

logger = get_logger(__name__)

DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']

RECORD_COLUMNS = [
    'date', 'day_of_week', 'day_name', 'market_id', 'market_name', 'product_id',
    'product_name', 'forecast_qty', 'actual_qty', 'diff', 'accuracy', 'waste',
    'stockout', 'waste_cost', 'lost_margin',
]

MIN_ACCURACY = 60.0
MAX_BIAS_PERCENT = 20.0
HIGH_BIAS_PERCENT = 30.0


def record_accuracy(forecast_qty: float, actual_qty: float) -> float:
    """Percentage accuracy of one forecast (100 for a correct zero forecast)."""
    if actual_qty > 0:
        return max(0.0, (1 - abs(forecast_qty - actual_qty) / actual_qty) * 100)
    return 100.0 if forecast_qty == 0 else 0.0


@dataclass
class AccuracyReport:
    records: pd.DataFrame
    summary: Dict[str, Any] = field(default_factory=dict)
    market_accuracy: List[Dict[str, Any]] = field(default_factory=list)
    day_accuracy: List[Dict[str, Any]] = field(default_factory=list)
    product_accuracy: List[Dict[str, Any]] = field(default_factory=list)
    daily_trend: List[Dict[str, Any]] = field(default_factory=list)
    recommendations: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        records = self.records.copy()
        records['date'] = records['date'].astype(str)
        return {
            'records': records.to_dict('records'),
            'summary': self.summary,
            'market_accuracy': self.market_accuracy,
            'day_accuracy': self.day_accuracy,
            'product_accuracy': self.product_accuracy,
            'daily_trend': self.daily_trend,
            'recommendations': self.recommendations,
        }


def _comparison_records(
    forecast_log: List[ForecastLogEntry],
    sales: pd.DataFrame,
    catalog: Dict[str, Dict[str, float]]
) -> pd.DataFrame:
    rows = []
    for entry in forecast_log:
        day = entry.forecast_for_date
        actual = 0.0
        if not sales.empty:
            mask = (sales['day'] == day) & (
                (sales['product_id'] == entry.product_id) | (sales['variant_id'] == entry.product_id)
            )
            if entry.market_id:
                mask &= sales['market_id'] == entry.market_id
            actual = float(sales.loc[mask, 'quantity_sold'].sum())

        prices = catalog.get(entry.product_id, {})
        unit_price = float(prices.get('unit_price', 0.0))
        unit_cost = float(prices.get('unit_cost', 0.0))

        forecast_qty = float(entry.optimal_quantity)
        diff = forecast_qty - actual
        rows.append({
            'date': day,
            'day_of_week': day.weekday(),
            'day_name': DAY_NAMES[day.weekday()],
            'market_id': entry.market_id or 'all',
            'market_name': entry.market_name or entry.market_id or 'All markets',
            'product_id': entry.product_id,
            'product_name': entry.product_name or entry.product_id,
            'forecast_qty': forecast_qty,
            'actual_qty': actual,
            'diff': diff,
            'accuracy': record_accuracy(forecast_qty, actual),
            'waste': max(0.0, diff),
            'stockout': max(0.0, -diff),
            'waste_cost': max(0.0, diff) * unit_cost,
            'lost_margin': max(0.0, -diff) * (unit_price - unit_cost),
        })
    return pd.DataFrame(rows, columns=RECORD_COLUMNS)


def _rollup(records: pd.DataFrame, key: str) -> pd.DataFrame:
    """Per-group accuracy over records with sales, plus totals over all records."""
    valid = records[records['actual_qty'] > 0]
    totals = records.groupby(key).agg(
        total_forecasts=('forecast_qty', 'size'),
        waste_qty=('waste', 'sum'),
        stockout_qty=('stockout', 'sum'),
        waste_cost=('waste_cost', 'sum'),
        lost_margin=('lost_margin', 'sum'),
        total_diff=('diff', 'sum'),
        avg_bias=('diff', 'mean'),
    )
    valid_stats = valid.groupby(key).agg(
        accuracy=('accuracy', 'mean'),
        sample_size=('accuracy', 'size'),
        actual_total=('actual_qty', 'sum'),
    )
    merged = totals.join(valid_stats, how='left')
    merged['accuracy'] = merged['accuracy'].fillna(0.0)
    merged['sample_size'] = merged['sample_size'].fillna(0).astype(int)
    merged['actual_total'] = merged['actual_total'].fillna(0.0)
    merged['bias_percent'] = [
        (diff / actual) * 100 if actual > 0 else 0.0
        for diff, actual in zip(merged['total_diff'], merged['actual_total'])
    ]
    return merged


def analyze_accuracy(
    forecast_log: List[ForecastLogEntry],
    sales: List[SaleRecord],
    catalog: Optional[Dict[str, Dict[str, float]]] = None
) -> AccuracyReport:
    """
    Compare logged forecasts with the quantities actually sold.

    Args:
        forecast_log: Prior forecasts
        sales: Sales ledger
        catalog: product_id -> {'unit_price', 'unit_cost'} for cost figures

    Returns:
        AccuracyReport with per-record comparison, rollups and recommendations
    """
    catalog = catalog or {}
    valid_sales, _ = validate_sales(sales)
    sales_df = records_to_frame(valid_sales)
    if not sales_df.empty:
        sales_df['day'] = sales_df['sale_date'].dt.date

    records = _comparison_records(forecast_log, sales_df, catalog)
    if records.empty:
        return AccuracyReport(records=records, summary={'total_forecasts': 0})

    valid = records[records['actual_qty'] > 0]
    actual_total = float(valid['actual_qty'].sum())

    summary = {
        'total_days': int(records['date'].nunique()),
        'days_with_data': int(valid['date'].nunique()),
        'overall_accuracy': float(valid['accuracy'].mean()) if not valid.empty else 0.0,
        'overall_bias_percent': float(records['diff'].sum()) / actual_total * 100 if actual_total > 0 else 0.0,
        'total_forecasts': len(records),
        'total_waste_qty': float(records['waste'].sum()),
        'total_stockout_qty': float(records['stockout'].sum()),
        'total_waste_cost': float(records['waste_cost'].sum()),
        'total_lost_margin': float(records['lost_margin'].sum()),
    }

    markets = _rollup(records, 'market_id')
    market_names = records.groupby('market_id')['market_name'].first()
    market_accuracy = [
        {
            'market_id': market_id,
            'market_name': market_names[market_id],
            'accuracy': float(row['accuracy']),
            'sample_size': int(row['sample_size']),
            'total_forecasts': int(row['total_forecasts']),
            'waste_qty': float(row['waste_qty']),
            'stockout_qty': float(row['stockout_qty']),
            'avg_bias': float(row['avg_bias']),
        }
        for market_id, row in markets.sort_values('accuracy', ascending=False).iterrows()
    ]

    valid_by_day = valid.groupby('day_of_week')['accuracy'].agg(['mean', 'size'])
    day_accuracy = [
        {
            'day': day,
            'day_name': DAY_NAMES[day],
            'accuracy': float(valid_by_day.loc[day, 'mean']) if day in valid_by_day.index else 0.0,
            'sample_size': int(valid_by_day.loc[day, 'size']) if day in valid_by_day.index else 0,
        }
        for day in range(7)
    ]

    products = _rollup(records, 'product_id')
    product_names = records.groupby('product_id')['product_name'].first()
    product_accuracy = [
        {
            'product_id': product_id,
            'product_name': product_names[product_id],
            'accuracy': float(row['accuracy']),
            'sample_size': int(row['sample_size']),
            'avg_bias': float(row['avg_bias']),
            'bias_percent': float(row['bias_percent']),
            'waste_qty': float(row['waste_qty']),
            'stockout_qty': float(row['stockout_qty']),
            'waste_cost': float(row['waste_cost']),
            'lost_margin': float(row['lost_margin']),
        }
        for product_id, row in products.sort_values('accuracy', ascending=False).iterrows()
    ]

    by_date = _rollup(records, 'date').sort_index()
    daily_trend = [
        {
            'date': day.isoformat(),
            'accuracy': float(row['accuracy']),
            'forecast_count': int(row['total_forecasts']),
            'match_count': int(row['sample_size']),
        }
        for day, row in by_date.iterrows()
    ]

    recommendations = _recommendations(market_accuracy, product_accuracy, day_accuracy)

    logger.info(
        f"Accuracy analysis: {len(records)} forecasts, "
        f"overall {summary['overall_accuracy']:.1f}%, {len(recommendations)} recommendations"
    )

    return AccuracyReport(
        records=records,
        summary=summary,
        market_accuracy=market_accuracy,
        day_accuracy=day_accuracy,
        product_accuracy=product_accuracy,
        daily_trend=daily_trend,
        recommendations=recommendations,
    )


def _recommendations(market_accuracy, product_accuracy, day_accuracy) -> List[Dict[str, str]]:
    recommendations = []

    for market in market_accuracy:
        if market['accuracy'] < MIN_ACCURACY and market['sample_size'] >= 2:
            recommendations.append({
                'type': 'market',
                'target': market['market_name'],
                'issue': f"Accuracy {market['accuracy']:.0f}% (below target)",
                'suggestion': 'Reduce production' if market['avg_bias'] > 0 else 'Increase production',
                'priority': 'high',
            })

    for product in product_accuracy:
        bias_pct = product['bias_percent']
        if abs(bias_pct) > MAX_BIAS_PERCENT and product['sample_size'] >= 2:
            over = bias_pct > 0
            recommendations.append({
                'type': 'product',
                'target': product['product_name'],
                'issue': f"Usually {'over' if over else 'under'}-produced by {abs(bias_pct):.0f}%",
                'suggestion': f"{'Reduce' if over else 'Increase'} production by "
                              f"~{abs(product['avg_bias']):.0f} units",
                'priority': 'high' if abs(bias_pct) > HIGH_BIAS_PERCENT else 'medium',
            })

    for day in day_accuracy:
        if day['accuracy'] < MIN_ACCURACY and day['sample_size'] >= 2:
            recommendations.append({
                'type': 'day',
                'target': day['day_name'],
                'issue': f"Accuracy {day['accuracy']:.0f}%",
                'suggestion': 'Review the sales pattern of this weekday',
                'priority': 'medium',
            })

    return recommendations
