"""
Shared fixtures and sales-history factories.
"""

from datetime import date, timedelta
from typing import List, Optional, Sequence

import pytest

from freshcast.config import Config
from freshcast.models import ForecastError, ForecastLogEntry, SaleRecord

# Monday. March 2026 has no holidays; days 6-24 are outside the payday window.
REFERENCE = date(2026, 3, 16)


def make_sales(
    quantities: Sequence[float],
    start: date = date(2026, 3, 6),
    product_id: str = 'P001',
    market_id: str = 'M1',
    unit_price: float = 30.0,
    unit_cost: float = 10.0,
    weather: Optional[Sequence[Optional[str]]] = None,
    variant_id: Optional[str] = None,
    market_name: Optional[str] = None,
    step_days: int = 1
) -> List[SaleRecord]:
    """One sale record per day starting at ``start``."""
    records = []
    for i, qty in enumerate(quantities):
        records.append(SaleRecord(
            sale_date=start + timedelta(days=i * step_days),
            product_id=product_id,
            market_id=market_id,
            quantity_sold=qty,
            unit_price=unit_price,
            unit_cost=unit_cost,
            variant_id=variant_id,
            weather_condition=weather[i] if weather else None,
            market_name=market_name,
        ))
    return records


def make_error(
    forecast_date: date,
    forecast_qty: float,
    actual_qty: float,
    product_id: str = 'P001',
    market_id: str = 'M1',
    weather: Optional[str] = None,
    is_stockout: Optional[bool] = None
) -> ForecastError:
    error = forecast_qty - actual_qty
    return ForecastError(
        product_id=product_id,
        market_id=market_id,
        forecast_date=forecast_date,
        forecast_qty=forecast_qty,
        actual_qty=actual_qty,
        error=error,
        error_percent=(error / actual_qty) * 100 if actual_qty > 0 else 0.0,
        day_of_week=forecast_date.weekday(),
        day_of_month=forecast_date.day,
        weather=weather,
        is_stockout=actual_qty >= forecast_qty * 0.95 if is_stockout is None else is_stockout,
    )


def make_log(
    dates: Sequence[date],
    quantities: Sequence[float],
    product_id: str = 'P001',
    market_id: str = 'M1',
    weather: Optional[str] = None
) -> List[ForecastLogEntry]:
    return [
        ForecastLogEntry(
            product_id=product_id,
            market_id=market_id,
            forecast_for_date=d,
            optimal_quantity=q,
            weather_forecast=weather,
        )
        for d, q in zip(dates, quantities)
    ]


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def flat_sales():
    """Ten identical sunny days of 20 units, March 6-15 2026."""
    return make_sales([20] * 10, weather=['sunny'] * 10)
