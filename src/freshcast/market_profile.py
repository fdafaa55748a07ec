"""
FreshCast - Market Profiler
============================

Behavioral profile of a market learned from all of its sales: traffic,
day-of-week revenue pattern, volatility, product preferences and
sensitivity multipliers.
"""

from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .config import Config, DEFAULT_CONFIG
from .models import MarketProfile, SaleRecord, records_to_frame
from .utils.logger import get_logger

logger = get_logger(__name__)

DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']


class MarketProfiler:
    """
    Market profiling engine.

    Usage:
        profiler = MarketProfiler(config)
        profile = profiler.build_profile('M1', 'Night Market', sales)
        factor = profiler.day_factor(profile, target_date.weekday())
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or DEFAULT_CONFIG
        self.market_config = self.config.market

    def empty_profile(self, market_id: str, market_name: str = '') -> MarketProfile:
        """Profile for a market without sales, using the generic weekday table."""
        cfg = self.market_config
        return MarketProfile(
            market_id=market_id,
            market_name=market_name,
            day_of_week_factors=dict(cfg.default_day_factors),
            peak_day_of_week=max(cfg.default_day_factors, key=cfg.default_day_factors.get),
            worst_day_of_week=min(cfg.default_day_factors, key=cfg.default_day_factors.get),
            weather_sensitivity=cfg.default_weather_sensitivity,
            payday_sensitivity=cfg.default_payday_sensitivity,
        )

    def build_profile(
        self,
        market_id: str,
        market_name: str,
        records: List[SaleRecord]
    ) -> MarketProfile:
        """
        Build a market profile from every sale recorded at the market.

        Each sale record counts as one transaction. Day-of-week factors are
        the average revenue of that weekday over the average daily revenue.
        """
        cfg = self.market_config
        df = records_to_frame(records)
        if not df.empty:
            df = df[df['market_id'] == market_id]
        if df.empty:
            return self.empty_profile(market_id, market_name)

        df = df.assign(revenue=df['quantity_sold'] * df['unit_price'])

        n_transactions = len(df)
        total_qty = float(df['quantity_sold'].sum())
        total_revenue = float(df['revenue'].sum())

        daily_revenue = df.groupby(df['sale_date'].dt.normalize())['revenue'].sum().sort_index()
        data_points = len(daily_revenue)
        avg_daily_revenue = total_revenue / data_points

        by_weekday = daily_revenue.groupby(daily_revenue.index.dayofweek).mean()
        day_factors = {}
        for day in range(7):
            if day in by_weekday.index:
                day_avg = float(by_weekday.loc[day])
                day_factors[day] = day_avg / avg_daily_revenue if avg_daily_revenue > 0 else 1.0
            else:
                day_factors[day] = 1.0

        if len(by_weekday) > 0:
            peak_day = int(by_weekday.idxmax())
            worst_day = int(by_weekday.idxmin())
        else:
            peak_day, worst_day = 0, 0

        mean_revenue = float(daily_revenue.mean())
        volatility = float(daily_revenue.std(ddof=0)) / mean_revenue if mean_revenue > 0 else 0.0

        products = df.groupby('product_id').agg(
            qty=('quantity_sold', 'sum'),
            product_name=('product_name', 'first'),
        ).sort_values('qty', ascending=False, kind='stable')

        top_products = [
            {
                'product_id': product_id,
                'product_name': row['product_name'],
                'avg_qty': float(row['qty']) / data_points,
            }
            for product_id, row in products.head(cfg.top_products).iterrows()
        ]
        product_mix = {pid: float(qty) / data_points for pid, qty in products['qty'].items()}

        if avg_daily_revenue >= cfg.high_traffic_revenue:
            market_type = 'high-traffic'
        elif avg_daily_revenue >= cfg.medium_traffic_revenue:
            market_type = 'medium-traffic'
        else:
            market_type = 'low-traffic'

        if data_points >= cfg.high_reliability_days:
            reliability = 'high'
        elif data_points >= cfg.medium_reliability_days:
            reliability = 'medium'
        else:
            reliability = 'low'

        profile = MarketProfile(
            market_id=market_id,
            market_name=market_name,
            avg_basket_size=total_qty / n_transactions,
            avg_transaction_value=total_revenue / n_transactions,
            avg_daily_revenue=avg_daily_revenue,
            peak_day_of_week=peak_day,
            worst_day_of_week=worst_day,
            day_of_week_factors=day_factors,
            weather_sensitivity=cfg.default_weather_sensitivity,
            payday_sensitivity=cfg.default_payday_sensitivity,
            holiday_sensitivity=1.0,
            top_products=top_products,
            product_mix=product_mix,
            volatility=volatility,
            data_points=data_points,
            market_type=market_type,
            reliability=reliability,
        )
        logger.debug(f"Market {market_id}: {data_points} days, {market_type}, reliability={reliability}")
        return profile

    def day_factor(self, profile: Optional[MarketProfile], day_of_week: int) -> float:
        """Weekday multiplier (0=Monday); generic table when the profile has none."""
        if profile is not None and profile.day_of_week_factors.get(day_of_week):
            return profile.day_of_week_factors[day_of_week]
        return self.market_config.default_day_factors.get(day_of_week, 1.0)

    def market_factors(
        self,
        profile: Optional[MarketProfile],
        day_of_week: int,
        is_payday: bool,
        include_day: bool = True,
        include_payday: bool = True
    ) -> Tuple[float, List[Dict[str, Any]]]:
        """
        Day-of-week and payday-sensitivity multipliers for a market.

        The weekday factor only counts when it deviates more than 5% from 1.

        Returns:
            (total factor, list of {'name', 'factor'} entries)
        """
        factors = []
        total = 1.0
        if profile is None:
            return total, factors

        if include_day:
            day_factor = self.day_factor(profile, day_of_week)
            if abs(day_factor - 1) > 0.05:
                label = f"{DAY_NAMES[day_of_week]} ({profile.market_name or profile.market_id})"
                factors.append({'name': label, 'factor': day_factor})
                total *= day_factor

        if include_payday and is_payday and profile.payday_sensitivity != 1.0:
            factors.append({'name': 'Payday effect', 'factor': profile.payday_sensitivity})
            total *= profile.payday_sensitivity

        return total, factors

    def market_adjustment(
        self,
        base_qty: float,
        profile: Optional[MarketProfile],
        day_of_week: int,
        is_payday: bool
    ) -> Dict[str, Any]:
        """Apply market factors to a quantity, rounded to whole units."""
        total, factors = self.market_factors(profile, day_of_week, is_payday)
        return {
            'adjusted_qty': max(0, int(round(base_qty * total))),
            'factors': factors,
        }


def product_recommendation(profile: MarketProfile, product_id: str) -> Dict[str, Any]:
    """How a product performs at a market, with a short recommendation."""
    avg_daily_qty = profile.product_mix.get(product_id, 0.0)
    is_top = any(p['product_id'] == product_id for p in profile.top_products)

    if is_top:
        recommendation = 'Best seller at this market - prepare extra'
    elif avg_daily_qty > 0:
        recommendation = f"Sells {avg_daily_qty:.1f} units/day on average"
    else:
        recommendation = 'Never sold at this market yet'

    return {
        'avg_daily_qty': avg_daily_qty,
        'is_top_product': is_top,
        'recommendation': recommendation,
    }


def compare_markets(profiles: List[MarketProfile]) -> List[Dict[str, Any]]:
    """
    Rank markets by total revenue, basket size and sales stability.

    Returns:
        One {'metric', 'markets'} entry per metric; markets carry a 1-based rank.
    """
    if not profiles:
        return []

    metrics = [
        ('Total Revenue', lambda p: p.avg_transaction_value * (p.data_points if p.data_points > 0 else 1)),
        ('Basket Size', lambda p: p.avg_basket_size),
        ('Sales Stability', lambda p: 1 - p.volatility),
    ]

    comparisons = []
    for metric, value_of in metrics:
        ranked = pd.DataFrame([
            {'market_id': p.market_id, 'market_name': p.market_name, 'value': value_of(p)}
            for p in profiles
        ]).sort_values('value', ascending=False, kind='stable').reset_index(drop=True)
        ranked['rank'] = ranked.index + 1
        comparisons.append({'metric': metric, 'markets': ranked.to_dict('records')})

    return comparisons
