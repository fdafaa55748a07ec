"""
FreshCast - Newsvendor Optimizer
=================================

Optimal production quantity for a perishable product under uncertain
demand, balancing the margin lost on a stockout against the cost of an
unsold unit.

    Cu = selling_price - unit_cost          (underage cost)
    Co = unit_cost + disposal_cost          (overage cost)
    CR = Cu / (Cu + Co), clamped to [0.10, 0.90]
    Q* = smallest k with CDF(k) >= CR
"""

import math
from dataclasses import dataclass, field
from typing import Optional

from .config import Config, DEFAULT_CONFIG
from .distributions import DemandDistribution, safe_number
from .models import Economics, PredictionInterval
from .utils.logger import get_logger

logger = get_logger(__name__)


def critical_ratio(
    selling_price: float,
    unit_cost: float,
    disposal_cost: float = 0.0,
    config: Optional[Config] = None
) -> float:
    """
    Target service level P(demand <= Q*).

    Falls back to the default ratio (0.5) when Cu + Co <= 0 and is always
    clamped into [min_critical_ratio, max_critical_ratio].
    """
    cfg = (config or DEFAULT_CONFIG).newsvendor
    price = safe_number(selling_price)
    cost = safe_number(unit_cost)
    disposal = safe_number(disposal_cost)

    cu = price - cost
    co = cost + disposal
    if cu + co <= 0:
        ratio = cfg.default_critical_ratio
    else:
        ratio = cu / (cu + co)

    return min(cfg.max_critical_ratio, max(cfg.min_critical_ratio, ratio))


def find_quantile(distribution: DemandDistribution, target: float, max_quantity: Optional[int] = None) -> int:
    """
    Smallest non-negative k with CDF(k) >= target, by linear scan.

    The scan stops at ``max_quantity`` (default ceil(2 * mean + 5)).
    """
    if distribution.mean <= 0:
        return 0
    if max_quantity is None:
        max_quantity = int(math.ceil(2 * distribution.mean + 5))

    cumulative = 0.0
    for k in range(max_quantity + 1):
        cumulative += distribution.pmf(k)
        if cumulative >= target:
            return k
    return max_quantity


def prediction_interval(mean: float, variance: float, z: float = 1.28) -> PredictionInterval:
    """[floor(mean - z*sigma), ceil(mean + z*sigma)], lower bound at 0."""
    sigma = math.sqrt(max(0.0, variance))
    return PredictionInterval(
        lower=max(0, int(math.floor(mean - z * sigma))),
        upper=max(0, int(math.ceil(mean + z * sigma))),
    )


def expected_economics(demand: float, quantity: int, selling_price: float, unit_cost: float) -> Economics:
    expected_sales = min(demand, quantity)
    expected_revenue = expected_sales * selling_price
    expected_cost = quantity * unit_cost
    return Economics(
        unit_price=selling_price,
        unit_cost=unit_cost,
        expected_demand=demand,
        expected_sales=expected_sales,
        expected_waste=max(0.0, quantity - demand),
        expected_revenue=expected_revenue,
        expected_cost=expected_cost,
        expected_profit=expected_revenue - expected_cost,
    )


@dataclass
class NewsvendorResult:
    optimal_quantity: int
    critical_ratio: float
    cost_underage: float
    cost_overage: float
    service_level_target: float
    stockout_probability: float
    waste_probability: float
    distribution_type: str = 'poisson'
    variance: float = 0.0
    capped: bool = False
    prediction_interval: PredictionInterval = field(default_factory=PredictionInterval)
    economics: Economics = field(default_factory=Economics)


class NewsvendorOptimizer:
    """
    Newsvendor quantity optimization.

    Usage:
        optimizer = NewsvendorOptimizer(config)
        dist = DemandDistribution.poisson(20.0)
        result = optimizer.optimize(dist, selling_price=30, unit_cost=10)
        result.optimal_quantity
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or DEFAULT_CONFIG
        self.newsvendor_config = self.config.newsvendor

    def optimize(
        self,
        distribution: DemandDistribution,
        selling_price: float,
        unit_cost: float,
        disposal_cost: Optional[float] = None
    ) -> NewsvendorResult:
        """
        Compute Q* and its risk metrics for a demand distribution.

        Args:
            distribution: Poisson or Negative Binomial demand
            selling_price: Unit selling price
            unit_cost: Unit production cost
            disposal_cost: Cost of disposing an unsold unit (default 0)

        Returns:
            NewsvendorResult with quantity, probabilities, 80% prediction
            interval and expected economics
        """
        cfg = self.newsvendor_config
        disposal = cfg.default_disposal_cost if disposal_cost is None else disposal_cost

        price = safe_number(selling_price)
        cost = safe_number(unit_cost)
        ratio = critical_ratio(price, cost, disposal, self.config)
        mean = safe_number(distribution.mean)

        quantity = find_quantile(distribution, ratio)

        capped = False
        if mean > cfg.sanity_cap_min_mean and quantity > cfg.sanity_cap_multiplier * mean:
            capped = True
            logger.warning(f"Q*={quantity} exceeds {cfg.sanity_cap_multiplier}x mean {mean:.1f}, capping")
            quantity = int(math.floor(cfg.sanity_cap_multiplier * mean))

        if mean > 0:
            stockout = 1 - distribution.cdf(quantity)
            waste = distribution.cdf(quantity - 1)
        else:
            stockout, waste = 0.0, 0.0

        if not math.isfinite(stockout):
            stockout = 0.5
        if not math.isfinite(waste):
            waste = 0.5

        variance = distribution.variance if mean > 0 else 0.0

        return NewsvendorResult(
            optimal_quantity=quantity,
            critical_ratio=ratio,
            cost_underage=price - cost,
            cost_overage=cost + safe_number(disposal),
            service_level_target=ratio,
            stockout_probability=min(1.0, max(0.0, stockout)),
            waste_probability=min(1.0, max(0.0, waste)),
            distribution_type=distribution.type,
            variance=variance,
            capped=capped,
            prediction_interval=prediction_interval(mean, variance, cfg.interval_z),
            economics=expected_economics(mean, quantity, price, cost),
        )
