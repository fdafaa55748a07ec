"""
FreshCast - Production Planning Helpers
========================================

Turns a recommended quantity into a production run: carry-over stock,
fixed batch sizes, and the transfer from kitchen to a capacity-limited shop.
"""

import math
from dataclasses import dataclass

from .exceptions import InvalidInputError


@dataclass
class BatchPlan:
    batches_to_bake: int
    produced_qty: int
    total_available: int
    shortfall: int
    surplus: int
    status: str  # 'Production Needed' or 'Stock Sufficient'


@dataclass
class StockTransfer:
    transfer_qty: int
    keep_at_home: int
    shop_full: bool


def calculate_daily_production(current_stock: int, daily_target: int, batch_size: int) -> BatchPlan:
    """
    Whole batches needed to reach the daily target on top of leftover stock.

    Rounds up so the target is never missed.

    Example:
        >>> calculate_daily_production(47, 144, 36).batches_to_bake
        3
    """
    if batch_size <= 0:
        raise InvalidInputError("Batch size must be greater than 0", stage='production',
                                details={'batch_size': batch_size})

    shortfall = daily_target - current_stock
    if shortfall <= 0:
        return BatchPlan(
            batches_to_bake=0,
            produced_qty=0,
            total_available=current_stock,
            shortfall=0,
            surplus=current_stock - daily_target,
            status='Stock Sufficient',
        )

    batches = math.ceil(shortfall / batch_size)
    produced = batches * batch_size
    total = current_stock + produced
    return BatchPlan(
        batches_to_bake=batches,
        produced_qty=produced,
        total_available=total,
        shortfall=shortfall,
        surplus=total - daily_target,
        status='Production Needed',
    )


def calculate_stock_transfer(total_available: int, shop_capacity: int) -> StockTransfer:
    """Move as much stock as the shop holds; the rest stays home for tomorrow."""
    if shop_capacity < 0:
        raise InvalidInputError("Shop capacity cannot be negative", stage='production',
                                details={'shop_capacity': shop_capacity})

    transfer = min(total_available, shop_capacity)
    return StockTransfer(
        transfer_qty=transfer,
        keep_at_home=total_available - transfer,
        shop_full=transfer >= shop_capacity,
    )
