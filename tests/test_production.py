"""
Tests for batch production and stock transfer planning.
"""

import pytest

from freshcast.exceptions import InvalidInputError
from freshcast.production import calculate_daily_production, calculate_stock_transfer


@pytest.mark.parametrize("stock,target,batches,total,surplus,status", [
    (47, 144, 3, 155, 11, 'Production Needed'),
    (0, 144, 4, 144, 0, 'Production Needed'),
    (140, 144, 1, 176, 32, 'Production Needed'),
    (150, 144, 0, 150, 6, 'Stock Sufficient'),
    (144, 144, 0, 144, 0, 'Stock Sufficient'),
])
def test_daily_production(stock, target, batches, total, surplus, status):
    plan = calculate_daily_production(stock, target, 36)

    assert plan.batches_to_bake == batches
    assert plan.total_available == total
    assert plan.surplus == surplus
    assert plan.status == status
    assert plan.total_available >= target


def test_invalid_batch_size():
    with pytest.raises(InvalidInputError) as exc:
        calculate_daily_production(10, 100, 0)
    assert exc.value.stage == 'production'


def test_transfer_fills_shop():
    transfer = calculate_stock_transfer(155, 100)
    assert transfer.transfer_qty == 100
    assert transfer.keep_at_home == 55
    assert transfer.shop_full


def test_transfer_everything_when_shop_has_room():
    transfer = calculate_stock_transfer(50, 100)
    assert transfer.transfer_qty == 50
    assert transfer.keep_at_home == 0
    assert not transfer.shop_full


def test_negative_capacity():
    with pytest.raises(ValueError):
        calculate_stock_transfer(50, -1)
