from decimal import Decimal

import pytest

from ..error_codes import StockflowErrorCode
from ..exceptions import (
    InsufficientStock,
    InsufficientStockData,
    InvalidArgument,
    InvalidTransition,
    NotFound,
)
from ..prices import calculate_line_total


def test_insufficient_stock_message_lists_every_item(variant):
    # given
    items = [
        InsufficientStockData(variant, requested_quantity=8, available_quantity=3),
        InsufficientStockData(
            variant, requested_quantity=2, available_quantity=0, warehouse_pk=7
        ),
    ]

    # when
    error = InsufficientStock(items)

    # then
    assert error.code == StockflowErrorCode.INSUFFICIENT_STOCK
    assert "requested 8, available 3. Missing 5 units" in str(error)
    assert "in warehouse 7" in str(error)
    assert [item.shortfall for item in error.items] == [5, 2]


def test_error_codes():
    assert NotFound("Warehouse", 3).code == StockflowErrorCode.NOT_FOUND
    assert str(NotFound("Warehouse", 3)) == "Warehouse 3 does not exist."
    assert InvalidArgument("bad", field="quantity").field == "quantity"
    assert InvalidArgument("bad").code == StockflowErrorCode.INVALID
    error = InvalidTransition("nope", current_status="pending", target_status="shipped")
    assert error.code == StockflowErrorCode.INVALID_TRANSITION
    assert (error.current_status, error.target_status) == ("pending", "shipped")


def test_calculate_line_total():
    assert calculate_line_total(3, Decimal("10.50")) == Decimal("31.50")
    assert calculate_line_total(2, Decimal("5"), Decimal("1.25")) == Decimal("8.75")


@pytest.mark.parametrize(
    ("quantity", "unit_price", "discount"),
    [
        (0, Decimal("1"), None),
        (True, Decimal("1"), None),
        (2.5, Decimal("1"), None),
        (1, Decimal("-1"), None),
        (1, Decimal("1"), Decimal("-0.01")),
    ],
)
def test_calculate_line_total_rejects_invalid_input(quantity, unit_price, discount):
    with pytest.raises(InvalidArgument):
        calculate_line_total(quantity, unit_price, discount)
