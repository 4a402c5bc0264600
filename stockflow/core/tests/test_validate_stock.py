from io import StringIO

import pytest
from django.core.management import CommandError, call_command

from ...warehouse.ledger import increase
from ...warehouse.management import reserve
from ...warehouse.models import Stock


def test_validate_stock_accepts_consistent_positions(
    variant, warehouse, order_line
):
    # given
    increase(variant, warehouse, 10)
    reserve(order_line, variant, 4)
    out = StringIO()

    # when
    call_command("validate_stock", stdout=out)

    # then
    assert "Checked 1 stock positions" in out.getvalue()
    assert "All stock positions match" in out.getvalue()


def test_validate_stock_reports_drift(variant, warehouse):
    # given
    increase(variant, warehouse, 10)
    Stock.objects.update(quantity=12)
    out = StringIO()

    # when & then
    with pytest.raises(CommandError):
        call_command("validate_stock", stdout=out)
    assert "LAMP-BLK in Madrid: quantity 12 (ledger 10)" in out.getvalue()


def test_validate_stock_filters_by_warehouse(
    variant, warehouse, second_warehouse, stock_factory
):
    # given
    increase(variant, warehouse, 3)
    stock_factory(variant, second_warehouse, 5)
    out = StringIO()

    # when
    call_command("validate_stock", warehouse=warehouse.pk, stdout=out)

    # then
    assert "Checked 1 stock positions" in out.getvalue()
