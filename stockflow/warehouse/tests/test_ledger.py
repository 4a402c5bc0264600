import pytest

from ...core.exceptions import InsufficientStock, InvalidArgument, NotFound
from .. import InventoryTransactionType
from ..ledger import (
    LedgerReference,
    decrease,
    increase,
    set_absolute,
    summarize_changes,
    transfer,
    update_min_stock_level,
)
from ..models import InventoryTransaction, Stock


def test_increase_creates_stock_position(variant, warehouse):
    # when
    change = increase(variant, warehouse, 7, LedgerReference("PurchaseOrder", 3))

    # then
    stock = Stock.objects.get(product_variant=variant, warehouse=warehouse)
    assert stock.quantity == 7
    assert stock.quantity_reserved == 0
    assert (change.quantity_before, change.quantity_after) == (0, 7)

    row = InventoryTransaction.objects.get()
    assert row.transaction_type == InventoryTransactionType.IN
    assert (row.quantity, row.quantity_before, row.quantity_after) == (7, 0, 7)
    assert (row.reference_type, row.reference_id) == ("PurchaseOrder", 3)


def test_increase_rejects_non_positive_quantity(variant, warehouse):
    with pytest.raises(InvalidArgument):
        increase(variant, warehouse, 0)

    assert not Stock.objects.exists()
    assert not InventoryTransaction.objects.exists()


def test_decrease_only_takes_unreserved_stock(variant, warehouse, stock_factory):
    # given
    stock = stock_factory(variant, warehouse, 10, quantity_reserved=6)

    # when
    with pytest.raises(InsufficientStock) as exc:
        decrease(variant, warehouse, 5)

    # then
    item = exc.value.items[0]
    assert item.requested_quantity == 5
    assert item.available_quantity == 4
    assert item.shortfall == 1
    stock.refresh_from_db()
    assert stock.quantity == 10
    assert not InventoryTransaction.objects.exists()


def test_decrease_records_out_row(variant, stock, warehouse):
    # when
    change = decrease(variant, warehouse, 4)

    # then
    stock.refresh_from_db()
    assert stock.quantity == 11
    assert change.delta == -4
    row = InventoryTransaction.objects.get()
    assert row.transaction_type == InventoryTransactionType.OUT
    assert (row.quantity_before, row.quantity_after) == (15, 11)


def test_decrease_without_stock_position(variant, warehouse):
    with pytest.raises(NotFound):
        decrease(variant, warehouse, 1)


def test_set_absolute_records_before_and_after(variant, stock, warehouse):
    # when
    set_absolute(variant, warehouse, 9, LedgerReference(notes="Cycle count"))

    # then
    stock.refresh_from_db()
    assert stock.quantity == 9
    row = InventoryTransaction.objects.get()
    assert row.transaction_type == InventoryTransactionType.ADJUST
    assert (row.quantity, row.quantity_before, row.quantity_after) == (9, 15, 9)
    assert row.notes == "Cycle count"


def test_set_absolute_below_reserved_is_rejected(variant, warehouse, stock_factory):
    # given
    stock_factory(variant, warehouse, 10, quantity_reserved=4)

    # when & then
    with pytest.raises(InsufficientStock):
        set_absolute(variant, warehouse, 3)


def test_transfer_moves_stock_between_warehouses(
    variant, warehouse, second_warehouse, stock_factory
):
    # given
    source = stock_factory(variant, warehouse, 20)
    destination = stock_factory(variant, second_warehouse, 5)

    # when
    debit, credit = transfer(variant, warehouse, second_warehouse, 5)

    # then
    source.refresh_from_db()
    destination.refresh_from_db()
    assert source.quantity == 15
    assert destination.quantity == 10
    assert (debit.quantity_before, debit.quantity_after) == (20, 15)
    assert (credit.quantity_before, credit.quantity_after) == (5, 10)

    rows = InventoryTransaction.objects.order_by("pk")
    assert [row.transaction_type for row in rows] == [
        InventoryTransactionType.MOVE,
        InventoryTransactionType.MOVE,
    ]
    assert [row.warehouse_id for row in rows] == [warehouse.pk, second_warehouse.pk]


def test_transfer_creates_destination_position(
    variant, stock, warehouse, second_warehouse
):
    # when
    transfer(variant, warehouse, second_warehouse, 3)

    # then
    destination = Stock.objects.get(product_variant=variant, warehouse=second_warehouse)
    assert destination.quantity == 3


def test_transfer_to_same_warehouse_is_rejected(variant, stock, warehouse):
    with pytest.raises(InvalidArgument):
        transfer(variant, warehouse, warehouse, 1)


def test_transfer_respects_reserved_stock(
    variant, warehouse, second_warehouse, stock_factory
):
    # given
    stock_factory(variant, warehouse, 8, quantity_reserved=5)

    # when & then
    with pytest.raises(InsufficientStock):
        transfer(variant, warehouse, second_warehouse, 4)
    assert not Stock.objects.filter(warehouse=second_warehouse).exists()


def test_update_min_stock_level(variant, stock, warehouse):
    # when
    update_min_stock_level(variant, warehouse, 20)

    # then
    stock.refresh_from_db()
    assert stock.min_stock_level == 20
    assert stock.is_below_min_stock_level
    assert not InventoryTransaction.objects.exists()


def test_update_min_stock_level_rejects_negative(variant, stock, warehouse):
    with pytest.raises(InvalidArgument):
        update_min_stock_level(variant, warehouse, -1)


def test_inventory_transactions_are_append_only(variant, stock, warehouse):
    # given
    decrease(variant, warehouse, 1)
    row = InventoryTransaction.objects.get()

    # when & then
    row.notes = "changed"
    with pytest.raises(ValueError):
        row.save()
    with pytest.raises(ValueError):
        row.delete()
    assert InventoryTransaction.objects.count() == 1


def test_summarize_changes_keeps_first_before_and_last_after(
    variant, warehouse, second_warehouse
):
    # given
    first = increase(variant, warehouse, 3)
    second = increase(variant, second_warehouse, 4)
    third = increase(variant, warehouse, 2)

    # when
    summaries = summarize_changes([(first, 3), (second, 4), (third, 2)])

    # then
    assert len(summaries) == 1
    summary = summaries[0]
    assert summary.variant.pk == variant.pk
    assert summary.quantity == 9
    details = {detail.warehouse_id: detail for detail in summary.details}
    assert (
        details[warehouse.pk].quantity_before,
        details[warehouse.pk].quantity_after,
    ) == (0, 5)
    assert details[warehouse.pk].warehouse_name == warehouse.name
    assert (
        details[second_warehouse.pk].quantity_before,
        details[second_warehouse.pk].quantity_after,
    ) == (0, 4)


def test_summarize_changes_groups_by_variant(variant, variant_factory, warehouse):
    # given
    other = variant_factory("LAMP-WHT")
    changes = [
        (increase(variant, warehouse, 1), 1),
        (increase(other, warehouse, 2), 2),
    ]

    # when
    summaries = summarize_changes(changes)

    # then
    assert [summary.variant.sku for summary in summaries] == ["LAMP-BLK", "LAMP-WHT"]
    assert [summary.quantity for summary in summaries] == [1, 2]
