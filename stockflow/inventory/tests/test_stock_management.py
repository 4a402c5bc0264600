from decimal import Decimal

import pytest
from prices import Money

from ...core.events import InventoryAdjusted, PurchaseOrderStatusChanged
from ...core.exceptions import InvalidArgument, InvalidTransition, NotFound
from ...warehouse import InventoryTransactionType
from ...warehouse.models import InventoryTransaction, Stock
from .. import PurchaseOrderStatus
from ..models import PurchaseOrder
from ..stock_management import (
    PurchaseOrderLineData,
    create_purchase_order,
    delete_purchase_order,
    update_purchase_order_status,
)


@pytest.fixture
def purchase_order(supplier, variant, variant_factory):
    other = variant_factory("LAMP-WHT")
    return create_purchase_order(
        supplier.pk,
        [
            PurchaseOrderLineData(variant.pk, 10, Decimal("12.00")),
            PurchaseOrderLineData(other.pk, 4, Decimal("12.00"), Decimal("3.00")),
            PurchaseOrderLineData(variant.pk, 5, Decimal("11.00")),
        ],
    )


def test_create_purchase_order_computes_totals(purchase_order):
    # then
    assert purchase_order.status == PurchaseOrderStatus.PENDING
    assert purchase_order.lines.count() == 3
    assert purchase_order.total_amount == Decimal("220.00")
    assert purchase_order.total == Money(Decimal("220.00"), "EUR")
    assert not Stock.objects.exists()


def test_create_purchase_order_validates_input(supplier, variant):
    with pytest.raises(NotFound):
        create_purchase_order(
            supplier.pk + 1, [PurchaseOrderLineData(variant.pk, 1, Decimal(1))]
        )
    with pytest.raises(InvalidArgument):
        create_purchase_order(supplier.pk, [])
    with pytest.raises(InvalidArgument):
        create_purchase_order(
            supplier.pk, [PurchaseOrderLineData(variant.pk, -2, Decimal(1))]
        )
    assert not PurchaseOrder.objects.exists()


def test_receive_purchase_order_increases_stock(purchase_order, variant, warehouse):
    # when
    update_purchase_order_status(purchase_order.pk, PurchaseOrderStatus.ORDERED)
    order = update_purchase_order_status(
        purchase_order.pk, PurchaseOrderStatus.RECEIVED, warehouse_id=warehouse.pk
    )

    # then
    assert order.status == PurchaseOrderStatus.RECEIVED
    assert order.received_warehouse_id == warehouse.pk
    assert order.received_at is not None
    stock = Stock.objects.get(product_variant=variant, warehouse=warehouse)
    assert stock.quantity == 15
    rows = InventoryTransaction.objects.filter(reference_id=order.pk)
    assert rows.count() == 3
    assert {row.transaction_type for row in rows} == {InventoryTransactionType.IN}
    assert {row.reference_type for row in rows} == {"PurchaseOrder"}
    assert {row.notes for row in rows} == {"Purchase order reception"}


def test_receive_requires_warehouse(purchase_order):
    with pytest.raises(InvalidArgument):
        update_purchase_order_status(purchase_order.pk, PurchaseOrderStatus.RECEIVED)
    with pytest.raises(NotFound):
        update_purchase_order_status(
            purchase_order.pk, PurchaseOrderStatus.RECEIVED, warehouse_id=12345
        )
    purchase_order.refresh_from_db()
    assert purchase_order.status == PurchaseOrderStatus.PENDING


def test_receive_publishes_one_event_per_variant(
    purchase_order,
    variant,
    warehouse,
    captured_events,
    django_capture_on_commit_callbacks,
):
    # when
    with django_capture_on_commit_callbacks(execute=True):
        update_purchase_order_status(
            purchase_order.pk, PurchaseOrderStatus.RECEIVED, warehouse_id=warehouse.pk
        )

    # then
    adjusted = [e for e in captured_events if isinstance(e, InventoryAdjusted)]
    assert len(adjusted) == 2
    lamp = next(e for e in adjusted if e.variant_id == variant.pk)
    assert lamp.quantity == 15
    [detail] = lamp.details
    assert (detail.quantity_before, detail.quantity_after) == (0, 15)
    [changed] = [
        e for e in captured_events if isinstance(e, PurchaseOrderStatusChanged)
    ]
    assert changed.previous_status == PurchaseOrderStatus.PENDING
    assert changed.new_status == PurchaseOrderStatus.RECEIVED
    assert changed.supplier_name == purchase_order.supplier.name


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (PurchaseOrderStatus.PENDING, PurchaseOrderStatus.PENDING),
        (PurchaseOrderStatus.ORDERED, PurchaseOrderStatus.PENDING),
        (PurchaseOrderStatus.CANCELLED, PurchaseOrderStatus.ORDERED),
        (PurchaseOrderStatus.RECEIVED, PurchaseOrderStatus.CANCELLED),
    ],
)
def test_invalid_purchase_order_transitions(purchase_order, current, target):
    # given
    PurchaseOrder.objects.filter(pk=purchase_order.pk).update(status=current)

    # when & then
    with pytest.raises(InvalidTransition) as exc:
        update_purchase_order_status(purchase_order.pk, target)
    assert exc.value.current_status == current
    assert exc.value.target_status == target


def test_cancel_purchase_order_moves_no_stock(purchase_order):
    # when
    order = update_purchase_order_status(
        purchase_order.pk, PurchaseOrderStatus.CANCELLED
    )

    # then
    assert order.status == PurchaseOrderStatus.CANCELLED
    assert not InventoryTransaction.objects.exists()


def test_delete_purchase_order(purchase_order, warehouse):
    # given
    received = create_purchase_order(
        purchase_order.supplier_id,
        [PurchaseOrderLineData(purchase_order.lines.first().variant_id, 1, Decimal(1))],
    )
    update_purchase_order_status(
        received.pk, PurchaseOrderStatus.RECEIVED, warehouse_id=warehouse.pk
    )

    # when
    delete_purchase_order(purchase_order.pk)

    # then
    assert not PurchaseOrder.objects.filter(pk=purchase_order.pk).exists()
    with pytest.raises(InvalidTransition):
        delete_purchase_order(received.pk)


def test_unknown_purchase_order_status_is_invalid_argument(purchase_order):
    # given
    PurchaseOrder.objects.filter(pk=purchase_order.pk).update(
        status=PurchaseOrderStatus.RECEIVED
    )

    # when & then
    with pytest.raises(InvalidArgument) as exc:
        update_purchase_order_status(purchase_order.pk, "lost")
    assert exc.value.field == "status"
