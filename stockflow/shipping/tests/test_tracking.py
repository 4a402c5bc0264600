from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from ...core.events import SalesOrderStatusChanged
from ...core.exceptions import InvalidArgument, InvalidTransition, NotFound
from ...order import SalesOrderStatus
from ...order.actions import OrderLineData, create_sales_order, update_sales_order_status
from ...warehouse import AllocationStatus
from ...warehouse.models import Allocation, InventoryTransaction
from .. import ShipmentStatus
from ..models import Shipment, ShipmentEvent
from ..tracking import (
    ShipmentLineData,
    create_shipment,
    record_shipment_event,
    update_shipment_status,
)


@pytest.fixture
def order(customer, carrier, variant, stock):
    return create_sales_order(
        customer.pk,
        [OrderLineData(variant.pk, 5, Decimal("25.00"))],
        carrier_id=carrier.pk,
    )


@pytest.fixture
def line(order):
    return order.lines.get()


def test_create_shipment_ships_reserved_units(order, line, stock, warehouse, carrier):
    # when
    shipment = create_shipment(
        order.pk,
        warehouse.pk,
        [ShipmentLineData(line.pk, 5, weight=Decimal("7.5"))],
        tracking_number="TRK-1",
    )

    # then
    assert shipment.status == ShipmentStatus.CREATED
    assert shipment.carrier_id == carrier.pk
    assert shipment.lines.get().quantity == 5
    assert Shipment.objects.count() == 1
    stock.refresh_from_db()
    assert (stock.quantity, stock.quantity_reserved) == (10, 0)
    order.refresh_from_db()
    assert order.status == SalesOrderStatus.SHIPPED
    row = InventoryTransaction.objects.get()
    assert (row.reference_type, row.reference_id) == ("SalesOrder", order.pk)


def test_partial_shipment_confirms_pending_order(order, line, warehouse):
    # when
    shipment = create_shipment(
        order.pk, warehouse.pk, [ShipmentLineData(line.pk, 2)], shipped_at=timezone.now()
    )

    # then
    assert shipment.status == ShipmentStatus.IN_TRANSIT
    order.refresh_from_db()
    assert order.status == SalesOrderStatus.CONFIRMED
    allocation = Allocation.objects.get()
    assert allocation.quantity_fulfilled == 2
    assert allocation.status == AllocationStatus.RESERVED


def test_create_shipment_validation(order, line, warehouse, second_warehouse):
    with pytest.raises(InvalidArgument):
        create_shipment(order.pk, warehouse.pk, [])
    with pytest.raises(InvalidArgument):
        create_shipment(order.pk, warehouse.pk, [ShipmentLineData(line.pk, 6)])
    with pytest.raises(InvalidArgument):
        create_shipment(
            order.pk,
            warehouse.pk,
            [ShipmentLineData(line.pk, 3), ShipmentLineData(line.pk, 3)],
        )
    with pytest.raises(NotFound):
        create_shipment(order.pk, warehouse.pk, [ShipmentLineData(line.pk + 100, 1)])
    with pytest.raises(NotFound):
        create_shipment(order.pk, second_warehouse.pk, [ShipmentLineData(line.pk, 1)])
    with pytest.raises(NotFound):
        create_shipment(order.pk + 100, warehouse.pk, [ShipmentLineData(line.pk, 1)])
    assert not Shipment.objects.exists()


def test_cancelled_order_cannot_be_shipped(order, line, warehouse):
    # given
    update_sales_order_status(order.pk, SalesOrderStatus.CANCELLED)

    # when & then
    with pytest.raises(InvalidTransition):
        create_shipment(order.pk, warehouse.pk, [ShipmentLineData(line.pk, 1)])


def test_shipment_events_are_never_deduplicated(order, line, warehouse):
    # given
    shipment = create_shipment(order.pk, warehouse.pk, [ShipmentLineData(line.pk, 1)])
    event_date = timezone.now()

    # when
    record_shipment_event(shipment.pk, " Picked up ", event_date, location="Madrid")
    record_shipment_event(shipment.pk, "Picked up", event_date, location="Madrid")

    # then
    events = ShipmentEvent.objects.filter(shipment=shipment)
    assert events.count() == 2
    assert {event.status for event in events} == {"Picked up"}


def test_shipment_event_requires_status(order, line, warehouse):
    shipment = create_shipment(order.pk, warehouse.pk, [ShipmentLineData(line.pk, 1)])
    with pytest.raises(InvalidArgument):
        record_shipment_event(shipment.pk, "   ")
    with pytest.raises(NotFound):
        record_shipment_event(shipment.pk + 100, "Picked up")


def test_shipment_lifecycle_delivers_order(
    order, line, warehouse, captured_events, django_capture_on_commit_callbacks
):
    # given
    shipment = create_shipment(order.pk, warehouse.pk, [ShipmentLineData(line.pk, 5)])
    estimated = timezone.now() + timedelta(days=2)

    # when
    shipment = update_shipment_status(
        shipment.pk, ShipmentStatus.IN_TRANSIT, estimated_delivery_date=estimated
    )
    assert shipment.shipped_at is not None
    with django_capture_on_commit_callbacks(execute=True):
        shipment = update_shipment_status(shipment.pk, ShipmentStatus.DELIVERED)

    # then
    assert shipment.delivered_at is not None
    assert shipment.estimated_delivery_date == estimated
    allocation = Allocation.objects.get()
    assert allocation.status == AllocationStatus.DELIVERED
    order.refresh_from_db()
    assert order.status == SalesOrderStatus.DELIVERED
    [event] = captured_events
    assert isinstance(event, SalesOrderStatusChanged)
    assert (event.previous_status, event.new_status) == (
        SalesOrderStatus.SHIPPED,
        SalesOrderStatus.DELIVERED,
    )


def test_delivering_partial_shipment_keeps_order_open(order, line, warehouse):
    # given
    shipment = create_shipment(
        order.pk, warehouse.pk, [ShipmentLineData(line.pk, 2)], shipped_at=timezone.now()
    )

    # when
    update_shipment_status(shipment.pk, ShipmentStatus.DELIVERED)

    # then
    order.refresh_from_db()
    assert order.status == SalesOrderStatus.CONFIRMED
    assert Allocation.objects.get().status == AllocationStatus.RESERVED


@pytest.mark.parametrize(
    ("current", "target"),
    [
        (ShipmentStatus.CREATED, ShipmentStatus.CREATED),
        (ShipmentStatus.CREATED, ShipmentStatus.DELIVERED),
        (ShipmentStatus.IN_TRANSIT, ShipmentStatus.CREATED),
        (ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED),
        (ShipmentStatus.CANCELLED, ShipmentStatus.IN_TRANSIT),
    ],
)
def test_invalid_shipment_transitions(order, line, warehouse, current, target):
    # given
    shipment = create_shipment(order.pk, warehouse.pk, [ShipmentLineData(line.pk, 1)])
    Shipment.objects.filter(pk=shipment.pk).update(status=current)

    # when & then
    with pytest.raises(InvalidTransition):
        update_shipment_status(shipment.pk, target)


def test_cancelling_shipment_does_not_restock(order, line, stock, warehouse):
    # given
    shipment = create_shipment(order.pk, warehouse.pk, [ShipmentLineData(line.pk, 3)])

    # when
    shipment = update_shipment_status(shipment.pk, ShipmentStatus.CANCELLED)

    # then
    assert shipment.status == ShipmentStatus.CANCELLED
    stock.refresh_from_db()
    assert (stock.quantity, stock.quantity_reserved) == (12, 2)


def test_unknown_shipment_status_is_invalid_argument(order, line, warehouse):
    # given
    shipment = create_shipment(order.pk, warehouse.pk, [ShipmentLineData(line.pk, 1)])

    # when & then
    with pytest.raises(InvalidArgument) as exc:
        update_shipment_status(shipment.pk, "lost")
    assert exc.value.field == "status"
    shipment.refresh_from_db()
    assert shipment.status == ShipmentStatus.CREATED
