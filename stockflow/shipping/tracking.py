"""Shipment commands: creating shipments, tracking events and status changes."""

import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

import attrs
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from ..core.db import get_or_not_found
from ..core.exceptions import InvalidArgument, InvalidTransition, NotFound
from ..order import SalesOrderStatus
from ..order.models import SalesOrder
from ..order.shipping import (
    is_fully_shipped,
    open_allocations,
    publish_shipment_adjustments,
    publish_status_change,
    ship_allocations,
)
from ..warehouse import AllocationStatus
from ..warehouse.models import Allocation, Warehouse
from . import ShipmentStatus
from .models import Carrier, Shipment, ShipmentEvent, ShipmentLine

logger = logging.getLogger(__name__)


@attrs.frozen
class ShipmentLineData:
    sales_order_line_id: int
    quantity: int
    weight: Decimal | None = None


def _resolve_lines(
    order: SalesOrder, warehouse: Warehouse, lines: list[ShipmentLineData]
) -> list[tuple[Allocation, ShipmentLineData]]:
    allocations = {
        allocation.order_line_id: allocation
        for allocation in open_allocations(order).filter(stock__warehouse=warehouse)
    }
    line_ids = set(order.lines.values_list("pk", flat=True))
    planned: dict[int, int] = defaultdict(int)
    resolved = []
    for line_data in lines:
        quantity = line_data.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidArgument(
                f"Shipment line quantity must be a positive integer, got {quantity!r}.",
                field="lines",
            )
        if line_data.sales_order_line_id not in line_ids:
            raise NotFound(
                "SalesOrderLine",
                f"{line_data.sales_order_line_id} of sales order {order.pk}",
            )
        allocation = allocations.get(line_data.sales_order_line_id)
        if allocation is None:
            raise NotFound(
                "Allocation",
                f"of sales order line {line_data.sales_order_line_id} "
                f"in warehouse {warehouse.pk}",
            )
        planned[allocation.pk] += quantity
        if planned[allocation.pk] > allocation.remaining_quantity:
            raise InvalidArgument(
                f"Cannot ship {planned[allocation.pk]} units of sales order line "
                f"{line_data.sales_order_line_id}, only "
                f"{allocation.remaining_quantity} remain reserved in warehouse "
                f"{warehouse.pk}.",
                field="lines",
            )
        resolved.append((allocation, line_data))
    return resolved


@transaction.atomic
def create_shipment(
    sales_order_id: int,
    warehouse_id: int,
    lines: list[ShipmentLineData],
    *,
    carrier_id: int | None = None,
    tracking_number: str | None = None,
    shipped_at: datetime | None = None,
    estimated_delivery_date: datetime | None = None,
    total_weight: Decimal | None = None,
    notes: str | None = None,
) -> Shipment:
    """Ship reserved order lines from a single warehouse.

    Every line must have an allocation in the warehouse that still reserves
    at least the shipped quantity. The units are removed from stock straight
    away. A shipment with ``shipped_at`` starts in transit, otherwise it is
    only created.

    Once every reservation of the order has shipped the order becomes
    shipped; a pending order with units left to ship becomes confirmed.

    Raises:
        NotFound: order, warehouse, carrier, line or allocation missing.
        InvalidTransition: the order is cancelled or delivered.
        InvalidArgument: no lines, or more units than are reserved.
    """
    if not lines:
        raise InvalidArgument("A shipment needs at least one line.", field="lines")
    order = get_or_not_found(
        SalesOrder.objects.select_for_update(), sales_order_id, "SalesOrder"
    )
    if order.status in SalesOrderStatus.TERMINAL:
        raise InvalidTransition(
            f"Sales order {order.pk} is {order.status} and cannot be shipped.",
            current_status=order.status,
        )
    warehouse = get_or_not_found(Warehouse, warehouse_id)
    if carrier_id is not None:
        carrier = get_or_not_found(Carrier, carrier_id)
    else:
        carrier = order.carrier

    resolved = _resolve_lines(order, warehouse, lines)
    shipment = Shipment.objects.create(
        sales_order=order,
        warehouse=warehouse,
        carrier=carrier,
        tracking_number=tracking_number or "",
        status=ShipmentStatus.IN_TRANSIT if shipped_at else ShipmentStatus.CREATED,
        shipped_at=shipped_at,
        estimated_delivery_date=estimated_delivery_date,
        total_weight=total_weight,
        notes=notes or "",
    )
    ShipmentLine.objects.bulk_create(
        [
            ShipmentLine(
                shipment=shipment,
                sales_order_line_id=allocation.order_line_id,
                allocation=allocation,
                quantity=line_data.quantity,
                weight=line_data.weight,
            )
            for allocation, line_data in resolved
        ]
    )

    summaries = ship_allocations(
        order, [(allocation, line_data.quantity) for allocation, line_data in resolved]
    )

    previous_status = order.status
    if is_fully_shipped(order):
        order.status = SalesOrderStatus.SHIPPED
    elif order.status == SalesOrderStatus.PENDING:
        order.status = SalesOrderStatus.CONFIRMED
    if order.status != previous_status:
        order.save(update_fields=["status", "updated_at"])
    logger.info(
        "Created shipment %s for sales order %s from warehouse %s",
        shipment.pk,
        order.pk,
        warehouse.pk,
    )

    publish_shipment_adjustments(order, summaries)
    if order.status != previous_status:
        publish_status_change(order, previous_status)
    return shipment


@transaction.atomic
def record_shipment_event(
    shipment_id: int,
    status: str,
    event_date: datetime | None = None,
    location: str | None = None,
    description: str | None = None,
) -> ShipmentEvent:
    """Append a carrier tracking entry to a shipment. Entries are never merged."""
    shipment = get_or_not_found(Shipment, shipment_id)
    status = (status or "").strip()
    if not status:
        raise InvalidArgument("Shipment event status cannot be empty.", field="status")
    return ShipmentEvent.objects.create(
        shipment=shipment,
        status=status,
        event_date=event_date or timezone.now(),
        location=(location or "").strip(),
        description=(description or "").strip(),
    )


def _validate_status_transition(shipment: Shipment, status: str) -> None:
    current = shipment.status
    if status not in dict(ShipmentStatus.CHOICES):
        raise InvalidArgument(f"Unknown shipment status '{status}'.", field="status")
    if current in ShipmentStatus.TERMINAL:
        raise InvalidTransition(
            f"Shipment {shipment.pk} is {current} and cannot change status.",
            current_status=current,
            target_status=status,
        )
    if current == status:
        raise InvalidTransition(
            f"Shipment {shipment.pk} is already {current}.",
            current_status=current,
            target_status=status,
        )
    if current not in ShipmentStatus.ALLOWED_SOURCES.get(status, []):
        raise InvalidTransition(
            f"Shipment {shipment.pk} cannot change from {current} to {status}.",
            current_status=current,
            target_status=status,
        )


def _deliver_shipment(shipment: Shipment, delivered_at: datetime) -> None:
    # partly shipped allocations stay reserved for the rest of the line
    Allocation.objects.filter(
        shipment_lines__shipment=shipment, quantity_fulfilled=F("quantity")
    ).update(status=AllocationStatus.DELIVERED, released_at=delivered_at)
    order = SalesOrder.objects.select_for_update().get(pk=shipment.sales_order_id)
    if order.status in SalesOrderStatus.TERMINAL:
        return
    allocations = open_allocations(order)
    undelivered_shipments = order.shipments.exclude(
        status__in=[ShipmentStatus.DELIVERED, ShipmentStatus.CANCELLED]
    )
    if (
        allocations.exists()
        and not allocations.exclude(status=AllocationStatus.DELIVERED).exists()
        and not undelivered_shipments.exists()
    ):
        previous_status = order.status
        order.status = SalesOrderStatus.DELIVERED
        order.save(update_fields=["status", "updated_at"])
        logger.info("Sales order %s delivered with shipment %s", order.pk, shipment.pk)
        publish_status_change(order, previous_status)


@transaction.atomic
def update_shipment_status(
    shipment_id: int,
    status: str,
    *,
    delivered_at: datetime | None = None,
    estimated_delivery_date: datetime | None = None,
    notes: str | None = None,
) -> Shipment:
    """Move a shipment along created -> in_transit -> delivered.

    Delivering a shipment marks the allocations it carried as delivered and
    delivers the sales order once all of its allocations are delivered.
    Cancelling a shipment does not put any stock back.
    """
    shipment = get_or_not_found(
        Shipment.objects.select_for_update(), shipment_id, "Shipment"
    )
    _validate_status_transition(shipment, status)
    previous_status = shipment.status
    now = timezone.now()

    shipment.status = status
    if status == ShipmentStatus.IN_TRANSIT:
        shipment.shipped_at = shipment.shipped_at or now
    elif status == ShipmentStatus.DELIVERED:
        shipment.delivered_at = delivered_at or now
    if estimated_delivery_date is not None:
        shipment.estimated_delivery_date = estimated_delivery_date
    if notes is not None:
        shipment.notes = notes
    shipment.save()
    logger.info(
        "Shipment %s changed from %s to %s", shipment.pk, previous_status, status
    )

    if status == ShipmentStatus.DELIVERED:
        _deliver_shipment(shipment, shipment.delivered_at)
    return shipment
