"""Shipping of reserved stock for sales orders.

Used by the order status commands and by the shipment tracker. Shipping an
allocation always happens in two steps: ``management.fulfill`` hands the
reservation back and ``ledger.decrease`` removes the units from the warehouse.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal

import attrs
from django.conf import settings
from django.utils import timezone

from ..core.events import SalesOrderStatusChanged, publish
from ..core.exceptions import InvalidArgument, InvalidTransition, NotFound
from ..shipping import ShipmentStatus
from ..shipping.models import Shipment, ShipmentLine
from ..warehouse import AllocationStatus, InventoryTransactionType, LedgerReferenceType
from ..warehouse.ledger import (
    LedgerReference,
    StockChange,
    VariantAdjustment,
    build_adjustment_event,
    decrease,
    summarize_changes,
)
from ..warehouse.management import fulfill, release
from ..warehouse.models import Allocation
from . import SalesOrderStatus
from .models import SalesOrder

logger = logging.getLogger(__name__)

SHIPMENT_NOTES = "Sales order shipment"


@attrs.frozen
class ShipmentAllocationData:
    """Units of a variant to ship from one warehouse."""

    variant_id: int
    warehouse_id: int
    quantity: int


def shipment_reference(order: SalesOrder) -> LedgerReference:
    return LedgerReference(
        reference_type=LedgerReferenceType.SALES_ORDER,
        reference_id=order.pk,
        notes=SHIPMENT_NOTES,
    )


def open_allocations(order: SalesOrder):
    return (
        Allocation.objects.filter(order_line__order=order)
        .exclude(status=AllocationStatus.RELEASED)
        .select_related("stock__warehouse", "order_line__variant__product")
        .order_by("pk")
    )


def resolve_allocations(
    order: SalesOrder, requests: list[ShipmentAllocationData]
) -> list[tuple[Allocation, int]]:
    """Match ``(variant, warehouse, quantity)`` requests to open allocations.

    A request may be spread over several lines of the same variant; lines are
    used in order. Requests for the same allocation are added up before they
    are checked against its unshipped remainder.

    Raises:
        NotFound: the order holds no open allocation of the variant in the
            warehouse.
        InvalidArgument: the request exceeds what is still reserved.
    """
    allocations = defaultdict(list)
    for allocation in open_allocations(order):
        key = (allocation.order_line.variant_id, allocation.stock.warehouse_id)
        allocations[key].append(allocation)

    planned: dict[int, int] = defaultdict(int)
    resolved = []
    for request in requests:
        if (
            isinstance(request.quantity, bool)
            or not isinstance(request.quantity, int)
            or request.quantity <= 0
        ):
            raise InvalidArgument(
                f"Shipped quantity must be a positive integer, got {request.quantity!r}.",
                field="allocations",
            )
        candidates = allocations.get((request.variant_id, request.warehouse_id))
        if not candidates:
            raise NotFound(
                "Allocation",
                f"of variant {request.variant_id} in warehouse "
                f"{request.warehouse_id} for sales order {order.pk}",
            )
        remaining = sum(
            allocation.remaining_quantity - planned[allocation.pk]
            for allocation in candidates
        )
        if request.quantity > remaining:
            raise InvalidArgument(
                f"Cannot ship {request.quantity} units of variant {request.variant_id} "
                f"from warehouse {request.warehouse_id}, only {remaining} remain "
                f"reserved for sales order {order.pk}.",
                field="allocations",
            )
        to_ship = request.quantity
        for allocation in candidates:
            free = allocation.remaining_quantity - planned[allocation.pk]
            if free <= 0:
                continue
            quantity = min(free, to_ship)
            planned[allocation.pk] += quantity
            resolved.append((allocation, quantity))
            to_ship -= quantity
            if not to_ship:
                break
    return resolved


def ship_allocations(
    order: SalesOrder, shipped: list[tuple[Allocation, int]]
) -> list[VariantAdjustment]:
    """Fulfill allocations and remove the shipped units from their warehouses.

    Stock rows are locked in primary key order. Returns one adjustment
    summary per shipped variant.
    """
    reference = shipment_reference(order)
    changes: list[tuple[StockChange, int]] = []
    for allocation, quantity in sorted(shipped, key=lambda entry: entry[0].stock_id):
        fulfill(allocation, quantity)
        change = decrease(
            allocation.order_line.variant,
            allocation.stock.warehouse,
            quantity,
            reference,
        )
        changes.append((change, quantity))
    return summarize_changes(changes)


def _estimated_delivery_date(
    allocations: list[tuple[Allocation, int]], shipped_at: datetime
) -> datetime:
    lead_times = [
        allocation.order_line.variant.product.lead_time_days
        for allocation, _ in allocations
        if allocation.order_line.variant.product.lead_time_days
    ]
    days = max(lead_times, default=settings.DEFAULT_LEAD_TIME_DAYS)
    return shipped_at + timedelta(days=days)


def record_shipments(
    order: SalesOrder, shipped: list[tuple[Allocation, int]], *, delivered: bool
) -> list[Shipment]:
    """Record one shipment per warehouse for stock shipped without a shipment."""
    now = timezone.now()
    by_warehouse = defaultdict(list)
    for allocation, quantity in shipped:
        by_warehouse[allocation.stock.warehouse].append((allocation, quantity))

    shipments = []
    for warehouse, entries in by_warehouse.items():
        shipment = Shipment.objects.create(
            sales_order=order,
            warehouse=warehouse,
            carrier_id=order.carrier_id,
            status=ShipmentStatus.DELIVERED if delivered else ShipmentStatus.IN_TRANSIT,
            shipped_at=now,
            delivered_at=now if delivered else None,
            estimated_delivery_date=(
                now if delivered else _estimated_delivery_date(entries, now)
            ),
            notes=order.notes,
        )
        lines = []
        for allocation, quantity in entries:
            weight_kg = allocation.order_line.variant.product.weight_kg
            lines.append(
                ShipmentLine(
                    shipment=shipment,
                    sales_order_line=allocation.order_line,
                    allocation=allocation,
                    quantity=quantity,
                    weight=weight_kg * quantity if weight_kg is not None else None,
                )
            )
        ShipmentLine.objects.bulk_create(lines)
        weights = [line.weight for line in lines if line.weight is not None]
        if weights:
            shipment.total_weight = sum(weights, Decimal(0))
            shipment.save(update_fields=["total_weight", "updated_at"])
        shipments.append(shipment)
        logger.info(
            "Recorded shipment %s of sales order %s from warehouse %s",
            shipment.pk,
            order.pk,
            warehouse.pk,
        )
    return shipments


def deliver_order(order: SalesOrder) -> None:
    """Mark every allocation and open shipment of a fully shipped order delivered."""
    allocations = list(open_allocations(order))
    pending = [allocation for allocation in allocations if allocation.remaining_quantity]
    if pending:
        raise InvalidTransition(
            f"Sales order {order.pk} cannot be delivered, "
            f"{sum(a.remaining_quantity for a in pending)} units have not been shipped.",
            current_status=order.status,
            target_status=SalesOrderStatus.DELIVERED,
        )
    now = timezone.now()
    Allocation.objects.filter(pk__in=[a.pk for a in allocations]).update(
        status=AllocationStatus.DELIVERED, released_at=now
    )
    for shipment in order.shipments.exclude(
        status__in=[ShipmentStatus.CANCELLED, ShipmentStatus.DELIVERED]
    ):
        shipment.status = ShipmentStatus.DELIVERED
        shipment.shipped_at = shipment.shipped_at or now
        shipment.delivered_at = now
        shipment.estimated_delivery_date = shipment.estimated_delivery_date or now
        shipment.save(
            update_fields=[
                "status",
                "shipped_at",
                "delivered_at",
                "estimated_delivery_date",
                "updated_at",
            ]
        )


def release_order_allocations(order: SalesOrder) -> int:
    """Release the unshipped remainder of every allocation of the order."""
    released = 0
    for allocation in open_allocations(order).order_by("stock_id", "pk"):
        if allocation.remaining_quantity > 0:
            released += release(allocation)
    return released


def is_fully_shipped(order: SalesOrder) -> bool:
    return all(
        allocation.remaining_quantity == 0 for allocation in open_allocations(order)
    )


def publish_shipment_adjustments(
    order: SalesOrder, summaries: list[VariantAdjustment]
) -> None:
    reference = shipment_reference(order)
    for summary in summaries:
        publish(
            build_adjustment_event(summary, InventoryTransactionType.OUT, reference)
        )


def publish_status_change(order: SalesOrder, previous_status: str) -> None:
    publish(
        SalesOrderStatusChanged(
            order_id=order.pk,
            previous_status=previous_status,
            new_status=order.status,
            total_amount=order.total_amount,
            customer_name=order.customer.name,
            occurred_at=timezone.now(),
        )
    )
