import logging
from datetime import datetime
from decimal import Decimal

import attrs
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..account.models import Customer
from ..core.db import get_or_not_found
from ..core.events import SalesOrderCreated, publish
from ..core.exceptions import InvalidArgument, InvalidTransition
from ..core.prices import calculate_line_total
from ..product.models import ProductVariant
from ..shipping.models import Carrier
from ..warehouse.management import lock_stocks_for_variants, reserve
from . import SalesOrderStatus
from .models import SalesOrder, SalesOrderLine
from .shipping import (
    ShipmentAllocationData,
    deliver_order,
    publish_shipment_adjustments,
    publish_status_change,
    record_shipments,
    release_order_allocations,
    resolve_allocations,
    ship_allocations,
)

logger = logging.getLogger(__name__)


@attrs.frozen
class OrderLineData:
    variant_id: int
    quantity: int
    unit_price: Decimal
    discount: Decimal | None = None


def _lock_order(order_id: int) -> SalesOrder:
    return get_or_not_found(
        SalesOrder.objects.select_for_update(), order_id, "SalesOrder"
    )


@transaction.atomic
def create_sales_order(
    customer_id: int,
    lines: list[OrderLineData],
    *,
    currency: str | None = None,
    order_date: datetime | None = None,
    status: str = SalesOrderStatus.PENDING,
    shipping_address: str | None = None,
    notes: str | None = None,
    carrier_id: int | None = None,
    estimated_delivery_date: datetime | None = None,
) -> SalesOrder:
    """Create a sales order and reserve stock for every line.

    The order is created only if every line can be reserved. Reservations
    take stock from the warehouses with the most available units first.

    Args:
        customer_id: customer placing the order.
        lines: ordered variants with their price and optional discount.
        currency: order currency, defaults to ``settings.DEFAULT_CURRENCY``.
        order_date: defaults to now.
        status: initial status, pending or confirmed.
        shipping_address: free-form delivery address.
        notes: free-form notes.
        carrier_id: carrier used for shipments of this order.
        estimated_delivery_date: must not be before ``order_date``.

    Returns:
        The created order with its total computed from the lines.

    Raises:
        NotFound: customer, carrier or a variant does not exist.
        InvalidArgument: no lines, a non-positive quantity, an initial status
            other than pending or confirmed, or a delivery date before the
            order date.
        InsufficientStock: a line cannot be fully reserved.
    """
    customer = get_or_not_found(Customer, customer_id)
    carrier = get_or_not_found(Carrier, carrier_id) if carrier_id is not None else None
    if not lines:
        raise InvalidArgument("A sales order needs at least one line.", field="lines")
    if status not in (SalesOrderStatus.PENDING, SalesOrderStatus.CONFIRMED):
        raise InvalidArgument(
            f"A sales order cannot be created as '{status}'.", field="status"
        )

    order_date = order_date or timezone.now()
    if estimated_delivery_date and estimated_delivery_date < order_date:
        raise InvalidArgument(
            "Estimated delivery date cannot be before the order date.",
            field="estimated_delivery_date",
        )

    order = SalesOrder.objects.create(
        customer=customer,
        carrier=carrier,
        status=status,
        order_date=order_date,
        estimated_delivery_date=estimated_delivery_date,
        currency=currency or settings.DEFAULT_CURRENCY,
        shipping_address=shipping_address or "",
        notes=notes or "",
    )

    lock_stocks_for_variants([line_data.variant_id for line_data in lines])
    total = Decimal(0)
    for line_data in lines:
        variant = get_or_not_found(
            ProductVariant.objects.select_related("product"),
            line_data.variant_id,
            "ProductVariant",
        )
        line_total = calculate_line_total(
            line_data.quantity, line_data.unit_price, line_data.discount
        )
        line = SalesOrderLine.objects.create(
            order=order,
            variant=variant,
            quantity=line_data.quantity,
            unit_price_amount=line_data.unit_price,
            discount_amount=line_data.discount,
            total_line_amount=line_total,
        )
        reserve(line, variant, line_data.quantity)
        total += line_total

    order.total_amount = total
    order.save(update_fields=["total_amount", "updated_at"])
    logger.info(
        "Created sales order %s for customer %s with %s lines",
        order.pk,
        customer.pk,
        len(lines),
    )

    publish(
        SalesOrderCreated(
            order_id=order.pk,
            status=order.status,
            customer_name=customer.name,
            total_amount=order.total_amount,
            currency=order.currency,
            order_date=order.order_date,
        )
    )
    return order


def _validate_status_transition(
    order: SalesOrder, status: str, has_allocations: bool
) -> None:
    current = order.status
    if status not in dict(SalesOrderStatus.CHOICES):
        raise InvalidArgument(f"Unknown sales order status '{status}'.", field="status")
    if current in SalesOrderStatus.TERMINAL:
        raise InvalidTransition(
            f"Sales order {order.pk} is {current} and cannot change status.",
            current_status=current,
            target_status=status,
        )
    shipping_again = status in (
        SalesOrderStatus.SHIPPED,
        SalesOrderStatus.DELIVERED,
    ) and has_allocations
    if current == status and not shipping_again:
        raise InvalidTransition(
            f"Sales order {order.pk} is already {current}.",
            current_status=current,
            target_status=status,
        )
    if status == SalesOrderStatus.PENDING:
        raise InvalidTransition(
            f"Sales order {order.pk} cannot go back to pending.",
            current_status=current,
            target_status=status,
        )
    if status == SalesOrderStatus.CANCELLED and current == SalesOrderStatus.SHIPPED:
        raise InvalidTransition(
            f"Sales order {order.pk} has been shipped and cannot be cancelled.",
            current_status=current,
            target_status=status,
        )
    if current not in SalesOrderStatus.ALLOWED_SOURCES[status]:
        raise InvalidTransition(
            f"Sales order {order.pk} cannot change from {current} to {status}.",
            current_status=current,
            target_status=status,
        )


@transaction.atomic
def update_sales_order_status(
    order_id: int,
    status: str,
    allocations: list[ShipmentAllocationData] | None = None,
) -> SalesOrder:
    """Move a sales order to ``status``.

    Shipping requires ``allocations`` saying how many units of which variant
    leave which warehouse. Those units are taken from the order's reservations
    and removed from stock, and one shipment per warehouse is recorded.
    An already shipped order may be shipped again to send more units.

    Delivering an order that has not been shipped requires ``allocations`` as
    well. Delivery is rejected while any reserved unit is still unshipped.

    Cancelling releases every reservation that has not been shipped.

    Raises:
        NotFound: the order, or an allocation named in ``allocations``.
        InvalidTransition: the status change is not allowed.
        InvalidArgument: ``allocations`` is missing or asks for more than is
            reserved.
    """
    order = _lock_order(order_id)
    allocations = list(allocations or [])
    _validate_status_transition(order, status, bool(allocations))
    previous_status = order.status

    summaries = []
    if status in (SalesOrderStatus.SHIPPED, SalesOrderStatus.DELIVERED):
        if not allocations and status == SalesOrderStatus.SHIPPED:
            raise InvalidArgument(
                "Shipping a sales order requires the shipped allocations.",
                field="allocations",
            )
        if not allocations and previous_status != SalesOrderStatus.SHIPPED:
            raise InvalidTransition(
                f"Sales order {order.pk} must be shipped before it is delivered.",
                current_status=previous_status,
                target_status=status,
            )
        if allocations:
            shipped = resolve_allocations(order, allocations)
            summaries = ship_allocations(order, shipped)
            record_shipments(
                order, shipped, delivered=status == SalesOrderStatus.DELIVERED
            )
        if status == SalesOrderStatus.DELIVERED:
            deliver_order(order)
    elif status == SalesOrderStatus.CANCELLED:
        released = release_order_allocations(order)
        logger.info("Released %s reserved units of sales order %s", released, order.pk)

    order.status = status
    order.save(update_fields=["status", "updated_at"])
    logger.info(
        "Sales order %s changed from %s to %s", order.pk, previous_status, status
    )

    publish_shipment_adjustments(order, summaries)
    if previous_status != status:
        publish_status_change(order, previous_status)
    return order


@transaction.atomic
def delete_sales_order(order_id: int) -> None:
    """Delete an order that has not left the warehouse, releasing its stock."""
    order = _lock_order(order_id)
    if order.status in (SalesOrderStatus.SHIPPED, SalesOrderStatus.DELIVERED):
        raise InvalidTransition(
            f"Sales order {order.pk} is {order.status} and cannot be deleted.",
            current_status=order.status,
        )
    if order.shipments.exists():
        raise InvalidTransition(
            f"Sales order {order.pk} has shipments and cannot be deleted.",
            current_status=order.status,
        )
    release_order_allocations(order)
    order.delete()
    logger.info("Deleted sales order %s", order_id)
