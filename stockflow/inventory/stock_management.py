"""Purchase order commands. Stock enters warehouses when an order is received."""

import logging
from datetime import datetime
from decimal import Decimal

import attrs
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from ..core.db import get_or_not_found
from ..core.events import PurchaseOrderStatusChanged, publish
from ..core.exceptions import InvalidArgument, InvalidTransition
from ..core.prices import calculate_line_total
from ..product.models import ProductVariant
from ..warehouse import InventoryTransactionType, LedgerReferenceType
from ..warehouse.ledger import (
    LedgerReference,
    build_adjustment_event,
    increase,
    summarize_changes,
)
from ..warehouse.models import Warehouse
from . import PurchaseOrderStatus
from .models import PurchaseOrder, PurchaseOrderLine, Supplier

logger = logging.getLogger(__name__)

RECEPTION_NOTES = "Purchase order reception"


@attrs.frozen
class PurchaseOrderLineData:
    variant_id: int
    quantity: int
    unit_price: Decimal
    discount: Decimal | None = None


@transaction.atomic
def create_purchase_order(
    supplier_id: int,
    lines: list[PurchaseOrderLineData],
    *,
    currency: str | None = None,
    order_date: datetime | None = None,
    status: str = PurchaseOrderStatus.PENDING,
    notes: str | None = None,
) -> PurchaseOrder:
    """Create a purchase order. No stock moves until the order is received."""
    supplier = get_or_not_found(Supplier, supplier_id)
    if not lines:
        raise InvalidArgument(
            "A purchase order needs at least one line.", field="lines"
        )
    if status not in (PurchaseOrderStatus.PENDING, PurchaseOrderStatus.ORDERED):
        raise InvalidArgument(
            f"A purchase order cannot be created as '{status}'.", field="status"
        )

    order = PurchaseOrder.objects.create(
        supplier=supplier,
        status=status,
        order_date=order_date or timezone.now(),
        currency=currency or settings.DEFAULT_CURRENCY,
        notes=notes or "",
    )
    total = Decimal(0)
    for line_data in lines:
        variant = get_or_not_found(
            ProductVariant, line_data.variant_id, "ProductVariant"
        )
        line_total = calculate_line_total(
            line_data.quantity, line_data.unit_price, line_data.discount
        )
        PurchaseOrderLine.objects.create(
            order=order,
            variant=variant,
            quantity=line_data.quantity,
            unit_price_amount=line_data.unit_price,
            discount_amount=line_data.discount,
            total_line_amount=line_total,
        )
        total += line_total

    order.total_amount = total
    order.save(update_fields=["total_amount", "updated_at"])
    logger.info("Created purchase order %s for supplier %s", order.pk, supplier.pk)
    return order


def _validate_status_transition(order: PurchaseOrder, status: str) -> None:
    current = order.status
    if status not in dict(PurchaseOrderStatus.CHOICES):
        raise InvalidArgument(
            f"Unknown purchase order status '{status}'.", field="status"
        )
    if current in PurchaseOrderStatus.TERMINAL:
        raise InvalidTransition(
            f"Purchase order {order.pk} is {current} and cannot change status.",
            current_status=current,
            target_status=status,
        )
    if current == status:
        raise InvalidTransition(
            f"Purchase order {order.pk} is already {current}.",
            current_status=current,
            target_status=status,
        )
    if current not in PurchaseOrderStatus.ALLOWED_SOURCES.get(status, []):
        raise InvalidTransition(
            f"Purchase order {order.pk} cannot change from {current} to {status}.",
            current_status=current,
            target_status=status,
        )


@transaction.atomic
def update_purchase_order_status(
    order_id: int, status: str, warehouse_id: int | None = None
) -> PurchaseOrder:
    """Move a purchase order to ``status``.

    Receiving an order books every line into ``warehouse_id`` through the
    stock ledger. Lines of the same variant are reported as a single
    ``InventoryAdjusted`` event.

    Raises:
        NotFound: the order or the warehouse does not exist.
        InvalidTransition: the status change is not allowed.
        InvalidArgument: receiving without a warehouse.
    """
    order = get_or_not_found(
        PurchaseOrder.objects.select_for_update().select_related("supplier"),
        order_id,
        "PurchaseOrder",
    )
    _validate_status_transition(order, status)
    previous_status = order.status

    summaries = []
    reference = LedgerReference(
        reference_type=LedgerReferenceType.PURCHASE_ORDER,
        reference_id=order.pk,
        notes=RECEPTION_NOTES,
    )
    update_fields = ["status", "updated_at"]
    if status == PurchaseOrderStatus.RECEIVED:
        if warehouse_id is None:
            raise InvalidArgument(
                "A warehouse is required to receive a purchase order.",
                field="warehouse_id",
            )
        warehouse = get_or_not_found(Warehouse, warehouse_id)
        changes = [
            (increase(line.variant, warehouse, line.quantity, reference), line.quantity)
            for line in order.lines.select_related("variant__product")
        ]
        summaries = summarize_changes(changes)
        order.received_at = timezone.now()
        order.received_warehouse = warehouse
        update_fields += ["received_at", "received_warehouse"]

    order.status = status
    order.save(update_fields=update_fields)
    logger.info(
        "Purchase order %s changed from %s to %s", order.pk, previous_status, status
    )

    for summary in summaries:
        publish(build_adjustment_event(summary, InventoryTransactionType.IN, reference))
    publish(
        PurchaseOrderStatusChanged(
            order_id=order.pk,
            previous_status=previous_status,
            new_status=status,
            total_amount=order.total_amount,
            supplier_name=order.supplier.name,
            occurred_at=timezone.now(),
        )
    )
    return order


@transaction.atomic
def delete_purchase_order(order_id: int) -> None:
    order = get_or_not_found(
        PurchaseOrder.objects.select_for_update(), order_id, "PurchaseOrder"
    )
    if order.status == PurchaseOrderStatus.RECEIVED:
        raise InvalidTransition(
            f"Purchase order {order.pk} has been received and cannot be deleted.",
            current_status=order.status,
        )
    order.delete()
    logger.info("Deleted purchase order %s", order_id)
