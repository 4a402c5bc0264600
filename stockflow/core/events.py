"""Domain events emitted by stock and order commands.

Events are immutable value objects delivered through Django signals. They are
only sent once the surrounding transaction commits, so a command that rolls
back never announces anything. A failing receiver is logged and does not
affect the other receivers or the committed state.
"""

import logging
from datetime import datetime
from decimal import Decimal

import attrs
from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

inventory_adjusted = Signal()
sales_order_created = Signal()
sales_order_status_changed = Signal()
purchase_order_status_changed = Signal()


@attrs.frozen
class InventoryAdjustmentDetail:
    warehouse_id: int
    warehouse_name: str
    quantity_before: int
    quantity_after: int


@attrs.frozen
class InventoryAdjusted:
    variant_id: int
    variant_sku: str
    product_name: str
    details: tuple[InventoryAdjustmentDetail, ...]
    transaction_type: str
    quantity: int
    occurred_at: datetime
    destination_warehouse_id: int | None = None
    reference_type: str | None = None
    reference_id: int | None = None
    notes: str = ""


@attrs.frozen
class SalesOrderCreated:
    order_id: int
    status: str
    customer_name: str
    total_amount: Decimal
    currency: str
    order_date: datetime


@attrs.frozen
class SalesOrderStatusChanged:
    order_id: int
    previous_status: str
    new_status: str
    total_amount: Decimal
    customer_name: str
    occurred_at: datetime


@attrs.frozen
class PurchaseOrderStatusChanged:
    order_id: int
    previous_status: str
    new_status: str
    total_amount: Decimal
    supplier_name: str
    occurred_at: datetime


EVENT_SIGNALS = {
    InventoryAdjusted: inventory_adjusted,
    SalesOrderCreated: sales_order_created,
    SalesOrderStatusChanged: sales_order_status_changed,
    PurchaseOrderStatusChanged: purchase_order_status_changed,
}


def send_event(event) -> None:
    signal = EVENT_SIGNALS[type(event)]
    for receiver, response in signal.send_robust(sender=type(event), event=event):
        if isinstance(response, Exception):
            logger.error(
                "Receiver %r failed to handle %s",
                receiver,
                type(event).__name__,
                exc_info=response,
            )


def publish(event) -> None:
    """Send ``event`` to its signal receivers after the current transaction commits."""
    transaction.on_commit(lambda: send_event(event))
