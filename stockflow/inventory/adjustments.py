"""Manual inventory movements entered by warehouse staff.

Movements in and out of a warehouse that do not refer to an existing document
are booked against an order created on the fly, so every unit entering or
leaving stock can be traced to a purchase or sales order. Those orders belong
to a dedicated system supplier and customer.
"""

import logging

from django.db import transaction
from django.utils import timezone

from ..account.models import Customer
from ..core.db import get_or_not_found
from ..core.events import publish
from ..core.exceptions import InvalidArgument
from ..order import SalesOrderStatus
from ..order.models import SalesOrder, SalesOrderLine
from ..product.models import ProductVariant
from ..warehouse import InventoryTransactionType, LedgerReferenceType
from ..warehouse.ledger import (
    LedgerReference,
    StockChange,
    build_adjustment_event,
    decrease,
    increase,
    set_absolute,
    summarize_changes,
    transfer,
    update_min_stock_level,
)
from ..warehouse.models import Stock, Warehouse
from . import PurchaseOrderStatus
from .models import PurchaseOrder, PurchaseOrderLine, Supplier

logger = logging.getLogger(__name__)

MANUAL_SUPPLIER_NAME = "Manual adjustments supplier"
MANUAL_CUSTOMER_NAME = "Manual adjustments customer"
MANUAL_PARTY_NOTES = "Created automatically for manual inventory movements."


def get_manual_supplier() -> Supplier:
    supplier, _ = Supplier.objects.get_or_create(
        name=MANUAL_SUPPLIER_NAME,
        is_system=True,
        defaults={"notes": MANUAL_PARTY_NOTES},
    )
    return supplier


def get_manual_customer() -> Customer:
    customer, _ = Customer.objects.get_or_create(
        name=MANUAL_CUSTOMER_NAME,
        is_system=True,
        defaults={"notes": MANUAL_PARTY_NOTES},
    )
    return customer


def _manual_order_notes(action: str, warehouse: Warehouse, notes: str) -> str:
    text = f"{action} in warehouse {warehouse.name}"
    return f"{text}: {notes}" if notes else text


def create_manual_purchase_order(
    variant: ProductVariant, warehouse: Warehouse, quantity: int, notes: str = ""
) -> PurchaseOrder:
    """Record a manual stock intake as an already received purchase order."""
    unit_price = variant.effective_price_amount
    now = timezone.now()
    order = PurchaseOrder.objects.create(
        supplier=get_manual_supplier(),
        status=PurchaseOrderStatus.RECEIVED,
        order_date=now,
        currency=variant.product.currency,
        total_amount=unit_price * quantity,
        notes=_manual_order_notes("Manual stock intake", warehouse, notes),
        received_at=now,
        received_warehouse=warehouse,
    )
    PurchaseOrderLine.objects.create(
        order=order,
        variant=variant,
        quantity=quantity,
        unit_price_amount=unit_price,
        total_line_amount=unit_price * quantity,
    )
    return order


def create_manual_sales_order(
    variant: ProductVariant, warehouse: Warehouse, quantity: int, notes: str = ""
) -> SalesOrder:
    """Record a manual stock removal as an already delivered sales order."""
    unit_price = variant.effective_price_amount
    order = SalesOrder.objects.create(
        customer=get_manual_customer(),
        status=SalesOrderStatus.DELIVERED,
        order_date=timezone.now(),
        currency=variant.product.currency,
        total_amount=unit_price * quantity,
        notes=_manual_order_notes("Manual stock removal", warehouse, notes),
    )
    SalesOrderLine.objects.create(
        order=order,
        variant=variant,
        quantity=quantity,
        unit_price_amount=unit_price,
        total_line_amount=unit_price * quantity,
    )
    return order


def _check_quantity(transaction_type: str, quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgument(
            f"Quantity must be an integer, got {quantity!r}.", field="quantity"
        )
    if transaction_type == InventoryTransactionType.ADJUST:
        if quantity < 0:
            raise InvalidArgument(
                "Adjusted quantity cannot be negative.", field="quantity"
            )
    elif quantity <= 0:
        raise InvalidArgument("Quantity must be positive.", field="quantity")


@transaction.atomic
def adjust_inventory(
    variant_id: int,
    warehouse_id: int,
    transaction_type: str,
    quantity: int,
    *,
    min_stock_level: int | None = None,
    destination_warehouse_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    notes: str | None = None,
) -> list[Stock]:
    """Apply a manual stock movement to one warehouse, or two for a move.

    ``in`` and ``out`` movements without a reference are booked against a new
    received purchase order or delivered sales order. ``min_stock_level`` is
    set on every stock position the movement touched.

    Returns:
        The touched stock positions, source first for a move.

    Raises:
        NotFound: variant or warehouse does not exist.
        InvalidArgument: bad quantity, unknown movement, or a move without a
            distinct destination.
        InsufficientStock: not enough unreserved stock to remove or move.
    """
    variant = get_or_not_found(
        ProductVariant.objects.select_related("product"), variant_id, "ProductVariant"
    )
    warehouse = get_or_not_found(Warehouse, warehouse_id)
    _check_quantity(transaction_type, quantity)
    if min_stock_level is not None and min_stock_level < 0:
        raise InvalidArgument(
            "Minimum stock level cannot be negative.", field="min_stock_level"
        )
    notes = notes or ""
    reference = LedgerReference(reference_type, reference_id, notes)
    has_reference = reference_type is not None or reference_id is not None

    changes: list[StockChange]
    if transaction_type == InventoryTransactionType.IN:
        if not has_reference:
            order = create_manual_purchase_order(variant, warehouse, quantity, notes)
            reference = LedgerReference(
                LedgerReferenceType.PURCHASE_ORDER, order.pk, notes
            )
        changes = [increase(variant, warehouse, quantity, reference)]
    elif transaction_type == InventoryTransactionType.OUT:
        if not has_reference:
            order = create_manual_sales_order(variant, warehouse, quantity, notes)
            reference = LedgerReference(LedgerReferenceType.SALES_ORDER, order.pk, notes)
        changes = [decrease(variant, warehouse, quantity, reference)]
    elif transaction_type == InventoryTransactionType.ADJUST:
        changes = [set_absolute(variant, warehouse, quantity, reference)]
    elif transaction_type == InventoryTransactionType.MOVE:
        if destination_warehouse_id is None:
            raise InvalidArgument(
                "A destination warehouse is required to move stock.",
                field="destination_warehouse_id",
            )
        if destination_warehouse_id == warehouse.pk:
            raise InvalidArgument(
                "Destination warehouse must differ from the source warehouse.",
                field="destination_warehouse_id",
            )
        destination = get_or_not_found(Warehouse, destination_warehouse_id)
        changes = list(transfer(variant, warehouse, destination, quantity, reference))
    else:
        raise InvalidArgument(
            f"Unknown inventory transaction type '{transaction_type}'.",
            field="transaction_type",
        )

    stocks = [change.stock for change in changes]
    if min_stock_level is not None:
        stocks = [
            update_min_stock_level(variant, stock.warehouse, min_stock_level)
            for stock in stocks
        ]
    logger.info(
        "Manual %s of %s x %s in warehouse %s",
        transaction_type,
        quantity,
        variant.sku,
        warehouse.pk,
    )

    # both sides of a move count as one movement of `quantity` units
    entries = [
        (change, quantity if index == 0 else 0) for index, change in enumerate(changes)
    ]
    for summary in summarize_changes(entries):
        publish(
            build_adjustment_event(
                summary,
                transaction_type,
                reference,
                destination_warehouse_id=destination_warehouse_id,
            )
        )
    return stocks
