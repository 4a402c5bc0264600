"""Stock reservation for sales order lines.

``reserve`` spreads a requested quantity over the warehouses that hold the
variant, largest available quantity first. ``fulfill`` turns part of a
reservation into a shipment and ``release`` hands the unshipped remainder back
to the warehouse.

Reservations only touch ``Stock.quantity_reserved``. The physical quantity is
changed by ``ledger.decrease`` which callers issue right after ``fulfill``.
"""

import logging
from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from ..core.exceptions import (
    InsufficientStock,
    InsufficientStockData,
    InvalidArgument,
    InvalidTransition,
)
from ..product.models import ProductVariant
from . import AllocationStatus
from .models import Allocation, Stock

if TYPE_CHECKING:
    from ..order.models import SalesOrderLine

logger = logging.getLogger(__name__)


def lock_stocks_for_variants(variant_ids) -> None:
    """Lock every stock row of the given variants in primary key order.

    Commands touching several variants call this first so that concurrent
    commands always take the row locks in the same order.
    """
    list(
        Stock.objects.select_for_update()
        .filter(product_variant_id__in=set(variant_ids))
        .order_by("pk")
        .values_list("pk", flat=True)
    )


def _plan_reservation(
    stocks: list[Stock], quantity: int
) -> tuple[list[tuple[Stock, int]], int]:
    """Split ``quantity`` over ``stocks`` without writing anything.

    Returns the planned ``(stock, quantity)`` pairs and the quantity that
    could not be covered.
    """
    plan = []
    remaining = quantity
    ordered = sorted(
        stocks, key=lambda stock: (-stock.available_quantity, stock.warehouse_id)
    )
    for stock in ordered:
        if remaining <= 0:
            break
        available = stock.available_quantity
        if available <= 0:
            continue
        quantity_to_reserve = min(remaining, available)
        plan.append((stock, quantity_to_reserve))
        remaining -= quantity_to_reserve
    return plan, remaining


@transaction.atomic
def reserve(
    order_line: "SalesOrderLine", variant: ProductVariant, quantity: int
) -> list[Allocation]:
    """Reserve stock of ``variant`` for an order line across warehouses.

    Warehouses with the most available stock are used first; ties go to the
    lower warehouse id. Nothing is written unless the whole quantity can be
    covered.

    Args:
        order_line: line the reservation belongs to.
        variant: variant to reserve.
        quantity: number of units, must be positive.

    Returns:
        One allocation per warehouse that contributed stock.

    Raises:
        InsufficientStock: when all warehouses together hold less than
            ``quantity`` unreserved units.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidArgument(
            f"Reserved quantity must be a positive integer, got {quantity!r}.",
            field="quantity",
        )

    stocks = list(
        Stock.objects.select_for_update()
        .for_variant(variant)
        .annotate_available_quantity()
        .order_by("pk")
    )
    plan, missing = _plan_reservation(stocks, quantity)
    if missing > 0:
        raise InsufficientStock(
            [
                InsufficientStockData(
                    variant=variant,
                    requested_quantity=quantity,
                    available_quantity=quantity - missing,
                )
            ]
        )

    allocations = []
    for stock, quantity_to_reserve in plan:
        stock.quantity_reserved += quantity_to_reserve
        stock._available_quantity -= quantity_to_reserve
        allocations.append(
            Allocation(order_line=order_line, stock=stock, quantity=quantity_to_reserve)
        )
    Stock.objects.bulk_update([stock for stock, _ in plan], ["quantity_reserved"])
    allocations = Allocation.objects.bulk_create(allocations)
    logger.info(
        "Reserved %s x %s for order line %s in warehouses %s",
        quantity,
        variant.sku,
        order_line.pk,
        [stock.warehouse_id for stock, _ in plan],
    )
    return allocations


def _lock_allocation_stock(allocation: Allocation) -> Stock:
    stock = Stock.objects.select_for_update().get(pk=allocation.stock_id)
    allocation.stock = stock
    return stock


@transaction.atomic
def release(allocation: Allocation) -> int:
    """Hand the unshipped remainder of an allocation back to its stock.

    Returns the released quantity.
    """
    if allocation.status == AllocationStatus.RELEASED:
        raise InvalidTransition(
            f"Allocation {allocation.pk} is already released.",
            current_status=allocation.status,
            target_status=AllocationStatus.RELEASED,
        )
    remaining = allocation.remaining_quantity
    stock = _lock_allocation_stock(allocation)
    stock.quantity_reserved = max(stock.quantity_reserved - remaining, 0)
    stock.save(update_fields=["quantity_reserved"])

    allocation.status = AllocationStatus.RELEASED
    allocation.released_at = timezone.now()
    allocation.save(update_fields=["status", "released_at"])
    return remaining


@transaction.atomic
def fulfill(allocation: Allocation, quantity: int) -> Allocation:
    """Mark ``quantity`` units of an allocation as shipped.

    The units stop being reserved; the caller removes them from the warehouse
    with ``ledger.decrease``. A fully shipped allocation becomes delivered.
    """
    if allocation.status == AllocationStatus.RELEASED:
        raise InvalidTransition(
            f"Allocation {allocation.pk} is released and cannot be fulfilled.",
            current_status=allocation.status,
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidArgument(
            f"Fulfilled quantity must be a positive integer, got {quantity!r}.",
            field="quantity",
        )
    if quantity > allocation.remaining_quantity:
        raise InvalidArgument(
            f"Cannot fulfill {quantity} units of allocation {allocation.pk}, "
            f"only {allocation.remaining_quantity} remain reserved.",
            field="quantity",
        )

    stock = _lock_allocation_stock(allocation)
    stock.quantity_reserved = max(stock.quantity_reserved - quantity, 0)
    stock.save(update_fields=["quantity_reserved"])

    allocation.quantity_fulfilled += quantity
    allocation.shipped_at = allocation.shipped_at or timezone.now()
    if allocation.remaining_quantity == 0:
        allocation.status = AllocationStatus.DELIVERED
    allocation.save(update_fields=["quantity_fulfilled", "shipped_at", "status"])
    return allocation
