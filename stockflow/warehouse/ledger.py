"""Stock ledger.

This module is the only place that changes ``Stock.quantity``. Every mutation
locks the affected ``Stock`` row, applies the change and appends an
``InventoryTransaction`` holding the quantity before and after it. Callers get
a ``StockChange`` back and fold those into one ``VariantAdjustment`` per
variant when announcing the movement with ``InventoryAdjusted``.

None of the functions commit on their own: they are atomic blocks that join
the transaction of the calling command.
"""

import logging
from collections.abc import Iterable
from functools import reduce
from operator import attrgetter

import attrs
from django.db import transaction
from django.utils import timezone

from ..core.events import InventoryAdjusted, InventoryAdjustmentDetail
from ..core.exceptions import (
    InsufficientStock,
    InsufficientStockData,
    InvalidArgument,
    NotFound,
)
from ..product.models import ProductVariant
from . import InventoryTransactionType
from .models import InventoryTransaction, Stock, Warehouse

logger = logging.getLogger(__name__)


@attrs.frozen
class LedgerReference:
    """Document a ledger row is written for, e.g. ``("SalesOrder", 12)``."""

    reference_type: str | None = None
    reference_id: int | None = None
    notes: str = ""


NO_REFERENCE = LedgerReference()


@attrs.frozen
class StockChange:
    stock: Stock = attrs.field(eq=False)
    quantity_before: int
    quantity_after: int

    @property
    def delta(self) -> int:
        return self.quantity_after - self.quantity_before

    def as_detail(self) -> InventoryAdjustmentDetail:
        return InventoryAdjustmentDetail(
            warehouse_id=self.stock.warehouse_id,
            warehouse_name=self.stock.warehouse.name,
            quantity_before=self.quantity_before,
            quantity_after=self.quantity_after,
        )


@attrs.frozen
class VariantAdjustment:
    """All ledger changes of one variant made by a single command."""

    variant: ProductVariant = attrs.field(eq=False)
    quantity: int
    details: tuple[InventoryAdjustmentDetail, ...]


def _check_quantity(quantity, allow_zero=False):
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidArgument(
            f"Quantity must be an integer, got {quantity!r}.", field="quantity"
        )
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise InvalidArgument(
            f"Quantity must be {'non-negative' if allow_zero else 'positive'}, "
            f"got {quantity}.",
            field="quantity",
        )


def _lock_stock(variant: ProductVariant, warehouse: Warehouse) -> Stock:
    try:
        return (
            Stock.objects.select_for_update()
            .select_related("warehouse")
            .get(product_variant=variant, warehouse=warehouse)
        )
    except Stock.DoesNotExist:
        raise NotFound(
            "Stock", f"of variant {variant.sku} in warehouse {warehouse.pk}"
        ) from None


def _lock_or_create_stock(variant: ProductVariant, warehouse: Warehouse) -> Stock:
    stock, _ = (
        Stock.objects.select_for_update()
        .select_related("warehouse")
        .get_or_create(product_variant=variant, warehouse=warehouse)
    )
    return stock


def _ensure_available(stock: Stock, variant: ProductVariant, quantity: int):
    if stock.available_quantity < quantity:
        raise InsufficientStock(
            [
                InsufficientStockData(
                    variant=variant,
                    requested_quantity=quantity,
                    available_quantity=stock.available_quantity,
                    warehouse_pk=stock.warehouse_id,
                )
            ]
        )


def _apply(
    stock: Stock,
    transaction_type: str,
    quantity: int,
    quantity_after: int,
    reference: LedgerReference,
) -> StockChange:
    quantity_before = stock.quantity
    stock.quantity = quantity_after
    stock.save(update_fields=["quantity"])
    InventoryTransaction.objects.create(
        product_variant_id=stock.product_variant_id,
        warehouse_id=stock.warehouse_id,
        transaction_type=transaction_type,
        quantity=quantity,
        quantity_before=quantity_before,
        quantity_after=quantity_after,
        reference_type=reference.reference_type,
        reference_id=reference.reference_id,
        notes=reference.notes or "",
    )
    logger.debug(
        "Stock %s: %s %s (%s -> %s)",
        stock.pk,
        transaction_type,
        quantity,
        quantity_before,
        quantity_after,
    )
    return StockChange(stock, quantity_before, quantity_after)


@transaction.atomic
def increase(
    variant: ProductVariant,
    warehouse: Warehouse,
    quantity: int,
    reference: LedgerReference = NO_REFERENCE,
) -> StockChange:
    """Add stock to a warehouse, creating the stock position if needed."""
    _check_quantity(quantity)
    stock = _lock_or_create_stock(variant, warehouse)
    return _apply(
        stock, InventoryTransactionType.IN, quantity, stock.quantity + quantity, reference
    )


@transaction.atomic
def decrease(
    variant: ProductVariant,
    warehouse: Warehouse,
    quantity: int,
    reference: LedgerReference = NO_REFERENCE,
) -> StockChange:
    """Remove stock from a warehouse.

    Only unreserved stock can be removed, so the reserved quantity never
    exceeds the quantity on hand. Shipping reserved stock therefore goes
    through ``management.fulfill`` first, which hands the reservation back.

    Raises:
        NotFound: the variant has never been stocked in the warehouse.
        InsufficientStock: less than ``quantity`` is unreserved.
    """
    _check_quantity(quantity)
    stock = _lock_stock(variant, warehouse)
    _ensure_available(stock, variant, quantity)
    return _apply(
        stock,
        InventoryTransactionType.OUT,
        quantity,
        stock.quantity - quantity,
        reference,
    )


@transaction.atomic
def set_absolute(
    variant: ProductVariant,
    warehouse: Warehouse,
    quantity: int,
    reference: LedgerReference = NO_REFERENCE,
) -> StockChange:
    """Set the quantity on hand, e.g. after a stock count.

    The ledger row records the new value as its quantity. Setting a value
    below what is currently reserved raises ``InsufficientStock``.
    """
    _check_quantity(quantity, allow_zero=True)
    stock = _lock_or_create_stock(variant, warehouse)
    if quantity < stock.quantity_reserved:
        raise InsufficientStock(
            [
                InsufficientStockData(
                    variant=variant,
                    requested_quantity=stock.quantity - quantity,
                    available_quantity=stock.available_quantity,
                    warehouse_pk=stock.warehouse_id,
                )
            ]
        )
    return _apply(stock, InventoryTransactionType.ADJUST, quantity, quantity, reference)


@transaction.atomic
def transfer(
    variant: ProductVariant,
    source: Warehouse,
    destination: Warehouse,
    quantity: int,
    reference: LedgerReference = NO_REFERENCE,
) -> tuple[StockChange, StockChange]:
    """Move unreserved stock between two warehouses.

    Both positions are locked in warehouse order and two ``move`` rows are
    written, one per side.
    """
    _check_quantity(quantity)
    if source.pk == destination.pk:
        raise InvalidArgument(
            "Source and destination warehouse must be different.",
            field="destination_warehouse_id",
        )
    stocks = {}
    for warehouse in sorted((source, destination), key=attrgetter("pk")):
        if warehouse is source:
            stocks[warehouse.pk] = _lock_stock(variant, warehouse)
        else:
            stocks[warehouse.pk] = _lock_or_create_stock(variant, warehouse)
    source_stock = stocks[source.pk]
    destination_stock = stocks[destination.pk]

    _ensure_available(source_stock, variant, quantity)
    debit = _apply(
        source_stock,
        InventoryTransactionType.MOVE,
        quantity,
        source_stock.quantity - quantity,
        reference,
    )
    credit = _apply(
        destination_stock,
        InventoryTransactionType.MOVE,
        quantity,
        destination_stock.quantity + quantity,
        reference,
    )
    return debit, credit


@transaction.atomic
def update_min_stock_level(
    variant: ProductVariant, warehouse: Warehouse, min_stock_level: int
) -> Stock:
    _check_quantity(min_stock_level, allow_zero=True)
    stock = _lock_stock(variant, warehouse)
    stock.min_stock_level = min_stock_level
    stock.save(update_fields=["min_stock_level"])
    return stock


def _merge_details(
    details: tuple[InventoryAdjustmentDetail, ...], detail: InventoryAdjustmentDetail
) -> tuple[InventoryAdjustmentDetail, ...]:
    # the first change of a warehouse keeps its "before", later ones move "after"
    for index, existing in enumerate(details):
        if existing.warehouse_id == detail.warehouse_id:
            merged = attrs.evolve(existing, quantity_after=detail.quantity_after)
            return details[:index] + (merged,) + details[index + 1 :]
    return details + (detail,)


def merge_change(
    summaries: dict[int, VariantAdjustment], change: StockChange, quantity: int
) -> dict[int, VariantAdjustment]:
    """Return a copy of ``summaries`` with ``change`` folded into its variant."""
    variant = change.stock.product_variant
    current = summaries.get(variant.pk)
    if current is None:
        summary = VariantAdjustment(
            variant=variant, quantity=quantity, details=(change.as_detail(),)
        )
    else:
        summary = attrs.evolve(
            current,
            quantity=current.quantity + quantity,
            details=_merge_details(current.details, change.as_detail()),
        )
    return {**summaries, variant.pk: summary}


def summarize_changes(
    entries: Iterable[tuple[StockChange, int]],
) -> list[VariantAdjustment]:
    """Fold ``(change, quantity)`` pairs into one summary per variant."""
    summaries = reduce(lambda acc, entry: merge_change(acc, *entry), entries, {})
    return list(summaries.values())


def build_adjustment_event(
    summary: VariantAdjustment,
    transaction_type: str,
    reference: LedgerReference = NO_REFERENCE,
    destination_warehouse_id: int | None = None,
) -> InventoryAdjusted:
    variant = summary.variant
    return InventoryAdjusted(
        variant_id=variant.pk,
        variant_sku=variant.sku,
        product_name=variant.product.name,
        details=summary.details,
        transaction_type=transaction_type,
        quantity=summary.quantity,
        occurred_at=timezone.now(),
        destination_warehouse_id=destination_warehouse_id,
        reference_type=reference.reference_type,
        reference_id=reference.reference_id,
        notes=reference.notes,
    )
