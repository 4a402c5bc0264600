from django.db import models
from django.db.models import F, Q, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from ..product.models import ProductVariant
from . import AllocationStatus, InventoryTransactionType


class Warehouse(models.Model):
    name = models.CharField(max_length=250, unique=True)
    address = models.CharField(max_length=512, blank=True, default="")
    description = models.TextField(blank=True, default="")

    class Meta:
        ordering = ("pk",)

    def __str__(self) -> str:
        return self.name


class StockQuerySet(models.QuerySet):
    def annotate_available_quantity(self):
        return self.annotate(
            _available_quantity=Greatest(
                F("quantity") - F("quantity_reserved"),
                Value(0),
                output_field=models.IntegerField(),
            )
        )

    def for_variant(self, variant: ProductVariant):
        return self.filter(product_variant=variant)


StockManager = models.Manager.from_queryset(StockQuerySet)


class Stock(models.Model):
    """On-hand and reserved quantity of a variant in a single warehouse.

    Rows are created on the first movement into a warehouse and are only
    changed by ``warehouse.ledger`` and ``warehouse.management``.
    """

    warehouse = models.ForeignKey(
        Warehouse, null=False, on_delete=models.CASCADE, related_name="stocks"
    )
    product_variant = models.ForeignKey(
        ProductVariant, null=False, on_delete=models.CASCADE, related_name="stocks"
    )
    quantity = models.PositiveIntegerField(default=0)
    quantity_reserved = models.PositiveIntegerField(default=0)
    min_stock_level = models.PositiveIntegerField(default=0)

    objects = StockManager()

    class Meta:
        unique_together = [["warehouse", "product_variant"]]
        ordering = ("pk",)
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity_reserved__lte=F("quantity")),
                name="warehouse_stock_reserved_within_quantity",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_variant} @ {self.warehouse}"

    @property
    def available_quantity(self) -> int:
        if hasattr(self, "_available_quantity"):
            return self._available_quantity
        return max(self.quantity - self.quantity_reserved, 0)

    @property
    def is_below_min_stock_level(self) -> bool:
        return self.quantity < self.min_stock_level


class InventoryTransaction(models.Model):
    """A single append-only row of the stock ledger."""

    product_variant = models.ForeignKey(
        ProductVariant, on_delete=models.PROTECT, related_name="inventory_transactions"
    )
    warehouse = models.ForeignKey(
        Warehouse, on_delete=models.PROTECT, related_name="inventory_transactions"
    )
    transaction_type = models.CharField(
        max_length=32, choices=InventoryTransactionType.CHOICES
    )
    quantity = models.PositiveIntegerField()
    quantity_before = models.PositiveIntegerField()
    quantity_after = models.PositiveIntegerField()
    occurred_at = models.DateTimeField(default=timezone.now, db_index=True)
    reference_type = models.CharField(max_length=64, blank=True, null=True)
    reference_id = models.PositiveIntegerField(blank=True, null=True)
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ("occurred_at", "pk")
        indexes = [
            models.Index(
                fields=["product_variant", "warehouse", "occurred_at"],
                name="warehouse_txn_position_idx",
            ),
            models.Index(
                fields=["reference_type", "reference_id"],
                name="warehouse_txn_reference_idx",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"{self.transaction_type} {self.quantity} "
            f"({self.quantity_before} -> {self.quantity_after})"
        )

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Inventory transactions are append-only.")
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Inventory transactions cannot be deleted.")


class Allocation(models.Model):
    """Stock held back in one warehouse for a sales order line."""

    order_line = models.ForeignKey(
        "order.SalesOrderLine",
        null=False,
        on_delete=models.CASCADE,
        related_name="allocations",
    )
    stock = models.ForeignKey(
        Stock, null=False, on_delete=models.CASCADE, related_name="allocations"
    )
    quantity = models.PositiveIntegerField()
    quantity_fulfilled = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=32,
        choices=AllocationStatus.CHOICES,
        default=AllocationStatus.RESERVED,
    )
    shipped_at = models.DateTimeField(blank=True, null=True)
    released_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [["order_line", "stock"]]
        ordering = ("pk",)
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity_fulfilled__lte=F("quantity")),
                name="warehouse_allocation_fulfilled_within_quantity",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.quantity} of {self.stock} for line {self.order_line_id}"

    @property
    def remaining_quantity(self) -> int:
        """Quantity that is still reserved and not yet shipped."""
        return self.quantity - self.quantity_fulfilled
