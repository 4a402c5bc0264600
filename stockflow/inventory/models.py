from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils.timezone import now
from prices import Money

from ..product.models import ProductVariant
from ..warehouse.models import Warehouse
from . import PurchaseOrderStatus


class Supplier(models.Model):
    name = models.CharField(max_length=256)
    contact_email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=64, blank=True, default="")
    address = models.CharField(max_length=512, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    # records created by the system itself, e.g. for manual stock movements
    is_system = models.BooleanField(default=False)

    class Meta:
        ordering = ("name", "pk")
        constraints = [
            models.UniqueConstraint(
                fields=["name"],
                condition=Q(is_system=True),
                name="inventory_supplier_unique_system_name",
            ),
        ]

    def __str__(self) -> str:
        return self.name


class PurchaseOrder(models.Model):
    """Goods ordered from a supplier.

    Stock only enters a warehouse when the order is received; until then the
    order has no effect on the ledger.
    """

    supplier = models.ForeignKey(
        Supplier, on_delete=models.PROTECT, related_name="purchase_orders"
    )
    status = models.CharField(
        max_length=32,
        choices=PurchaseOrderStatus.CHOICES,
        default=PurchaseOrderStatus.PENDING,
    )
    order_date = models.DateTimeField(default=now)
    currency = models.CharField(
        max_length=settings.DEFAULT_CURRENCY_CODE_LENGTH,
        default=settings.DEFAULT_CURRENCY,
    )
    total_amount = models.DecimalField(
        max_digits=settings.DEFAULT_MAX_DIGITS,
        decimal_places=settings.DEFAULT_DECIMAL_PLACES,
        default=Decimal(0),
    )
    notes = models.TextField(blank=True, default="")
    # set once the goods are booked in
    received_at = models.DateTimeField(blank=True, null=True)
    received_warehouse = models.ForeignKey(
        Warehouse,
        blank=True,
        null=True,
        on_delete=models.SET_NULL,
        related_name="received_purchase_orders",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-order_date", "-pk")

    def __str__(self) -> str:
        return f"Purchase order #{self.pk}"

    @property
    def total(self) -> Money:
        return Money(self.total_amount, self.currency)


class PurchaseOrderLine(models.Model):
    order = models.ForeignKey(
        PurchaseOrder, on_delete=models.CASCADE, related_name="lines"
    )
    variant = models.ForeignKey(
        ProductVariant, on_delete=models.PROTECT, related_name="purchase_order_lines"
    )
    quantity = models.PositiveIntegerField()
    unit_price_amount = models.DecimalField(
        max_digits=settings.DEFAULT_MAX_DIGITS,
        decimal_places=settings.DEFAULT_DECIMAL_PLACES,
    )
    discount_amount = models.DecimalField(
        max_digits=settings.DEFAULT_MAX_DIGITS,
        decimal_places=settings.DEFAULT_DECIMAL_PLACES,
        blank=True,
        null=True,
    )
    total_line_amount = models.DecimalField(
        max_digits=settings.DEFAULT_MAX_DIGITS,
        decimal_places=settings.DEFAULT_DECIMAL_PLACES,
    )

    class Meta:
        ordering = ("pk",)

    def __str__(self) -> str:
        return f"{self.quantity} x {self.variant}"
