from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils.timezone import now
from prices import Money

from ..account.models import Customer
from ..product.models import ProductVariant
from . import SalesOrderStatus


class SalesOrder(models.Model):
    customer = models.ForeignKey(
        Customer, on_delete=models.PROTECT, related_name="sales_orders"
    )
    carrier = models.ForeignKey(
        "shipping.Carrier",
        blank=True,
        null=True,
        on_delete=models.SET_NULL,
        related_name="sales_orders",
    )
    status = models.CharField(
        max_length=32,
        choices=SalesOrderStatus.CHOICES,
        default=SalesOrderStatus.PENDING,
    )
    order_date = models.DateTimeField(default=now)
    estimated_delivery_date = models.DateTimeField(blank=True, null=True)
    currency = models.CharField(
        max_length=settings.DEFAULT_CURRENCY_CODE_LENGTH,
        default=settings.DEFAULT_CURRENCY,
    )
    total_amount = models.DecimalField(
        max_digits=settings.DEFAULT_MAX_DIGITS,
        decimal_places=settings.DEFAULT_DECIMAL_PLACES,
        default=Decimal(0),
    )
    shipping_address = models.CharField(max_length=512, blank=True, default="")
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("-order_date", "-pk")

    def __str__(self) -> str:
        return f"Sales order #{self.pk}"

    @property
    def total(self) -> Money:
        return Money(self.total_amount, self.currency)


class SalesOrderLine(models.Model):
    order = models.ForeignKey(
        SalesOrder, on_delete=models.CASCADE, related_name="lines"
    )
    variant = models.ForeignKey(
        ProductVariant, on_delete=models.PROTECT, related_name="sales_order_lines"
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
