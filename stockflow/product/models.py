from decimal import Decimal

from django.conf import settings
from django.db import models


class Product(models.Model):
    name = models.CharField(max_length=250)
    description = models.TextField(blank=True, default="")
    currency = models.CharField(
        max_length=settings.DEFAULT_CURRENCY_CODE_LENGTH,
        default=settings.DEFAULT_CURRENCY,
    )
    default_price_amount = models.DecimalField(
        max_digits=settings.DEFAULT_MAX_DIGITS,
        decimal_places=settings.DEFAULT_DECIMAL_PLACES,
        blank=True,
        null=True,
    )
    weight_kg = models.DecimalField(
        max_digits=10, decimal_places=4, blank=True, null=True
    )
    # days between dispatch and expected delivery
    lead_time_days = models.PositiveIntegerField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("name", "pk")

    def __str__(self) -> str:
        return self.name


class ProductVariant(models.Model):
    product = models.ForeignKey(
        Product, related_name="variants", on_delete=models.CASCADE
    )
    sku = models.CharField(max_length=255, unique=True)
    name = models.CharField(max_length=255, blank=True, default="")
    price_amount = models.DecimalField(
        max_digits=settings.DEFAULT_MAX_DIGITS,
        decimal_places=settings.DEFAULT_DECIMAL_PLACES,
        blank=True,
        null=True,
    )

    class Meta:
        ordering = ("sku",)

    def __str__(self) -> str:
        return self.name or self.sku

    @property
    def effective_price_amount(self) -> Decimal:
        """Variant price, falling back to the product default, then to zero."""
        if self.price_amount is not None:
            return self.price_amount
        if self.product.default_price_amount is not None:
            return self.product.default_price_amount
        return Decimal(0)

