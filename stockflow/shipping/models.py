from django.db import models
from django.utils.timezone import now

from ..order.models import SalesOrder, SalesOrderLine
from ..warehouse.models import Allocation, Warehouse
from . import ShipmentStatus


class Carrier(models.Model):
    name = models.CharField(max_length=256)
    contact_email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=64, blank=True, default="")
    tracking_url = models.URLField(blank=True, default="")
    notes = models.TextField(blank=True, default="")

    class Meta:
        ordering = ("name", "pk")

    def __str__(self) -> str:
        return self.name


class Shipment(models.Model):
    """Goods leaving one warehouse for a sales order."""

    sales_order = models.ForeignKey(
        SalesOrder, on_delete=models.PROTECT, related_name="shipments"
    )
    warehouse = models.ForeignKey(
        Warehouse, on_delete=models.PROTECT, related_name="shipments"
    )
    carrier = models.ForeignKey(
        Carrier,
        blank=True,
        null=True,
        on_delete=models.SET_NULL,
        related_name="shipments",
    )
    tracking_number = models.CharField(max_length=255, blank=True, default="")
    status = models.CharField(
        max_length=32,
        choices=ShipmentStatus.CHOICES,
        default=ShipmentStatus.CREATED,
    )
    shipped_at = models.DateTimeField(blank=True, null=True)
    delivered_at = models.DateTimeField(blank=True, null=True)
    estimated_delivery_date = models.DateTimeField(blank=True, null=True)
    total_weight = models.DecimalField(
        max_digits=12, decimal_places=4, blank=True, null=True
    )
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ("pk",)

    def __str__(self) -> str:
        return f"Shipment #{self.pk} of {self.sales_order}"


class ShipmentLine(models.Model):
    shipment = models.ForeignKey(
        Shipment, on_delete=models.CASCADE, related_name="lines"
    )
    sales_order_line = models.ForeignKey(
        SalesOrderLine, on_delete=models.PROTECT, related_name="shipment_lines"
    )
    allocation = models.ForeignKey(
        Allocation,
        blank=True,
        null=True,
        on_delete=models.SET_NULL,
        related_name="shipment_lines",
    )
    quantity = models.PositiveIntegerField()
    weight = models.DecimalField(
        max_digits=12, decimal_places=4, blank=True, null=True
    )

    class Meta:
        ordering = ("pk",)


class ShipmentEvent(models.Model):
    """Free-form tracking entry reported for a shipment."""

    shipment = models.ForeignKey(
        Shipment, on_delete=models.CASCADE, related_name="events"
    )
    status = models.CharField(max_length=128)
    location = models.CharField(max_length=256, blank=True, default="")
    description = models.TextField(blank=True, default="")
    event_date = models.DateTimeField(default=now)

    class Meta:
        ordering = ("event_date", "pk")
