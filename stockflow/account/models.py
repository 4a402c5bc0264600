from django.db import models
from django.db.models import Q


class Customer(models.Model):
    name = models.CharField(max_length=256)
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=64, blank=True, default="")
    address = models.CharField(max_length=512, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    # records created by the system itself, e.g. for manual stock movements
    is_system = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ("name", "pk")
        constraints = [
            models.UniqueConstraint(
                fields=["name"],
                condition=Q(is_system=True),
                name="account_customer_unique_system_name",
            ),
        ]

    def __str__(self) -> str:
        return self.name
