from django.db import models
from django.conf import settings
from apps.utils.models import TimestampedModel
from ..domain import OrderStatus


class Order(TimestampedModel):
    branch = models.ForeignKey("branches.Branch", on_delete=models.PROTECT, related_name='orders')
    customer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='orders')

    status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING, db_index=True)

    # Always equals the sum of item subtotals; written once at creation
    total_amount = models.DecimalField(max_digits=10, decimal_places=2)
    delivery_address = models.TextField(blank=True, null=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["branch", "status"], name="order_branch_status_idx"),
            models.Index(fields=["customer", "created_at"], name="order_customer_created_idx"),
        ]

    def __str__(self):
        return f"Order #{self.id} [{self.status}]"
