from django.db import models
from apps.utils.models import TimestampedModel


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    COMPLETED = "COMPLETED", "Completed"
    REFUNDED = "REFUNDED", "Refunded"


class PaymentMethod(models.TextChoices):
    CASH = "CASH", "Cash"
    CARD = "CARD", "Card"
    ONLINE = "ONLINE", "Online"


class Payment(TimestampedModel):
    """
    Money captured against an order (recorded by the cashier desk or the
    gateway callback). Survives order deletion so refunds stay auditable.
    """
    order = models.OneToOneField(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="payment",
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)

    # The provider's transaction reference, if any
    transaction_id = models.CharField(max_length=100, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=['status'], name='payment_status_idx'),
        ]

    def __str__(self):
        return f"Payment #{self.id} | {self.amount} | {self.status}"
