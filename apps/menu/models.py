# apps/menu/models.py
from django.db import models
from apps.utils.models import TimestampedModel


class MenuItem(TimestampedModel):
    """
    A dish on a branch's menu.

    NOTE:
    - Orders never re-read `price` after creation; OrderItem keeps its own copy.
    - `is_available` is flipped by the kitchen when an item runs out.
    """
    branch = models.ForeignKey(
        "branches.Branch",
        on_delete=models.CASCADE,
        related_name="menu_items",
    )
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100, blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    is_available = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["branch", "is_available"], name="menu_branch_avail_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.price})"
