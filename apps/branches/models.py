from django.db import models
from apps.utils.models import TimestampedModel


class Branch(TimestampedModel):
    """
    A physical restaurant location. Staff accounts and orders hang off it.
    """
    name = models.CharField(max_length=255, unique=True)
    address = models.CharField(max_length=500, blank=True)

    class Meta:
        ordering = ["id"]
        verbose_name_plural = "Branches"

    def __str__(self):
        return self.name
