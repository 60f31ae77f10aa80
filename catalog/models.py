"""Catalog app models.

Only the product row the stock ledger hangs off; browsing, pricing and
categorisation live outside this project.
"""

from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Product(TimeStampedModel):
    """Stock-keeping unit tracked by the movement ledger."""

    sku = models.CharField(max_length=64, unique=True)
    title = models.CharField(max_length=200, blank=True)
    manage_stock = models.BooleanField(default=True)
    low_stock_threshold = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["sku"]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.title or self.sku} [{self.sku}]"
