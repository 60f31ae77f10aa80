"""Cart app models.

A cart belongs to a customer or a guest session; neither is a foreign key,
so the cart outlives whichever identity created it.
"""

from common.choices import CartStatus
from django.db import models

CART_TRANSITIONS = {
    CartStatus.ACTIVE: frozenset({CartStatus.ABANDONED, CartStatus.CONVERTED, CartStatus.EXPIRED}),
    CartStatus.ABANDONED: frozenset({CartStatus.ACTIVE, CartStatus.EXPIRED}),
    CartStatus.CONVERTED: frozenset(),
    CartStatus.EXPIRED: frozenset(),
}


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Cart(TimeStampedModel):
    """Shopping cart for a customer or guest session."""

    STATUS_ACTIVE = CartStatus.ACTIVE
    STATUS_ABANDONED = CartStatus.ABANDONED
    STATUS_CONVERTED = CartStatus.CONVERTED
    STATUS_EXPIRED = CartStatus.EXPIRED
    STATUS_CHOICES = CartStatus.choices

    customer_reference = models.CharField(max_length=120, blank=True, db_index=True)
    session_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)
    email = models.EmailField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    last_activity_at = models.DateTimeField(null=True, blank=True)
    converted_at = models.DateTimeField(null=True, blank=True)
    abandoned_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["status", "last_activity_at"], name="cart_status_activity_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Cart#{self.id} ({self.customer_reference or self.session_id})"

    @property
    def is_active(self) -> bool:
        return self.status == self.STATUS_ACTIVE

    def can_transition_to(self, status) -> bool:
        try:
            current = CartStatus(self.status)
        except ValueError:
            return False
        return status in CART_TRANSITIONS[current]


class CartItem(TimeStampedModel):
    """Line item in a shopping cart, backed by one pending reservation."""

    cart = models.ForeignKey(Cart, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="cart_items", on_delete=models.CASCADE)
    quantity = models.PositiveIntegerField(default=1)
    # Weak link into the stock ledger
    reservation_id = models.BigIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "product"], name="unique_product_per_cart"),
            models.CheckConstraint(name="cartitem_quantity_positive", condition=models.Q(quantity__gte=1)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"CartItem#{self.id} cart={self.cart_id} product={self.product_id} qty={self.quantity}"
