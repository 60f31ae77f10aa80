"""Inventory models (single-location, ledger based).

Stock is never stored as a counter: every stock-affecting event is a
``StockMovement`` row and quantities are folded from the ledger on read.
"""

from common.choices import MovementStatus, MovementType
from django.db import models


class StockMovement(models.Model):
    TYPE_INCREASE = MovementType.INCREASE
    TYPE_DECREASE = MovementType.DECREASE
    TYPE_RETURN = MovementType.RETURN
    TYPE_RESERVATION = MovementType.RESERVATION
    TYPE_ADJUSTMENT = MovementType.ADJUSTMENT
    TYPE_SALE = MovementType.SALE
    TYPE_RELEASE = MovementType.RELEASE
    TYPE_CHOICES = MovementType.choices

    STATUS_PENDING = MovementStatus.PENDING
    STATUS_COMPLETED = MovementStatus.COMPLETED
    STATUS_CANCELLED = MovementStatus.CANCELLED
    STATUS_EXPIRED = MovementStatus.EXPIRED
    STATUS_CHOICES = MovementStatus.choices

    INBOUND_TYPES = (MovementType.INCREASE, MovementType.RETURN)
    OUTBOUND_TYPES = (MovementType.DECREASE, MovementType.SALE)
    TERMINAL_STATUSES = (MovementStatus.COMPLETED, MovementStatus.CANCELLED, MovementStatus.EXPIRED)

    product = models.ForeignKey("catalog.Product", on_delete=models.PROTECT, related_name="movements")
    movement_type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    quantity = models.IntegerField()  # positive; signed only for adjustments
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_COMPLETED)
    expires_at = models.DateTimeField(null=True, blank=True)
    # Weak link to whatever caused the movement (cart item, order line, reservation)
    reference_type = models.CharField(max_length=64, blank=True)
    reference_id = models.CharField(max_length=64, blank=True)
    note = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField()
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        constraints = [
            models.CheckConstraint(name="movement_non_zero", condition=~models.Q(quantity=0)),
            models.CheckConstraint(
                name="movement_positive_unless_adjustment",
                condition=models.Q(quantity__gt=0) | models.Q(movement_type=MovementType.ADJUSTMENT),
            ),
        ]
        indexes = [
            models.Index(fields=["product", "status"], name="movement_product_status_idx"),
            models.Index(fields=["status", "expires_at"], name="movement_status_expiry_idx"),
            models.Index(fields=["reference_type", "reference_id"], name="movement_reference_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.movement_type} {self.quantity} for {self.product_id} ({self.status})"

    @property
    def is_pending(self) -> bool:
        return self.status == self.STATUS_PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def is_reservation(self) -> bool:
        return self.movement_type == self.TYPE_RESERVATION

    @property
    def is_decrement(self) -> bool:
        if self.movement_type == self.TYPE_ADJUSTMENT:
            return self.quantity < 0
        return self.movement_type in self.OUTBOUND_TYPES


# EOF
