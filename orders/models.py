from common.choices import NoteType, OrderStatus
from django.db import models

from . import state


class TimeStampedModel(models.Model):
    """Abstract base model adding created/updated timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Order(TimeStampedModel):
    """Purchase created from a converted cart.

    ``status`` only changes through ``OrderStateMachine.transition``; ``version``
    is bumped on every change for optimistic concurrency control.
    """

    STATUS_PENDING = OrderStatus.PENDING
    STATUS_PROCESSING = OrderStatus.PROCESSING
    STATUS_SHIPPED = OrderStatus.SHIPPED
    STATUS_DELIVERED = OrderStatus.DELIVERED
    STATUS_COMPLETED = OrderStatus.COMPLETED
    STATUS_CANCELLED = OrderStatus.CANCELLED
    STATUS_REFUNDED = OrderStatus.REFUNDED
    STATUS_FAILED = OrderStatus.FAILED
    STATUS_ON_HOLD = OrderStatus.ON_HOLD
    STATUS_CHOICES = OrderStatus.choices

    number = models.CharField(max_length=32, unique=True, null=True, blank=True, db_index=True)
    # Weak references; the cart and customer have their own lifecycles
    cart_id = models.BigIntegerField(null=True, blank=True, db_index=True)
    customer_reference = models.CharField(max_length=120, blank=True)
    email = models.EmailField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    version = models.PositiveIntegerField(default=0)
    paid_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-id"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="order_status_created_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Order#{self.id} status={self.status}"

    @property
    def is_active(self) -> bool:
        return state.is_active(self.status)

    @property
    def is_final(self) -> bool:
        return state.is_final(self.status)

    @property
    def requires_payment(self) -> bool:
        return state.requires_payment(self.status)

    @property
    def is_paid(self) -> bool:
        return state.is_paid(self.status)

    def can_transition_to(self, status) -> bool:
        return state.can_transition(self.status, status)


class OrderLine(TimeStampedModel):
    """Line derived from a converted cart item."""

    order = models.ForeignKey(Order, related_name="lines", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="order_lines", on_delete=models.PROTECT)
    quantity = models.PositiveIntegerField(default=1)
    # Weak links into the stock ledger
    reservation_id = models.BigIntegerField(null=True, blank=True)
    sale_movement_id = models.BigIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(name="orderline_quantity_positive", condition=models.Q(quantity__gte=1)),
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"OrderLine#{self.id} order={self.order_id} product={self.product_id} qty={self.quantity}"


class OrderNoteQuerySet(models.QuerySet):
    def for_customer(self):
        return self.filter(is_customer_note=True)

    def internal(self):
        return self.filter(is_customer_note=False)

    def of_type(self, *types):
        return self.filter(type__in=types)

    def delete(self):
        raise TypeError("Order notes are append-only")

    def update(self, **kwargs):
        raise TypeError("Order notes are append-only")


class OrderNote(models.Model):
    """Append-only audit trail entry for an order; always listed newest first."""

    TYPE_CHOICES = NoteType.choices

    order = models.ForeignKey(Order, related_name="notes", on_delete=models.PROTECT)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=NoteType.NOTE)
    content = models.TextField()
    actor = models.CharField(max_length=120, default="system")
    old_status = models.CharField(max_length=20, blank=True)
    new_status = models.CharField(max_length=20, blank=True)
    is_customer_note = models.BooleanField(default=False)
    meta = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField()

    objects = OrderNoteQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:  # pragma: no cover
        return f"OrderNote#{self.id} order={self.order_id} type={self.type}"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise TypeError("Order notes are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("Order notes are append-only")
