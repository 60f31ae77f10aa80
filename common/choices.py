"""Shared enumerations and choices used across apps."""

from django.db import models


class MovementType(models.TextChoices):
    INCREASE = "increase", "Increase"
    DECREASE = "decrease", "Decrease"
    RETURN = "return", "Return"
    RESERVATION = "reservation", "Reservation"
    ADJUSTMENT = "adjustment", "Adjustment"
    SALE = "sale", "Sale"
    RELEASE = "release", "Release"


class MovementStatus(models.TextChoices):
    """Lifecycle of a ledger entry; only pending entries may change."""

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    EXPIRED = "expired", "Expired"


class CartStatus(models.TextChoices):
    """Statuses for shopping carts."""

    ACTIVE = "active", "Active"
    ABANDONED = "abandoned", "Abandoned"
    CONVERTED = "converted", "Converted"
    EXPIRED = "expired", "Expired"


class OrderStatus(models.TextChoices):
    """Lifecycle statuses for orders."""

    PENDING = "pending", "Pending Payment"
    PROCESSING = "processing", "Processing"
    ON_HOLD = "on_hold", "On Hold"
    IN_PREPARATION = "in_preparation", "In Preparation"
    READY_FOR_PICKUP = "ready_for_pickup", "Ready for Pickup"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"
    FAILED = "failed", "Failed"


class NoteType(models.TextChoices):
    NOTE = "note", "Note"
    STATUS_CHANGE = "status_change", "Status Change"
    PAYMENT = "payment", "Payment"
    REFUND = "refund", "Refund"
    SHIPPING = "shipping", "Shipping"
    CUSTOMER = "customer", "Customer Message"
    SYSTEM = "system", "System"
