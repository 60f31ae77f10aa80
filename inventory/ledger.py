"""Movement ledger: the append-only source of truth for product stock.

Every write happens inside ``transaction.atomic`` while holding the product
row lock (``select_for_update``), so check-then-write sequences for one
product are serialized. Status changes are additionally guarded by a
compare-and-swap on ``status`` so a stale read can never move a movement out
of a terminal state.

Totals are folded from the ledger on read::

    physical  = completed increase + return + adjustment - decrease - sale
    reserved  = pending reservation
    available = physical - reserved   (clamped at 0 unless backorders are allowed)

Completing a reservation appends exactly one paired ``sale`` movement; a
completed reservation itself no longer counts anywhere, so every finalized
unit is decremented once. Cancelling or expiring a reservation appends an
informational ``release`` movement when stock change logging is enabled.
"""

import logging

from catalog.models import Product
from common.choices import MovementType
from common.concurrency import retry_on_conflict
from common.exceptions import (
    ConcurrentModification,
    InsufficientStock,
    InvalidQuantity,
    InvalidRequest,
    InvalidTransition,
    UnknownMovement,
    UnknownProduct,
)
from common.notifications import LoggingNotifier, notify_after_commit
from common.runtime import resolve_clock, resolve_config
from django.db import transaction
from django.db.models import Q, Sum, Value
from django.db.models.functions import Coalesce

from .models import StockMovement
from .types import Reference, StockSummary

logger = logging.getLogger("shop.inventory")

MAX_QUANTITY = 2**31 - 1

_STAMP_FIELDS = {
    StockMovement.STATUS_COMPLETED: "completed_at",
    StockMovement.STATUS_CANCELLED: "cancelled_at",
    StockMovement.STATUS_EXPIRED: "expired_at",
}

MOVEMENT_REFERENCE = "stock_movement"


def validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity("Quantity must be an integer", quantity=quantity)
    if quantity <= 0:
        raise InvalidQuantity("Quantity must be positive", quantity=quantity)
    if quantity > MAX_QUANTITY:
        raise InvalidQuantity("Quantity exceeds the supported maximum", quantity=quantity)
    return quantity


class MovementLedger:
    """Append-only ledger of stock movements with per-product serialization."""

    def __init__(self, *, clock=None, config=None, notifier=None):
        self.clock = resolve_clock(clock)
        self.config = resolve_config(config)
        self.notifier = notifier or LoggingNotifier()

    # Locking and lookups

    def lock_product(self, product_id) -> Product:
        """Lock the product row; must be called inside ``transaction.atomic``."""
        try:
            return Product.objects.select_for_update().get(pk=product_id)
        except Product.DoesNotExist:
            raise UnknownProduct(f"Product {product_id} does not exist", product_id=product_id) from None

    def locked_movement(self, movement_id) -> StockMovement:
        """Lock the owning product, then return a fresh copy of the movement."""
        product_id = StockMovement.objects.filter(pk=movement_id).values_list("product_id", flat=True).first()
        if product_id is None:
            raise UnknownMovement(f"Movement {movement_id} does not exist", movement_id=movement_id)
        self.lock_product(product_id)
        return StockMovement.objects.select_for_update().get(pk=movement_id)

    def get(self, movement_id) -> StockMovement:
        try:
            return StockMovement.objects.get(pk=movement_id)
        except StockMovement.DoesNotExist:
            raise UnknownMovement(f"Movement {movement_id} does not exist", movement_id=movement_id) from None

    def for_reference(self, reference: Reference):
        return StockMovement.objects.filter(reference_type=reference.type, reference_id=reference.id)

    def history(self, product_id):
        return StockMovement.objects.filter(product_id=product_id).order_by("-created_at", "-id")

    def paired_sale(self, reservation: StockMovement) -> StockMovement | None:
        return (
            StockMovement.objects.filter(
                movement_type=StockMovement.TYPE_SALE,
                reference_type=MOVEMENT_REFERENCE,
                reference_id=str(reservation.pk),
            )
            .order_by("id")
            .first()
        )

    # Derived totals

    def backorders_allowed(self, product: Product) -> bool:
        return bool(self.config("ALLOW_BACKORDERS", False)) or not product.manage_stock

    def summarize(self, product: Product) -> StockSummary:
        completed = Q(status=StockMovement.STATUS_COMPLETED)
        totals = StockMovement.objects.filter(product_id=product.pk).aggregate(
            inbound=Coalesce(
                Sum("quantity", filter=completed & Q(movement_type__in=StockMovement.INBOUND_TYPES)), Value(0)
            ),
            outbound=Coalesce(
                Sum("quantity", filter=completed & Q(movement_type__in=StockMovement.OUTBOUND_TYPES)), Value(0)
            ),
            adjusted=Coalesce(Sum("quantity", filter=completed & Q(movement_type=StockMovement.TYPE_ADJUSTMENT)), Value(0)),
            reserved=Coalesce(
                Sum(
                    "quantity",
                    filter=Q(status=StockMovement.STATUS_PENDING, movement_type=StockMovement.TYPE_RESERVATION),
                ),
                Value(0),
            ),
        )
        physical = int(totals["inbound"]) + int(totals["adjusted"]) - int(totals["outbound"])
        reserved = int(totals["reserved"])
        backorders = self.backorders_allowed(product)
        available = physical - reserved
        if not backorders:
            available = max(0, available)
        threshold = product.low_stock_threshold
        if threshold is None:
            threshold = self.config("LOW_STOCK_THRESHOLD", None)
        return StockSummary(
            product_id=product.pk,
            physical=physical,
            reserved=reserved,
            available=available,
            backorders_allowed=backorders,
            low_stock_threshold=int(threshold) if threshold is not None else None,
        )

    def available_stock(self, product_id) -> StockSummary:
        product = Product.objects.filter(pk=product_id).first()
        if product is None:
            raise UnknownProduct(f"Product {product_id} does not exist", product_id=product_id)
        return self.summarize(product)

    def ensure_available(self, product: Product, quantity: int) -> StockSummary:
        summary = self.summarize(product)
        if not summary.backorders_allowed and summary.available < quantity:
            raise InsufficientStock(
                f"Only {summary.available} of product {product.pk} available, {quantity} requested",
                product_id=product.pk,
                requested=quantity,
                available=summary.available,
            )
        return summary

    # Writes

    def append(
        self,
        product_id,
        movement_type: str,
        quantity: int,
        status: str = StockMovement.STATUS_COMPLETED,
        *,
        expires_at=None,
        reference: Reference | None = None,
        note: str = "",
        now=None,
    ) -> StockMovement:
        """Write a movement row; the caller holds the product lock."""
        now = now or self.clock()
        movement = StockMovement.objects.create(
            product_id=product_id,
            movement_type=movement_type,
            quantity=quantity,
            status=status,
            expires_at=expires_at,
            reference_type=reference.type if reference else "",
            reference_id=reference.id if reference else "",
            note=note[:255],
            created_at=now,
            completed_at=now if status == StockMovement.STATUS_COMPLETED else None,
        )
        logger.info(
            "stock.movement_recorded",
            extra={
                "event": "stock.movement_recorded",
                "movement_id": movement.id,
                "product_id": product_id,
                "movement_type": movement_type,
                "quantity": quantity,
                "status": status,
            },
        )
        return movement

    @retry_on_conflict
    def record(
        self,
        product_id,
        movement_type: str,
        quantity: int,
        status: str = StockMovement.STATUS_COMPLETED,
        expires_at=None,
        reference: Reference | None = None,
        note: str = "",
    ) -> int:
        """Append a movement and return its id."""
        quantity = validate_quantity(quantity)
        if movement_type not in MovementType.values:
            raise InvalidRequest(f"Unknown movement type {movement_type!r}", movement_type=movement_type)
        if movement_type == MovementType.RESERVATION and status != StockMovement.STATUS_PENDING:
            raise InvalidRequest("Reservations are recorded as pending", movement_type=movement_type)
        if status not in (StockMovement.STATUS_PENDING, StockMovement.STATUS_COMPLETED):
            raise InvalidTransition(
                f"Movements are recorded as pending or completed, not {status!r}", to_status=status
            )
        with transaction.atomic():
            product = self.lock_product(product_id)
            if status == StockMovement.STATUS_COMPLETED and movement_type in StockMovement.OUTBOUND_TYPES:
                self.ensure_available(product, quantity)
            movement = self.append(
                product.pk,
                movement_type,
                quantity,
                status,
                expires_at=expires_at,
                reference=reference,
                note=note,
            )
        return movement.id

    @retry_on_conflict
    def adjust(self, product_id, delta: int, note: str = "", reference: Reference | None = None) -> int:
        """Record a completed signed adjustment (stock take, correction)."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise InvalidQuantity("Adjustment must be a non-zero integer", quantity=delta)
        validate_quantity(abs(delta))
        with transaction.atomic():
            product = self.lock_product(product_id)
            if delta < 0:
                self.ensure_available(product, -delta)
            movement = self.append(
                product.pk, StockMovement.TYPE_ADJUSTMENT, delta, reference=reference, note=note
            )
        return movement.id

    def complete(self, movement_id) -> StockMovement:
        return self._transition(movement_id, StockMovement.STATUS_COMPLETED)

    def cancel(self, movement_id) -> StockMovement:
        return self._transition(movement_id, StockMovement.STATUS_CANCELLED)

    def expire(self, movement_id) -> StockMovement:
        return self._transition(movement_id, StockMovement.STATUS_EXPIRED)

    @retry_on_conflict
    def _transition(self, movement_id, target: str) -> StockMovement:
        with transaction.atomic():
            movement = self.locked_movement(movement_id)
            if movement.status == target:
                return movement
            return self.transition_locked(movement, target)

    def transition_locked(self, movement: StockMovement, target: str, *, now=None) -> StockMovement:
        """Move a locked pending movement to ``target`` and write its side entries."""
        if movement.status != StockMovement.STATUS_PENDING:
            raise InvalidTransition(
                f"Movement {movement.pk} is {movement.status}; cannot move to {target}",
                movement_id=movement.pk,
                from_status=movement.status,
                to_status=target,
            )
        if target not in _STAMP_FIELDS:
            raise InvalidTransition(
                f"Unknown movement status {target!r}", movement_id=movement.pk, to_status=target
            )
        if target == StockMovement.STATUS_COMPLETED and movement.is_decrement and not movement.is_reservation:
            self.ensure_available(movement.product, abs(movement.quantity))

        now = now or self.clock()
        stamp = _STAMP_FIELDS[target]
        updated = StockMovement.objects.filter(pk=movement.pk, status=StockMovement.STATUS_PENDING).update(
            status=target, **{stamp: now}
        )
        if not updated:
            raise ConcurrentModification(
                f"Movement {movement.pk} changed while transitioning", movement_id=movement.pk
            )
        previous = movement.status
        movement.status = target
        setattr(movement, stamp, now)

        if movement.is_reservation:
            link = Reference.of(MOVEMENT_REFERENCE, movement.pk)
            if target == StockMovement.STATUS_COMPLETED:
                self.append(
                    movement.product_id,
                    StockMovement.TYPE_SALE,
                    movement.quantity,
                    reference=link,
                    note="Finalized reservation",
                    now=now,
                )
            elif self.config("LOG_STOCK_CHANGES", True):
                self.append(
                    movement.product_id,
                    StockMovement.TYPE_RELEASE,
                    movement.quantity,
                    reference=link,
                    note=f"Stock released from reservation ({target})",
                    now=now,
                )
            if target == StockMovement.STATUS_EXPIRED:
                notify_after_commit(self.notifier.reservation_expired, movement)

        logger.info(
            "stock.movement_transitioned",
            extra={
                "event": "stock.movement_transitioned",
                "movement_id": movement.pk,
                "product_id": movement.product_id,
                "status_from": previous,
                "status_to": target,
            },
        )
        return movement
