"""Reservation engine: claims stock against the ledger and resolves the claims later."""

import logging
from datetime import timedelta

from common.concurrency import retry_on_conflict
from common.exceptions import InsufficientStock, InvalidRequest, InvalidTransition, ShopError, UnknownMovement
from common.runtime import minutes, resolve_clock, resolve_config
from django.db import DatabaseError, transaction

from .ledger import MovementLedger, validate_quantity
from .models import StockMovement
from .types import Reference, ReservationHandle, StockSummary

logger = logging.getLogger("shop.inventory")


def _movement_id(handle) -> int:
    if isinstance(handle, ReservationHandle):
        return handle.movement_id
    return handle


def _handle(movement: StockMovement) -> ReservationHandle:
    return ReservationHandle(
        movement_id=movement.pk,
        product_id=movement.product_id,
        quantity=movement.quantity,
        expires_at=movement.expires_at,
    )


class ReservationEngine:
    """Create, release, expire and finalize reservations.

    ``release`` and ``finalize`` accept either a ``ReservationHandle`` or a
    raw movement id, since cart items only keep the id.
    """

    def __init__(self, ledger: MovementLedger | None = None, *, clock=None, config=None, notifier=None):
        self.clock = resolve_clock(clock)
        self.config = resolve_config(config)
        self.ledger = ledger or MovementLedger(clock=self.clock, config=self.config, notifier=notifier)
        if notifier is not None:
            self.ledger.notifier = notifier

    @property
    def notifier(self):
        """Expiry notifications are sent by the ledger on every expired reservation."""
        return self.ledger.notifier

    def available_stock(self, product_id) -> StockSummary:
        return self.ledger.available_stock(product_id)

    def handle_for(self, movement_id) -> ReservationHandle:
        movement = self.ledger.get(movement_id)
        self._ensure_reservation(movement)
        return _handle(movement)

    def _ttl(self, ttl) -> timedelta:
        if ttl is None:
            return minutes(self.config, "RESERVATION_TTL_MINUTES")
        if not isinstance(ttl, timedelta):
            ttl = timedelta(seconds=ttl)
        if ttl < timedelta(0):
            raise InvalidRequest("Reservation TTL must not be negative", ttl=ttl)
        return ttl

    @staticmethod
    def _ensure_reservation(movement: StockMovement) -> None:
        if not movement.is_reservation:
            raise UnknownMovement(
                f"Movement {movement.pk} is a {movement.movement_type}, not a reservation", movement_id=movement.pk
            )

    @retry_on_conflict
    def reserve(self, product_id, quantity: int, ttl=None, reference: Reference | None = None) -> ReservationHandle:
        """Claim ``quantity`` units until ``now + ttl``.

        Raises ``InsufficientStock`` when backorders are disallowed and the
        claim exceeds what is available.
        """
        quantity = validate_quantity(quantity)
        ttl = self._ttl(ttl)
        with transaction.atomic():
            product = self.ledger.lock_product(product_id)
            summary = self.ledger.summarize(product)
            if not summary.backorders_allowed and summary.available < quantity:
                logger.info(
                    "reservation.rejected",
                    extra={
                        "event": "reservation.rejected",
                        "product_id": product.pk,
                        "requested": quantity,
                        "available": summary.available,
                    },
                )
                raise InsufficientStock(
                    f"Only {summary.available} of product {product.pk} available, {quantity} requested",
                    product_id=product.pk,
                    requested=quantity,
                    available=summary.available,
                )
            now = self.clock()
            movement = self.ledger.append(
                product.pk,
                StockMovement.TYPE_RESERVATION,
                quantity,
                StockMovement.STATUS_PENDING,
                expires_at=now + ttl,
                reference=reference,
                now=now,
            )
        return _handle(movement)

    @retry_on_conflict
    def release(self, handle) -> bool:
        """Cancel the reservation. Returns False when it was already terminal."""
        with transaction.atomic():
            movement = self.ledger.locked_movement(_movement_id(handle))
            self._ensure_reservation(movement)
            if not movement.is_pending:
                return False
            self.ledger.transition_locked(movement, StockMovement.STATUS_CANCELLED)
        return True

    @retry_on_conflict
    def finalize(self, handle) -> int:
        """Turn the reservation into a permanent sale; returns the sale movement id.

        Finalizing twice returns the same sale. Finalizing an expired or
        released reservation raises ``InvalidTransition``.
        """
        with transaction.atomic():
            movement = self.ledger.locked_movement(_movement_id(handle))
            self._ensure_reservation(movement)
            if movement.status == StockMovement.STATUS_COMPLETED:
                sale = self.ledger.paired_sale(movement)
                if sale is not None:
                    return sale.pk
            if not movement.is_pending:
                raise InvalidTransition(
                    f"Reservation {movement.pk} is {movement.status}; cannot finalize",
                    movement_id=movement.pk,
                    from_status=movement.status,
                    to_status=StockMovement.STATUS_COMPLETED,
                )
            self.ledger.transition_locked(movement, StockMovement.STATUS_COMPLETED)
            return self.ledger.paired_sale(movement).pk

    def _due_ids(self, now):
        """Yield due reservation ids in id order, one bounded batch at a time."""
        batch_size = max(1, int(self.config("EXPIRY_BATCH_SIZE", 500)))
        last_id = 0
        while True:
            batch = list(
                StockMovement.objects.filter(
                    movement_type=StockMovement.TYPE_RESERVATION,
                    status=StockMovement.STATUS_PENDING,
                    expires_at__isnull=False,
                    expires_at__lte=now,
                    id__gt=last_id,
                )
                .order_by("id")
                .values_list("id", flat=True)[:batch_size]
            )
            yield from batch
            if len(batch) < batch_size:
                return
            last_id = batch[-1]

    def expire_due(self, now=None) -> int:
        """Expire every pending reservation whose deadline is at or before ``now``."""
        now = now or self.clock()
        candidates = 0
        count = 0
        for movement_id in self._due_ids(now):
            candidates += 1
            try:
                if self._expire_one(movement_id, now):
                    count += 1
            except (ShopError, DatabaseError):
                logger.exception(
                    "reservation.expire_failed",
                    extra={"event": "reservation.expire_failed", "movement_id": movement_id},
                )
        if candidates:
            logger.info(
                "reservation.expired_batch",
                extra={"event": "reservation.expired_batch", "candidates": candidates, "expired": count},
            )
        return count

    @retry_on_conflict
    def _expire_one(self, movement_id, now) -> bool:
        with transaction.atomic():
            movement = self.ledger.locked_movement(movement_id)
            # Finalized, released or extended since the scan
            if not movement.is_pending or movement.expires_at is None or movement.expires_at > now:
                return False
            self.ledger.transition_locked(movement, StockMovement.STATUS_EXPIRED, now=now)
        return True
