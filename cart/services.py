"""Cart services: mutations backed by inventory reservations."""

import logging

from common.concurrency import retry_on_conflict
from common.exceptions import CartAlreadyConverted, CartEmpty, CartNotActive, UnknownCart
from common.runtime import resolve_clock, resolve_config
from django.db import transaction
from inventory.ledger import validate_quantity
from inventory.reservations import ReservationEngine
from inventory.types import Reference
from orders.services import OrderStateMachine, build_order_state_machine

from .models import Cart, CartItem
from .selectors import reservation_for_item

logger = logging.getLogger("shop.cart")


class CartService:
    """Keeps every cart item backed by one pending reservation of its quantity.

    Each mutation runs in a single transaction: when the new reservation is
    refused, the old one is left exactly as it was.
    """

    def __init__(self, engine: ReservationEngine | None = None, orders: OrderStateMachine | None = None, *, clock=None, config=None):
        self.clock = resolve_clock(clock)
        self.config = resolve_config(config)
        self.engine = engine or ReservationEngine(clock=self.clock, config=self.config)
        self.orders = orders or build_order_state_machine(ledger=self.engine.ledger, clock=self.clock, config=self.config)

    # Helpers

    def _lock_cart(self, cart_id) -> Cart:
        cart = Cart.objects.select_for_update().filter(pk=cart_id).first()
        if cart is None:
            raise UnknownCart(f"Cart {cart_id} does not exist", cart_id=cart_id)
        return cart

    def _set_status(self, cart: Cart, target, now) -> None:
        if not cart.can_transition_to(target):
            if cart.status == Cart.STATUS_CONVERTED:
                raise CartAlreadyConverted(f"Cart {cart.pk} was already checked out", cart_id=cart.pk)
            raise CartNotActive(
                f"Cart {cart.pk} is {cart.status}; cannot move to {target}",
                cart_id=cart.pk,
                from_status=cart.status,
                to_status=target,
            )
        fields = ["status", "updated_at"]
        cart.status = target
        stamp = {
            Cart.STATUS_ABANDONED: "abandoned_at",
            Cart.STATUS_CONVERTED: "converted_at",
            Cart.STATUS_EXPIRED: "expired_at",
        }.get(target)
        if stamp:
            setattr(cart, stamp, now)
            fields.append(stamp)
        elif target == Cart.STATUS_ACTIVE:
            cart.abandoned_at = None
            fields.append("abandoned_at")
        cart.save(update_fields=fields)

    def _active_cart(self, cart_id, now) -> Cart:
        """Lock the cart for a customer action, reactivating it if it was abandoned."""
        cart = self._lock_cart(cart_id)
        if cart.status != Cart.STATUS_ACTIVE:
            # Raises for converted and expired carts
            self._set_status(cart, Cart.STATUS_ACTIVE, now)
            logger.info("cart.reactivated", extra={"event": "cart.reactivated", "cart_id": cart.id})
        cart.last_activity_at = now
        cart.save(update_fields=["last_activity_at", "updated_at"])
        return cart

    def _release(self, item: CartItem) -> None:
        if item.reservation_id:
            movement = reservation_for_item(item)
            if movement is not None and movement.is_pending:
                self.engine.release(movement.pk)

    def _reserve(self, cart: Cart, product_id, quantity: int):
        return self.engine.reserve(product_id, quantity, reference=Reference.of("cart", cart.pk))

    # Item mutations

    @retry_on_conflict
    def add_item(self, cart_id, product_id, quantity: int) -> CartItem:
        """Add ``quantity`` units of a product, merging into an existing line."""
        quantity = validate_quantity(quantity)
        now = self.clock()
        with transaction.atomic():
            cart = self._active_cart(cart_id, now)
            item = CartItem.objects.select_for_update().filter(cart=cart, product_id=product_id).first()
            if item is None:
                handle = self._reserve(cart, product_id, quantity)
                item = CartItem.objects.create(
                    cart=cart, product_id=product_id, quantity=quantity, reservation_id=handle.movement_id
                )
                event = "cart.item_added"
            else:
                desired = validate_quantity(item.quantity + quantity)
                self._release(item)
                handle = self._reserve(cart, product_id, desired)
                item.quantity = desired
                item.reservation_id = handle.movement_id
                item.save(update_fields=["quantity", "reservation_id", "updated_at"])
                event = "cart.item_updated"
        logger.info(
            event,
            extra={
                "event": event,
                "cart_id": cart.id,
                "product_id": item.product_id,
                "quantity": item.quantity,
                "reservation_id": item.reservation_id,
            },
        )
        return item

    @retry_on_conflict
    def update_item_quantity(self, cart_id, item_id, quantity: int) -> CartItem | None:
        """Set a line's quantity; zero removes the line."""
        if quantity == 0:
            self.remove_item(cart_id, item_id)
            return None
        quantity = validate_quantity(quantity)
        now = self.clock()
        with transaction.atomic():
            cart = self._active_cart(cart_id, now)
            item = CartItem.objects.select_for_update().filter(pk=item_id, cart=cart).first()
            if item is None:
                raise UnknownCart(f"Item {item_id} is not in cart {cart.pk}", cart_id=cart.pk, item_id=item_id)
            # Replace reservation with the new quantity
            self._release(item)
            handle = self._reserve(cart, item.product_id, quantity)
            item.quantity = quantity
            item.reservation_id = handle.movement_id
            item.save(update_fields=["quantity", "reservation_id", "updated_at"])
        logger.info(
            "cart.item_updated",
            extra={
                "event": "cart.item_updated",
                "cart_id": cart.id,
                "product_id": item.product_id,
                "quantity": quantity,
                "reservation_id": item.reservation_id,
            },
        )
        return item

    @retry_on_conflict
    def remove_item(self, cart_id, item_id) -> None:
        """Remove an item from the cart and release its reservation."""
        now = self.clock()
        with transaction.atomic():
            cart = self._active_cart(cart_id, now)
            item = CartItem.objects.select_for_update().filter(pk=item_id, cart=cart).first()
            if item is None:
                return
            self._release(item)
            item.delete()
        logger.info(
            "cart.item_removed",
            extra={"event": "cart.item_removed", "cart_id": cart.id, "item_id": item_id},
        )

    @retry_on_conflict
    def clear(self, cart_id) -> None:
        """Remove every item and release all reservations."""
        now = self.clock()
        with transaction.atomic():
            cart = self._active_cart(cart_id, now)
            for item in CartItem.objects.select_for_update().filter(cart=cart):
                self._release(item)
            CartItem.objects.filter(cart=cart).delete()
        logger.info("cart.cleared", extra={"event": "cart.cleared", "cart_id": cart.id})

    # Lifecycle

    @retry_on_conflict
    def checkout(self, cart_id, *, actor: str = "customer"):
        """Finalize every item's reservation, create the order and convert the cart.

        A reservation that lapsed while the customer was away is claimed
        again before finalizing; if the stock is gone the whole checkout
        fails with ``InsufficientStock`` and nothing changes.
        """
        now = self.clock()
        with transaction.atomic():
            cart = self._active_cart(cart_id, now)
            items = list(CartItem.objects.select_for_update().filter(cart=cart))
            if not items:
                raise CartEmpty(f"Cart {cart.pk} has no items", cart_id=cart.pk)

            sales = {}
            for item in items:
                movement = reservation_for_item(item)
                if movement is None or not (movement.is_pending or movement.status == movement.STATUS_COMPLETED):
                    handle = self._reserve(cart, item.product_id, item.quantity)
                    item.reservation_id = handle.movement_id
                    item.save(update_fields=["reservation_id", "updated_at"])
                sales[item.id] = self.engine.finalize(item.reservation_id)

            order = self.orders.create_from_cart(cart, sales=sales, actor=actor)
            self._set_status(cart, Cart.STATUS_CONVERTED, now)
            # Clear items after conversion; the order lines keep the snapshot
            CartItem.objects.filter(cart=cart).delete()
        logger.info(
            "cart.checked_out",
            extra={"event": "cart.checked_out", "cart_id": cart.id, "order_id": int(order.id), "actor": actor},
        )
        return order

    @retry_on_conflict
    def abandon(self, cart_id, now=None) -> bool:
        """Mark an active cart abandoned. Items and reservations are kept.

        Returns False when the cart was not active.
        """
        now = now or self.clock()
        with transaction.atomic():
            cart = self._lock_cart(cart_id)
            if cart.status != Cart.STATUS_ACTIVE:
                return False
            self._set_status(cart, Cart.STATUS_ABANDONED, now)
        logger.info("cart.abandoned", extra={"event": "cart.abandoned", "cart_id": cart.id})
        return True

    @retry_on_conflict
    def expire(self, cart_id, now=None) -> bool:
        """Expire an active or abandoned cart and release its pending reservations.

        Returns False when the cart was already converted or expired.
        """
        now = now or self.clock()
        with transaction.atomic():
            cart = self._lock_cart(cart_id)
            if cart.status not in (Cart.STATUS_ACTIVE, Cart.STATUS_ABANDONED):
                return False
            released = 0
            for item in CartItem.objects.select_for_update().filter(cart=cart):
                movement = reservation_for_item(item)
                if movement is not None and movement.is_pending:
                    self.engine.release(movement.pk)
                    released += 1
            self._set_status(cart, Cart.STATUS_EXPIRED, now)
        logger.info(
            "cart.expired",
            extra={"event": "cart.expired", "cart_id": cart.id, "reservations_released": released},
        )
        return True
