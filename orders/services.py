"""Order services: creation from a cart snapshot and validated status transitions."""

import logging

from common.choices import NoteType, OrderStatus
from common.concurrency import retry_on_conflict
from common.exceptions import ConcurrentModification, InvalidTransition, UnknownOrder
from common.notifications import CompositeNotifier, LoggingNotifier, notify_after_commit
from common.runtime import resolve_clock, resolve_config
from django.db import transaction
from django.db.models import F
from inventory.ledger import MovementLedger
from inventory.models import StockMovement
from inventory.types import Reference

from . import state
from .emails import EmailNotifier
from .models import Order, OrderLine, OrderNote

logger = logging.getLogger("shop.orders")

_STAGE_TIMESTAMPS = {
    OrderStatus.PROCESSING: "paid_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "cancelled_at",
    OrderStatus.REFUNDED: "refunded_at",
}


class OrderStateMachine:
    """Applies order status changes, each paired atomically with an audit note."""

    def __init__(self, *, ledger: MovementLedger | None = None, clock=None, config=None, notifier=None):
        self.clock = resolve_clock(clock)
        self.config = resolve_config(config)
        self.ledger = ledger or MovementLedger(clock=self.clock, config=self.config)
        self.notifier = notifier or LoggingNotifier()

    def get(self, order_id) -> Order:
        try:
            return Order.objects.get(pk=order_id)
        except Order.DoesNotExist:
            raise UnknownOrder(f"Order {order_id} does not exist", order_id=order_id) from None

    def notes(self, order_id):
        return self.get(order_id).notes.all()

    @transaction.atomic
    def create_from_cart(self, cart, *, sales: dict | None = None, actor: str = "system") -> Order:
        """Create a pending order from the cart's items.

        ``sales`` maps cart item id to the sale movement written when its
        reservation was finalized.
        """
        sales = sales or {}
        now = self.clock()
        order = Order.objects.create(
            cart_id=cart.id,
            customer_reference=cart.customer_reference,
            email=cart.email or None,
        )
        for item in cart.items.all():
            OrderLine.objects.create(
                order=order,
                product_id=item.product_id,
                quantity=item.quantity,
                reservation_id=item.reservation_id,
                sale_movement_id=sales.get(item.id),
            )
        # Generate user-friendly order number (unique)
        order.number = f"ORD-{int(order.id):06d}"
        order.save(update_fields=["number"])
        OrderNote.objects.create(
            order=order,
            type=NoteType.SYSTEM,
            content="Order created from cart checkout",
            actor=actor,
            new_status=order.status,
            created_at=now,
        )
        logger.info(
            "order.created",
            extra={"event": "order.created", "order_id": order.id, "cart_id": cart.id, "actor": actor},
        )
        return order

    @retry_on_conflict
    def transition(
        self,
        order_id,
        to_status,
        actor: str = "system",
        note: str | None = None,
        *,
        note_type: str = NoteType.STATUS_CHANGE,
        customer_visible: bool = False,
        meta: dict | None = None,
    ) -> Order:
        """Move the order to ``to_status`` or raise ``InvalidTransition``."""
        with transaction.atomic():
            return self._apply(
                order_id,
                to_status,
                actor=actor,
                note=note,
                note_type=note_type,
                customer_visible=customer_visible,
                meta=meta,
            )

    def _apply(self, order_id, to_status, *, actor, note, note_type, customer_visible, meta) -> Order:
        order = self.get(order_id)
        from_status = order.status
        if not state.can_transition(from_status, to_status):
            raise InvalidTransition(
                f"Cannot transition order {order.pk} from '{from_status}' to '{to_status}'",
                order_id=order.pk,
                from_status=from_status,
                to_status=to_status,
            )
        target = OrderStatus(to_status)
        now = self.clock()
        changes = {"status": target, "version": F("version") + 1, "updated_at": now}
        stamp = _STAGE_TIMESTAMPS.get(target)
        if stamp:
            changes[stamp] = now
        updated = Order.objects.filter(pk=order.pk, version=order.version).update(**changes)
        if not updated:
            raise ConcurrentModification(f"Order {order.pk} changed concurrently", order_id=order.pk)
        order.refresh_from_db()

        content = note or f"Order status changed from {OrderStatus(from_status).label} to {target.label}"
        status_note = OrderNote.objects.create(
            order=order,
            type=note_type,
            content=content,
            actor=actor,
            old_status=from_status,
            new_status=target,
            is_customer_note=customer_visible,
            meta=meta,
            created_at=now,
        )
        logger.info(
            "order.transition_applied",
            extra={
                "event": "order.transition_applied",
                "order_id": order.pk,
                "status_from": from_status,
                "status_to": str(target),
                "actor": actor,
            },
        )
        notify_after_commit(self.notifier.order_transitioned, order, status_note)
        return order

    def record_payment(self, order_id, *, reference: str | None = None, amount: int | None = None, actor="payment"):
        meta = {}
        if reference:
            meta["payment_reference"] = reference
        if amount is not None:
            meta["amount"] = amount
        content = "Payment received" + (f" ({reference})" if reference else "")
        return self.transition(
            order_id,
            OrderStatus.PROCESSING,
            actor=actor,
            note=content,
            note_type=NoteType.PAYMENT,
            meta=meta or None,
        )

    def mark_shipped(self, order_id, *, tracking_number: str | None = None, carrier: str | None = None, actor="system"):
        meta = {}
        if tracking_number:
            meta["tracking_number"] = tracking_number
        if carrier:
            meta["carrier"] = carrier
        content = "Order shipped"
        if carrier or tracking_number:
            content += f" via {carrier or 'carrier'}" + (f", tracking {tracking_number}" if tracking_number else "")
        return self.transition(
            order_id,
            OrderStatus.SHIPPED,
            actor=actor,
            note=content,
            note_type=NoteType.SHIPPING,
            customer_visible=True,
            meta=meta or None,
        )

    def refund(self, order_id, *, amount: int | None = None, reason: str | None = None, actor="system"):
        content = "Order refunded" + (f": {reason}" if reason else "")
        return self.transition(
            order_id,
            OrderStatus.REFUNDED,
            actor=actor,
            note=content,
            note_type=NoteType.REFUND,
            meta={"amount": amount} if amount is not None else None,
        )

    @retry_on_conflict
    def cancel(self, order_id, *, reason: str | None = None, actor="system") -> Order:
        """Cancel the order and, when configured, put its stock back."""
        content = "Order cancelled" + (f": {reason}" if reason else "")
        with transaction.atomic():
            order = self._apply(
                order_id,
                OrderStatus.CANCELLED,
                actor=actor,
                note=content,
                note_type=NoteType.STATUS_CHANGE,
                customer_visible=False,
                meta=None,
            )
            if self.config("RESTOCK_ON_CANCEL", True):
                self._restock(order)
        return order

    def _restock(self, order: Order) -> None:
        for line in order.lines.all():
            if line.sale_movement_id:
                self.ledger.record(
                    line.product_id,
                    StockMovement.TYPE_RETURN,
                    line.quantity,
                    reference=Reference.of("order_line", line.id),
                    note=f"Restocked from cancelled order {order.number or order.id}",
                )
            elif line.reservation_id:
                movement = StockMovement.objects.filter(pk=line.reservation_id).first()
                if movement is not None and movement.is_pending:
                    self.ledger.cancel(movement.pk)

    def add_note(
        self,
        order_id,
        content: str,
        *,
        note_type: str = NoteType.NOTE,
        actor: str = "system",
        customer_visible: bool = False,
        meta: dict | None = None,
    ) -> OrderNote:
        order = self.get(order_id)
        return OrderNote.objects.create(
            order=order,
            type=note_type,
            content=content,
            actor=actor,
            is_customer_note=customer_visible,
            meta=meta,
            created_at=self.clock(),
        )


def build_order_state_machine(*, ledger=None, clock=None, config=None, notifier=None) -> OrderStateMachine:
    """State machine that logs every transition and mails customer-facing ones."""
    notifier = notifier or CompositeNotifier(LoggingNotifier(), EmailNotifier())
    return OrderStateMachine(ledger=ledger, clock=clock, config=config, notifier=notifier)
