"""Notification/audit collaborators invoked after order transitions and reservation expiry.

Notifications are fire-and-forget: they run after the transaction commits and a
failing notifier is logged, never propagated back into the state change.
"""

import logging
from functools import partial

from django.db import transaction

logger = logging.getLogger("shop.audit")


class Notifier:
    """No-op base; subclasses override the hooks they care about."""

    def order_transitioned(self, order, note) -> None:
        pass

    def reservation_expired(self, movement) -> None:
        pass


class LoggingNotifier(Notifier):
    """Emit structured audit events for every transition and expiry."""

    def order_transitioned(self, order, note) -> None:
        logger.info(
            "order.status_changed",
            extra={
                "event": "order.status_changed",
                "order_id": order.id,
                "order_number": order.number,
                "status_from": note.old_status,
                "status_to": note.new_status,
                "actor": note.actor,
            },
        )

    def reservation_expired(self, movement) -> None:
        logger.info(
            "reservation.expired",
            extra={
                "event": "reservation.expired",
                "movement_id": movement.id,
                "product_id": movement.product_id,
                "quantity": movement.quantity,
                "reference_type": movement.reference_type,
                "reference_id": movement.reference_id,
            },
        )


class CompositeNotifier(Notifier):
    def __init__(self, *notifiers: Notifier):
        self.notifiers = list(notifiers)

    def order_transitioned(self, order, note) -> None:
        for notifier in self.notifiers:
            notify_safely(notifier.order_transitioned, order, note)

    def reservation_expired(self, movement) -> None:
        for notifier in self.notifiers:
            notify_safely(notifier.reservation_expired, movement)


def notify_safely(hook, *args) -> None:
    try:
        hook(*args)
    except Exception:
        logger.exception(
            "notification.failed",
            extra={"event": "notification.failed", "hook": getattr(hook, "__qualname__", repr(hook))},
        )


def notify_after_commit(hook, *args) -> None:
    """Schedule ``hook(*args)`` once the surrounding transaction commits."""
    transaction.on_commit(partial(notify_safely, hook, *args))
