"""Email utilities for the orders app.

Uses Django's email backend, with links composed from FRONTEND_URL.
"""

from common.choices import OrderStatus
from common.notifications import Notifier
from django.conf import settings
from django.core.mail import send_mail

# Statuses worth telling the customer about
CUSTOMER_FACING_STATUSES = frozenset(
    {
        OrderStatus.PROCESSING,
        OrderStatus.READY_FOR_PICKUP,
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
    }
)


def send_order_status_email(order) -> None:
    """Send a status update email to the order's email address.

    Links to the order on the frontend when `FRONTEND_URL` is set.
    Silently no-ops if no email is present.
    """
    if not order.email:
        return

    label = OrderStatus(order.status).label
    subject = f"Your order {order.number or order.id} is now {label.lower()}"
    body = (
        "Thank you for shopping with us!\n\n"
        f"Order: {order.number or order.id}\n"
        f"Status: {label}\n"
    )
    frontend = getattr(settings, "FRONTEND_URL", "")
    if frontend:
        body += f"\nYou can view your order here: {frontend.rstrip('/')}/orders/{order.id}\n"

    send_mail(
        subject,
        body,
        getattr(settings, "DEFAULT_FROM_EMAIL", None),
        [order.email],
        fail_silently=False,
    )


class EmailNotifier(Notifier):
    """Mails the order contact when the order reaches a customer-facing status."""

    def order_transitioned(self, order, note) -> None:
        if note.new_status in CUSTOMER_FACING_STATUSES:
            send_order_status_email(order)
