"""Selectors for read-only cart queries."""

from datetime import timedelta

from common.exceptions import UnknownCart
from django.db.models import Q, Sum
from inventory.models import StockMovement

from .models import Cart


def get_cart(cart_id) -> Cart:
    try:
        return Cart.objects.get(pk=cart_id)
    except Cart.DoesNotExist:
        raise UnknownCart(f"Cart {cart_id} does not exist", cart_id=cart_id) from None


def get_active_cart(*, customer_reference: str = "", session_id: str | None = None) -> Cart:
    """Return the identity's active cart, creating it if missing."""

    if not customer_reference and not session_id:
        raise UnknownCart("A customer reference or session id is required")
    if customer_reference:
        lookup = {"customer_reference": customer_reference}
    else:
        lookup = {"customer_reference": "", "session_id": session_id}
    cart = Cart.objects.filter(status=Cart.STATUS_ACTIVE, **lookup).order_by("-id").first()
    if cart is None:
        cart = Cart.objects.create(status=Cart.STATUS_ACTIVE, session_id=session_id, **lookup)
    return cart


def cart_quantity(*, cart: Cart) -> int:
    return int(cart.items.aggregate(total=Sum("quantity"))["total"] or 0)


def reservation_for_item(item) -> StockMovement | None:
    if not item.reservation_id:
        return None
    return StockMovement.objects.filter(pk=item.reservation_id).first()


def idle_carts(*, now, minutes: int):
    """Active carts with no activity for ``minutes``."""
    cutoff = now - timedelta(minutes=minutes)
    return Cart.objects.filter(status=Cart.STATUS_ACTIVE).filter(
        Q(last_activity_at__lt=cutoff) | Q(last_activity_at__isnull=True, updated_at__lt=cutoff)
    )


def expirable_carts(*, now, minutes: int):
    """Active or abandoned carts idle past the hard expiry window."""
    cutoff = now - timedelta(minutes=minutes)
    return Cart.objects.filter(status__in=[Cart.STATUS_ACTIVE, Cart.STATUS_ABANDONED]).filter(
        Q(last_activity_at__lt=cutoff) | Q(last_activity_at__isnull=True, updated_at__lt=cutoff)
    )


def purgeable_carts(*, now, days: int):
    """Expired or abandoned carts kept longer than the retention window."""
    cutoff = now - timedelta(days=days)
    return Cart.objects.filter(
        Q(status=Cart.STATUS_EXPIRED, expired_at__lt=cutoff) | Q(status=Cart.STATUS_ABANDONED, abandoned_at__lt=cutoff)
    )
