"""Selectors for inventory domain (single-location)."""

from catalog.models import Product

from .ledger import MovementLedger
from .models import StockMovement
from .types import Reference


def list_stock_for_products(*, ledger: MovementLedger, product_ids=None):
    qs = Product.objects.filter(manage_stock=True).order_by("sku")
    if product_ids is not None:
        qs = qs.filter(id__in=product_ids)
    rows = []
    for product in qs:
        summary = ledger.summarize(product)
        rows.append(
            {
                "product_id": product.id,
                "sku": product.sku,
                "physical": summary.physical,
                "reserved": summary.reserved,
                "available": summary.available,
                "low_stock": summary.is_low_stock,
            }
        )
    return rows


def low_stock_products(*, ledger: MovementLedger):
    return [row for row in list_stock_for_products(ledger=ledger) if row["low_stock"]]


def list_active_reservations_for_product(product_id: int):
    return list(
        StockMovement.objects.filter(
            product_id=product_id,
            movement_type=StockMovement.TYPE_RESERVATION,
            status=StockMovement.STATUS_PENDING,
        )
        .order_by("-created_at", "-id")
        .values("id", "quantity", "reference_type", "reference_id", "expires_at")
    )


def reservation_for_reference(reference: Reference) -> StockMovement | None:
    """Latest reservation written for a cart item or order line."""
    return (
        StockMovement.objects.filter(
            movement_type=StockMovement.TYPE_RESERVATION,
            reference_type=reference.type,
            reference_id=reference.id,
        )
        .order_by("-created_at", "-id")
        .first()
    )


# EOF
