from cart.models import Cart
from django.core.management.base import BaseCommand
from django.db.models import Count
from inventory.models import StockMovement
from inventory.selectors import low_stock_products
from inventory.services import build_ledger
from orders.models import Order


class Command(BaseCommand):
    help = "Print cart, order and reservation counts by status, plus low-stock products"

    def handle(self, *args, **options):
        self._counts("Carts", Cart.objects.values("status").annotate(n=Count("id")))
        self._counts("Orders", Order.objects.values("status").annotate(n=Count("id")))
        self._counts(
            "Reservations",
            StockMovement.objects.filter(movement_type=StockMovement.TYPE_RESERVATION)
            .values("status")
            .annotate(n=Count("id")),
        )
        low = low_stock_products(ledger=build_ledger())
        self.stdout.write(f"Low stock products: {len(low)}")
        for row in low:
            self.stdout.write(f"  {row['sku']} (product={row['product_id']}) available={row['available']}")

    def _counts(self, title, rows):
        self.stdout.write(f"{title}:")
        for row in sorted(rows, key=lambda r: r["status"]):
            self.stdout.write(f"  {row['status']}: {row['n']}")
