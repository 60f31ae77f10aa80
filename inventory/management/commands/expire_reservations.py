from django.core.management.base import BaseCommand
from django.utils import timezone
from inventory.services import build_reservation_engine


class Command(BaseCommand):
    help = "Expire pending stock reservations that have passed their expires_at timestamp."

    def handle(self, *args, **options):
        engine = build_reservation_engine()
        count = engine.expire_due(timezone.now())
        self.stdout.write(self.style.SUCCESS(f"Expired reservations: {count}"))
