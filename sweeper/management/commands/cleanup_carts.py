from django.core.management.base import BaseCommand
from django.utils import timezone
from sweeper.services import ExpirySweeper, SweepResult


class Command(BaseCommand):
    help = "Abandon idle carts; optionally expire stale carts and delete carts past retention"

    def add_arguments(self, parser):
        parser.add_argument("--expire", action="store_true", help="Also expire carts past the hard expiry window")
        parser.add_argument("--delete", action="store_true", help="Also delete expired/abandoned carts past retention")
        parser.add_argument("--dry-run", action="store_true", help="Only count the carts that would be affected")

    def handle(self, *args, **options):
        sweeper = ExpirySweeper()
        now = timezone.now()
        dry_run = options["dry_run"]
        result = SweepResult()
        with sweeper.lock() as acquired:
            if not acquired:
                self.stdout.write(self.style.WARNING("Another sweep is running; nothing was done."))
                return
            sweeper.abandon_idle(now, result, dry_run=dry_run)
            if options["expire"]:
                sweeper.expire_stale(now, result, dry_run=dry_run)
            if options["delete"]:
                sweeper.delete_retained(now, result, dry_run=dry_run)
        prefix = "Would affect" if dry_run else "Processed"
        self.stdout.write(
            self.style.SUCCESS(
                f"{prefix}: abandoned={result.carts_abandoned} expired={result.carts_expired} "
                f"deleted={result.carts_deleted} errors={result.errors}"
            )
        )
