import time

import schedule
from common.runtime import shop_setting
from django.core.management.base import BaseCommand
from sweeper.services import ExpirySweeper


class Command(BaseCommand):
    help = "Run the expiry sweeper once, or every N seconds with --every"

    def add_arguments(self, parser):
        parser.add_argument("--every", type=int, default=0, help="Repeat every SECONDS until interrupted")
        parser.add_argument("--force", action="store_true", help="Run even when SHOP['AUTO_SWEEP'] is off")

    def handle(self, *args, **options):
        if not options["force"] and not shop_setting("AUTO_SWEEP"):
            self.stdout.write(self.style.WARNING("Automatic sweeping is disabled (AUTO_SWEEP=False)."))
            return
        sweeper = ExpirySweeper()
        every = options["every"]
        if every <= 0:
            self._run(sweeper)
            return

        schedule.every(every).seconds.do(self._run, sweeper)
        self._run(sweeper)
        try:
            while True:
                schedule.run_pending()
                time.sleep(1)
        except KeyboardInterrupt:
            self.stdout.write("Sweeper stopped.")
        finally:
            schedule.clear()

    def _run(self, sweeper):
        result = sweeper.sweep()
        if result.skipped:
            self.stdout.write(self.style.WARNING("Sweep skipped: another sweep is running."))
            return
        self.stdout.write(
            self.style.SUCCESS(
                f"Sweep done: reservations_expired={result.reservations_expired} "
                f"carts_abandoned={result.carts_abandoned} carts_expired={result.carts_expired} "
                f"carts_deleted={result.carts_deleted} errors={result.errors}"
            )
        )
