from django.core.management.base import BaseCommand
from services.reassignment import expire_stale_pending_rides, sweep_stranded_rides


class Command(BaseCommand):
    help = (
        "Expire rides left pending too long (decline bound rides, cancel unbound ones) "
        "and move rides stuck after a driver dropout into reassignment."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--timeout",
            type=int,
            default=None,
            help="Seconds a ride may stay pending (default: RIDE_PENDING_TIMEOUT_SECONDS).",
        )
        parser.add_argument(
            "--grace",
            type=int,
            default=None,
            help="Seconds a declined ride may wait for reassignment (default: RIDE_REASSIGNMENT_GRACE_SECONDS).",
        )

    def handle(self, *args, **options):
        declined_count, cancelled_count = expire_stale_pending_rides(timeout_seconds=options["timeout"])
        reassigned_count = sweep_stranded_rides(grace_seconds=options["grace"])

        self.stdout.write(
            self.style.SUCCESS(
                f"Declined {declined_count} unanswered ride(s); cancelled {cancelled_count} unassigned ride(s)."
            )
        )
        self.stdout.write(
            self.style.SUCCESS(f"Flagged {reassigned_count} stranded ride(s) for reassignment.")
        )
