from django.core.management.base import BaseCommand

from reports.models import Report
from services.case_management import expiry_cutoff
import logging

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "List open reports past the expiry window. Read-only: statuses are not changed."

    def add_arguments(self, parser):
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum number of reports to list (default: 100).",
        )

    def handle(self, *args, **options):
        cutoff = expiry_cutoff()
        expired = Report.objects.filter(
            status=Report.STATUS_OPEN,
            created_at__lte=cutoff,
        ).order_by("created_at")
        count = expired.count()

        for report in expired[:options["limit"]]:
            self.stdout.write(
                f"#{report.id} {report.title or 'untitled'} "
                f"({report.latitude}, {report.longitude}) opened {report.created_at:%Y-%m-%d %H:%M}"
            )

        logger.info("Found %d expired open reports (cutoff %s)", count, cutoff)
        self.stdout.write(
            self.style.WARNING(f"{count} open reports older than {cutoff:%Y-%m-%d %H:%M}.")
        )
