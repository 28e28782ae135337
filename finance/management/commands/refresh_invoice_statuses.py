"""
Management command to refresh invoice status snapshots and accrue late fees/interest.
Meant to run daily from cron.
"""
from datetime import datetime

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from finance.exceptions import FinanceError
from finance.services.invoicing import refresh_statuses


class Command(BaseCommand):
    help = 'Refresh stored invoice statuses and accrue penalties as of a date (default: today)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--as-of',
            help='Evaluation date (YYYY-MM-DD), not later than today',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Count stale statuses without writing anything',
        )

    def handle(self, *args, **options):
        as_of = options.get('as_of')
        if as_of:
            try:
                as_of = datetime.strptime(as_of, '%Y-%m-%d').date()
            except ValueError:
                raise CommandError('Invalid --as-of date, expected YYYY-MM-DD')
        else:
            as_of = timezone.localdate()

        try:
            counters = refresh_statuses(as_of, dry_run=options.get('dry_run', False))
        except FinanceError as exc:
            raise CommandError(f"{exc.kind}: {exc.message}")

        self.stdout.write("\n" + "=" * 50)
        self.stdout.write(self.style.SUCCESS(f"Summary ({as_of.isoformat()}):"))
        self.stdout.write(f"  Checked: {counters['checked']}")
        self.stdout.write(f"  Status updated: {counters['updated']}")
        self.stdout.write(f"  Charges accrued: {counters['charged']}")
        if counters['conflicts']:
            self.stdout.write(self.style.WARNING(f"  Conflicts (retry next run): {counters['conflicts']}"))
        if counters['skipped']:
            self.stdout.write(f"  Skipped (deleted meanwhile): {counters['skipped']}")
