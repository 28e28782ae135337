"""
Management command to generate the invoices of a payment plan for its academic year
"""
from django.core.management.base import BaseCommand, CommandError

from finance.context import FinanceContext
from finance.exceptions import FinanceError
from finance.services.invoicing import generate_invoices


class Command(BaseCommand):
    help = 'Generate the monthly invoices of a payment plan (idempotent)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--plan-id',
            type=int,
            required=True,
            help='Payment plan to generate invoices from',
        )
        parser.add_argument(
            '--academic-year',
            help='Academic year (YYYY/YYYY); defaults to the plan academic year',
        )
        parser.add_argument(
            '--student-id',
            type=int,
            action='append',
            dest='student_ids',
            help='Generate for this student only (repeatable)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be generated without actually creating invoices',
        )

    def handle(self, *args, **options):
        dry_run = options.get('dry_run', False)
        context = FinanceContext.system(academic_year=options.get('academic_year'))

        try:
            result = generate_invoices(
                plan_id=options['plan_id'],
                target_student_ids=options.get('student_ids') or [],
                academic_year=options.get('academic_year'),
                context=context,
                dry_run=dry_run,
            )
        except FinanceError as exc:
            raise CommandError(f"{exc.kind}: {exc.message}")

        for invoice in result.invoices:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Generated invoice {invoice.invoice_number} for student {invoice.student_id} - {invoice.month:02d}/{invoice.year}"
                )
            )

        # Summary
        self.stdout.write("\n" + "=" * 50)
        self.stdout.write(self.style.SUCCESS("Summary:"))
        self.stdout.write(f"  Academic year: {result.academic_year}")
        self.stdout.write(f"  Students: {result.student_count}")
        if dry_run:
            self.stdout.write(self.style.WARNING(f"  [DRY RUN] Would generate: {result.created_count}"))
        else:
            self.stdout.write(f"  Generated: {result.created_count}")
        self.stdout.write(f"  Skipped (already billed): {result.skipped_count}")
