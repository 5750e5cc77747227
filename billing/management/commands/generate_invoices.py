"""
Management command to issue monthly invoices for every lease in force.
Safe to re-run: periods that already have an invoice are left alone.

Usage:
    python manage.py generate_invoices
    python manage.py generate_invoices --year 2024 --month 3 --dry-run

Runs automatically on the 1st of each month through the background scheduler,
or from crontab:
    5 0 1 * * cd /path/to/project && python manage.py generate_invoices
"""

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from accounts.models import Agency
from billing.invoicing import InvoiceGenerator
from core.exceptions import InvalidLeaseScheduleError


class Command(BaseCommand):
    help = 'Generate invoices for all leases active in a billing period'

    def add_arguments(self, parser):
        parser.add_argument('--year', type=int, help='Billing year (default: current)')
        parser.add_argument('--month', type=int, help='Billing month 1-12 (default: current)')
        parser.add_argument('--agency', type=int, help='Only bill leases of this agency id')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be created without actually creating invoices',
        )

    def handle(self, *args, **options):
        today = timezone.localdate()
        year = options['year'] or today.year
        month = options['month'] or today.month
        dry_run = options['dry_run']

        agency = None
        if options['agency']:
            agency = Agency.objects.filter(id=options['agency']).first()
            if agency is None:
                raise CommandError(f"Agency {options['agency']} does not exist")

        self.stdout.write(f"\n{'='*60}")
        self.stdout.write(f"  INVOICE GENERATION - {year}-{month:02d}")
        self.stdout.write(f"{'='*60}\n")
        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN MODE - No invoices will be created\n"))

        try:
            summary = InvoiceGenerator().generate_invoices_for_period(year, month, agency=agency, dry_run=dry_run)
        except InvalidLeaseScheduleError as e:
            raise CommandError(e.message)

        self.stdout.write(f"\n{'='*60}")
        self.stdout.write("  SUMMARY")
        self.stdout.write(f"{'='*60}")
        self.stdout.write(f"  Leases in force: {summary.total_leases}")
        self.stdout.write(f"  Already billed: {len(summary.already_billed)}")
        if summary.skipped:
            self.stdout.write(self.style.ERROR(f"  Skipped (invalid schedule): {len(summary.skipped)} {summary.skipped}"))
        if dry_run:
            self.stdout.write(self.style.WARNING(f"  Would create: {len(summary.created)}"))
        else:
            self.stdout.write(self.style.SUCCESS(f"  Created: {len(summary.created)}"))
        self.stdout.write(f"{'='*60}\n")
