"""
Management command to refresh invoice statuses and raise late penalties.

Usage:
    python manage.py sweep_penalties
    python manage.py sweep_penalties --as-of 2024-03-15
"""
from datetime import datetime, time

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from billing.penalties import PenaltyCalculator
from billing.status import sweep_overdue


class Command(BaseCommand):
    help = 'Recompute invoice statuses and emit penalties for overdue invoices'

    def add_arguments(self, parser):
        parser.add_argument('--as-of', help='Evaluate as of this date (YYYY-MM-DD, default: now)')

    def handle(self, *args, **options):
        as_of = timezone.now()
        if options['as_of']:
            try:
                day = datetime.strptime(options['as_of'], '%Y-%m-%d').date()
            except ValueError:
                raise CommandError("--as-of must be formatted YYYY-MM-DD")
            as_of = timezone.make_aware(datetime.combine(day, time(12, 0)))

        changed = sweep_overdue(as_of)
        penalties = PenaltyCalculator().compute_late_penalties(as_of)

        self.stdout.write(f"Invoice statuses updated: {changed}")
        self.stdout.write(self.style.SUCCESS(f"Penalties raised: {len(penalties)}"))
        for penalty in penalties:
            self.stdout.write(f"  + invoice #{penalty.invoice_id}: {penalty.amount} due {penalty.due_date}")
