"""
Management command to poll open gateway transactions once.

Usage:
    python manage.py poll_gateway_transactions
    python manage.py poll_gateway_transactions --reconcile --workers 4
"""
from django.core.management.base import BaseCommand

from gateways.worker import abandon_stale_initiations, poll_open_transactions, reconcile_timed_out


class Command(BaseCommand):
    help = 'Resolve INITIATED/PENDING gateway transactions, optionally re-query TIMED_OUT ones'

    def add_arguments(self, parser):
        parser.add_argument('--workers', type=int, help='Concurrent gateway queries')
        parser.add_argument('--reconcile', action='store_true',
                            help='Also re-query TIMED_OUT transactions inside the reconciliation window')

    def handle(self, *args, **options):
        abandoned = abandon_stale_initiations()
        if abandoned:
            self.stdout.write(self.style.WARNING(f"Abandoned initiations marked FAILED: {abandoned}"))

        counts = poll_open_transactions(max_workers=options['workers'])
        self.stdout.write(self.style.SUCCESS(f"Polled: {counts}"))

        if options['reconcile']:
            counts = reconcile_timed_out(max_workers=options['workers'])
            self.stdout.write(self.style.SUCCESS(f"Reconciled: {counts}"))
