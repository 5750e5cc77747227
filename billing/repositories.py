"""
Billing repositories - Data access layer for invoices, payments and penalties.
"""
from datetime import date
from typing import List, Optional

from django.db.models import QuerySet, Sum

from core.constants import InvoiceStatus, PenaltyStatus
from core.repositories import BaseRepository
from .models import Invoice, Payment, PaymentAllocation, Penalty


class InvoiceRepository(BaseRepository[Invoice]):
    """Repository for Invoice model"""

    def __init__(self):
        super().__init__(Invoice)

    def get_for_period(self, lease_id: int, year: int, month: int) -> Optional[Invoice]:
        return self.get_all(lease_id=lease_id, period_year=year, period_month=month).first()

    def unresolved_for_lease(self, lease_id: int, due_on_or_before: date = None,
                             exclude_ids=None, lock: bool = False) -> QuerySet[Invoice]:
        """
        Non-PAID invoices of a lease, oldest debt first.
        Ordered by (period_year, period_month) with the lower id breaking ties.
        """
        queryset = self.model.objects
        if lock:
            queryset = queryset.select_for_update()
        queryset = queryset.filter(lease_id=lease_id).exclude(status=InvoiceStatus.PAID)
        if due_on_or_before is not None:
            queryset = queryset.filter(due_at__lte=due_on_or_before)
        if exclude_ids:
            queryset = queryset.exclude(id__in=exclude_ids)
        return queryset.order_by('period_year', 'period_month', 'id')

    def unpaid(self, agency=None) -> QuerySet[Invoice]:
        queryset = self.get_all().exclude(status=InvoiceStatus.PAID)
        if agency is not None:
            queryset = queryset.filter(agency=agency)
        return queryset.select_related('lease').order_by('due_at', 'id')


class PaymentRepository(BaseRepository[Payment]):
    """Repository for Payment model"""

    def __init__(self):
        super().__init__(Payment)

    def reference_exists(self, agency_id: int, reference_number: str) -> bool:
        if not reference_number:
            return False
        return self.exists(agency_id=agency_id, reference_number=reference_number)

    def for_lease(self, lease_id: int) -> QuerySet[Payment]:
        return self.get_all(lease_id=lease_id).prefetch_related('allocations').order_by('paid_at', 'id')

    def with_unapplied_credit(self, lease_id: int) -> List[Payment]:
        """Payments of a lease that still carry unapplied credit"""
        payments = (
            self.get_all(lease_id=lease_id, amount__gt=0, reversal__isnull=True)
            .annotate(applied=Sum('allocations__amount'))
            .order_by('paid_at', 'id')
        )
        return [p for p in payments if p.amount - (p.applied or 0) > 0]


class AllocationRepository(BaseRepository[PaymentAllocation]):
    """Repository for PaymentAllocation model"""

    def __init__(self):
        super().__init__(PaymentAllocation)

    def for_payment(self, payment_id: int) -> QuerySet[PaymentAllocation]:
        return self.get_all(payment_id=payment_id).order_by('id')


class PenaltyRepository(BaseRepository[Penalty]):
    """Repository for Penalty model"""

    def __init__(self):
        super().__init__(Penalty)

    def has_active_penalty(self, invoice_id: int) -> bool:
        """An invoice already carries a penalty unless every one was waived"""
        return self.get_all(invoice_id=invoice_id).exclude(status=PenaltyStatus.WAIVED).exists()
