"""
Invoice status machine.

Status is always derived from (total_paid, amount, due_at, now) and never
stored as a one-way edge, so recomputing after every payment event and on
every overdue sweep is idempotent:

    PAID     if total_paid >= amount            (wins regardless of date)
    OVERDUE  if today > due_at + grace period
    PARTIAL  if total_paid > 0
    PENDING  otherwise
"""
from datetime import date, datetime, timedelta
import logging

from django.db import transaction
from django.utils import timezone

from core.constants import BillingDefaults, InvoiceStatus
from core.services import get_setting

logger = logging.getLogger(__name__)


def get_grace_period() -> timedelta:
    """Configured delay after due_at before an invoice counts as overdue"""
    days = get_setting('BILLING', 'GRACE_PERIOD_DAYS', BillingDefaults.GRACE_PERIOD_DAYS)
    return timedelta(days=days)


def as_date(value) -> date:
    """Billing day for a date or datetime, in the project timezone"""
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localdate(value)
        return value.date()
    return value


def compute_status(total_paid: int, amount: int, due_at: date, now, grace: timedelta = None) -> str:
    """Pure status derivation; same inputs always give the same status"""
    if grace is None:
        grace = timedelta(0)
    if total_paid >= amount:
        return InvoiceStatus.PAID
    if as_date(now) > due_at + grace:
        return InvoiceStatus.OVERDUE
    if total_paid > 0:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING


def status_for(invoice, now, grace: timedelta = None) -> str:
    if grace is None:
        grace = get_grace_period()
    return compute_status(invoice.total_paid, invoice.amount, invoice.due_at, now, grace)


def refresh_invoice_status(invoice, now, grace: timedelta = None) -> bool:
    """
    Recompute and persist an invoice's status.

    Returns True if the stored status changed.
    """
    new_status = status_for(invoice, now, grace)
    if new_status == invoice.status:
        return False
    old_status = invoice.status
    invoice.status = new_status
    invoice.save(update_fields=['status', 'updated_at'])
    logger.info(f"Invoice {invoice.id} status {old_status} -> {new_status}")
    return True


def sweep_overdue(now, agency=None) -> int:
    """Recompute the status of every unpaid invoice. Returns how many changed."""
    from billing.models import Invoice

    grace = get_grace_period()
    invoices = Invoice.objects.exclude(status=InvoiceStatus.PAID)
    if agency is not None:
        invoices = invoices.filter(agency=agency)

    changed = 0
    for invoice_id in list(invoices.values_list("id", flat=True)):
        # Re-read under a row lock so a concurrent payment is never overwritten
        with transaction.atomic():
            invoice = Invoice.objects.select_for_update().get(pk=invoice_id)
            if refresh_invoice_status(invoice, now, grace):
                changed += 1

    logger.info(f"Overdue sweep as of {as_date(now)} updated {changed} invoices")
    return changed
