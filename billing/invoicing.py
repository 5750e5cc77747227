"""
Invoice Generator
Turns a lease's recurring schedule into one invoice per billing period.
"""
from django.db import IntegrityError, transaction
from django.utils import timezone

from audit.helpers import log_invoice_generated
from core.constants import InvoiceStatus
from core.dto import GenerationSummary
from core.exceptions import DuplicateInvoiceError, InvalidLeaseScheduleError
from core.services import BaseService
from core.validators import LeaseScheduleValidator
from leases.repositories import LeaseRepository
from .models import Invoice
from .repositories import InvoiceRepository


class InvoiceGenerator(BaseService):
    """Issues invoices for leases"""

    def __init__(self):
        super().__init__()
        self.invoice_repo = InvoiceRepository()
        self.lease_repo = LeaseRepository()

    def generate_invoice(self, lease, year: int, month: int, issued_at=None, user=None) -> Invoice:
        """
        Issue the invoice for one lease and billing period.

        Args:
            lease: Lease to bill
            year: Billing year
            month: Billing month (1-12)
            issued_at: Issue timestamp, defaults to now

        Returns:
            The new PENDING invoice

        Raises:
            InvalidLeaseScheduleError: bad period, bad payment day, or lease not in force
            DuplicateInvoiceError: the period was already billed
        """
        LeaseScheduleValidator.validate_payment_day(lease.payment_day_of_month)
        LeaseScheduleValidator.validate_period(year, month)
        if not lease.covers_period(year, month):
            raise InvalidLeaseScheduleError(
                message=f"Lease {lease.id} is not active during {year}-{month:02d}",
                details={"lease_id": lease.id, "year": year, "month": month},
            )

        issued_at = issued_at or timezone.now()
        try:
            with transaction.atomic():
                invoice = self.invoice_repo.create(
                    lease=lease,
                    agency_id=lease.agency_id,
                    period_year=year,
                    period_month=month,
                    amount=lease.rent_amount,
                    total_paid=0,
                    issued_at=issued_at,
                    due_at=lease.due_date_for(year, month),
                    status=InvoiceStatus.PENDING,
                )
                log_invoice_generated(invoice, user=user)
        except IntegrityError as e:
            if self.invoice_repo.get_for_period(lease.id, year, month) is None:
                raise
            raise DuplicateInvoiceError(
                message=f"Lease {lease.id} already has an invoice for {year}-{month:02d}",
                details={"lease_id": lease.id, "year": year, "month": month},
            ) from e

        self.log_info("Invoice generated", invoice_id=invoice.id, lease_id=lease.id,
                      period=invoice.period_label, due_at=invoice.due_at.isoformat())
        return invoice

    def generate_invoices_for_period(self, year: int, month: int, agency=None,
                                     dry_run: bool = False, issued_at=None) -> GenerationSummary:
        """
        Bill every lease in force during the period.

        One lease failing never aborts the batch; it is counted as skipped.
        """
        LeaseScheduleValidator.validate_period(year, month)
        summary = GenerationSummary(year=year, month=month, dry_run=dry_run)
        issued_at = issued_at or timezone.now()

        for lease in self.lease_repo.covering_period(year, month, agency=agency):
            if self.invoice_repo.get_for_period(lease.id, year, month) is not None:
                summary.already_billed.append(lease.id)
                continue
            if dry_run:
                summary.created.append(lease.id)
                continue
            try:
                self.generate_invoice(lease, year, month, issued_at=issued_at)
                summary.created.append(lease.id)
            except DuplicateInvoiceError:
                summary.already_billed.append(lease.id)
            except InvalidLeaseScheduleError as e:
                self.log_warning("Skipping lease with invalid schedule", lease_id=lease.id, error=e.message)
                summary.skipped.append(lease.id)
            except Exception as e:
                self.log_error("Failed to generate invoice", error=e, lease_id=lease.id)
                summary.skipped.append(lease.id)

        self.log_info("Invoice generation finished", year=year, month=month, dry_run=dry_run,
                      created=len(summary.created), already_billed=len(summary.already_billed),
                      skipped=len(summary.skipped))
        return summary
