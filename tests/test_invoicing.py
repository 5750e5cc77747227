from datetime import date

import pytest
from django.core.management import call_command

from billing.invoicing import InvoiceGenerator
from billing.models import Invoice
from core.constants import InvoiceStatus
from core.exceptions import DuplicateInvoiceError, InvalidLeaseScheduleError
from tests.conftest import aware


@pytest.mark.django_db
class TestGenerateInvoice:

    def test_creates_pending_invoice(self, lease):
        invoice = InvoiceGenerator().generate_invoice(lease, 2024, 3, issued_at=aware(2024, 3, 1))

        assert invoice.amount == 10000
        assert invoice.total_paid == 0
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.due_at == date(2024, 3, 5)
        assert invoice.agency_id == lease.agency_id

    def test_due_day_clamped_to_short_months(self, make_lease):
        lease = make_lease(payment_day_of_month=31)
        generator = InvoiceGenerator()

        assert generator.generate_invoice(lease, 2024, 2).due_at == date(2024, 2, 29)
        assert generator.generate_invoice(lease, 2024, 4).due_at == date(2024, 4, 30)
        assert generator.generate_invoice(lease, 2024, 5).due_at == date(2024, 5, 31)

    def test_second_invoice_for_period_is_rejected(self, lease):
        generator = InvoiceGenerator()
        generator.generate_invoice(lease, 2024, 3)

        with pytest.raises(DuplicateInvoiceError):
            generator.generate_invoice(lease, 2024, 3)
        assert Invoice.objects.filter(lease=lease).count() == 1

    def test_lease_not_in_force(self, make_lease):
        lease = make_lease(start_date=date(2024, 5, 1))
        with pytest.raises(InvalidLeaseScheduleError):
            InvoiceGenerator().generate_invoice(lease, 2024, 3)

    def test_terminated_lease_is_not_billed_after_end(self, make_lease):
        lease = make_lease(end_date=date(2024, 2, 10))
        generator = InvoiceGenerator()

        generator.generate_invoice(lease, 2024, 2)
        with pytest.raises(InvalidLeaseScheduleError):
            generator.generate_invoice(lease, 2024, 3)

    def test_invalid_month(self, lease):
        with pytest.raises(InvalidLeaseScheduleError):
            InvoiceGenerator().generate_invoice(lease, 2024, 13)


@pytest.mark.django_db
class TestGenerateForPeriod:

    def test_batch_bills_each_active_lease_once(self, make_lease):
        first = make_lease()
        second = make_lease(tenant_ref='TEN-2')
        make_lease(tenant_ref='TEN-3', start_date=date(2024, 6, 1))
        generator = InvoiceGenerator()

        summary = generator.generate_invoices_for_period(2024, 3)
        assert sorted(summary.created) == sorted([first.id, second.id])
        assert summary.already_billed == []

        again = generator.generate_invoices_for_period(2024, 3)
        assert again.created == []
        assert sorted(again.already_billed) == sorted([first.id, second.id])
        assert Invoice.objects.count() == 2

    def test_dry_run_writes_nothing(self, lease):
        summary = InvoiceGenerator().generate_invoices_for_period(2024, 3, dry_run=True)

        assert summary.created == [lease.id]
        assert Invoice.objects.count() == 0

    def test_command(self, lease):
        call_command('generate_invoices', '--year', '2024', '--month', '3')

        assert Invoice.objects.filter(lease=lease, period_year=2024, period_month=3).exists()
