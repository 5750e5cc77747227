from datetime import date, timedelta

import pytest

from billing.invoicing import InvoiceGenerator
from billing.status import as_date, compute_status, refresh_invoice_status, sweep_overdue
from core.constants import InvoiceStatus
from tests.conftest import aware

GRACE = timedelta(days=7)
DUE = date(2024, 3, 5)


class TestComputeStatus:

    def test_unpaid_before_grace_ends_is_pending(self):
        assert compute_status(0, 10000, DUE, date(2024, 3, 12), GRACE) == InvoiceStatus.PENDING

    def test_overdue_starts_the_day_after_grace(self):
        assert compute_status(0, 10000, DUE, date(2024, 3, 13), GRACE) == InvoiceStatus.OVERDUE

    def test_partial_payment(self):
        assert compute_status(4000, 10000, DUE, date(2024, 3, 10), GRACE) == InvoiceStatus.PARTIAL

    def test_partial_payment_past_grace_is_overdue(self):
        assert compute_status(4000, 10000, DUE, date(2024, 3, 20), GRACE) == InvoiceStatus.OVERDUE

    def test_paid_wins_regardless_of_date(self):
        assert compute_status(10000, 10000, DUE, date(2025, 1, 1), GRACE) == InvoiceStatus.PAID

    def test_accepts_aware_datetimes(self):
        assert compute_status(0, 10000, DUE, aware(2024, 3, 13), GRACE) == InvoiceStatus.OVERDUE

    def test_as_date_uses_project_timezone(self, settings):
        settings.TIME_ZONE = 'Africa/Nairobi'
        # 22:30 UTC on the 12th is already the 13th in Nairobi
        from datetime import datetime, timezone as dt_timezone
        late_evening_utc = datetime(2024, 3, 12, 22, 30, tzinfo=dt_timezone.utc)
        assert as_date(late_evening_utc) == date(2024, 3, 13)


@pytest.mark.django_db
class TestRefresh:

    def test_refresh_is_idempotent(self, lease):
        invoice = InvoiceGenerator().generate_invoice(lease, 2024, 3, issued_at=aware(2024, 3, 1))

        assert refresh_invoice_status(invoice, aware(2024, 3, 20)) is True
        assert invoice.status == InvoiceStatus.OVERDUE
        assert refresh_invoice_status(invoice, aware(2024, 3, 20)) is False

    def test_sweep_counts_changed_invoices(self, make_lease):
        generator = InvoiceGenerator()
        generator.generate_invoice(make_lease(), 2024, 3, issued_at=aware(2024, 3, 1))
        generator.generate_invoice(make_lease(tenant_ref='TEN-2', payment_day_of_month=28), 2024, 3,
                                   issued_at=aware(2024, 3, 1))

        assert sweep_overdue(aware(2024, 3, 15)) == 1
        assert sweep_overdue(aware(2024, 3, 15)) == 0

    def test_sweep_limited_to_agency(self, lease, other_agency):
        InvoiceGenerator().generate_invoice(lease, 2024, 3, issued_at=aware(2024, 3, 1))

        assert sweep_overdue(aware(2024, 3, 15), agency=other_agency) == 0
        assert sweep_overdue(aware(2024, 3, 15), agency=lease.agency) == 1
