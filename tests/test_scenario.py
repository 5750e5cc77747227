"""
One month of a lease end to end: invoice, part payment, late penalty on the
balance, settlement.
"""
import pytest

from audit.models import AuditLog
from billing.invoicing import InvoiceGenerator
from billing.matching import PaymentMatcher
from billing.models import Penalty
from billing.penalties import PenaltyCalculator
from billing.status import sweep_overdue
from core.constants import InvoiceStatus, PenaltyStatus
from tests.conftest import aware

pytestmark = pytest.mark.django_db


def test_march_rent_paid_in_two_parts(lease, django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks(execute=True):
        invoice = InvoiceGenerator().generate_invoice(lease, 2024, 3, issued_at=aware(2024, 3, 1))
    assert invoice.status == InvoiceStatus.PENDING
    assert invoice.due_at.isoformat() == '2024-03-05'

    with django_capture_on_commit_callbacks(execute=True):
        first = PaymentMatcher().record_payment(lease, 4000, aware(2024, 3, 10), reference_number='MP-1')
    invoice.refresh_from_db()
    assert first.as_pairs() == [(invoice.id, 4000)]
    assert invoice.status == InvoiceStatus.PARTIAL

    as_of = aware(2024, 3, 15)
    with django_capture_on_commit_callbacks(execute=True):
        assert sweep_overdue(as_of) == 1
        penalties = PenaltyCalculator().compute_late_penalties(as_of)
        assert PenaltyCalculator().compute_late_penalties(as_of) == []
    invoice.refresh_from_db()
    assert invoice.status == InvoiceStatus.OVERDUE
    assert [p.amount for p in penalties] == [300]

    with django_capture_on_commit_callbacks(execute=True):
        second = PaymentMatcher().record_payment(lease, 6000, aware(2024, 3, 20), reference_number='MP-2')
    invoice.refresh_from_db()
    assert second.unapplied == 0
    assert invoice.total_paid == invoice.amount == 10000
    assert invoice.status == InvoiceStatus.PAID

    # Settling the rent does not settle the penalty
    assert Penalty.objects.get().status == PenaltyStatus.PENDING

    actions = list(AuditLog.objects.filter(agency=lease.agency).order_by('id').values_list('action', flat=True))
    assert actions == [
        AuditLog.ACTION_GENERATE_INVOICE,
        AuditLog.ACTION_RECORD_PAYMENT,
        AuditLog.ACTION_RAISE_PENALTY,
        AuditLog.ACTION_RECORD_PAYMENT,
    ]
