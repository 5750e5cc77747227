from datetime import date

import pytest
from django.core.exceptions import PermissionDenied

from billing.invoicing import InvoiceGenerator
from billing.matching import PaymentMatcher
from billing.models import Invoice, Payment, PaymentAllocation
from core.constants import InvoiceStatus, PaymentMethod
from core.exceptions import (
    BusinessLogicError,
    DuplicatePaymentError,
    UnresolvedPaymentError,
    ValidationError as AppValidationError,
)
from tests.conftest import aware


@pytest.fixture
def matcher():
    return PaymentMatcher()


@pytest.fixture
def jan_feb(lease):
    generator = InvoiceGenerator()
    jan = generator.generate_invoice(lease, 2024, 1, issued_at=aware(2024, 1, 1))
    feb = generator.generate_invoice(lease, 2024, 2, issued_at=aware(2024, 2, 1))
    return jan, feb


def assert_totals_match_allocations():
    for invoice in Invoice.objects.all():
        assert invoice.total_paid == invoice.allocated_total()


@pytest.mark.django_db
class TestRecordPayment:

    def test_oldest_invoice_first_with_leftover_credit(self, matcher, lease, jan_feb):
        jan, feb = jan_feb

        result = matcher.record_payment(lease, 20100, aware(2024, 2, 10), reference_number='QK1')

        assert result.as_pairs() == [(jan.id, 10000), (feb.id, 10000)]
        assert result.unapplied == 100
        jan.refresh_from_db()
        feb.refresh_from_db()
        assert jan.status == InvoiceStatus.PAID
        assert feb.status == InvoiceStatus.PAID
        assert result.payment.invoice_id == jan.id
        assert result.payment.unapplied_amount == 100
        assert_totals_match_allocations()

    def test_partial_payment(self, matcher, lease, jan_feb):
        jan, feb = jan_feb

        result = matcher.record_payment(lease, 4000, aware(2024, 1, 3))

        assert result.as_pairs() == [(jan.id, 4000)]
        jan.refresh_from_db()
        assert jan.status == InvoiceStatus.PARTIAL
        assert jan.remaining == 6000

    def test_invoices_not_yet_due_are_left_alone(self, matcher, lease, jan_feb):
        jan, feb = jan_feb

        # Feb is due on the 5th; on Jan 20 it is outside the grace window
        result = matcher.record_payment(lease, 15000, aware(2024, 1, 20))

        assert result.as_pairs() == [(jan.id, 10000)]
        assert result.unapplied == 5000
        feb.refresh_from_db()
        assert feb.total_paid == 0

    def test_invoice_inside_grace_window_is_matched(self, matcher, lease, jan_feb):
        jan, feb = jan_feb

        # Feb 5 due date is within 7 days of Jan 30
        result = matcher.record_payment(lease, 15000, aware(2024, 1, 30))

        assert result.as_pairs() == [(jan.id, 10000), (feb.id, 5000)]

    def test_explicit_invoice_goes_first(self, matcher, lease, jan_feb):
        jan, feb = jan_feb

        result = matcher.record_payment(lease, 12000, aware(2024, 2, 10), invoice=feb)

        assert result.as_pairs() == [(feb.id, 10000), (jan.id, 2000)]
        assert result.payment.invoice_id == feb.id
        assert_totals_match_allocations()

    def test_invoice_of_another_lease_is_rejected(self, matcher, lease, make_lease):
        other = make_lease(tenant_ref='TEN-2')
        other_invoice = InvoiceGenerator().generate_invoice(other, 2024, 1)

        with pytest.raises(AppValidationError) as exc_info:
            matcher.record_payment(lease, 1000, aware(2024, 1, 10), invoice=other_invoice)
        assert exc_info.value.code == 'INVOICE_LEASE_MISMATCH'
        assert Payment.objects.count() == 0

    def test_duplicate_reference_rejected(self, matcher, lease, jan_feb):
        matcher.record_payment(lease, 1000, aware(2024, 1, 10), reference_number='QK1')

        with pytest.raises(DuplicatePaymentError):
            matcher.record_payment(lease, 1000, aware(2024, 1, 11), reference_number='QK1')
        assert Payment.objects.count() == 1

    def test_blank_references_never_collide(self, matcher, lease, jan_feb):
        matcher.record_payment(lease, 1000, aware(2024, 1, 10))
        matcher.record_payment(lease, 1000, aware(2024, 1, 11))

        assert Payment.objects.count() == 2

    @pytest.mark.parametrize('amount', [0, -500])
    def test_non_positive_amount(self, matcher, lease, amount):
        with pytest.raises(AppValidationError):
            matcher.record_payment(lease, amount, aware(2024, 1, 10))

    def test_unknown_method(self, matcher, lease):
        with pytest.raises(AppValidationError):
            matcher.record_payment(lease, 1000, aware(2024, 1, 10), method='BITCOIN')

    def test_require_match_keeps_payment_as_credit(self, matcher, lease):
        with pytest.raises(UnresolvedPaymentError) as exc_info:
            matcher.record_payment(lease, 5000, aware(2024, 1, 10), require_match=True)

        payment = Payment.objects.get()
        assert exc_info.value.payment_id == payment.id
        assert exc_info.value.unapplied_amount == 5000
        assert payment.unapplied_amount == 5000

    def test_payment_is_immutable(self, matcher, lease, jan_feb):
        payment = matcher.record_payment(lease, 1000, aware(2024, 1, 10)).payment

        payment.amount = 5000
        with pytest.raises(PermissionDenied):
            payment.save()
        with pytest.raises(PermissionDenied):
            payment.delete()

        payment.refresh_from_db()
        payment.notes = "Confirmed with tenant"
        payment.save(update_fields=['notes'])


@pytest.mark.django_db
class TestUnappliedCredit:

    def test_credit_applied_to_later_invoice(self, matcher, lease):
        generator = InvoiceGenerator()
        generator.generate_invoice(lease, 2024, 1, issued_at=aware(2024, 1, 1))
        payment = matcher.record_payment(lease, 15000, aware(2024, 1, 10)).payment

        feb = generator.generate_invoice(lease, 2024, 2, issued_at=aware(2024, 2, 1))
        result = matcher.apply_unapplied_credit(payment, now=aware(2024, 2, 2))

        assert result.as_pairs() == [(feb.id, 5000)]
        assert result.unapplied == 0
        feb.refresh_from_db()
        assert feb.status == InvoiceStatus.PARTIAL
        assert_totals_match_allocations()

    def test_nothing_left_to_apply(self, matcher, lease, jan_feb):
        payment = matcher.record_payment(lease, 1000, aware(2024, 1, 10)).payment

        result = matcher.apply_unapplied_credit(payment, now=aware(2024, 2, 10))
        assert result.allocations == []


@pytest.mark.django_db
class TestReversal:

    def test_reversal_restores_balances(self, matcher, lease, jan_feb):
        jan, feb = jan_feb
        payment = matcher.record_payment(lease, 15000, aware(2024, 2, 3), reference_number='QK9').payment

        result = matcher.reverse_payment(payment, "Bounced cheque", now=aware(2024, 2, 4))

        reversal = result.payment
        assert reversal.amount == -15000
        assert reversal.reversal_of_id == payment.id
        assert reversal.reference_number == 'REV-QK9'
        assert result.as_pairs() == [(feb.id, -5000), (jan.id, -10000)]
        jan.refresh_from_db()
        feb.refresh_from_db()
        assert jan.total_paid == 0
        assert feb.total_paid == 0
        assert jan.status == InvoiceStatus.OVERDUE
        assert feb.status == InvoiceStatus.PENDING
        assert_totals_match_allocations()
        assert PaymentAllocation.objects.filter(payment=reversal).count() == 2

    def test_reversal_reopens_overdue_status(self, matcher, lease, jan_feb):
        jan, _ = jan_feb
        payment = matcher.record_payment(lease, 10000, aware(2024, 1, 10)).payment

        matcher.reverse_payment(payment, "Entered twice", now=aware(2024, 3, 1))

        jan.refresh_from_db()
        assert jan.status == InvoiceStatus.OVERDUE

    def test_cannot_reverse_twice(self, matcher, lease, jan_feb):
        payment = matcher.record_payment(lease, 1000, aware(2024, 1, 10)).payment
        matcher.reverse_payment(payment, "Mistake")

        with pytest.raises(BusinessLogicError) as exc_info:
            matcher.reverse_payment(Payment.objects.get(pk=payment.pk), "Mistake again")
        assert exc_info.value.code == 'ALREADY_REVERSED'

    def test_cannot_reverse_a_reversal(self, matcher, lease, jan_feb):
        payment = matcher.record_payment(lease, 1000, aware(2024, 1, 10)).payment
        reversal = matcher.reverse_payment(payment, "Mistake").payment

        with pytest.raises(BusinessLogicError) as exc_info:
            matcher.reverse_payment(reversal, "Undo the undo")
        assert exc_info.value.code == 'NOT_REVERSIBLE'

    def test_reversed_payment_has_no_credit_to_apply(self, matcher, lease):
        payment = matcher.record_payment(lease, 1000, aware(2024, 1, 10), method=PaymentMethod.CASH).payment
        matcher.reverse_payment(payment, "Counterfeit notes")

        with pytest.raises(BusinessLogicError):
            matcher.apply_unapplied_credit(Payment.objects.get(pk=payment.pk))

    def test_reversed_credit_is_never_applied_later(self, matcher, lease):
        payment = matcher.record_payment(lease, 5000, aware(2024, 1, 1)).payment
        matcher.reverse_payment(payment, "Wrong tenant")
        jan = InvoiceGenerator().generate_invoice(lease, 2024, 1, issued_at=aware(2024, 1, 1))

        with pytest.raises(BusinessLogicError) as exc_info:
            matcher.apply_payment(payment, now=aware(2024, 1, 5))

        assert exc_info.value.code == 'PAYMENT_REVERSED'
        jan.refresh_from_db()
        assert jan.total_paid == 0
        assert jan.status == InvoiceStatus.PENDING
        assert not PaymentAllocation.objects.exists()

    def test_reversal_reference_already_taken(self, matcher, lease, jan_feb):
        payment = matcher.record_payment(lease, 10000, aware(2024, 1, 6), reference_number='QK9').payment
        matcher.record_payment(lease, 2000, aware(2024, 1, 7), reference_number='REV-QK9')

        with pytest.raises(DuplicatePaymentError):
            matcher.reverse_payment(payment, "Bounced cheque", now=aware(2024, 1, 8))

        assert not Payment.objects.get(pk=payment.pk).is_reversed
        assert Payment.objects.filter(amount__lt=0).count() == 0
        assert_totals_match_allocations()


@pytest.mark.django_db
def test_statuses_follow_payment_history(lease):
    """Totals always equal the allocation sum, whatever order events arrive in"""
    generator = InvoiceGenerator()
    matcher = PaymentMatcher()
    for month in (1, 2, 3):
        generator.generate_invoice(lease, 2024, month, issued_at=aware(2024, month, 1))

    first = matcher.record_payment(lease, 7000, aware(2024, 1, 5)).payment
    matcher.record_payment(lease, 9000, aware(2024, 2, 6))
    matcher.reverse_payment(first, "Duplicate entry", now=aware(2024, 2, 7))
    matcher.record_payment(lease, 20000, aware(2024, 3, 6))

    assert_totals_match_allocations()
    statuses = list(Invoice.objects.order_by('period_month').values_list('status', flat=True))
    assert statuses == [InvoiceStatus.PAID, InvoiceStatus.PAID, InvoiceStatus.PARTIAL]
    assert date(2024, 3, 5) == Invoice.objects.get(period_month=3).due_at
