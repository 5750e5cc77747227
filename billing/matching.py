"""
Payment Matcher
Applies received money to a lease's invoices, oldest debt first.

All balance changes for a lease run inside one transaction that holds the
lease row lock, so two payments for the same lease are applied one after
the other and never read the same stale balance.
"""
from datetime import timedelta
from typing import List, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from audit.helpers import log_payment_applied, log_payment_reversed
from audit.models import AuditLog
from core.constants import PaymentMethod
from core.dto import Allocation, MatchResult
from core.exceptions import (
    BusinessLogicError,
    DuplicatePaymentError,
    UnresolvedPaymentError,
    ValidationError as AppValidationError,
)
from core.services import BaseService
from core.validators import PaymentValidator
from leases.repositories import LeaseRepository
from .models import Invoice, Payment, PaymentAllocation
from .repositories import AllocationRepository, InvoiceRepository, PaymentRepository
from .status import as_date, get_grace_period, refresh_invoice_status


class PaymentMatcher(BaseService):
    """Records payments and spreads them across invoices"""

    def __init__(self):
        super().__init__()
        self.lease_repo = LeaseRepository()
        self.invoice_repo = InvoiceRepository()
        self.payment_repo = PaymentRepository()
        self.allocation_repo = AllocationRepository()

    def record_payment(self, lease, amount: int, paid_at, method: str = PaymentMethod.MANUAL,
                       reference_number: str = '', invoice: Optional[Invoice] = None, notes: str = '',
                       gateway_transaction=None, recorded_by=None, require_match: bool = False) -> MatchResult:
        """
        Record an immutable payment and apply it in the same transaction.

        Args:
            lease: Lease the money was paid against
            amount: Positive amount in minor units
            paid_at: When the money was received
            method: One of PaymentMethod
            reference_number: Receipt or bank reference, unique per agency
            invoice: Invoice to apply to first (optional)
            gateway_transaction: GatewayTransaction that produced the payment
            require_match: Raise UnresolvedPaymentError if credit is left over

        Returns:
            MatchResult with the allocations and unapplied credit
        """
        PaymentValidator.validate_amount(amount)
        PaymentValidator.validate_method(method)
        reference_number = (reference_number or '').strip()
        if invoice is not None and invoice.lease_id != lease.id:
            raise AppValidationError(
                message=f"Invoice {invoice.id} does not belong to lease {lease.id}",
                code="INVOICE_LEASE_MISMATCH",
                details={"invoice_id": invoice.id, "lease_id": lease.id},
            )

        with transaction.atomic():
            lease = self.lease_repo.get_for_update(lease.id)
            if self.payment_repo.reference_exists(lease.agency_id, reference_number):
                raise DuplicatePaymentError(
                    message=f"Payment reference {reference_number} has already been recorded",
                    details={"reference_number": reference_number},
                )
            try:
                with transaction.atomic():
                    payment = self.payment_repo.create(
                        lease=lease,
                        agency_id=lease.agency_id,
                        invoice=invoice,
                        amount=amount,
                        paid_at=paid_at,
                        method=method,
                        reference_number=reference_number,
                        recorded_by=recorded_by,
                        notes=notes,
                    )
            except IntegrityError as e:
                raise DuplicatePaymentError(
                    message=f"Payment reference {reference_number} has already been recorded",
                    details={"reference_number": reference_number},
                ) from e

            if gateway_transaction is not None:
                gateway_transaction.payment = payment
                gateway_transaction.save(update_fields=['payment', 'updated_at'])

            result = self._apply(payment, amount, now=paid_at,
                                 first_invoice_id=invoice.id if invoice else None)
            log_payment_applied(result, user=recorded_by)

        self.log_info("Payment recorded", payment_id=payment.id, lease_id=lease.id, amount=amount,
                      allocations=result.as_pairs(), unapplied=result.unapplied)
        if require_match and result.unapplied > 0:
            raise UnresolvedPaymentError(payment_id=payment.id, unapplied_amount=result.unapplied)
        return result

    def apply_payment(self, payment: Payment, now=None, require_match: bool = False) -> MatchResult:
        """
        Apply whatever part of a recorded payment is not yet allocated.

        ``now`` defaults to the payment's paid_at, which decides which
        invoices are already due.
        """
        if payment.amount <= 0:
            raise BusinessLogicError(
                message="Only positive payments can be applied to invoices",
                code="NOT_APPLICABLE",
                details={"payment_id": payment.id},
            )
        with transaction.atomic():
            self.lease_repo.get_for_update(payment.lease_id)
            payment = self.payment_repo.get_or_raise(payment.id)
            self._ensure_not_reversed(payment)
            remaining = payment.unapplied_amount
            first_invoice_id = payment.invoice_id if remaining == payment.amount else None
            result = self._apply(payment, remaining, now=now or payment.paid_at,
                                 first_invoice_id=first_invoice_id)
            if result.allocations:
                log_payment_applied(result, action=AuditLog.ACTION_APPLY_CREDIT)

        if require_match and result.unapplied > 0:
            raise UnresolvedPaymentError(payment_id=payment.id, unapplied_amount=result.unapplied)
        return result

    def apply_unapplied_credit(self, payment: Payment, now=None, user=None) -> MatchResult:
        """Manual reconciliation: match a payment's leftover credit against current invoices"""
        with transaction.atomic():
            self.lease_repo.get_for_update(payment.lease_id)
            payment = self.payment_repo.get_or_raise(payment.id)
            self._ensure_not_reversed(payment)
            remaining = payment.unapplied_amount
            if remaining <= 0:
                return MatchResult(payment=payment)
            result = self._apply(payment, remaining, now=now or timezone.now())
            if result.allocations:
                log_payment_applied(result, user=user, action=AuditLog.ACTION_APPLY_CREDIT)

        self.log_info("Unapplied credit matched", payment_id=payment.id,
                      allocations=result.as_pairs(), unapplied=result.unapplied)
        return result

    def reverse_payment(self, payment: Payment, reason: str, now=None, user=None) -> MatchResult:
        """
        Undo a payment with a negative-amount payment.

        The reversal's allocations cancel the original's newest first and
        every touched invoice has its status recomputed. A payment can only
        be reversed once.
        """
        if payment.is_reversal or payment.amount <= 0:
            raise BusinessLogicError(
                message="A reversal cannot itself be reversed",
                code="NOT_REVERSIBLE",
                details={"payment_id": payment.id},
            )
        now = now or timezone.now()
        grace = get_grace_period()

        with transaction.atomic():
            self.lease_repo.get_for_update(payment.lease_id)
            original = Payment.objects.select_for_update().get(pk=payment.pk)
            if original.is_reversed:
                raise BusinessLogicError(
                    message=f"Payment {original.id} has already been reversed",
                    code="ALREADY_REVERSED",
                    details={"payment_id": original.id},
                )

            reference_number = f"REV-{original.reference_number}" if original.reference_number else ''
            if self.payment_repo.reference_exists(original.agency_id, reference_number):
                raise DuplicatePaymentError(
                    message=f"Payment reference {reference_number} has already been recorded",
                    details={"reference_number": reference_number, "payment_id": original.id},
                )
            try:
                with transaction.atomic():
                    reversal = self.payment_repo.create(
                        lease_id=original.lease_id,
                        agency_id=original.agency_id,
                        invoice_id=original.invoice_id,
                        amount=-original.amount,
                        paid_at=now,
                        method=original.method,
                        reference_number=reference_number,
                        reversal_of=original,
                        recorded_by=user,
                        notes=reason,
                    )
            except IntegrityError as e:
                raise DuplicatePaymentError(
                    message=f"Payment reference {reference_number} has already been recorded",
                    details={"reference_number": reference_number, "payment_id": original.id},
                ) from e

            allocations = []
            for allocation in self.allocation_repo.for_payment(original.id).order_by('-id'):
                invoice = self.invoice_repo.get_for_update(allocation.invoice_id)
                PaymentAllocation.objects.create(payment=reversal, invoice=invoice, amount=-allocation.amount)
                invoice.total_paid -= allocation.amount
                invoice.save(update_fields=['total_paid', 'updated_at'])
                refresh_invoice_status(invoice, now, grace)
                allocations.append(Allocation(invoice_id=invoice.id, applied_amount=-allocation.amount))

            applied = sum(a.applied_amount for a in allocations)
            result = MatchResult(payment=reversal, allocations=allocations,
                                 unapplied=reversal.amount - applied)
            log_payment_reversed(result, original, reason, user=user)

        self.log_info("Payment reversed", payment_id=original.id, reversal_id=reversal.id,
                      allocations=result.as_pairs())
        return result

    @staticmethod
    def _ensure_not_reversed(payment: Payment):
        if payment.is_reversal or payment.is_reversed:
            raise BusinessLogicError(
                message="Reversed payments carry no credit to apply",
                code="PAYMENT_REVERSED",
                details={"payment_id": payment.id},
            )

    def _apply(self, payment: Payment, remaining: int, now, first_invoice_id: int = None) -> MatchResult:
        """
        Allocate ``remaining`` of a payment. Caller holds the lease lock.

        The preferred invoice goes first; after that the oldest unresolved
        invoice that is already due (within the grace window) takes the rest.
        """
        grace = get_grace_period()
        cutoff = as_date(now) + grace
        allocations: List[Allocation] = []
        touched = []

        if first_invoice_id is not None:
            invoice = self.invoice_repo.get_for_update(first_invoice_id)
            if invoice.lease_id != payment.lease_id:
                raise AppValidationError(
                    message=f"Invoice {invoice.id} does not belong to lease {payment.lease_id}",
                    code="INVOICE_LEASE_MISMATCH",
                    details={"invoice_id": invoice.id, "lease_id": payment.lease_id},
                )
            remaining = self._allocate(payment, invoice, remaining, now, grace, allocations)
            touched.append(invoice.id)

        while remaining > 0:
            invoice = self.invoice_repo.unresolved_for_lease(
                payment.lease_id, due_on_or_before=cutoff, exclude_ids=touched, lock=True
            ).first()
            if invoice is None:
                break
            remaining = self._allocate(payment, invoice, remaining, now, grace, allocations)
            touched.append(invoice.id)

        if allocations and payment.invoice_id is None:
            payment.invoice_id = allocations[0].invoice_id
            payment.save(update_fields=['invoice'])

        if remaining > 0:
            self.log_warning("Payment left with unapplied credit", payment_id=payment.id,
                             lease_id=payment.lease_id, unapplied=remaining)
        return MatchResult(payment=payment, allocations=allocations, unapplied=remaining)

    def _allocate(self, payment: Payment, invoice: Invoice, remaining: int, now,
                  grace: timedelta, allocations: List[Allocation]) -> int:
        applied = min(remaining, invoice.amount - invoice.total_paid)
        if applied <= 0:
            return remaining
        self.allocation_repo.create(payment=payment, invoice=invoice, amount=applied)
        invoice.total_paid += applied
        invoice.save(update_fields=['total_paid', 'updated_at'])
        refresh_invoice_status(invoice, now, grace)
        allocations.append(Allocation(invoice_id=invoice.id, applied_amount=applied))
        return remaining - applied
