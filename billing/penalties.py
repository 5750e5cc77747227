"""
Penalty Calculator
Raises one late-payment penalty per overdue invoice.
"""
from datetime import timedelta
from typing import List, Optional

from django.db import IntegrityError, transaction
from django.utils import timezone

from audit.helpers import log_penalty_event
from audit.models import AuditLog
from core.constants import BillingDefaults, InvoiceStatus, PenaltyMode, PenaltyStatus
from core.exceptions import BusinessLogicError, ValidationError as AppValidationError
from core.services import BaseService, get_setting
from .models import Invoice, Penalty
from .repositories import InvoiceRepository, PenaltyRepository
from .status import as_date, get_grace_period, refresh_invoice_status


class PenaltyPolicy:
    """Decides how much a late invoice is charged"""

    def amount_for(self, invoice: Invoice) -> int:
        raise NotImplementedError

    @staticmethod
    def from_settings() -> 'PenaltyPolicy':
        config = get_setting('BILLING', 'LATE_PENALTY', {}) or {}
        mode = config.get('MODE', PenaltyMode.PERCENT)
        if mode == PenaltyMode.FLAT:
            return FlatPenaltyPolicy(config.get('FLAT_AMOUNT', 0))
        if mode == PenaltyMode.PERCENT:
            return PercentPenaltyPolicy(config.get('PERCENT_BASIS_POINTS', 0), config.get('MAX_AMOUNT'))
        raise AppValidationError(
            message=f"Unknown late penalty mode: {mode}",
            code="INVALID_PENALTY_MODE",
            details={"mode": mode, "allowed": [PenaltyMode.FLAT, PenaltyMode.PERCENT]},
        )


class FlatPenaltyPolicy(PenaltyPolicy):
    """Fixed amount per overdue invoice"""

    def __init__(self, amount: int):
        self.amount = amount

    def amount_for(self, invoice: Invoice) -> int:
        return self.amount


class PercentPenaltyPolicy(PenaltyPolicy):
    """Basis points of the outstanding balance, rounded down, optionally capped"""

    def __init__(self, basis_points: int, max_amount: Optional[int] = None):
        self.basis_points = basis_points
        self.max_amount = max_amount

    def amount_for(self, invoice: Invoice) -> int:
        amount = invoice.remaining * self.basis_points // 10000
        if self.max_amount is not None:
            amount = min(amount, self.max_amount)
        return amount


class PenaltyCalculator(BaseService):
    """Sweeps invoices and emits penalties for the overdue ones"""

    def __init__(self, policy: PenaltyPolicy = None):
        super().__init__()
        self.policy = policy or PenaltyPolicy.from_settings()
        self.invoice_repo = InvoiceRepository()
        self.penalty_repo = PenaltyRepository()

    def compute_late_penalties(self, as_of, agency=None) -> List[Penalty]:
        """
        Refresh every unpaid invoice's status at ``as_of`` and raise a
        PENDING penalty for each OVERDUE one that has none yet.

        Safe to run repeatedly: an invoice never gets a second active
        penalty.

        Returns:
            Penalties created by this run
        """
        grace = get_grace_period()
        term = timedelta(days=get_setting('BILLING', 'PENALTY_PAYMENT_TERM_DAYS',
                                          BillingDefaults.PENALTY_PAYMENT_TERM_DAYS))
        today = as_date(as_of)
        created = []

        invoice_ids = list(self.invoice_repo.unpaid(agency).values_list('id', flat=True))
        for invoice_id in invoice_ids:
            with transaction.atomic():
                invoice = self.invoice_repo.get_for_update(invoice_id)
                refresh_invoice_status(invoice, as_of, grace)
                if invoice.status != InvoiceStatus.OVERDUE:
                    continue
                if self.penalty_repo.has_active_penalty(invoice.id):
                    continue

                amount = self.policy.amount_for(invoice)
                if amount <= 0:
                    self.log_info("No penalty due for overdue invoice", invoice_id=invoice.id)
                    continue

                days_late = (today - invoice.due_at).days
                try:
                    with transaction.atomic():
                        penalty = self.penalty_repo.create(
                            agency_id=invoice.agency_id,
                            lease_id=invoice.lease_id,
                            invoice=invoice,
                            tenant_ref=invoice.lease.tenant_ref,
                            amount=amount,
                            reason=f"Late payment for {invoice.period_label} rent, {days_late} days past due",
                            due_date=today + term,
                            status=PenaltyStatus.PENDING,
                        )
                except IntegrityError:
                    # Another sweep raised it first
                    continue
                log_penalty_event(penalty, AuditLog.ACTION_RAISE_PENALTY,
                                  f"Raised penalty of {amount} on invoice #{invoice.id}")
                created.append(penalty)

        self.log_info("Penalty sweep finished", as_of=today.isoformat(),
                      invoices_checked=len(invoice_ids), penalties_created=len(created))
        return created

    def waive_penalty(self, penalty: Penalty, user=None, now=None) -> Penalty:
        """Cancel a PENDING penalty. Only agency admins reach this from the API."""
        return self._resolve(penalty, PenaltyStatus.WAIVED, AuditLog.ACTION_WAIVE_PENALTY, user, now)

    def mark_penalty_paid(self, penalty: Penalty, user=None, now=None) -> Penalty:
        return self._resolve(penalty, PenaltyStatus.PAID, AuditLog.ACTION_SETTLE_PENALTY, user, now)

    def _resolve(self, penalty, new_status, action, user, now) -> Penalty:
        with transaction.atomic():
            penalty = self.penalty_repo.get_for_update(penalty.id)
            if penalty.status != PenaltyStatus.PENDING:
                raise BusinessLogicError(
                    message=f"Penalty {penalty.id} is already {penalty.status}",
                    code="PENALTY_ALREADY_RESOLVED",
                    details={"penalty_id": penalty.id, "status": penalty.status},
                )
            penalty.status = new_status
            penalty.resolved_at = now or timezone.now()
            penalty.resolved_by = user if user is not None and user.is_authenticated else None
            penalty.save(update_fields=['status', 'resolved_at', 'resolved_by'])
            log_penalty_event(penalty, action, f"Penalty #{penalty.id} marked {new_status}", user=user)

        self.log_info("Penalty resolved", penalty_id=penalty.id, status=new_status)
        return penalty
