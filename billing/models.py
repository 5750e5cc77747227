from django.conf import settings
from django.core.exceptions import PermissionDenied
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Q, Sum

from accounts.models import Agency
from core.constants import InvoiceStatus, PaymentMethod, PenaltyStatus
from leases.models import Lease


class Invoice(models.Model):
    """
    Monthly rent invoice for one lease period.

    total_paid is persisted for fast reads and always equals the sum of the
    PaymentAllocation rows pointing at this invoice.
    """
    lease = models.ForeignKey(Lease, on_delete=models.PROTECT, related_name='invoices')
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='invoices')
    period_year = models.PositiveSmallIntegerField()
    period_month = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(12)]
    )
    amount = models.PositiveIntegerField(help_text="Amount due in minor currency units")
    total_paid = models.PositiveIntegerField(default=0)
    issued_at = models.DateTimeField()
    due_at = models.DateField()
    status = models.CharField(max_length=20, choices=InvoiceStatus.CHOICES, default=InvoiceStatus.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['period_year', 'period_month', 'id']
        verbose_name = "Invoice"
        verbose_name_plural = "Invoices"
        constraints = [
            models.UniqueConstraint(
                fields=['lease', 'period_year', 'period_month'],
                name='unique_invoice_per_lease_period',
            ),
        ]
        indexes = [
            models.Index(fields=['lease', 'status'], name='invoice_lease_status_idx'),
            models.Index(fields=['agency', 'status'], name='invoice_agency_status_idx'),
            models.Index(fields=['status', 'due_at'], name='invoice_status_due_idx'),
        ]

    def __str__(self):
        return f"Invoice #{self.pk} - lease {self.lease_id} {self.period_label} - {self.status}"

    @property
    def period_label(self):
        return f"{self.period_year}-{self.period_month:02d}"

    @property
    def remaining(self):
        """Outstanding balance"""
        return max(self.amount - self.total_paid, 0)

    def allocated_total(self):
        """Sum of allocations, the source of truth for total_paid"""
        return self.allocations.aggregate(total=Sum('amount'))['total'] or 0


class Payment(models.Model):
    """
    Money received for a lease.

    Immutable once recorded: only the matched invoice and notes may be set
    afterwards. Corrections are recorded as a new negative-amount payment
    that reverses this one.
    """
    MUTABLE_FIELDS = {'invoice', 'notes'}

    lease = models.ForeignKey(Lease, on_delete=models.PROTECT, related_name='payments')
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='payments')
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='payments',
                                null=True, blank=True,
                                help_text="First invoice this payment was applied to")
    amount = models.BigIntegerField(help_text="Minor currency units; negative for reversals")
    paid_at = models.DateTimeField()
    method = models.CharField(max_length=20, choices=PaymentMethod.CHOICES, default=PaymentMethod.MANUAL)
    reference_number = models.CharField(max_length=100, blank=True)
    reversal_of = models.OneToOneField('self', on_delete=models.PROTECT, related_name='reversal',
                                       null=True, blank=True)
    recorded_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
                                    null=True, blank=True, related_name='recorded_payments')
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-paid_at', '-id']
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        constraints = [
            models.UniqueConstraint(
                fields=['agency', 'reference_number'],
                condition=~Q(reference_number=''),
                name='unique_payment_reference_per_agency',
            ),
        ]
        indexes = [
            models.Index(fields=['lease', 'paid_at'], name='payment_lease_paid_idx'),
            models.Index(fields=['agency', 'paid_at'], name='payment_agency_paid_idx'),
        ]

    def __str__(self):
        return f"Payment #{self.pk} - {self.amount} via {self.method} ({self.reference_number or 'no ref'})"

    def save(self, *args, **kwargs):
        """Only allow creation, or updates limited to MUTABLE_FIELDS"""
        if not self._state.adding:
            update_fields = kwargs.get('update_fields')
            if not update_fields or not set(update_fields) <= self.MUTABLE_FIELDS:
                raise PermissionDenied(
                    "Payments are immutable; record a reversal instead of editing."
                )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PermissionDenied("Payments cannot be deleted; record a reversal instead.")

    @property
    def applied_amount(self):
        return self.allocations.aggregate(total=Sum('amount'))['total'] or 0

    @property
    def unapplied_amount(self):
        """Portion of the payment not allocated to any invoice (unapplied credit)"""
        return self.amount - self.applied_amount

    @property
    def is_reversal(self):
        return self.reversal_of_id is not None

    @property
    def is_reversed(self):
        return hasattr(self, 'reversal')


class PaymentAllocation(models.Model):
    """The part of a payment applied to one invoice"""
    payment = models.ForeignKey(Payment, on_delete=models.PROTECT, related_name='allocations')
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='allocations')
    amount = models.BigIntegerField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']
        verbose_name = "Payment Allocation"
        verbose_name_plural = "Payment Allocations"
        indexes = [
            models.Index(fields=['invoice'], name='allocation_invoice_idx'),
        ]

    def __str__(self):
        return f"{self.amount} of payment #{self.payment_id} -> invoice #{self.invoice_id}"


class Penalty(models.Model):
    """
    Late-payment penalty emitted by the overdue sweep.

    The amount never changes after creation; status moves only through
    waive/pay.
    """
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='penalties')
    lease = models.ForeignKey(Lease, on_delete=models.PROTECT, related_name='penalties')
    invoice = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name='penalties',
                                null=True, blank=True)
    tenant_ref = models.CharField(max_length=64, db_index=True)
    amount = models.PositiveIntegerField()
    reason = models.CharField(max_length=255)
    due_date = models.DateField()
    status = models.CharField(max_length=20, choices=PenaltyStatus.CHOICES, default=PenaltyStatus.PENDING)
    resolved_at = models.DateTimeField(null=True, blank=True)
    resolved_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
                                    null=True, blank=True, related_name='resolved_penalties')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = "Penalty"
        verbose_name_plural = "Penalties"
        constraints = [
            models.UniqueConstraint(
                fields=['invoice'],
                condition=Q(status__in=[PenaltyStatus.PENDING, PenaltyStatus.PAID]),
                name='one_active_penalty_per_invoice',
            ),
        ]
        indexes = [
            models.Index(fields=['agency', 'status'], name='penalty_agency_status_idx'),
        ]

    def __str__(self):
        return f"Penalty #{self.pk} - {self.amount} ({self.status})"
