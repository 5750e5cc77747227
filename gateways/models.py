from django.conf import settings
from django.db import models

from accounts.models import Agency
from core.constants import GatewayProvider, GatewayStatus
from leases.models import Lease


class GatewayTransaction(models.Model):
    """
    One charge attempt against a payment gateway.

    Created INITIATED before the gateway is called, PENDING once the gateway
    accepts it, then resolved to COMPLETED, FAILED or CANCELLED by polling or
    callback. TIMED_OUT when the poll budget runs out; such a transaction can
    still complete through reconciliation. A Payment exists exactly when the
    status is COMPLETED.
    """
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='gateway_transactions')
    lease = models.ForeignKey(Lease, on_delete=models.PROTECT, related_name='gateway_transactions')
    invoice = models.ForeignKey('billing.Invoice', on_delete=models.PROTECT, related_name='gateway_transactions',
                                null=True, blank=True)
    payment = models.OneToOneField('billing.Payment', on_delete=models.PROTECT, related_name='gateway_transaction',
                                   null=True, blank=True)

    provider = models.CharField(max_length=20, choices=GatewayProvider.CHOICES)
    checkout_request_id = models.CharField(max_length=100, unique=True, null=True, blank=True,
                                           help_text="Gateway reference, set once the charge is accepted")
    account_reference = models.CharField(max_length=64)
    amount = models.PositiveIntegerField(help_text="Requested amount in minor currency units")
    phone_or_account = models.CharField(max_length=64)
    status = models.CharField(max_length=20, choices=GatewayStatus.CHOICES, default=GatewayStatus.INITIATED,
                              db_index=True)
    poll_attempts = models.PositiveIntegerField(default=0)

    gateway_receipt_id = models.CharField(max_length=100, blank=True)
    result_code = models.CharField(max_length=32, blank=True)
    result_description = models.CharField(max_length=255, blank=True)

    initiated_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
                                     null=True, blank=True, related_name='gateway_transactions')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = "Gateway Transaction"
        verbose_name_plural = "Gateway Transactions"
        indexes = [
            models.Index(fields=['status', 'created_at'], name='gateway_status_created_idx'),
            models.Index(fields=['lease', 'status'], name='gateway_lease_status_idx'),
        ]

    def __str__(self):
        return f"{self.provider} {self.checkout_request_id or 'uninitiated'} - {self.amount} ({self.status})"

    @property
    def is_open(self):
        return self.status in GatewayStatus.OPEN

    @property
    def is_terminal(self):
        return self.status in GatewayStatus.TERMINAL
