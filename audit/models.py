"""
Audit Log Model

IMMUTABLE: Audit logs cannot be edited or deleted after creation.
Every billing event (invoice issued, payment applied or reversed, gateway
outcome, penalty raised or resolved) leaves one row here.
"""

from django.db import models
from django.conf import settings
from django.core.exceptions import PermissionDenied


class AuditLogQuerySet(models.QuerySet):
    """Queryset helpers for audit logs"""

    def for_resource(self, resource_type, resource_id):
        return self.filter(resource_type=resource_type, resource_id=resource_id)


class AuditLog(models.Model):
    """
    Immutable audit trail entry.

    A null user means the action was taken by the system (scheduler,
    gateway callback or polling worker).
    """

    ACTION_CREATE = 'CREATE'
    ACTION_UPDATE = 'UPDATE'
    ACTION_TERMINATE = 'TERMINATE'
    ACTION_GENERATE_INVOICE = 'GENERATE_INVOICE'
    ACTION_RECORD_PAYMENT = 'RECORD_PAYMENT'
    ACTION_APPLY_CREDIT = 'APPLY_CREDIT'
    ACTION_REVERSE_PAYMENT = 'REVERSE_PAYMENT'
    ACTION_INITIATE_PAYMENT = 'INITIATE_PAYMENT'
    ACTION_GATEWAY_RESULT = 'GATEWAY_RESULT'
    ACTION_RAISE_PENALTY = 'RAISE_PENALTY'
    ACTION_WAIVE_PENALTY = 'WAIVE_PENALTY'
    ACTION_SETTLE_PENALTY = 'SETTLE_PENALTY'

    ACTION_CHOICES = [
        (ACTION_CREATE, 'Create'),
        (ACTION_UPDATE, 'Update'),
        (ACTION_TERMINATE, 'Terminate'),
        (ACTION_GENERATE_INVOICE, 'Generate Invoice'),
        (ACTION_RECORD_PAYMENT, 'Record Payment'),
        (ACTION_APPLY_CREDIT, 'Apply Credit'),
        (ACTION_REVERSE_PAYMENT, 'Reverse Payment'),
        (ACTION_INITIATE_PAYMENT, 'Initiate Payment'),
        (ACTION_GATEWAY_RESULT, 'Gateway Result'),
        (ACTION_RAISE_PENALTY, 'Raise Penalty'),
        (ACTION_WAIVE_PENALTY, 'Waive Penalty'),
        (ACTION_SETTLE_PENALTY, 'Settle Penalty'),
    ]

    RESOURCE_LEASE = 'Lease'
    RESOURCE_INVOICE = 'Invoice'
    RESOURCE_PAYMENT = 'Payment'
    RESOURCE_GATEWAY_TRANSACTION = 'GatewayTransaction'
    RESOURCE_PENALTY = 'Penalty'

    RESOURCE_TYPE_CHOICES = [
        (RESOURCE_LEASE, 'Lease'),
        (RESOURCE_INVOICE, 'Invoice'),
        (RESOURCE_PAYMENT, 'Payment'),
        (RESOURCE_GATEWAY_TRANSACTION, 'Gateway Transaction'),
        (RESOURCE_PENALTY, 'Penalty'),
    ]

    agency = models.ForeignKey(
        'accounts.Agency',
        on_delete=models.CASCADE,
        related_name='audit_logs',
        help_text="Agency this action belongs to"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs',
        help_text="User who performed the action, empty for system actions"
    )
    action = models.CharField(max_length=20, choices=ACTION_CHOICES, db_index=True)
    resource_type = models.CharField(max_length=50, choices=RESOURCE_TYPE_CHOICES, db_index=True)
    resource_id = models.IntegerField(null=True, blank=True, db_index=True)
    description = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    objects = AuditLogQuerySet.as_manager()

    class Meta:
        verbose_name = "Audit Log"
        verbose_name_plural = "Audit Logs"
        ordering = ['-timestamp']
        indexes = [
            models.Index(fields=['agency', '-timestamp'], name='audit_agency_time_idx'),
            models.Index(fields=['resource_type', 'resource_id'], name='audit_resource_idx'),
        ]

    def __str__(self):
        actor = self.user.username if self.user else 'System'
        return f"{actor} - {self.action} - {self.resource_type} #{self.resource_id}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise PermissionDenied("Audit logs are immutable and cannot be modified after creation.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise PermissionDenied("Audit logs are immutable and cannot be deleted.")

    @property
    def actor_display(self):
        if self.user:
            return self.user.get_full_name() or self.user.username
        return "System"
