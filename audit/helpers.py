"""
Audit Logging Helper Functions

Billing services call these after their state change; the write is deferred
until the surrounding transaction commits, so a rolled back operation leaves
no audit row behind.
"""

from django.db import transaction
import logging

from audit.models import AuditLog

logger = logging.getLogger(__name__)


def log_action(agency_id, action, resource_type, resource_id, description, user=None, metadata=None):
    """
    Write one entry to the audit log.

    Args:
        agency_id: Agency the resource belongs to
        action: Action type (GENERATE_INVOICE, RECORD_PAYMENT, ...)
        resource_type: Type of resource (Invoice, Payment, ...)
        resource_id: ID of the resource
        description: Human-readable description
        user: User who performed the action, None for system actions
        metadata: Additional context data (optional)

    Returns:
        AuditLog instance, or None if the write failed
    """
    try:
        audit_log = AuditLog.objects.create(
            agency_id=agency_id,
            user=user if user is not None and user.is_authenticated else None,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description,
            metadata=metadata or {},
        )
        actor = user.username if audit_log.user else 'system'
        logger.info(f"Audit: {actor} - {action} - {resource_type} #{resource_id}")
        return audit_log
    except Exception as e:
        # An audit failure must not undo the billing operation
        logger.error(f"Failed to create audit log: {e}", exc_info=True)
        return None


def log_action_on_commit(agency_id, action, resource_type, resource_id, description, user=None, metadata=None):
    """Defer log_action until the current transaction commits"""
    transaction.on_commit(
        lambda: log_action(agency_id, action, resource_type, resource_id, description, user, metadata)
    )


def log_invoice_generated(invoice, user=None):
    log_action_on_commit(
        invoice.agency_id,
        AuditLog.ACTION_GENERATE_INVOICE,
        AuditLog.RESOURCE_INVOICE,
        invoice.id,
        f"Issued invoice for {invoice.period_label}: {invoice.amount} due {invoice.due_at.isoformat()}",
        user=user,
        metadata={
            'lease_id': invoice.lease_id,
            'period': invoice.period_label,
            'amount': invoice.amount,
        },
    )


def log_payment_applied(result, user=None, action=AuditLog.ACTION_RECORD_PAYMENT):
    """Log a payment together with how it was spread over invoices"""
    payment = result.payment
    log_action_on_commit(
        payment.agency_id,
        action,
        AuditLog.RESOURCE_PAYMENT,
        payment.id,
        f"Payment of {payment.amount} via {payment.method}: applied {result.applied}, unapplied {result.unapplied}",
        user=user,
        metadata={
            'lease_id': payment.lease_id,
            'reference_number': payment.reference_number,
            'allocations': result.as_pairs(),
            'unapplied': result.unapplied,
        },
    )


def log_payment_reversed(result, original, reason, user=None):
    reversal = result.payment
    log_action_on_commit(
        reversal.agency_id,
        AuditLog.ACTION_REVERSE_PAYMENT,
        AuditLog.RESOURCE_PAYMENT,
        original.id,
        f"Reversed payment #{original.id} of {original.amount}: {reason}",
        user=user,
        metadata={
            'reversal_id': reversal.id,
            'allocations': result.as_pairs(),
        },
    )


def log_gateway_event(transaction_record, description, user=None, action=AuditLog.ACTION_GATEWAY_RESULT):
    log_action_on_commit(
        transaction_record.agency_id,
        action,
        AuditLog.RESOURCE_GATEWAY_TRANSACTION,
        transaction_record.id,
        description,
        user=user,
        metadata={
            'provider': transaction_record.provider,
            'checkout_request_id': transaction_record.checkout_request_id,
            'status': transaction_record.status,
            'amount': transaction_record.amount,
        },
    )


def log_penalty_event(penalty, action, description, user=None):
    log_action_on_commit(
        penalty.agency_id,
        action,
        AuditLog.RESOURCE_PENALTY,
        penalty.id,
        description,
        user=user,
        metadata={
            'invoice_id': penalty.invoice_id,
            'amount': penalty.amount,
            'status': penalty.status,
        },
    )


def log_lease_event(lease, action, description, user=None):
    log_action_on_commit(
        lease.agency_id,
        action,
        AuditLog.RESOURCE_LEASE,
        lease.id,
        description,
        user=user,
        metadata={
            'property_ref': lease.property_ref,
            'tenant_ref': lease.tenant_ref,
        },
    )


def get_resource_audit_trail(resource_type, resource_id, limit=50):
    """
    Get the audit trail for one resource, newest first.

    Args:
        resource_type: Type of resource (Invoice, Payment, ...)
        resource_id: ID of the resource
        limit: Maximum number of logs to return
    """
    return AuditLog.objects.for_resource(resource_type, resource_id).order_by('-timestamp')[:limit]
