"""
Custom exceptions for the application.
Following domain-driven design principles with specific exception types.

Every exception carries a ``category`` so callers can tell apart
"payment failed" (tenant should retry), "payment pending" (tenant should wait)
and "system error" (operator should investigate).
"""


class ErrorCategory:
    CLIENT_ERROR = 'client_error'
    PAYMENT_FAILED = 'payment_failed'
    PAYMENT_PENDING = 'payment_pending'
    SYSTEM_ERROR = 'system_error'


class BaseApplicationException(Exception):
    """Base exception for all application-specific exceptions"""
    default_message = "An application error occurred"
    default_code = "APPLICATION_ERROR"
    category = ErrorCategory.SYSTEM_ERROR
    status_code = 500

    def __init__(self, message=None, code=None, details=None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BaseApplicationException):
    """Raised when validation fails"""
    default_message = "Validation failed"
    default_code = "VALIDATION_ERROR"
    category = ErrorCategory.CLIENT_ERROR
    status_code = 400


class NotFoundError(BaseApplicationException):
    """Raised when a resource is not found"""
    default_message = "Resource not found"
    default_code = "NOT_FOUND"
    category = ErrorCategory.CLIENT_ERROR
    status_code = 404

    def __init__(self, resource_type=None, resource_id=None, **kwargs):
        self.resource_type = resource_type
        self.resource_id = resource_id
        if resource_type and 'message' not in kwargs:
            kwargs['message'] = f"{resource_type} {resource_id} not found"
        super().__init__(**kwargs)


class PermissionDeniedError(BaseApplicationException):
    """Raised when user doesn't have permission"""
    default_message = "Permission denied"
    default_code = "PERMISSION_DENIED"
    category = ErrorCategory.CLIENT_ERROR
    status_code = 403


class BusinessLogicError(BaseApplicationException):
    """Raised when business rule is violated"""
    default_message = "Business rule violation"
    default_code = "BUSINESS_RULE_VIOLATION"
    category = ErrorCategory.CLIENT_ERROR
    status_code = 409


class ConcurrentModificationError(BusinessLogicError):
    """Raised when concurrent modification is detected"""
    default_message = "Resource is being modified by another user"
    default_code = "CONCURRENT_MODIFICATION"


# ============================================================================
# BILLING
# ============================================================================

class InvalidLeaseScheduleError(ValidationError):
    """Raised when a lease's billing schedule cannot produce an invoice"""
    default_message = "Invalid lease billing schedule"
    default_code = "INVALID_LEASE_SCHEDULE"


class DuplicateInvoiceError(BusinessLogicError):
    """Raised when the billing period already has an invoice"""
    default_message = "An invoice already exists for this lease and period"
    default_code = "DUPLICATE_INVOICE"


class DuplicatePaymentError(BusinessLogicError):
    """Raised when a payment reference has already been recorded"""
    default_message = "A payment with this reference already exists"
    default_code = "DUPLICATE_PAYMENT"


class UnresolvedPaymentError(BaseApplicationException):
    """
    Raised when a payment could not be matched to any invoice.
    The funds are retained as unapplied credit for manual review.
    """
    default_message = "Payment could not be matched to an outstanding invoice"
    default_code = "UNRESOLVED_PAYMENT"
    category = ErrorCategory.CLIENT_ERROR
    status_code = 422

    def __init__(self, payment_id=None, unapplied_amount=0, **kwargs):
        self.payment_id = payment_id
        self.unapplied_amount = unapplied_amount
        kwargs.setdefault('details', {'payment_id': payment_id, 'unapplied_amount': unapplied_amount})
        super().__init__(**kwargs)


# ============================================================================
# GATEWAY
# ============================================================================

class GatewayError(BaseApplicationException):
    """Base class for payment gateway errors"""
    default_message = "Payment gateway error"
    default_code = "GATEWAY_ERROR"

    def __init__(self, message=None, checkout_request_id=None, **kwargs):
        self.checkout_request_id = checkout_request_id
        super().__init__(message=message, **kwargs)


class GatewayFailureError(GatewayError):
    """Explicit decline or cancellation. Terminal, the tenant may start a new payment."""
    default_message = "Payment was declined or cancelled"
    default_code = "PAYMENT_FAILED"
    category = ErrorCategory.PAYMENT_FAILED
    status_code = 402


class GatewayTimeoutError(GatewayError):
    """Polling budget exhausted. The payment may still complete later."""
    default_message = "Payment is still being processed"
    default_code = "PAYMENT_PENDING"
    category = ErrorCategory.PAYMENT_PENDING
    status_code = 202


class GatewayUnavailableError(GatewayError):
    """Transport-level failure talking to the gateway after retries"""
    default_message = "Payment gateway is unavailable"
    default_code = "GATEWAY_UNAVAILABLE"
    category = ErrorCategory.SYSTEM_ERROR
    status_code = 503


class GatewayConfigurationError(GatewayError):
    """Gateway credentials or provider settings are missing"""
    default_message = "Payment gateway is not configured"
    default_code = "GATEWAY_NOT_CONFIGURED"
