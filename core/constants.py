"""
Application-wide constants.
Centralized constants following DRY principle.
"""

# User Roles
class UserRole:
    ADMIN = 'ADMIN'
    AGENT = 'AGENT'
    CARETAKER = 'CARETAKER'

    CHOICES = [
        (ADMIN, 'Agency Admin'),
        (AGENT, 'Agent'),
        (CARETAKER, 'Caretaker'),
    ]


# Invoice Status
class InvoiceStatus:
    PENDING = 'PENDING'
    PARTIAL = 'PARTIAL'
    PAID = 'PAID'
    OVERDUE = 'OVERDUE'

    CHOICES = [
        (PENDING, 'Pending'),
        (PARTIAL, 'Partial'),
        (PAID, 'Paid'),
        (OVERDUE, 'Overdue'),
    ]

    UNRESOLVED = [PENDING, PARTIAL, OVERDUE]


# Payment Methods
class PaymentMethod:
    MANUAL = 'MANUAL'
    MPESA_C2B = 'MPESA_C2B'
    BANK_TRANSFER = 'BANK_TRANSFER'
    CASH = 'CASH'
    PESAPAL = 'PESAPAL'
    CARD = 'CARD'

    CHOICES = [
        (MANUAL, 'Manual'),
        (MPESA_C2B, 'M-Pesa C2B'),
        (BANK_TRANSFER, 'Bank Transfer'),
        (CASH, 'Cash'),
        (PESAPAL, 'PesaPal'),
        (CARD, 'Card'),
    ]

    VALUES = [MANUAL, MPESA_C2B, BANK_TRANSFER, CASH, PESAPAL, CARD]


# Gateway Providers
class GatewayProvider:
    MPESA = 'MPESA'
    PESAPAL = 'PESAPAL'

    CHOICES = [
        (MPESA, 'M-Pesa STK Push'),
        (PESAPAL, 'PesaPal'),
    ]

    VALUES = [MPESA, PESAPAL]

    PAYMENT_METHODS = {
        MPESA: PaymentMethod.MPESA_C2B,
        PESAPAL: PaymentMethod.PESAPAL,
    }


# Gateway Transaction Status
class GatewayStatus:
    INITIATED = 'INITIATED'
    PENDING = 'PENDING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'
    CANCELLED = 'CANCELLED'
    TIMED_OUT = 'TIMED_OUT'

    CHOICES = [
        (INITIATED, 'Initiated'),
        (PENDING, 'Pending'),
        (COMPLETED, 'Completed'),
        (FAILED, 'Failed'),
        (CANCELLED, 'Cancelled'),
        (TIMED_OUT, 'Timed Out'),
    ]

    OPEN = [INITIATED, PENDING]
    GATEWAY_TERMINAL = [COMPLETED, FAILED, CANCELLED]
    TERMINAL = [COMPLETED, FAILED, CANCELLED, TIMED_OUT]
    VALUES = [INITIATED, PENDING, COMPLETED, FAILED, CANCELLED, TIMED_OUT]


# Outcome of resolving a gateway transaction, as reported to callers
class ResolutionOutcome:
    COMPLETED = 'completed'
    PENDING = 'pending'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'


# Penalty Status
class PenaltyStatus:
    PENDING = 'PENDING'
    PAID = 'PAID'
    WAIVED = 'WAIVED'

    CHOICES = [
        (PENDING, 'Pending'),
        (PAID, 'Paid'),
        (WAIVED, 'Waived'),
    ]


class PenaltyMode:
    FLAT = 'FLAT'
    PERCENT = 'PERCENT'


# Default billing settings, overridden by settings.BILLING / settings.GATEWAY
class BillingDefaults:
    GRACE_PERIOD_DAYS = 7
    PENALTY_PAYMENT_TERM_DAYS = 7
    MAX_POLL_ATTEMPTS = 30
    POLL_INTERVAL_SECONDS = 10
    HTTP_TIMEOUT_SECONDS = 15
    MAX_WORKERS = 8
    TRANSIENT_RETRIES = 3
    RECONCILE_WINDOW_HOURS = 72


# Pagination
class Pagination:
    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100
