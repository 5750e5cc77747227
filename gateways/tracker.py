"""
Gateway Transaction Tracker

Drives a gateway charge from initiation to a terminal outcome and turns a
completed charge into exactly one applied Payment.

    INITIATED -> PENDING -> COMPLETED | FAILED | CANCELLED
    PENDING -> TIMED_OUT -> COMPLETED | FAILED | CANCELLED  (late completion)
"""
from dataclasses import dataclass
import time
from typing import Callable, Optional

from django.db import transaction
from django.utils import timezone

from audit.helpers import log_gateway_event
from audit.models import AuditLog
from billing.matching import PaymentMatcher
from billing.models import Payment
from core.constants import BillingDefaults, GatewayProvider, GatewayStatus, ResolutionOutcome
from core.dto import MatchResult
from core.exceptions import (
    BaseApplicationException,
    DuplicatePaymentError,
    GatewayFailureError,
    GatewayTimeoutError,
    GatewayUnavailableError,
    NotFoundError,
    ValidationError as AppValidationError,
)
from core.locks import KeyedLock
from core.services import BaseService, get_setting
from core.validators import PaymentValidator, PhoneNumberValidator
from .clients import ChargeStatus, get_client_class, get_gateway_client
from .models import GatewayTransaction

# Single-flight guard for resolve/reconcile/callback, keyed by checkout request id
_resolve_locks = KeyedLock()


@dataclass
class Resolution:
    """Where a gateway transaction stands after a resolve call"""
    transaction: GatewayTransaction
    outcome: str
    match: Optional[MatchResult] = None

    @property
    def payment(self) -> Optional[Payment]:
        return self.transaction.payment

    @property
    def is_final(self) -> bool:
        return self.outcome in (ResolutionOutcome.COMPLETED, ResolutionOutcome.FAILED)


def outcome_for(status: str) -> str:
    if status == GatewayStatus.COMPLETED:
        return ResolutionOutcome.COMPLETED
    if status in (GatewayStatus.FAILED, GatewayStatus.CANCELLED):
        return ResolutionOutcome.FAILED
    if status == GatewayStatus.TIMED_OUT:
        return ResolutionOutcome.TIMED_OUT
    return ResolutionOutcome.PENDING


def can_transition(current: str, new: str) -> bool:
    """Open transactions may reach any terminal state; TIMED_OUT only a gateway outcome"""
    if current in GatewayStatus.OPEN:
        return new in GatewayStatus.TERMINAL or new == GatewayStatus.PENDING
    if current == GatewayStatus.TIMED_OUT:
        return new in GatewayStatus.GATEWAY_TERMINAL
    return False


class GatewayTracker(BaseService):
    """Initiates, polls and settles gateway transactions"""

    def __init__(self, clients: dict = None, matcher: PaymentMatcher = None, clock: Callable = None):
        super().__init__()
        self.clients = clients or {}
        self.matcher = matcher or PaymentMatcher()
        self.clock = clock or timezone.now
        self.max_poll_attempts = get_setting('GATEWAY', 'MAX_POLL_ATTEMPTS', BillingDefaults.MAX_POLL_ATTEMPTS)

    def client_for(self, provider: str):
        client = self.clients.get(provider)
        if client is None:
            client = get_gateway_client(provider)
        return client

    def initiate(self, lease, amount: int, phone: str, provider: str, invoice=None, user=None) -> GatewayTransaction:
        """
        Start a charge.

        The transaction is persisted INITIATED before the gateway is called so
        a crash mid-request still leaves a trace.

        Raises:
            GatewayFailureError: the gateway declined the request
            GatewayUnavailableError: the gateway could not be reached
        """
        PaymentValidator.validate_amount(amount)
        get_client_class(provider)
        if provider == GatewayProvider.MPESA:
            phone = PhoneNumberValidator.normalize(phone)
        elif not phone:
            raise AppValidationError(message="A phone number or account is required", code="MISSING_PAYER")
        if invoice is not None and invoice.lease_id != lease.id:
            raise AppValidationError(
                message=f"Invoice {invoice.id} does not belong to lease {lease.id}",
                code="INVOICE_LEASE_MISMATCH",
                details={"invoice_id": invoice.id, "lease_id": lease.id},
            )
        client = self.client_for(provider)

        account_ref = f"INV-{invoice.id}" if invoice is not None else f"LEASE-{lease.id}"
        txn = GatewayTransaction.objects.create(
            agency_id=lease.agency_id,
            lease=lease,
            invoice=invoice,
            provider=provider,
            account_reference=account_ref,
            amount=amount,
            phone_or_account=phone,
            status=GatewayStatus.INITIATED,
            initiated_by=user if user is not None and user.is_authenticated else None,
        )

        try:
            checkout_request_id = client.initiate_charge(amount, phone, account_ref)
        except BaseApplicationException as e:
            # Declined, unreachable or rejected by the client's own checks;
            # no checkout reference exists, so there is nothing to poll
            self._fail_initiation(txn, e)
            e.details.setdefault('transaction_id', txn.id)
            raise

        txn.checkout_request_id = checkout_request_id
        txn.status = GatewayStatus.PENDING
        txn.save(update_fields=['checkout_request_id', 'status', 'updated_at'])
        log_gateway_event(txn, f"Initiated {provider} charge of {amount} for {account_ref}",
                          user=user, action=AuditLog.ACTION_INITIATE_PAYMENT)
        self.log_info("Gateway charge initiated", transaction_id=txn.id, provider=provider,
                      checkout_request_id=checkout_request_id, amount=amount)
        return txn

    def resolve(self, checkout_request_id: str) -> Resolution:
        """
        Poll the gateway once and apply the answer.

        Concurrent calls for the same transaction run one at a time; calls on
        a transaction that is already terminal return its stored outcome
        without contacting the gateway.
        """
        with _resolve_locks.hold(checkout_request_id):
            txn = self._get(checkout_request_id)
            if txn.is_terminal:
                return Resolution(txn, outcome_for(txn.status))

            client = self.client_for(txn.provider)
            try:
                report = client.query_status(checkout_request_id)
            except GatewayUnavailableError:
                resolution = self._record_attempt(checkout_request_id, None)
                if resolution.outcome == ResolutionOutcome.TIMED_OUT:
                    return resolution
                raise
            return self._record_attempt(checkout_request_id, report)

    def poll_until_resolved(self, checkout_request_id: str, max_attempts: int = None,
                            interval: float = None, sleep: Callable = time.sleep) -> Resolution:
        """
        Resolve repeatedly until the transaction settles or the budget runs out.

        An unreachable gateway costs one attempt and polling carries on.

        Raises:
            GatewayFailureError: declined or cancelled
            GatewayTimeoutError: still unresolved when the budget ran out
        """
        max_attempts = max_attempts or self.max_poll_attempts
        if interval is None:
            interval = get_setting('GATEWAY', 'POLL_INTERVAL_SECONDS', BillingDefaults.POLL_INTERVAL_SECONDS)

        for attempt in range(max_attempts):
            try:
                resolution = self.resolve(checkout_request_id)
            except GatewayUnavailableError as e:
                self.log_warning("Gateway unreachable while polling", checkout_request_id=checkout_request_id,
                                 attempt=attempt + 1, error=e.message)
                if attempt < max_attempts - 1:
                    sleep(interval)
                continue
            if resolution.outcome == ResolutionOutcome.COMPLETED:
                return resolution
            if resolution.outcome == ResolutionOutcome.FAILED:
                raise GatewayFailureError(
                    message=resolution.transaction.result_description or None,
                    checkout_request_id=checkout_request_id,
                    details={"status": resolution.transaction.status,
                             "result_code": resolution.transaction.result_code},
                )
            if resolution.outcome == ResolutionOutcome.TIMED_OUT:
                break
            if attempt < max_attempts - 1:
                sleep(interval)

        raise GatewayTimeoutError(
            checkout_request_id=checkout_request_id,
            details={"checkout_request_id": checkout_request_id},
        )

    def reconcile(self, checkout_request_id: str) -> Resolution:
        """One late status query for a TIMED_OUT transaction"""
        with _resolve_locks.hold(checkout_request_id):
            txn = self._get(checkout_request_id)
            if txn.status != GatewayStatus.TIMED_OUT:
                return Resolution(txn, outcome_for(txn.status))

            report = self.client_for(txn.provider).query_status(checkout_request_id)
            if not report.is_terminal:
                return Resolution(txn, ResolutionOutcome.TIMED_OUT)
            with transaction.atomic():
                txn = self._get(checkout_request_id, lock=True)
                return self._settle(txn, report)

    def handle_callback(self, provider: str, payload) -> Optional[Resolution]:
        """
        Apply a gateway notification. Idempotent with polling: whichever of
        the two arrives first settles the transaction, the other is a no-op.
        """
        client_class = get_client_class(provider)
        checkout_request_id, report = client_class.parse_callback(payload)

        if report is None:
            # Notification without a status; ask the gateway
            txn = GatewayTransaction.objects.filter(checkout_request_id=checkout_request_id).first()
            if txn is None:
                self.log_warning("Notification for unknown transaction", provider=provider,
                                 checkout_request_id=checkout_request_id)
                return None
            if txn.status == GatewayStatus.TIMED_OUT:
                return self.reconcile(checkout_request_id)
            return self.resolve(checkout_request_id)

        with _resolve_locks.hold(checkout_request_id):
            with transaction.atomic():
                txn = GatewayTransaction.objects.select_for_update().filter(
                    checkout_request_id=checkout_request_id
                ).first()
                if txn is None:
                    self.log_warning("Callback for unknown transaction", provider=provider,
                                     checkout_request_id=checkout_request_id)
                    return None
                if txn.status in GatewayStatus.GATEWAY_TERMINAL or not report.is_terminal:
                    return Resolution(txn, outcome_for(txn.status))
                return self._settle(txn, report)

    def _get(self, checkout_request_id: str, lock: bool = False) -> GatewayTransaction:
        queryset = GatewayTransaction.objects
        if lock:
            queryset = queryset.select_for_update()
        txn = queryset.filter(checkout_request_id=checkout_request_id).first()
        if txn is None:
            raise NotFoundError(resource_type='GatewayTransaction', resource_id=checkout_request_id)
        return txn

    def _record_attempt(self, checkout_request_id: str, report: Optional[ChargeStatus]) -> Resolution:
        """Count one poll attempt and apply its result under the row lock"""
        with transaction.atomic():
            txn = self._get(checkout_request_id, lock=True)
            if txn.is_terminal:
                # A callback settled it while we were querying
                return Resolution(txn, outcome_for(txn.status))

            txn.poll_attempts += 1
            if report is not None and report.is_terminal:
                txn.save(update_fields=['poll_attempts', 'updated_at'])
                return self._settle(txn, report)

            if report is not None:
                txn.result_code = report.result_code[:32]
                txn.result_description = report.description[:255]
            if txn.poll_attempts >= self.max_poll_attempts:
                txn.status = GatewayStatus.TIMED_OUT
                txn.resolved_at = self.clock()
                self.log_warning("Gateway transaction timed out", transaction_id=txn.id,
                                 checkout_request_id=checkout_request_id, attempts=txn.poll_attempts)
                log_gateway_event(txn, f"Gave up polling after {txn.poll_attempts} attempts")
            else:
                txn.status = GatewayStatus.PENDING
            txn.save(update_fields=['poll_attempts', 'status', 'result_code', 'result_description',
                                    'resolved_at', 'updated_at'])
            return Resolution(txn, outcome_for(txn.status))

    def _settle(self, txn: GatewayTransaction, report: ChargeStatus) -> Resolution:
        """
        Guarded move to a gateway-terminal status. Caller holds the row lock.

        COMPLETED records the payment and applies it in the same transaction.
        """
        if not can_transition(txn.status, report.status):
            self.log_warning("Ignored gateway status change", transaction_id=txn.id,
                             current=txn.status, reported=report.status)
            return Resolution(txn, outcome_for(txn.status))

        late = txn.status == GatewayStatus.TIMED_OUT
        now = self.clock()
        txn.status = report.status
        txn.gateway_receipt_id = (report.receipt_id or '')[:100]
        txn.result_code = report.result_code[:32]
        txn.result_description = report.description[:255]
        txn.resolved_at = now
        txn.save(update_fields=['status', 'gateway_receipt_id', 'result_code', 'result_description',
                                'resolved_at', 'updated_at'])

        match = None
        if report.status == GatewayStatus.COMPLETED:
            match = self._record_payment(txn, report, now)

        description = f"{txn.provider} charge {txn.checkout_request_id} {report.status.lower()}"
        if late:
            description += " after timing out"
        log_gateway_event(txn, description)
        self.log_info("Gateway transaction settled", transaction_id=txn.id, status=txn.status,
                      receipt=txn.gateway_receipt_id, late=late)
        return Resolution(txn, outcome_for(txn.status), match=match)

    def _record_payment(self, txn: GatewayTransaction, report: ChargeStatus, now) -> Optional[MatchResult]:
        amount = report.amount or txn.amount
        if amount != txn.amount:
            self.log_warning("Gateway settled a different amount than requested", transaction_id=txn.id,
                             requested=txn.amount, settled=amount)
        reference = txn.gateway_receipt_id or txn.checkout_request_id
        try:
            return self.matcher.record_payment(
                lease=txn.lease,
                amount=amount,
                paid_at=now,
                method=GatewayProvider.PAYMENT_METHODS[txn.provider],
                reference_number=reference,
                invoice=txn.invoice,
                notes=f"{txn.provider} {txn.checkout_request_id}",
                gateway_transaction=txn,
            )
        except DuplicatePaymentError:
            # Receipt already entered by hand; link it instead of paying twice
            existing = Payment.objects.filter(agency_id=txn.agency_id, reference_number=reference).first()
            if existing is None or hasattr(existing, 'gateway_transaction'):
                raise
            txn.payment = existing
            txn.save(update_fields=['payment', 'updated_at'])
            self.log_warning("Linked gateway transaction to existing payment", transaction_id=txn.id,
                             payment_id=existing.id)
            return None

    def _fail_initiation(self, txn: GatewayTransaction, error):
        txn.status = GatewayStatus.FAILED
        txn.result_code = str(error.details.get('result_code') or error.code)[:32]
        txn.result_description = error.message[:255]
        txn.resolved_at = self.clock()
        txn.save(update_fields=['status', 'result_code', 'result_description', 'resolved_at', 'updated_at'])
        log_gateway_event(txn, f"{txn.provider} charge could not be started: {error.message}",
                          action=AuditLog.ACTION_INITIATE_PAYMENT)
        self.log_error("Gateway initiation failed", transaction_id=txn.id, code=error.code)
