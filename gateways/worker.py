"""
Background polling of open gateway transactions.

Runs tracker.resolve over every open transaction on a bounded thread pool.
Each resolve is single-flight, so overlapping runs (scheduler plus a manual
command) never double-apply a payment.
"""
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import timedelta
import logging

from django.db import close_old_connections
from django.utils import timezone

from core.constants import BillingDefaults, GatewayStatus, ResolutionOutcome
from core.exceptions import BaseApplicationException
from core.services import get_setting
from .models import GatewayTransaction
from .tracker import GatewayTracker

logger = logging.getLogger(__name__)


def _resolve_one(tracker: GatewayTracker, checkout_request_id: str, reconcile: bool = False) -> str:
    """Worker-thread body; returns the outcome or 'error'"""
    try:
        if reconcile:
            return tracker.reconcile(checkout_request_id).outcome
        return tracker.resolve(checkout_request_id).outcome
    except BaseApplicationException as e:
        logger.warning(f"Could not resolve {checkout_request_id}: {e.code} {e.message}")
        return 'error'
    except Exception as e:
        logger.error(f"Unexpected error resolving {checkout_request_id}: {e}", exc_info=True)
        return 'error'
    finally:
        # Threads own their DB connections
        close_old_connections()


def _run(checkout_request_ids, max_workers, tracker, reconcile=False) -> dict:
    counts = {ResolutionOutcome.COMPLETED: 0, ResolutionOutcome.PENDING: 0,
              ResolutionOutcome.FAILED: 0, ResolutionOutcome.TIMED_OUT: 0, 'error': 0}
    if not checkout_request_ids:
        return counts

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='gateway-poll') as executor:
        futures = [executor.submit(_resolve_one, tracker, cid, reconcile) for cid in checkout_request_ids]
        for future in as_completed(futures):
            outcome = future.result()
            counts[outcome] = counts.get(outcome, 0) + 1
    return counts


def poll_open_transactions(max_workers: int = None, tracker: GatewayTracker = None) -> dict:
    """
    Resolve every INITIATED/PENDING transaction once.

    Returns:
        Count of transactions per outcome
    """
    max_workers = max_workers or get_setting('GATEWAY', 'MAX_WORKERS', BillingDefaults.MAX_WORKERS)
    tracker = tracker or GatewayTracker()
    checkout_request_ids = list(
        GatewayTransaction.objects.filter(status__in=GatewayStatus.OPEN, checkout_request_id__isnull=False)
        .order_by('created_at')
        .values_list('checkout_request_id', flat=True)
    )
    counts = _run(checkout_request_ids, max_workers, tracker)
    if checkout_request_ids:
        logger.info(f"Polled {len(checkout_request_ids)} open gateway transactions: {counts}")
    return counts


def reconcile_timed_out(max_age: timedelta = None, max_workers: int = None,
                        tracker: GatewayTracker = None) -> dict:
    """Re-query TIMED_OUT transactions younger than the reconciliation window"""
    if max_age is None:
        max_age = timedelta(hours=get_setting('GATEWAY', 'RECONCILE_WINDOW_HOURS',
                                              BillingDefaults.RECONCILE_WINDOW_HOURS))
    max_workers = max_workers or get_setting('GATEWAY', 'MAX_WORKERS', BillingDefaults.MAX_WORKERS)
    tracker = tracker or GatewayTracker()
    checkout_request_ids = list(
        GatewayTransaction.objects.filter(
            status=GatewayStatus.TIMED_OUT,
            checkout_request_id__isnull=False,
            created_at__gte=timezone.now() - max_age,
        )
        .order_by('created_at')
        .values_list('checkout_request_id', flat=True)
    )
    counts = _run(checkout_request_ids, max_workers, tracker, reconcile=True)
    if checkout_request_ids:
        logger.info(f"Reconciled {len(checkout_request_ids)} timed out gateway transactions: {counts}")
    return counts


def abandon_stale_initiations(max_age: timedelta = timedelta(minutes=10)) -> int:
    """
    Fail INITIATED transactions that never received a checkout reference,
    e.g. because the process died mid-request. Nothing can be polled for them.
    """
    stale = GatewayTransaction.objects.filter(
        status=GatewayStatus.INITIATED,
        checkout_request_id__isnull=True,
        created_at__lt=timezone.now() - max_age,
    )
    count = stale.update(
        status=GatewayStatus.FAILED,
        result_description="Abandoned before the gateway accepted the charge",
        resolved_at=timezone.now(),
        updated_at=timezone.now(),
    )
    if count:
        logger.warning(f"Marked {count} abandoned gateway initiations as FAILED")
    return count
