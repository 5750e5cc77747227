"""
Background task scheduler for billing jobs.
Uses APScheduler to run tasks in the background without requiring external services.

Jobs:
    - monthly invoice generation (1st of the month, 00:05)
    - overdue sweep and late penalties (daily, 01:00)
    - gateway polling (every GATEWAY['POLL_INTERVAL_SECONDS'])
    - TIMED_OUT reconciliation (hourly)
"""
import logging
import atexit
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from django.core.management import call_command
from django.utils import timezone

from core.constants import BillingDefaults
from core.services import get_setting

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def generate_invoices_job():
    """Issue this month's invoices for every lease in force"""
    try:
        logger.info("Starting scheduled invoice generation...")
        call_command('generate_invoices')
        logger.info("Scheduled invoice generation completed successfully")
    except Exception as e:
        logger.error(f"Error in scheduled invoice generation: {str(e)}", exc_info=True)


def sweep_penalties_job():
    """Refresh invoice statuses and raise penalties for overdue invoices"""
    try:
        logger.info("Starting scheduled overdue sweep...")
        call_command('sweep_penalties')
        logger.info("Scheduled overdue sweep completed successfully")
    except Exception as e:
        logger.error(f"Error in scheduled overdue sweep: {str(e)}", exc_info=True)


def poll_gateways_job():
    try:
        from gateways.worker import abandon_stale_initiations, poll_open_transactions
        abandon_stale_initiations()
        poll_open_transactions()
    except Exception as e:
        logger.error(f"Error polling gateway transactions: {str(e)}", exc_info=True)


def reconcile_gateways_job():
    try:
        from gateways.worker import reconcile_timed_out
        reconcile_timed_out()
    except Exception as e:
        logger.error(f"Error reconciling timed out gateway transactions: {str(e)}", exc_info=True)


def build_scheduler() -> BackgroundScheduler:
    """Create a scheduler with every billing job registered, not yet started"""
    tz = timezone.get_current_timezone()
    poll_interval = get_setting('GATEWAY', 'POLL_INTERVAL_SECONDS', BillingDefaults.POLL_INTERVAL_SECONDS)
    job_defaults = {
        'replace_existing': True,
        'max_instances': 1,  # Prevent overlapping runs
        'coalesce': True,  # Combine multiple pending executions into one
    }

    new_scheduler = BackgroundScheduler(timezone=tz)
    new_scheduler.add_job(
        generate_invoices_job,
        trigger=CronTrigger(day=1, hour=0, minute=5, timezone=tz),
        id='generate_invoices',
        name='Generate Monthly Invoices',
        **job_defaults
    )
    new_scheduler.add_job(
        sweep_penalties_job,
        trigger=CronTrigger(hour=1, minute=0, timezone=tz),
        id='sweep_penalties',
        name='Overdue Sweep and Late Penalties',
        **job_defaults
    )
    new_scheduler.add_job(
        poll_gateways_job,
        trigger=IntervalTrigger(seconds=poll_interval),
        id='poll_gateways',
        name='Poll Open Gateway Transactions',
        **job_defaults
    )
    new_scheduler.add_job(
        reconcile_gateways_job,
        trigger=CronTrigger(minute=30, timezone=tz),
        id='reconcile_gateways',
        name='Reconcile Timed Out Gateway Transactions',
        **job_defaults
    )
    return new_scheduler


def start_scheduler():
    """
    Initialize and start the background scheduler.
    This should be called once when Django starts.
    """
    global scheduler

    if scheduler is not None and scheduler.running:
        logger.warning("Scheduler is already running")
        return

    try:
        scheduler = build_scheduler()
        scheduler.start()
        logger.info("Background scheduler started successfully")
        for job in scheduler.get_jobs():
            logger.info(f"Scheduled job: {job.name} ({job.trigger})")

        atexit.register(lambda: stop_scheduler())

    except Exception as e:
        logger.error(f"Failed to start scheduler: {str(e)}", exc_info=True)
        scheduler = None


def stop_scheduler():
    """
    Stop the background scheduler.
    Should be called when Django shuts down.
    """
    global scheduler

    if scheduler is not None and scheduler.running:
        try:
            scheduler.shutdown(wait=True)
            logger.info("Background scheduler stopped")
        except Exception as e:
            logger.error(f"Error stopping scheduler: {str(e)}", exc_info=True)
        finally:
            scheduler = None
