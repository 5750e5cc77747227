"""
Health Check Endpoints

Provides endpoints for:
- Liveness checks (is the app running?)
- Readiness checks (can the app serve requests?)
"""

import time
import logging
from django.db import connection
from django.db.migrations.executor import MigrationExecutor
from django.http import JsonResponse
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt

logger = logging.getLogger(__name__)


@csrf_exempt
@require_GET
def health_check(request):
    """
    Basic health check - returns 200 if app is running.
    Used by load balancers and container orchestration.
    """
    return JsonResponse({
        'status': 'healthy',
        'timestamp': time.time(),
    })


@csrf_exempt
@require_GET
def readiness_check(request):
    """
    Readiness check - verifies the database answers and migrations are applied.
    Also reports the background scheduler and the number of open gateway
    transactions.
    """
    checks = {
        'database': False,
        'migrations': False,
    }
    errors = []
    details = {}

    try:
        start = time.time()
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
            cursor.fetchone()
        checks['database'] = True
        details['database_latency_ms'] = round((time.time() - start) * 1000, 2)
    except Exception as e:
        errors.append(f'Database: {str(e)}')
        logger.error(f'Health check - Database error: {e}')

    if checks['database']:
        try:
            executor = MigrationExecutor(connection)
            pending = executor.migration_plan(executor.loader.graph.leaf_nodes())
            checks['migrations'] = not pending
            if pending:
                errors.append(f'Migrations: {len(pending)} unapplied')
        except Exception as e:
            errors.append(f'Migrations: {str(e)}')
            logger.error(f'Health check - Migration check error: {e}')

    if checks['database'] and checks['migrations']:
        from core.constants import GatewayStatus
        from gateways.models import GatewayTransaction
        details['open_gateway_transactions'] = GatewayTransaction.objects.filter(
            status__in=GatewayStatus.OPEN
        ).count()

    from common import scheduler
    details['scheduler_running'] = bool(scheduler.scheduler and scheduler.scheduler.running)

    all_healthy = all(checks.values())
    status_code = 200 if all_healthy else 503

    return JsonResponse({
        'status': 'ready' if all_healthy else 'not_ready',
        'timestamp': time.time(),
        'checks': checks,
        'details': details,
        'errors': errors if errors else None,
    }, status=status_code)


def get_health_urls():
    """
    Returns URL patterns for health endpoints.
    Add to your urls.py:
        from common.health import get_health_urls
        urlpatterns += get_health_urls()
    """
    from django.urls import path

    return [
        path('health/', health_check, name='health_check'),
        path('health/ready/', readiness_check, name='readiness_check'),
    ]
