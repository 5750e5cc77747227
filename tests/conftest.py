from datetime import date, datetime

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from accounts.models import Agency
from core.constants import UserRole
from leases.models import Lease
from users.models import User


def aware(year, month, day, hour=12, minute=0):
    """Noon in the project timezone unless told otherwise"""
    return timezone.make_aware(datetime(year, month, day, hour, minute))


@pytest.fixture(autouse=True)
def billing_settings(settings):
    settings.BILLING = {
        'GRACE_PERIOD_DAYS': 7,
        'PENALTY_PAYMENT_TERM_DAYS': 7,
        'LATE_PENALTY': {'MODE': 'PERCENT', 'PERCENT_BASIS_POINTS': 500, 'MAX_AMOUNT': None},
    }
    settings.GATEWAY = {
        'HTTP_TIMEOUT_SECONDS': 5,
        'TRANSIENT_RETRIES': 3,
        'MAX_POLL_ATTEMPTS': 3,
        'POLL_INTERVAL_SECONDS': 0,
        'MAX_WORKERS': 2,
        'RECONCILE_WINDOW_HOURS': 72,
        'MPESA': {
            'ENVIRONMENT': 'sandbox',
            'CONSUMER_KEY': 'key',
            'CONSUMER_SECRET': 'secret',
            'SHORTCODE': '174379',
            'PASSKEY': 'passkey',
            'CALLBACK_URL': 'https://example.com/api/gateway/mpesa/callback/',
        },
    }
    settings.ENABLE_BACKGROUND_SCHEDULER = False
    return settings


@pytest.fixture
def agency(db):
    return Agency.objects.create(name="Nyumba Homes")


@pytest.fixture
def other_agency(db):
    return Agency.objects.create(name="Other Lettings")


@pytest.fixture
def admin_user(agency):
    return User.objects.create_user(username='wanjiru', password='pass12345', agency=agency, role=UserRole.ADMIN)


@pytest.fixture
def agent_user(agency):
    return User.objects.create_user(username='otieno', password='pass12345', agency=agency, role=UserRole.AGENT)


@pytest.fixture
def caretaker_user(agency):
    return User.objects.create_user(username='kamau', password='pass12345', agency=agency,
                                    role=UserRole.CARETAKER)


@pytest.fixture
def make_lease(agency):
    def _make(**overrides):
        values = {
            'agency': agency,
            'property_ref': 'PROP-1',
            'tenant_ref': 'TEN-1',
            'start_date': date(2024, 1, 1),
            'rent_amount': 10000,
            'payment_day_of_month': 5,
        }
        values.update(overrides)
        return Lease.objects.create(**values)
    return _make


@pytest.fixture
def lease(make_lease):
    return make_lease()


@pytest.fixture
def api_client(agent_user):
    client = APIClient()
    client.force_authenticate(user=agent_user)
    return client


@pytest.fixture
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client
