from datetime import date

import pytest

from billing.invoicing import InvoiceGenerator
from core.dto import LeaseDTO
from core.exceptions import BusinessLogicError, ValidationError
from leases.services import LeaseService

pytestmark = pytest.mark.django_db


class TestCreateLease:

    def test_create(self, agency, agent_user):
        lease = LeaseService().create_lease(LeaseDTO(
            agency_id=agency.id, property_ref='PROP-2', tenant_ref='TEN-2',
            start_date=date(2024, 2, 1), rent_amount=25000, payment_day_of_month=31,
        ), user=agent_user)

        assert lease.pk is not None
        assert lease.due_date_for(2024, 2) == date(2024, 2, 29)

    @pytest.mark.parametrize('overrides', [
        {'rent_amount': 0},
        {'payment_day_of_month': 0},
        {'payment_day_of_month': 32},
        {'end_date': date(2023, 12, 31)},
    ])
    def test_rejects_bad_schedule(self, agency, overrides):
        values = dict(agency_id=agency.id, property_ref='P', tenant_ref='T',
                      start_date=date(2024, 1, 1), rent_amount=1000, payment_day_of_month=1)
        values.update(overrides)

        with pytest.raises(ValidationError):
            LeaseService().create_lease(LeaseDTO(**values))


class TestUpdateLease:

    def test_terms_editable_before_billing(self, lease):
        lease = LeaseService().update_lease(lease, rent_amount=12000)
        assert lease.rent_amount == 12000

    def test_terms_locked_after_billing(self, lease):
        InvoiceGenerator().generate_invoice(lease, 2024, 1)

        with pytest.raises(BusinessLogicError) as exc_info:
            LeaseService().update_lease(lease, payment_day_of_month=10)

        assert exc_info.value.code == 'LEASE_LOCKED'
        assert exc_info.value.details['fields'] == ['payment_day_of_month']

    def test_notes_editable_after_billing(self, lease):
        InvoiceGenerator().generate_invoice(lease, 2024, 1)
        lease = LeaseService().update_lease(lease, notes='Deposit held')
        assert lease.notes == 'Deposit held'


class TestTerminateLease:

    def test_no_invoices_after_end(self, lease):
        LeaseService().terminate_lease(lease, date(2024, 3, 15))
        lease.refresh_from_db()

        assert lease.covers_period(2024, 3)
        assert not lease.covers_period(2024, 4)

    def test_cannot_extend_an_ended_lease(self, make_lease):
        lease = make_lease(end_date=date(2024, 6, 30))

        with pytest.raises(BusinessLogicError) as exc_info:
            LeaseService().terminate_lease(lease, date(2024, 9, 30))
        assert exc_info.value.code == 'LEASE_ALREADY_ENDED'

    def test_end_before_start(self, lease):
        with pytest.raises(ValidationError):
            LeaseService().terminate_lease(lease, date(2023, 12, 1))
