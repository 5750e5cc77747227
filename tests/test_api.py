from datetime import date
from unittest.mock import MagicMock, patch

import pytest
from rest_framework.test import APIClient

from billing.invoicing import InvoiceGenerator
from billing.matching import PaymentMatcher
from billing.models import Invoice, Payment, Penalty
from billing.penalties import FlatPenaltyPolicy, PenaltyCalculator
from core.constants import GatewayStatus, InvoiceStatus, PenaltyStatus
from core.exceptions import GatewayFailureError
from gateways.clients import ChargeStatus
from gateways.models import GatewayTransaction
from leases.models import Lease
from tests.conftest import aware

pytestmark = pytest.mark.django_db

LEASE_PAYLOAD = {
    'property_ref': 'PROP-9',
    'tenant_ref': 'TEN-9',
    'start_date': '2024-01-01',
    'rent_amount': 10000,
    'payment_day_of_month': 5,
}


class TestAuth:

    def test_anonymous_requests_are_rejected(self):
        assert APIClient().get('/api/leases/').status_code == 401

    def test_jwt_login(self, agent_user):
        response = APIClient().post('/api/auth/login/', {'username': 'otieno', 'password': 'pass12345'},
                                    format='json')

        assert response.status_code == 200
        token = response.data['access']
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f'Bearer {token}')
        assert client.get('/api/leases/').status_code == 200


class TestLeases:

    def test_create_and_list(self, api_client, agency):
        response = api_client.post('/api/leases/', LEASE_PAYLOAD, format='json')

        assert response.status_code == 201
        lease = Lease.objects.get(id=response.data['id'])
        assert lease.agency == agency
        assert api_client.get('/api/leases/').data['count'] == 1

    def test_invalid_payment_day(self, api_client):
        response = api_client.post('/api/leases/', {**LEASE_PAYLOAD, 'payment_day_of_month': 32}, format='json')
        assert response.status_code == 400

    def test_other_agency_is_invisible(self, api_client, other_agency):
        foreign = Lease.objects.create(agency=other_agency, property_ref='X', tenant_ref='Y',
                                       start_date=date(2024, 1, 1), rent_amount=5000, payment_day_of_month=1)

        assert api_client.get(f'/api/leases/{foreign.id}/').status_code == 404
        assert api_client.get('/api/leases/').data['count'] == 0

    def test_terms_frozen_once_invoiced(self, api_client, lease):
        InvoiceGenerator().generate_invoice(lease, 2024, 1)

        response = api_client.patch(f'/api/leases/{lease.id}/', {'rent_amount': 12000}, format='json')

        assert response.status_code == 409
        assert response.data['code'] == 'LEASE_LOCKED'
        assert response.data['category'] == 'client_error'
        lease.refresh_from_db()
        assert lease.rent_amount == 10000

    def test_notes_editable_once_invoiced(self, api_client, lease):
        InvoiceGenerator().generate_invoice(lease, 2024, 1)

        response = api_client.patch(f'/api/leases/{lease.id}/', {'notes': 'Keys returned'}, format='json')
        assert response.status_code == 200

    def test_terminate(self, api_client, lease):
        response = api_client.post(f'/api/leases/{lease.id}/terminate/', {'end_date': '2024-06-30'}, format='json')

        assert response.status_code == 200
        assert response.data['end_date'] == '2024-06-30'

    def test_invoices_and_payments_of_a_lease(self, api_client, lease):
        InvoiceGenerator().generate_invoice(lease, 2024, 1)
        PaymentMatcher().record_payment(lease, 4000, aware(2024, 1, 6))

        invoices = api_client.get(f'/api/leases/{lease.id}/invoices/').data
        payments = api_client.get(f'/api/leases/{lease.id}/payments/').data

        assert invoices[0]['total_paid'] == 4000
        assert invoices[0]['remaining'] == 6000
        assert payments[0]['allocations'] == [{'invoice': invoices[0]['id'], 'amount': 4000}]

    def test_credit_lists_payments_with_leftover(self, api_client, lease):
        InvoiceGenerator().generate_invoice(lease, 2024, 1)
        matcher = PaymentMatcher()
        matcher.record_payment(lease, 10000, aware(2024, 1, 5))
        overpaid = matcher.record_payment(lease, 3000, aware(2024, 1, 6)).payment
        reversed_payment = matcher.record_payment(lease, 2000, aware(2024, 1, 7)).payment
        matcher.reverse_payment(reversed_payment, "Duplicate entry")

        response = api_client.get(f'/api/leases/{lease.id}/credit/')

        assert response.status_code == 200
        assert response.data['total_unapplied'] == 3000
        assert [p['id'] for p in response.data['payments']] == [overpaid.id]


class TestInvoices:

    def test_generate(self, api_client, lease):
        body = {'lease_id': lease.id, 'year': 2024, 'month': 2}

        first = api_client.post('/api/invoices/generate/', body, format='json')
        second = api_client.post('/api/invoices/generate/', body, format='json')

        assert first.status_code == 201
        assert first.data['due_at'] == '2024-02-05'
        assert second.status_code == 409
        assert second.data['code'] == 'DUPLICATE_INVOICE'

    def test_filter_by_status(self, api_client, lease):
        generator = InvoiceGenerator()
        generator.generate_invoice(lease, 2024, 1)
        generator.generate_invoice(lease, 2024, 2)
        PaymentMatcher().record_payment(lease, 10000, aware(2024, 1, 6))

        response = api_client.get('/api/invoices/', {'status': InvoiceStatus.PAID})
        assert response.data['count'] == 1


class TestPayments:

    def test_manual_payment(self, api_client, lease):
        invoice = InvoiceGenerator().generate_invoice(lease, 2024, 1)

        response = api_client.post('/api/payments/', {
            'lease_id': lease.id, 'amount': 12000, 'paid_at': '2024-01-06T10:00:00+03:00',
            'method': 'CASH', 'reference_number': 'RCPT-1',
        }, format='json')

        assert response.status_code == 201
        assert response.data['allocations'] == [{'invoice': invoice.id, 'amount': 10000}]
        assert response.data['unapplied'] == 2000

    def test_duplicate_reference(self, api_client, lease):
        body = {'lease_id': lease.id, 'amount': 1000, 'paid_at': '2024-01-06T10:00:00+03:00',
                'reference_number': 'RCPT-1'}
        api_client.post('/api/payments/', body, format='json')

        response = api_client.post('/api/payments/', body, format='json')
        assert response.status_code == 409
        assert response.data['code'] == 'DUPLICATE_PAYMENT'

    def test_caretaker_cannot_record(self, caretaker_user, lease):
        client = APIClient()
        client.force_authenticate(user=caretaker_user)

        response = client.post('/api/payments/', {'lease_id': lease.id, 'amount': 1000,
                                                  'paid_at': '2024-01-06T10:00:00+03:00'}, format='json')
        assert response.status_code == 403
        assert client.get('/api/payments/').status_code == 200

    def test_reverse_requires_admin(self, api_client, admin_client, lease):
        InvoiceGenerator().generate_invoice(lease, 2024, 1)
        payment = PaymentMatcher().record_payment(lease, 10000, aware(2024, 1, 6)).payment
        url = f'/api/payments/{payment.id}/reverse/'

        assert api_client.post(url, {'reason': 'Bounced'}, format='json').status_code == 403

        response = admin_client.post(url, {'reason': 'Bounced'}, format='json')
        assert response.status_code == 201
        assert response.data['payment']['amount'] == -10000
        assert Invoice.objects.get().total_paid == 0

    def test_apply_credit(self, api_client, lease):
        payment = PaymentMatcher().record_payment(lease, 10000, aware(2024, 1, 6)).payment
        invoice = InvoiceGenerator().generate_invoice(lease, 2024, 1)

        response = api_client.post(f'/api/payments/{payment.id}/apply-credit/', format='json')

        assert response.status_code == 200
        assert response.data['allocations'] == [{'invoice': invoice.id, 'amount': 10000}]


class TestPenalties:

    @pytest.fixture
    def penalty(self, lease):
        InvoiceGenerator().generate_invoice(lease, 2024, 1)
        return PenaltyCalculator(FlatPenaltyPolicy(500)).compute_late_penalties(aware(2024, 1, 20))[0]

    def test_sweep(self, api_client, lease):
        InvoiceGenerator().generate_invoice(lease, 2024, 1)

        response = api_client.post('/api/penalties/sweep/', {'as_of': '2024-01-20'}, format='json')

        assert response.status_code == 200
        assert len(response.data['penalties']) == 1
        assert Penalty.objects.count() == 1

    def test_waive_requires_admin(self, api_client, admin_client, penalty):
        assert api_client.post(f'/api/penalties/{penalty.id}/waive/').status_code == 403

        response = admin_client.post(f'/api/penalties/{penalty.id}/waive/')
        assert response.status_code == 200
        assert response.data['status'] == PenaltyStatus.WAIVED

    def test_pay(self, api_client, penalty):
        response = api_client.post(f'/api/penalties/{penalty.id}/pay/')
        assert response.data['status'] == PenaltyStatus.PAID

        again = api_client.post(f'/api/penalties/{penalty.id}/pay/')
        assert again.status_code == 409


class TestGateway:

    @pytest.fixture
    def gateway_client(self):
        gateway_client = MagicMock()
        gateway_client.initiate_charge.return_value = 'ws_CO_77'
        with patch('gateways.tracker.get_gateway_client', return_value=gateway_client):
            yield gateway_client

    def test_initiate_and_poll(self, api_client, gateway_client, lease):
        invoice = InvoiceGenerator().generate_invoice(lease, 2024, 1)

        response = api_client.post('/api/gateway/transactions/', {
            'lease_id': lease.id, 'amount': 10000, 'phone': '0712345678', 'invoice_id': invoice.id,
        }, format='json')
        assert response.status_code == 201
        assert response.data['status'] == GatewayStatus.PENDING

        gateway_client.query_status.return_value = ChargeStatus(GatewayStatus.COMPLETED, receipt_id='SCL1',
                                                        result_code='0')
        status = api_client.get('/api/gateway/transactions/ws_CO_77/status/')

        assert status.status_code == 200
        assert status.data['outcome'] == 'completed'
        assert Payment.objects.get().reference_number == 'SCL1'

    def test_declined_initiation(self, api_client, gateway_client, lease):
        gateway_client.initiate_charge.side_effect = GatewayFailureError(message="Invalid phone")

        response = api_client.post('/api/gateway/transactions/', {
            'lease_id': lease.id, 'amount': 10000, 'phone': '0712345678',
        }, format='json')

        assert response.status_code == 402
        assert response.data['category'] == 'payment_failed'
        assert GatewayTransaction.objects.get().status == GatewayStatus.FAILED

    def test_mpesa_callback_is_always_acknowledged(self, api_client, gateway_client, lease):
        api_client.post('/api/gateway/transactions/', {
            'lease_id': lease.id, 'amount': 10000, 'phone': '0712345678',
        }, format='json')
        callback = {'Body': {'stkCallback': {
            'CheckoutRequestID': 'ws_CO_77', 'ResultCode': 0, 'ResultDesc': 'Success',
            'CallbackMetadata': {'Item': [{'Name': 'MpesaReceiptNumber', 'Value': 'SCL2'},
                                          {'Name': 'Amount', 'Value': 100}]},
        }}}
        anonymous = APIClient()

        ok = anonymous.post('/api/gateway/mpesa/callback/', callback, format='json')
        malformed = anonymous.post('/api/gateway/mpesa/callback/', {'nonsense': True}, format='json')

        assert ok.status_code == 200
        assert ok.data == {'ResultCode': 0, 'ResultDesc': 'Accepted'}
        assert malformed.status_code == 200
        assert GatewayTransaction.objects.get().status == GatewayStatus.COMPLETED
        assert Payment.objects.count() == 1


class TestHealth:

    def test_liveness(self, client):
        response = client.get('/health/')
        assert response.status_code == 200
        assert response.json()['status'] == 'healthy'

    def test_readiness(self, client):
        response = client.get('/health/ready/')
        body = response.json()
        assert body['checks']['database'] is True
        assert body['details']['scheduler_running'] is False

    def test_request_id_is_echoed(self, client):
        response = client.get('/health/', HTTP_X_REQUEST_ID='abc-123')
        assert response['X-Request-ID'] == 'abc-123'

    def test_unsafe_request_id_is_replaced(self, client):
        response = client.get('/health/', HTTP_X_REQUEST_ID='<script>')
        assert response['X-Request-ID'] != '<script>'
