import base64
from unittest.mock import MagicMock

import pytest
import requests
import tenacity

from core.constants import GatewayStatus
from core.exceptions import (
    GatewayConfigurationError,
    GatewayFailureError,
    GatewayUnavailableError,
    ValidationError as AppValidationError,
)
from gateways.clients import MpesaClient, PesapalClient, get_gateway_client, reset_gateway_clients
from gateways.clients.base import to_minor_units


def response(status_code=200, body=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = body if body is not None else {}
    return resp


TOKEN = response(body={'access_token': 'tok-1', 'expires_in': '3599'})


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def mpesa(session):
    return MpesaClient(
        consumer_key='key', consumer_secret='secret', shortcode='174379', passkey='passkey',
        callback_url='https://example.com/cb', session=session, retries=3, wait=tenacity.wait_none(),
    )


def calls(session):
    return [(c.args[0], c.args[1]) for c in session.request.call_args_list]


class TestMpesaInitiate:

    def test_stk_push_payload(self, mpesa, session):
        session.request.side_effect = [
            TOKEN,
            response(body={'ResponseCode': '0', 'CheckoutRequestID': 'ws_CO_1', 'MerchantRequestID': 'm-1'}),
        ]

        assert mpesa.initiate_charge(150000, '254712345678', 'INV-1234567890123') == 'ws_CO_1'

        push = session.request.call_args_list[1]
        payload = push.kwargs['json']
        assert payload['Amount'] == 1500
        assert payload['AccountReference'] == 'INV-12345678'
        assert payload['PhoneNumber'] == '254712345678'
        assert push.kwargs['headers']['Authorization'] == 'Bearer tok-1'
        assert push.kwargs['timeout'] == mpesa.timeout
        raw = base64.b64decode(payload['Password']).decode()
        assert raw == f"174379passkey{payload['Timestamp']}"

    def test_fractional_shillings_rejected(self, mpesa, session):
        with pytest.raises(AppValidationError):
            mpesa.initiate_charge(150050, '254712345678', 'INV-1')
        session.request.assert_not_called()

    def test_rejected_request(self, mpesa, session):
        session.request.side_effect = [
            TOKEN,
            response(400, {'errorCode': '400.002.02', 'errorMessage': 'Bad Request - Invalid PhoneNumber'}),
        ]

        with pytest.raises(GatewayFailureError) as exc_info:
            mpesa.initiate_charge(1000, '254712345678', 'INV-1')
        assert exc_info.value.details['result_code'] == '400.002.02'

    def test_transient_errors_are_retried(self, mpesa, session):
        session.request.side_effect = [
            TOKEN,
            response(503),
            requests.ConnectionError("reset by peer"),
            response(body={'ResponseCode': '0', 'CheckoutRequestID': 'ws_CO_2'}),
        ]

        assert mpesa.initiate_charge(1000, '254712345678', 'INV-1') == 'ws_CO_2'
        assert session.request.call_count == 4

    def test_gives_up_after_retries(self, mpesa, session):
        session.request.side_effect = [TOKEN, response(502), response(502), response(502)]

        with pytest.raises(GatewayUnavailableError):
            mpesa.initiate_charge(1000, '254712345678', 'INV-1')

    def test_expired_token_is_refreshed(self, mpesa, session):
        session.request.side_effect = [
            TOKEN,
            response(401),
            response(body={'access_token': 'tok-2', 'expires_in': '3599'}),
            response(body={'ResponseCode': '0', 'CheckoutRequestID': 'ws_CO_3'}),
        ]

        assert mpesa.initiate_charge(1000, '254712345678', 'INV-1') == 'ws_CO_3'
        assert session.request.call_args_list[3].kwargs['headers']['Authorization'] == 'Bearer tok-2'

    def test_token_is_cached(self, mpesa, session):
        accepted = response(body={'ResponseCode': '0', 'CheckoutRequestID': 'ws_CO_4'})
        session.request.side_effect = [TOKEN, accepted, accepted]

        mpesa.initiate_charge(1000, '254712345678', 'INV-1')
        mpesa.initiate_charge(1000, '254712345678', 'INV-2')

        assert [path for _, path in calls(session)].count('https://sandbox.safaricom.co.ke/oauth/v1/generate') == 1

    def test_bad_credentials_are_not_retried(self, mpesa, session):
        session.request.side_effect = [response(400, {'errorMessage': 'Invalid credentials'})]

        with pytest.raises(GatewayConfigurationError):
            mpesa.initiate_charge(1000, '254712345678', 'INV-1')
        assert session.request.call_count == 1


class TestMpesaQuery:

    @pytest.fixture(autouse=True)
    def token(self, mpesa):
        mpesa._token = 'tok-1'
        mpesa._token_expires_at = float('inf')

    def test_completed(self, mpesa, session):
        session.request.return_value = response(body={
            'ResponseCode': '0', 'ResultCode': '0', 'ResultDesc': 'The service request is processed successfully.',
        })

        report = mpesa.query_status('ws_CO_1')
        assert report.status == GatewayStatus.COMPLETED
        assert report.is_terminal

    def test_cancelled(self, mpesa, session):
        session.request.return_value = response(body={'ResultCode': '1032', 'ResultDesc': 'Request cancelled by user'})
        assert mpesa.query_status('ws_CO_1').status == GatewayStatus.CANCELLED

    def test_failed(self, mpesa, session):
        session.request.return_value = response(body={'ResultCode': '1', 'ResultDesc': 'Insufficient balance'})
        report = mpesa.query_status('ws_CO_1')
        assert report.status == GatewayStatus.FAILED
        assert report.result_code == '1'

    def test_still_processing_is_not_retried(self, mpesa, session):
        session.request.return_value = response(500, {
            'errorCode': '500.001.1001', 'errorMessage': 'The transaction is being processed',
        })

        report = mpesa.query_status('ws_CO_1')

        assert report.status == GatewayStatus.PENDING
        assert not report.is_terminal
        assert session.request.call_count == 1


class TestMpesaCallback:

    def test_success_with_metadata(self):
        payload = {'Body': {'stkCallback': {
            'CheckoutRequestID': 'ws_CO_1',
            'ResultCode': 0,
            'ResultDesc': 'The service request is processed successfully.',
            'CallbackMetadata': {'Item': [
                {'Name': 'Amount', 'Value': 1500.00},
                {'Name': 'MpesaReceiptNumber', 'Value': 'NLJ7RT61SV'},
                {'Name': 'Balance'},
            ]},
        }}}

        checkout_request_id, report = MpesaClient.parse_callback(payload)

        assert checkout_request_id == 'ws_CO_1'
        assert report.status == GatewayStatus.COMPLETED
        assert report.receipt_id == 'NLJ7RT61SV'
        assert report.amount == 150000

    def test_cancelled(self):
        payload = {'Body': {'stkCallback': {'CheckoutRequestID': 'ws_CO_1', 'ResultCode': 1032,
                                            'ResultDesc': 'Request cancelled by user'}}}
        _, report = MpesaClient.parse_callback(payload)
        assert report.status == GatewayStatus.CANCELLED
        assert report.receipt_id is None

    @pytest.mark.parametrize('payload', [{}, {'Body': {}}, None, {'Body': {'stkCallback': {'ResultCode': 0}}}])
    def test_malformed(self, payload):
        with pytest.raises(AppValidationError):
            MpesaClient.parse_callback(payload)


class TestPesapal:

    @pytest.fixture
    def pesapal(self, session):
        return PesapalClient(
            consumer_key='key', consumer_secret='secret', notification_id='ipn-1',
            callback_url='https://example.com/return', session=session, retries=2, wait=tenacity.wait_none(),
        )

    def test_submit_order(self, pesapal, session):
        session.request.side_effect = [
            response(body={'token': 'tok', 'status': '200'}),
            response(body={'order_tracking_id': 'b945e4af-80a5', 'status': '200'}),
        ]

        assert pesapal.initiate_charge(250050, '254712345678', 'INV-7') == 'b945e4af-80a5'
        order = session.request.call_args_list[1].kwargs['json']
        assert order['amount'] == 2500.5
        assert order['id'].startswith('INV-7-')

    def test_status_mapping(self, pesapal, session):
        pesapal._token = 'tok'
        pesapal._token_expires_at = float('inf')
        session.request.return_value = response(body={
            'payment_status_description': 'Completed', 'confirmation_code': 'AA11', 'amount': 2500.5,
            'status_code': 1,
        })

        report = pesapal.query_status('b945e4af-80a5')

        assert report.status == GatewayStatus.COMPLETED
        assert report.receipt_id == 'AA11'
        assert report.amount == 250050

    def test_ipn_carries_no_status(self):
        assert PesapalClient.parse_callback({'OrderTrackingId': 'b945'}) == ('b945', None)


def test_to_minor_units():
    assert to_minor_units('1500.505') == 150051
    assert to_minor_units(None) is None


def test_registry_requires_configuration(settings):
    reset_gateway_clients()
    settings.GATEWAY = {'PESAPAL': {}}
    try:
        with pytest.raises(GatewayConfigurationError):
            get_gateway_client('PESAPAL')
    finally:
        reset_gateway_clients()
