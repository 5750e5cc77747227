"""
Safaricom M-Pesa Daraja client (Lipa na M-Pesa Online / STK push).
"""
import base64
from typing import Optional, Tuple

from django.utils import timezone

from core.constants import GatewayProvider, GatewayStatus
from core.exceptions import (
    GatewayConfigurationError,
    GatewayFailureError,
    GatewayUnavailableError,
    ValidationError as AppValidationError,
)
from core.services import get_setting
from .base import ChargeStatus, GatewayClient, MINOR_PER_MAJOR, to_minor_units


class MpesaClient(GatewayClient):
    """STK push client. Amounts go out in whole shillings."""

    provider = GatewayProvider.MPESA

    BASE_URLS = {
        'sandbox': 'https://sandbox.safaricom.co.ke',
        'production': 'https://api.safaricom.co.ke',
    }
    # Query answered before the customer has acted on the prompt
    PROCESSING_ERROR_CODES = ('500.001.1001',)
    # Customer dismissed the prompt
    CANCELLED_RESULT_CODES = ('1032',)
    REQUIRED_SETTINGS = ('CONSUMER_KEY', 'CONSUMER_SECRET', 'SHORTCODE', 'PASSKEY', 'CALLBACK_URL')

    def __init__(self, consumer_key, consumer_secret, shortcode, passkey, callback_url,
                 environment='sandbox', transaction_type='CustomerPayBillOnline', **kwargs):
        super().__init__(self.BASE_URLS.get(environment, self.BASE_URLS['sandbox']), **kwargs)
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = str(shortcode)
        self.passkey = passkey
        self.callback_url = callback_url
        self.transaction_type = transaction_type

    @classmethod
    def from_settings(cls, **kwargs) -> 'MpesaClient':
        config = get_setting('GATEWAY', 'MPESA', {}) or {}
        missing = [key for key in cls.REQUIRED_SETTINGS if not config.get(key)]
        if missing:
            raise GatewayConfigurationError(
                message=f"M-Pesa is not configured: missing {', '.join(missing)}",
                details={"missing": missing},
            )
        return cls(
            consumer_key=config['CONSUMER_KEY'],
            consumer_secret=config['CONSUMER_SECRET'],
            shortcode=config['SHORTCODE'],
            passkey=config['PASSKEY'],
            callback_url=config['CALLBACK_URL'],
            environment=config.get('ENVIRONMENT', 'sandbox'),
            transaction_type=config.get('TRANSACTION_TYPE', 'CustomerPayBillOnline'),
            **kwargs
        )

    def initiate_charge(self, amount: int, phone: str, account_ref: str) -> str:
        if amount % MINOR_PER_MAJOR:
            raise AppValidationError(
                message="M-Pesa only accepts whole shilling amounts",
                code="INVALID_PAYMENT_AMOUNT",
                details={"amount": amount},
            )
        timestamp = self._timestamp()
        payload = {
            'BusinessShortCode': self.shortcode,
            'Password': self._password(timestamp),
            'Timestamp': timestamp,
            'TransactionType': self.transaction_type,
            'Amount': amount // MINOR_PER_MAJOR,
            'PartyA': phone,
            'PartyB': self.shortcode,
            'PhoneNumber': phone,
            'CallBackURL': self.callback_url,
            'AccountReference': account_ref[:12],
            'TransactionDesc': 'Rent payment',
        }
        response = self._request('POST', '/mpesa/stkpush/v1/processrequest', json=payload)
        data = self._json(response)

        if response.status_code != 200 or str(data.get('ResponseCode')) != '0' or not data.get('CheckoutRequestID'):
            message = data.get('errorMessage') or data.get('ResponseDescription') or f"HTTP {response.status_code}"
            self.logger.warning(f"M-Pesa rejected STK push for {account_ref}: {message}")
            raise GatewayFailureError(
                message=f"M-Pesa rejected the payment request: {message}",
                details={"result_code": data.get('errorCode') or data.get('ResponseCode'), "response": data},
            )

        self.logger.info(f"M-Pesa STK push accepted: {data['CheckoutRequestID']} for {account_ref}")
        return data['CheckoutRequestID']

    def query_status(self, checkout_request_id: str) -> ChargeStatus:
        timestamp = self._timestamp()
        payload = {
            'BusinessShortCode': self.shortcode,
            'Password': self._password(timestamp),
            'Timestamp': timestamp,
            'CheckoutRequestID': checkout_request_id,
        }
        response = self._request('POST', '/mpesa/stkpushquery/v1/query', json=payload)
        data = self._json(response)

        error_code = data.get('errorCode')
        if error_code in self.PROCESSING_ERROR_CODES:
            return ChargeStatus(GatewayStatus.PENDING, result_code=error_code,
                                description=data.get('errorMessage', ''), raw=data)
        if response.status_code != 200:
            raise GatewayUnavailableError(
                message=f"Unexpected M-Pesa status response: HTTP {response.status_code}",
                checkout_request_id=checkout_request_id,
                details={"response": data},
            )

        result_code = data.get('ResultCode')
        if result_code is None or result_code == '':
            return ChargeStatus(GatewayStatus.PENDING, description=data.get('ResponseDescription', ''), raw=data)
        result_code = str(result_code)
        return ChargeStatus(
            status=self.status_for_result_code(result_code),
            result_code=result_code,
            description=data.get('ResultDesc', ''),
            raw=data,
        )

    @classmethod
    def parse_callback(cls, payload) -> Tuple[str, Optional[ChargeStatus]]:
        """Parse the Body.stkCallback document Safaricom posts to CallBackURL"""
        try:
            callback = payload['Body']['stkCallback']
            checkout_request_id = callback['CheckoutRequestID']
            result_code = str(callback['ResultCode'])
        except (KeyError, TypeError) as e:
            raise AppValidationError(
                message="Malformed M-Pesa callback",
                code="INVALID_CALLBACK",
                details={"missing": str(e)},
            ) from e

        metadata = callback.get('CallbackMetadata') or {}
        items = {item.get('Name'): item.get('Value') for item in metadata.get('Item', []) if isinstance(item, dict)}
        return checkout_request_id, ChargeStatus(
            status=cls.status_for_result_code(result_code),
            receipt_id=items.get('MpesaReceiptNumber') or None,
            result_code=result_code,
            description=callback.get('ResultDesc', ''),
            amount=to_minor_units(items.get('Amount')),
            raw=payload,
        )

    def _is_transient(self, response) -> bool:
        # The STK query answers HTTP 500 while the charge is still processing
        if response.status_code == 500 and self._json(response).get('errorCode') in self.PROCESSING_ERROR_CODES:
            return False
        return super()._is_transient(response)

    @classmethod
    def status_for_result_code(cls, result_code: str) -> str:
        if result_code == '0':
            return GatewayStatus.COMPLETED
        if result_code in cls.CANCELLED_RESULT_CODES:
            return GatewayStatus.CANCELLED
        return GatewayStatus.FAILED

    def _fetch_token(self):
        response = self._request(
            'GET', '/oauth/v1/generate',
            authenticate=False,
            params={'grant_type': 'client_credentials'},
            auth=(self.consumer_key, self.consumer_secret),
        )
        data = self._json(response)
        if response.status_code != 200 or not data.get('access_token'):
            raise GatewayConfigurationError(
                message="M-Pesa rejected the API credentials",
                details={"status_code": response.status_code},
            )
        return data['access_token'], int(data.get('expires_in', 3599))

    def _password(self, timestamp: str) -> str:
        raw = f"{self.shortcode}{self.passkey}{timestamp}"
        return base64.b64encode(raw.encode()).decode()

    @staticmethod
    def _timestamp() -> str:
        return timezone.localtime().strftime('%Y%m%d%H%M%S')
