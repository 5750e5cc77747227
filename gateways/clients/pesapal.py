"""
PesaPal API 3.0 client (card and mobile checkout).
"""
from decimal import Decimal
import uuid
from typing import Optional, Tuple

from core.constants import GatewayProvider, GatewayStatus
from core.exceptions import (
    GatewayConfigurationError,
    GatewayFailureError,
    GatewayUnavailableError,
    ValidationError as AppValidationError,
)
from core.services import get_setting
from .base import ChargeStatus, GatewayClient, MINOR_PER_MAJOR, to_minor_units


class PesapalClient(GatewayClient):
    """Submits orders and reads their payment status"""

    provider = GatewayProvider.PESAPAL

    BASE_URLS = {
        'sandbox': 'https://cybqa.pesapal.com/pesapalv3',
        'production': 'https://pay.pesapal.com/v3',
    }
    STATUS_MAP = {
        'completed': GatewayStatus.COMPLETED,
        'failed': GatewayStatus.FAILED,
        'invalid': GatewayStatus.FAILED,
        'reversed': GatewayStatus.CANCELLED,
    }
    # PesaPal tokens live five minutes
    TOKEN_LIFETIME = 300
    REQUIRED_SETTINGS = ('CONSUMER_KEY', 'CONSUMER_SECRET', 'NOTIFICATION_ID', 'CALLBACK_URL')

    def __init__(self, consumer_key, consumer_secret, notification_id, callback_url,
                 environment='sandbox', currency='KES', **kwargs):
        super().__init__(self.BASE_URLS.get(environment, self.BASE_URLS['sandbox']), **kwargs)
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.notification_id = notification_id
        self.callback_url = callback_url
        self.currency = currency

    @classmethod
    def from_settings(cls, **kwargs) -> 'PesapalClient':
        config = get_setting('GATEWAY', 'PESAPAL', {}) or {}
        missing = [key for key in cls.REQUIRED_SETTINGS if not config.get(key)]
        if missing:
            raise GatewayConfigurationError(
                message=f"PesaPal is not configured: missing {', '.join(missing)}",
                details={"missing": missing},
            )
        return cls(
            consumer_key=config['CONSUMER_KEY'],
            consumer_secret=config['CONSUMER_SECRET'],
            notification_id=config['NOTIFICATION_ID'],
            callback_url=config['CALLBACK_URL'],
            environment=config.get('ENVIRONMENT', 'sandbox'),
            currency=config.get('CURRENCY', 'KES'),
            **kwargs
        )

    def initiate_charge(self, amount: int, phone: str, account_ref: str) -> str:
        payload = {
            # Merchant reference must be unique per order
            'id': f"{account_ref}-{uuid.uuid4().hex[:8]}",
            'currency': self.currency,
            'amount': float(Decimal(amount) / MINOR_PER_MAJOR),
            'description': f"Rent payment {account_ref}",
            'callback_url': self.callback_url,
            'notification_id': self.notification_id,
            'billing_address': {'phone_number': phone},
        }
        response = self._request('POST', '/api/Transactions/SubmitOrderRequest', json=payload)
        data = self._json(response)

        error = data.get('error')
        if response.status_code != 200 or error or not data.get('order_tracking_id'):
            message = (error or {}).get('message') if isinstance(error, dict) else error
            message = message or f"HTTP {response.status_code}"
            self.logger.warning(f"PesaPal rejected order {account_ref}: {message}")
            raise GatewayFailureError(
                message=f"PesaPal rejected the payment request: {message}",
                details={"response": data},
            )

        self.logger.info(f"PesaPal order accepted: {data['order_tracking_id']} for {account_ref}")
        return data['order_tracking_id']

    def query_status(self, checkout_request_id: str) -> ChargeStatus:
        response = self._request('GET', '/api/Transactions/GetTransactionStatus',
                                 params={'orderTrackingId': checkout_request_id})
        data = self._json(response)
        if response.status_code != 200:
            raise GatewayUnavailableError(
                message=f"Unexpected PesaPal status response: HTTP {response.status_code}",
                checkout_request_id=checkout_request_id,
                details={"response": data},
            )

        description = (data.get('payment_status_description') or '').strip()
        return ChargeStatus(
            status=self.STATUS_MAP.get(description.lower(), GatewayStatus.PENDING),
            receipt_id=data.get('confirmation_code') or None,
            result_code=str(data.get('status_code', '')),
            description=description,
            amount=to_minor_units(data.get('amount')),
            raw=data,
        )

    @classmethod
    def parse_callback(cls, payload) -> Tuple[str, Optional[ChargeStatus]]:
        """IPN notifications only name the order; its status must be queried"""
        tracking_id = (payload or {}).get('OrderTrackingId')
        if not tracking_id:
            raise AppValidationError(
                message="Malformed PesaPal notification",
                code="INVALID_CALLBACK",
                details={"payload": payload},
            )
        return tracking_id, None

    def _fetch_token(self):
        response = self._request(
            'POST', '/api/Auth/RequestToken',
            authenticate=False,
            json={'consumer_key': self.consumer_key, 'consumer_secret': self.consumer_secret},
        )
        data = self._json(response)
        if response.status_code != 200 or not data.get('token'):
            raise GatewayConfigurationError(
                message="PesaPal rejected the API credentials",
                details={"status_code": response.status_code},
            )
        return data['token'], self.TOKEN_LIFETIME
