"""
Common plumbing for payment gateway HTTP clients.

Every call carries a timeout; connection errors, timeouts and 5xx/429
responses are retried with exponential backoff before surfacing as
GatewayUnavailableError.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
import logging
import threading
import time
from typing import Optional, Tuple

import requests
import tenacity
from requests.adapters import HTTPAdapter

from core.constants import BillingDefaults, GatewayStatus
from core.exceptions import GatewayUnavailableError
from core.services import get_setting

# Minor currency units per major unit (cents per shilling)
MINOR_PER_MAJOR = 100


class TransientGatewayError(Exception):
    """A response worth retrying: 5xx, 429 or an expired token"""


TRANSIENT_ERRORS = (requests.ConnectionError, requests.Timeout, TransientGatewayError)


@dataclass
class ChargeStatus:
    """What the gateway reports about one charge"""
    status: str
    receipt_id: Optional[str] = None
    result_code: str = ''
    description: str = ''
    amount: Optional[int] = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in GatewayStatus.GATEWAY_TERMINAL


def to_minor_units(value) -> Optional[int]:
    if value is None or value == '':
        return None
    return int((Decimal(str(value)) * MINOR_PER_MAJOR).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


class GatewayClient:
    """
    Base class for gateway clients.

    Subclasses implement initiate_charge, query_status, parse_callback and
    _fetch_token.
    """
    provider = None
    # Seconds shaved off a token's lifetime so it is refreshed before expiry
    TOKEN_REFRESH_MARGIN = 60

    def __init__(self, base_url: str, timeout: float = None, retries: int = None,
                 session: requests.Session = None, wait=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout or get_setting('GATEWAY', 'HTTP_TIMEOUT_SECONDS', BillingDefaults.HTTP_TIMEOUT_SECONDS)
        self.retries = retries or get_setting('GATEWAY', 'TRANSIENT_RETRIES', BillingDefaults.TRANSIENT_RETRIES)
        self.session = session or self._build_session()
        self.wait = wait or tenacity.wait_exponential(multiplier=1, min=1, max=10)
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")
        self._token = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def initiate_charge(self, amount: int, phone: str, account_ref: str) -> str:
        """Ask the gateway to charge the payer. Returns the checkout request id."""
        raise NotImplementedError

    def query_status(self, checkout_request_id: str) -> ChargeStatus:
        raise NotImplementedError

    @classmethod
    def parse_callback(cls, payload) -> Tuple[str, Optional[ChargeStatus]]:
        """
        Parse a gateway notification.

        Returns the checkout request id and the reported status, or None as
        the status when the notification only says "something changed".
        """
        raise NotImplementedError

    def _fetch_token(self) -> Tuple[str, int]:
        """Return (access token, lifetime in seconds)"""
        raise NotImplementedError

    def _build_session(self) -> requests.Session:
        pool_size = get_setting('GATEWAY', 'MAX_WORKERS', BillingDefaults.MAX_WORKERS)
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        session.mount('https://', adapter)
        session.mount('http://', adapter)
        session.headers.update({'Accept': 'application/json'})
        return session

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token
            token, lifetime = self._fetch_token()
            self._token = token
            self._token_expires_at = time.monotonic() + max(lifetime - self.TOKEN_REFRESH_MARGIN, 0)
            return token

    def _invalidate_token(self):
        with self._token_lock:
            self._token = None
            self._token_expires_at = 0.0

    def _request(self, method: str, path: str, authenticate: bool = True, **kwargs) -> requests.Response:
        """Send a request, retrying transient failures with exponential backoff"""
        retryer = tenacity.Retrying(
            wait=self.wait,
            stop=tenacity.stop_after_attempt(self.retries),
            retry=tenacity.retry_if_exception_type(TRANSIENT_ERRORS),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            return retryer(self._send, method, path, authenticate, **kwargs)
        except TRANSIENT_ERRORS as e:
            self.logger.error(f"{self.provider} {method} {path} failed after {self.retries} attempts: {e}")
            raise GatewayUnavailableError(message=f"{self.provider} gateway unreachable: {e}") from e

    def _send(self, method: str, path: str, authenticate: bool, **kwargs) -> requests.Response:
        headers = dict(kwargs.pop('headers', None) or {})
        if authenticate:
            headers['Authorization'] = f"Bearer {self._access_token()}"
        kwargs.setdefault('timeout', self.timeout)
        response = self.session.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        if authenticate and response.status_code == 401:
            # Token revoked or expired early
            self._invalidate_token()
            raise TransientGatewayError(f"{self.provider} rejected the access token")
        if self._is_transient(response):
            raise TransientGatewayError(f"{self.provider} returned HTTP {response.status_code}")
        return response

    def _is_transient(self, response: requests.Response) -> bool:
        return response.status_code >= 500 or response.status_code == 429

    def _log_retry(self, retry_state):
        self.logger.warning(
            f"Retrying {self.provider} request (attempt {retry_state.attempt_number}): "
            f"{retry_state.outcome.exception()}"
        )

    @staticmethod
    def _json(response: requests.Response) -> dict:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
