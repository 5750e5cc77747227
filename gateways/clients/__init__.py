"""
Gateway client registry.

Clients are built from settings.GATEWAY on first use and shared across
threads; each keeps its own pooled requests session and cached token.
"""
import threading

from core.constants import GatewayProvider
from core.exceptions import ValidationError as AppValidationError
from .base import ChargeStatus, GatewayClient
from .mpesa import MpesaClient
from .pesapal import PesapalClient

CLIENT_CLASSES = {
    GatewayProvider.MPESA: MpesaClient,
    GatewayProvider.PESAPAL: PesapalClient,
}

_clients = {}
_clients_lock = threading.Lock()


def get_client_class(provider: str):
    try:
        return CLIENT_CLASSES[provider]
    except KeyError:
        raise AppValidationError(
            message=f"Unknown payment gateway: {provider}",
            code="INVALID_PROVIDER",
            details={"provider": provider, "allowed": GatewayProvider.VALUES},
        )


def get_gateway_client(provider: str) -> GatewayClient:
    client_class = get_client_class(provider)
    with _clients_lock:
        client = _clients.get(provider)
        if client is None:
            client = client_class.from_settings()
            _clients[provider] = client
        return client


def reset_gateway_clients():
    """Drop cached clients so the next call rebuilds them from settings"""
    with _clients_lock:
        _clients.clear()


__all__ = [
    'ChargeStatus',
    'GatewayClient',
    'MpesaClient',
    'PesapalClient',
    'get_client_class',
    'get_gateway_client',
    'reset_gateway_clients',
]
