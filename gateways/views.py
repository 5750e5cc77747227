"""
Gateway API: start a charge, check its status, receive notifications.
"""
import logging

from rest_framework import mixins, viewsets, status
from rest_framework.decorators import action, api_view, authentication_classes, permission_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response

from api.filters import AgencyFilterBackend, QueryParamFilterBackend
from api.permissions import CanRecordPayments
from billing.models import Invoice
from core.constants import GatewayProvider
from core.exceptions import NotFoundError
from leases.models import Lease
from .models import GatewayTransaction
from .serializers import GatewayTransactionSerializer, GatewayInitiateSerializer
from .tracker import GatewayTracker

logger = logging.getLogger(__name__)


class GatewayTransactionViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Looked up by checkout_request_id, the reference the gateway hands back.
    """
    serializer_class = GatewayTransactionSerializer
    permission_classes = [IsAuthenticated, CanRecordPayments]
    filter_backends = [AgencyFilterBackend, QueryParamFilterBackend]
    filterset_fields = ['status', 'provider', 'lease']
    lookup_field = 'checkout_request_id'
    lookup_value_regex = '[^/]+'

    def get_queryset(self):
        return GatewayTransaction.objects.order_by('-created_at')

    def create(self, request):
        """Send a payment prompt to the tenant"""
        serializer = GatewayInitiateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        lease = Lease.objects.filter(id=data['lease_id'], agency_id=request.user.agency_id).first()
        if lease is None:
            raise NotFoundError(resource_type='Lease', resource_id=data['lease_id'])
        invoice = None
        if data.get('invoice_id'):
            invoice = Invoice.objects.filter(id=data['invoice_id'], agency_id=request.user.agency_id).first()
            if invoice is None:
                raise NotFoundError(resource_type='Invoice', resource_id=data['invoice_id'])

        txn = GatewayTracker().initiate(lease, data['amount'], data['phone'], data['provider'],
                                        invoice=invoice, user=request.user)
        return Response(GatewayTransactionSerializer(txn).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'], url_path='status')
    def charge_status(self, request, checkout_request_id=None):
        """Poll the gateway once (unless already settled) and report the outcome"""
        txn = self.get_object()
        resolution = GatewayTracker().resolve(txn.checkout_request_id)
        data = GatewayTransactionSerializer(resolution.transaction).data
        data['outcome'] = resolution.outcome
        return Response(data)


def _handle_notification(provider, payload):
    try:
        GatewayTracker().handle_callback(provider, payload)
    except Exception as e:
        # The gateway retries on anything but success; polling covers missed updates
        logger.error(f"Failed to process {provider} notification: {e}", exc_info=True)


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def mpesa_callback(request):
    """Safaricom STK push result callback. Always acknowledged."""
    _handle_notification(GatewayProvider.MPESA, request.data)
    return Response({'ResultCode': 0, 'ResultDesc': 'Accepted'})


@api_view(['GET', 'POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def pesapal_ipn(request):
    """PesaPal instant payment notification; carries only the tracking id"""
    payload = request.data if request.method == 'POST' else request.query_params
    payload = {key: payload.get(key) for key in ('OrderTrackingId', 'OrderMerchantReference',
                                                   'OrderNotificationType')}
    _handle_notification(GatewayProvider.PESAPAL, payload)
    return Response({
        'orderNotificationType': payload.get('OrderNotificationType') or 'IPNCHANGE',
        'orderTrackingId': payload.get('OrderTrackingId'),
        'orderMerchantReference': payload.get('OrderMerchantReference'),
        'status': 200,
    })
