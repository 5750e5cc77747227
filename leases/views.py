from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from api.filters import AgencyFilterBackend, QueryParamFilterBackend
from api.permissions import CanRecordPayments
from core.dto import LeaseDTO
from .models import Lease
from .serializers import LeaseSerializer, LeaseTerminateSerializer
from .services import LeaseService


class LeaseViewSet(viewsets.ModelViewSet):
    """
    ViewSet for Lease management
    Filtered by agency - users only see their agency's leases
    Writes go through LeaseService so frozen terms are enforced
    """
    serializer_class = LeaseSerializer
    permission_classes = [IsAuthenticated, CanRecordPayments]
    filter_backends = [AgencyFilterBackend, QueryParamFilterBackend]
    filterset_fields = ['property_ref', 'tenant_ref']
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    def get_queryset(self):
        return Lease.objects.select_related('agency').order_by('-start_date', 'id')

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lease = LeaseService().create_lease(
            LeaseDTO(agency_id=request.user.agency_id, **serializer.validated_data),
            user=request.user,
        )
        return Response(self.get_serializer(lease).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        lease = self.get_object()
        serializer = self.get_serializer(lease, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        lease = LeaseService().update_lease(lease, user=request.user, **serializer.validated_data)
        return Response(self.get_serializer(lease).data)

    @action(detail=True, methods=['post'])
    def terminate(self, request, pk=None):
        """End the lease; invoices are not issued for months after end_date"""
        lease = self.get_object()
        serializer = LeaseTerminateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lease = LeaseService().terminate_lease(lease, serializer.validated_data['end_date'], user=request.user)
        return Response(self.get_serializer(lease).data)

    @action(detail=True, methods=['get'])
    def invoices(self, request, pk=None):
        from billing.serializers import InvoiceSerializer
        lease = self.get_object()
        invoices = lease.invoices.order_by('period_year', 'period_month')
        return Response(InvoiceSerializer(invoices, many=True).data)

    @action(detail=True, methods=['get'])
    def payments(self, request, pk=None):
        from billing.repositories import PaymentRepository
        from billing.serializers import PaymentSerializer
        lease = self.get_object()
        payments = PaymentRepository().for_lease(lease.id)
        return Response(PaymentSerializer(payments, many=True).data)

    @action(detail=True, methods=['get'])
    def credit(self, request, pk=None):
        """Payments still holding unapplied credit, for manual reconciliation"""
        from billing.repositories import PaymentRepository
        from billing.serializers import PaymentSerializer
        lease = self.get_object()
        payments = PaymentRepository().with_unapplied_credit(lease.id)
        return Response({
            'total_unapplied': sum(payment.unapplied_amount for payment in payments),
            'payments': PaymentSerializer(payments, many=True).data,
        })
