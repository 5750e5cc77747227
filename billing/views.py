from datetime import datetime, time

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.utils import timezone

from api.filters import AgencyFilterBackend, QueryParamFilterBackend
from api.permissions import CanRecordPayments, IsAgencyAdmin
from core.exceptions import NotFoundError
from leases.models import Lease
from .invoicing import InvoiceGenerator
from .matching import PaymentMatcher
from .models import Invoice, Payment, Penalty
from .penalties import PenaltyCalculator
from .serializers import (
    InvoiceSerializer, InvoiceGenerateSerializer, PaymentSerializer, PaymentCreateSerializer,
    PaymentReverseSerializer, PenaltySerializer, PenaltySweepSerializer,
)
from .status import sweep_overdue


def _agency_lease(request, lease_id):
    lease = Lease.objects.filter(id=lease_id, agency_id=request.user.agency_id).first()
    if lease is None:
        raise NotFoundError(resource_type='Lease', resource_id=lease_id)
    return lease


def _match_response(result, status_code=status.HTTP_200_OK):
    return Response({
        'payment': PaymentSerializer(result.payment).data,
        'allocations': [{'invoice': invoice_id, 'amount': amount} for invoice_id, amount in result.as_pairs()],
        'unapplied': result.unapplied,
    }, status=status_code)


class InvoiceViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Invoices are issued by the generator, never edited through the API.
    Filter with ?status=OVERDUE&lease=4&period_year=2024&period_month=3
    """
    serializer_class = InvoiceSerializer
    permission_classes = [IsAuthenticated, CanRecordPayments]
    filter_backends = [AgencyFilterBackend, QueryParamFilterBackend]
    filterset_fields = ['status', 'lease', 'period_year', 'period_month']

    def get_queryset(self):
        return Invoice.objects.select_related('lease').order_by('-period_year', '-period_month', 'id')

    @action(detail=False, methods=['post'])
    def generate(self, request):
        """Issue one lease's invoice for a period"""
        serializer = InvoiceGenerateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        lease = _agency_lease(request, data['lease_id'])
        invoice = InvoiceGenerator().generate_invoice(lease, data['year'], data['month'], user=request.user)
        return Response(InvoiceSerializer(invoice).data, status=status.HTTP_201_CREATED)


class PaymentViewSet(viewsets.GenericViewSet):
    """
    Payments are append-only: create, list, retrieve, apply leftover
    credit and reverse. Reversal is restricted to agency admins.
    """
    serializer_class = PaymentSerializer
    permission_classes = [IsAuthenticated, CanRecordPayments]
    filter_backends = [AgencyFilterBackend, QueryParamFilterBackend]
    filterset_fields = ['lease', 'method', 'reference_number']

    def get_queryset(self):
        return Payment.objects.select_related('lease').prefetch_related('allocations').order_by('-paid_at', '-id')

    def get_permissions(self):
        if self.action == 'reverse':
            return [IsAuthenticated(), IsAgencyAdmin()]
        return super().get_permissions()

    def list(self, request):
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        if page is not None:
            return self.get_paginated_response(self.get_serializer(page, many=True).data)
        return Response(self.get_serializer(queryset, many=True).data)

    def retrieve(self, request, pk=None):
        return Response(self.get_serializer(self.get_object()).data)

    def create(self, request):
        """Record a manual payment and apply it to the lease's invoices"""
        serializer = PaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        lease = _agency_lease(request, data['lease_id'])

        invoice = None
        if data.get('invoice_id'):
            invoice = Invoice.objects.filter(id=data['invoice_id'], agency_id=request.user.agency_id).first()
            if invoice is None:
                raise NotFoundError(resource_type='Invoice', resource_id=data['invoice_id'])

        result = PaymentMatcher().record_payment(
            lease,
            data['amount'],
            data['paid_at'],
            method=data['method'],
            reference_number=data['reference_number'],
            invoice=invoice,
            notes=data['notes'],
            recorded_by=request.user,
        )
        return _match_response(result, status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='apply-credit')
    def apply_credit(self, request, pk=None):
        """Apply unapplied credit to invoices issued since the payment"""
        result = PaymentMatcher().apply_unapplied_credit(self.get_object(), now=timezone.now(), user=request.user)
        return _match_response(result)

    @action(detail=True, methods=['post'])
    def reverse(self, request, pk=None):
        serializer = PaymentReverseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = PaymentMatcher().reverse_payment(
            self.get_object(), serializer.validated_data['reason'], now=timezone.now(), user=request.user
        )
        return _match_response(result, status.HTTP_201_CREATED)


class PenaltyViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = PenaltySerializer
    permission_classes = [IsAuthenticated, CanRecordPayments]
    filter_backends = [AgencyFilterBackend, QueryParamFilterBackend]
    filterset_fields = ['status', 'lease', 'invoice']

    def get_queryset(self):
        return Penalty.objects.order_by('-created_at', '-id')

    def get_permissions(self):
        if self.action == 'waive':
            return [IsAuthenticated(), IsAgencyAdmin()]
        return super().get_permissions()

    @action(detail=False, methods=['post'])
    def sweep(self, request):
        """Refresh statuses and raise penalties for the user's agency"""
        serializer = PenaltySweepSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        as_of = timezone.now()
        if serializer.validated_data.get('as_of'):
            as_of = timezone.make_aware(datetime.combine(serializer.validated_data['as_of'], time(12, 0)))

        agency = request.user.agency
        changed = sweep_overdue(as_of, agency=agency)
        penalties = PenaltyCalculator().compute_late_penalties(as_of, agency=agency)
        return Response({
            'statuses_updated': changed,
            'penalties': PenaltySerializer(penalties, many=True).data,
        })

    @action(detail=True, methods=['post'])
    def waive(self, request, pk=None):
        penalty = PenaltyCalculator().waive_penalty(self.get_object(), user=request.user)
        return Response(PenaltySerializer(penalty).data)

    @action(detail=True, methods=['post'])
    def pay(self, request, pk=None):
        penalty = PenaltyCalculator().mark_penalty_paid(self.get_object(), user=request.user)
        return Response(PenaltySerializer(penalty).data)
