from rest_framework import serializers

from core.constants import PaymentMethod
from .models import Invoice, Payment, PaymentAllocation, Penalty


class InvoiceSerializer(serializers.ModelSerializer):
    """Serializer for Invoice"""
    period = serializers.CharField(source='period_label', read_only=True)
    remaining = serializers.ReadOnlyField()

    class Meta:
        model = Invoice
        fields = [
            'id', 'lease', 'period', 'period_year', 'period_month', 'amount',
            'total_paid', 'remaining', 'status', 'issued_at', 'due_at'
        ]
        read_only_fields = fields


class InvoiceGenerateSerializer(serializers.Serializer):
    lease_id = serializers.IntegerField()
    year = serializers.IntegerField(min_value=1900, max_value=9999)
    month = serializers.IntegerField(min_value=1, max_value=12)


class PaymentAllocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentAllocation
        fields = ['invoice', 'amount']
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    """Read serializer for Payment, including how it was applied"""
    allocations = PaymentAllocationSerializer(many=True, read_only=True)
    unapplied_amount = serializers.ReadOnlyField()

    class Meta:
        model = Payment
        fields = [
            'id', 'lease', 'invoice', 'amount', 'paid_at', 'method', 'reference_number',
            'reversal_of', 'allocations', 'unapplied_amount', 'notes', 'created_at'
        ]
        read_only_fields = fields


class PaymentCreateSerializer(serializers.Serializer):
    """Manual payment entry"""
    lease_id = serializers.IntegerField()
    amount = serializers.IntegerField(min_value=1)
    paid_at = serializers.DateTimeField()
    method = serializers.ChoiceField(choices=PaymentMethod.CHOICES, default=PaymentMethod.MANUAL)
    reference_number = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    invoice_id = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class PaymentReverseSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=255)


class PenaltySerializer(serializers.ModelSerializer):
    class Meta:
        model = Penalty
        fields = [
            'id', 'lease', 'invoice', 'tenant_ref', 'amount', 'reason', 'due_date',
            'status', 'resolved_at', 'resolved_by', 'created_at'
        ]
        read_only_fields = fields


class PenaltySweepSerializer(serializers.Serializer):
    as_of = serializers.DateField(required=False)
