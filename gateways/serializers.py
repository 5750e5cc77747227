from rest_framework import serializers

from core.constants import GatewayProvider
from .models import GatewayTransaction


class GatewayTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = GatewayTransaction
        fields = [
            'id', 'lease', 'invoice', 'payment', 'provider', 'checkout_request_id',
            'account_reference', 'amount', 'phone_or_account', 'status', 'poll_attempts',
            'gateway_receipt_id', 'result_code', 'result_description',
            'created_at', 'updated_at', 'resolved_at'
        ]
        read_only_fields = fields


class GatewayInitiateSerializer(serializers.Serializer):
    lease_id = serializers.IntegerField()
    amount = serializers.IntegerField(min_value=1, help_text="Minor currency units")
    phone = serializers.CharField(max_length=64)
    provider = serializers.ChoiceField(choices=GatewayProvider.CHOICES, default=GatewayProvider.MPESA)
    invoice_id = serializers.IntegerField(required=False, allow_null=True)
