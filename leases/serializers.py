from rest_framework import serializers

from .models import Lease


class LeaseSerializer(serializers.ModelSerializer):
    """Serializer for Lease"""
    is_active = serializers.SerializerMethodField()

    class Meta:
        model = Lease
        fields = [
            'id', 'property_ref', 'tenant_ref', 'start_date', 'end_date',
            'rent_amount', 'payment_day_of_month', 'notes', 'is_active',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'is_active', 'created_at', 'updated_at']

    def get_is_active(self, obj):
        from django.utils import timezone
        return obj.is_active_on(timezone.localdate())

    def validate(self, attrs):
        start = attrs.get('start_date', getattr(self.instance, 'start_date', None))
        end = attrs.get('end_date', getattr(self.instance, 'end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': "End date cannot be before start date."})
        return attrs


class LeaseTerminateSerializer(serializers.Serializer):
    end_date = serializers.DateField()
