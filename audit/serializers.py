"""
Audit Log Serializers
"""

from rest_framework import serializers
from audit.models import AuditLog


class AuditLogSerializer(serializers.ModelSerializer):
    """
    Read-only: audit logs cannot be created or updated via API.
    """

    actor_display = serializers.CharField(read_only=True)
    user_username = serializers.CharField(source='user.username', read_only=True, allow_null=True)

    class Meta:
        model = AuditLog
        fields = [
            'id',
            'agency',
            'user',
            'user_username',
            'actor_display',
            'action',
            'resource_type',
            'resource_id',
            'description',
            'metadata',
            'timestamp',
        ]
        read_only_fields = fields
