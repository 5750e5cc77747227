"""
Audit Log API Views

Read-only access to the agency's audit trail.
"""

from rest_framework import viewsets, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from api.filters import AgencyFilterBackend, QueryParamFilterBackend
from api.permissions import IsAgencyMember
from audit.models import AuditLog
from audit.serializers import AuditLogSerializer


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    """
    List and retrieve audit entries of the user's agency.

    Filter with ?action=RECORD_PAYMENT&resource_type=Payment&user=3
    """

    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, IsAgencyMember]
    filter_backends = [AgencyFilterBackend, QueryParamFilterBackend]
    filterset_fields = ['action', 'resource_type', 'resource_id', 'user']

    def get_queryset(self):
        return AuditLog.objects.select_related('user').order_by('-timestamp')

    @action(detail=False, methods=['get'])
    def resource_trail(self, request):
        """
        Audit trail for a single resource.

        Example: GET /api/audit/logs/resource_trail/?resource_type=Invoice&resource_id=12
        """
        resource_type = request.query_params.get('resource_type')
        resource_id = request.query_params.get('resource_id')

        if not resource_type or not resource_id:
            return Response(
                {'detail': 'Both resource_type and resource_id are required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        queryset = AgencyFilterBackend().filter_queryset(request, self.get_queryset(), self)
        queryset = queryset.for_resource(resource_type, resource_id)
        serializer = self.get_serializer(queryset, many=True)

        return Response({
            'resource_type': resource_type,
            'resource_id': resource_id,
            'audit_trail': serializer.data,
            'count': len(serializer.data),
        })
