"""
Custom filters for multi-tenant data
"""
from rest_framework import filters


class AgencyFilterBackend(filters.BaseFilterBackend):
    """
    Filter queryset to only show objects belonging to the user's agency
    """

    def filter_queryset(self, request, queryset, view):
        user = request.user
        if user and user.is_authenticated and getattr(user, 'agency_id', None):
            return queryset.filter(agency_id=user.agency_id)
        return queryset.none()


class QueryParamFilterBackend(filters.BaseFilterBackend):
    """
    Exact-match filtering on the fields a view lists in ``filterset_fields``,
    e.g. ?status=OVERDUE&lease=4
    """

    def filter_queryset(self, request, queryset, view):
        for field in getattr(view, 'filterset_fields', []):
            value = request.query_params.get(field)
            if value not in (None, ''):
                queryset = queryset.filter(**{field: value})
        return queryset
