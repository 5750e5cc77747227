"""
Multi-tenant permissions - ensure users can only access their own agency's data
"""
from rest_framework import permissions

from core.constants import UserRole


class IsAgencyMember(permissions.BasePermission):
    """
    Authenticated users attached to an agency; objects must belong to it.
    """

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.agency_id)

    def has_object_permission(self, request, view, obj):
        agency_id = getattr(obj, 'agency_id', None)
        if agency_id is None and hasattr(obj, 'lease'):
            agency_id = obj.lease.agency_id
        return agency_id is not None and agency_id == request.user.agency_id


class IsAgencyAdmin(IsAgencyMember):
    """
    Agency admins only. Required to waive penalties and reverse payments.
    """

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        return request.user.role == UserRole.ADMIN


class CanRecordPayments(IsAgencyMember):
    """
    Admins and agents; caretakers have read-only access.
    """

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        if request.method in permissions.SAFE_METHODS:
            return True
        return request.user.role in (UserRole.ADMIN, UserRole.AGENT)
