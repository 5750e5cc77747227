from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    User management for agency staff.

    Create the Agency first, then add users and pick their role:
    ADMIN can waive penalties and reverse payments, AGENT can record
    payments and start mobile-money charges, CARETAKER is read-only.
    """
    list_display = ['username', 'email', 'agency', 'role', 'is_active', 'is_staff', 'date_joined']
    list_filter = ['role', 'is_active', 'is_staff', 'agency']
    search_fields = ['username', 'email', 'agency__name', 'phone']

    fieldsets = BaseUserAdmin.fieldsets + (
        ('Agency Information', {
            'fields': ('agency', 'role', 'phone'),
        }),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Agency Information', {
            'fields': ('agency', 'role', 'phone'),
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        """Make agency readonly for existing users to prevent breaking relationships"""
        readonly = list(super().get_readonly_fields(request, obj))
        if obj:
            readonly.append('agency')
        return readonly
