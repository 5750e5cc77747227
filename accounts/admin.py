from django.contrib import admin
from .models import Agency


@admin.register(Agency)
class AgencyAdmin(admin.ModelAdmin):
    """
    Agency management.

    Create the agency first, then add its users from the Users section.
    """
    list_display = ['name', 'phone', 'is_active', 'user_count', 'lease_count', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['name', 'phone']
    readonly_fields = ['created_at', 'updated_at']

    fieldsets = (
        ('Agency', {
            'fields': ('name', 'phone', 'address', 'is_active')
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def user_count(self, obj):
        return obj.users.count()
    user_count.short_description = 'Users'

    def lease_count(self, obj):
        return obj.leases.count()
    lease_count.short_description = 'Leases'
