from django.contrib import admin

from .models import Lease


@admin.register(Lease)
class LeaseAdmin(admin.ModelAdmin):
    list_display = ['id', 'agency', 'tenant_ref', 'property_ref', 'rent_amount', 'payment_day_of_month',
                    'start_date', 'end_date']
    list_filter = ['agency', 'start_date']
    search_fields = ['tenant_ref', 'property_ref']
    readonly_fields = ['created_at', 'updated_at']

    def get_readonly_fields(self, request, obj=None):
        if obj is not None and obj.has_invoices:
            # Schedule is frozen once billed
            return self.readonly_fields + ['agency', 'property_ref', 'tenant_ref', 'start_date',
                                           'rent_amount', 'payment_day_of_month']
        return self.readonly_fields
