from django.contrib import admin

from .models import Invoice, Payment, PaymentAllocation, Penalty


class PaymentAllocationInline(admin.TabularInline):
    model = PaymentAllocation
    extra = 0
    can_delete = False
    readonly_fields = ['payment', 'invoice', 'amount', 'created_at']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ['id', 'lease', 'period_label', 'amount', 'total_paid', 'status', 'due_at']
    list_filter = ['status', 'agency', 'period_year', 'period_month']
    search_fields = ['lease__tenant_ref', 'lease__property_ref']
    readonly_fields = ['lease', 'agency', 'period_year', 'period_month', 'amount', 'total_paid',
                       'issued_at', 'due_at', 'status', 'created_at', 'updated_at']
    inlines = [PaymentAllocationInline]

    def has_add_permission(self, request):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """Payments are immutable; the admin is a viewer"""
    list_display = ['id', 'lease', 'amount', 'method', 'reference_number', 'paid_at', 'reversal_of']
    list_filter = ['method', 'agency']
    search_fields = ['reference_number', 'lease__tenant_ref']
    inlines = [PaymentAllocationInline]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Penalty)
class PenaltyAdmin(admin.ModelAdmin):
    list_display = ['id', 'lease', 'invoice', 'amount', 'status', 'due_date', 'created_at']
    list_filter = ['status', 'agency']
    search_fields = ['tenant_ref', 'reason']
    readonly_fields = ['agency', 'lease', 'invoice', 'tenant_ref', 'amount', 'reason', 'due_date',
                       'status', 'resolved_at', 'resolved_by', 'created_at']

    def has_add_permission(self, request):
        return False
