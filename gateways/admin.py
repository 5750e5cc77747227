from django.contrib import admin

from .models import GatewayTransaction


@admin.register(GatewayTransaction)
class GatewayTransactionAdmin(admin.ModelAdmin):
    list_display = ['id', 'provider', 'checkout_request_id', 'lease', 'amount', 'status',
                    'poll_attempts', 'gateway_receipt_id', 'created_at']
    list_filter = ['provider', 'status', 'agency']
    search_fields = ['checkout_request_id', 'gateway_receipt_id', 'account_reference', 'phone_or_account']
    readonly_fields = [field.name for field in GatewayTransaction._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
