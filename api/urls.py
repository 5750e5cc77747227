"""
API URLs for Haven billing
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from leases.views import LeaseViewSet
from billing.views import InvoiceViewSet, PaymentViewSet, PenaltyViewSet
from gateways.views import GatewayTransactionViewSet, mpesa_callback, pesapal_ipn

router = DefaultRouter()
router.register(r'leases', LeaseViewSet, basename='lease')
router.register(r'invoices', InvoiceViewSet, basename='invoice')
router.register(r'payments', PaymentViewSet, basename='payment')
router.register(r'penalties', PenaltyViewSet, basename='penalty')
router.register(r'gateway/transactions', GatewayTransactionViewSet, basename='gateway-transaction')

urlpatterns = [
    # JWT Authentication
    path('auth/login/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/refresh/', TokenRefreshView.as_view(), name='token_refresh'),

    # Gateway notifications (unauthenticated)
    path('gateway/mpesa/callback/', mpesa_callback, name='mpesa_callback'),
    path('gateway/pesapal/ipn/', pesapal_ipn, name='pesapal_ipn'),

    # Audit logs
    path('audit/', include('audit.urls')),

    # API routes
    path('', include(router.urls)),
]
