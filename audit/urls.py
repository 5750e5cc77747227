"""
Audit trail routes, mounted under /api/audit/

logs/                  agency-scoped, read-only history of balance changes
logs/resource_trail/   every entry for one invoice, payment or lease
"""

from django.urls import path, include
from rest_framework.routers import DefaultRouter
from audit import views

app_name = 'audit'

router = DefaultRouter()
router.register(r'logs', views.AuditLogViewSet, basename='auditlog')

urlpatterns = [
    path('', include(router.urls)),
]
