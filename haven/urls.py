"""
URL configuration for the haven project.
"""
from django.contrib import admin
from django.urls import path, include

from common.health import get_health_urls

admin.site.site_header = "Haven Rental Billing - Admin Panel"
admin.site.site_title = "Haven Admin"
admin.site.index_title = "Billing Administration"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('api.urls')),
]

# Health check endpoints (for load balancers, monitoring)
urlpatterns += get_health_urls()
