"""
Audit app: append-only trail of payments, reversals, penalties and lease edits
"""

from django.apps import AppConfig


class AuditConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'audit'
    verbose_name = 'Billing Audit Trail'
