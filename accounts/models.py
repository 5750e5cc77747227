from django.db import models


class Agency(models.Model):
    """Property-management agency - every lease, invoice and payment belongs to one"""
    name = models.CharField(max_length=255, help_text="Agency/Business name")
    is_active = models.BooleanField(default=True)
    phone = models.CharField(max_length=15, blank=True)
    address = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Agency"
        verbose_name_plural = "Agencies"
        ordering = ['-created_at']

    def __str__(self):
        return self.name

    @property
    def admin_user(self):
        """Get the first agency admin"""
        return self.users.filter(role='ADMIN').first()
