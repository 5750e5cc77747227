from django.contrib.auth.models import AbstractUser
from django.db import models
from accounts.models import Agency
from core.constants import UserRole


class User(AbstractUser):
    """Custom User model - Agency Admin/Agent/Caretaker"""
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='users',
                               null=True, blank=True)
    role = models.CharField(max_length=20, choices=UserRole.CHOICES, default=UserRole.AGENT)
    phone = models.CharField(max_length=15, blank=True)

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def is_agency_admin(self):
        return self.role == UserRole.ADMIN
