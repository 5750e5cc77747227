import calendar
from datetime import date

from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator
from accounts.models import Agency


class Lease(models.Model):
    """
    Rental agreement between a tenant and a property.

    Drives the recurring rent schedule: one invoice per calendar month,
    due on payment_day_of_month (clamped to the month's last day).
    Once an invoice references the lease, only end_date may change.
    """
    agency = models.ForeignKey(Agency, on_delete=models.CASCADE, related_name='leases')

    # References into the property-management store
    property_ref = models.CharField(max_length=64, db_index=True)
    tenant_ref = models.CharField(max_length=64, db_index=True)

    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)

    rent_amount = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Monthly rent in minor currency units"
    )
    payment_day_of_month = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(31)],
        help_text="Day rent is due; clamped to the last day of shorter months"
    )

    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    IMMUTABLE_FIELDS = ('agency_id', 'property_ref', 'tenant_ref', 'start_date',
                        'rent_amount', 'payment_day_of_month')

    class Meta:
        ordering = ['-start_date']
        verbose_name = "Lease"
        verbose_name_plural = "Leases"
        indexes = [
            models.Index(fields=['agency', 'start_date'], name='lease_agency_start_idx'),
            models.Index(fields=['agency', 'end_date'], name='lease_agency_end_idx'),
        ]

    def __str__(self):
        return f"Lease #{self.pk} - {self.tenant_ref} @ {self.property_ref}"

    def clean(self):
        from django.core.exceptions import ValidationError
        if self.rent_amount is not None and self.rent_amount <= 0:
            raise ValidationError({'rent_amount': "Rent amount must be greater than zero."})
        if self.payment_day_of_month is not None and not 1 <= self.payment_day_of_month <= 31:
            raise ValidationError({'payment_day_of_month': "Payment day must be between 1 and 31."})
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError({'end_date': "End date cannot be before start date."})

    def due_date_for(self, year, month):
        """Due date for a billing period, clamped to the month length"""
        last_day = calendar.monthrange(year, month)[1]
        return date(year, month, min(self.payment_day_of_month, last_day))

    def covers_period(self, year, month):
        """True if the lease is in force for any day of the given month"""
        first_day = date(year, month, 1)
        last_day = date(year, month, calendar.monthrange(year, month)[1])
        if self.start_date > last_day:
            return False
        if self.end_date and self.end_date < first_day:
            return False
        return True

    def is_active_on(self, day):
        if self.start_date > day:
            return False
        return self.end_date is None or self.end_date >= day

    @property
    def has_invoices(self):
        return self.invoices.exists()
