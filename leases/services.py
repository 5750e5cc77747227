"""
Lease Service Layer
Creates, updates and terminates leases. Once a lease has invoices its
schedule is frozen; only termination (end_date) may still change.
"""
from datetime import date
from typing import Optional

from django.db import transaction

from audit.helpers import log_lease_event
from audit.models import AuditLog
from core.dto import LeaseDTO
from core.exceptions import BusinessLogicError
from core.services import BaseService
from core.validators import LeaseScheduleValidator
from .models import Lease
from .repositories import LeaseRepository


class LeaseService(BaseService):
    """Service for lease lifecycle operations"""

    def __init__(self):
        super().__init__()
        self.lease_repo = LeaseRepository()

    def create_lease(self, dto: LeaseDTO, user=None) -> Lease:
        """
        Create a lease after validating its schedule.

        Args:
            dto: LeaseDTO with the lease terms
            user: User creating the lease

        Returns:
            Created Lease instance
        """
        LeaseScheduleValidator.validate_rent_amount(dto.rent_amount)
        LeaseScheduleValidator.validate_payment_day(dto.payment_day_of_month)
        LeaseScheduleValidator.validate_dates(dto.start_date, dto.end_date)

        with transaction.atomic():
            lease = self.lease_repo.create(
                agency_id=dto.agency_id,
                property_ref=dto.property_ref,
                tenant_ref=dto.tenant_ref,
                start_date=dto.start_date,
                end_date=dto.end_date,
                rent_amount=dto.rent_amount,
                payment_day_of_month=dto.payment_day_of_month,
                notes=dto.notes,
            )
            log_lease_event(lease, AuditLog.ACTION_CREATE,
                            f"Created lease for {lease.tenant_ref} at {lease.property_ref}", user=user)

        self.log_info("Lease created", lease_id=lease.id, agency_id=lease.agency_id)
        return lease

    def update_lease(self, lease: Lease, user=None, **changes) -> Lease:
        """Update lease terms; schedule fields are frozen once invoices exist"""
        with transaction.atomic():
            lease = self.lease_repo.get_for_update(lease.id)
            frozen = [name for name in changes
                      if name in Lease.IMMUTABLE_FIELDS or f"{name}_id" in Lease.IMMUTABLE_FIELDS]
            if frozen and lease.has_invoices:
                raise BusinessLogicError(
                    message="Lease terms cannot change once invoices have been issued",
                    code="LEASE_LOCKED",
                    details={"lease_id": lease.id, "fields": sorted(frozen)},
                )
            if 'rent_amount' in changes:
                LeaseScheduleValidator.validate_rent_amount(changes['rent_amount'])
            if 'payment_day_of_month' in changes:
                LeaseScheduleValidator.validate_payment_day(changes['payment_day_of_month'])
            LeaseScheduleValidator.validate_dates(
                changes.get('start_date', lease.start_date),
                changes.get('end_date', lease.end_date),
            )
            lease = self.lease_repo.update(lease, **changes)
            log_lease_event(lease, AuditLog.ACTION_UPDATE,
                            f"Updated lease fields: {', '.join(sorted(changes))}", user=user)
        return lease

    def terminate_lease(self, lease: Lease, end_date: date, user=None) -> Lease:
        """
        End a lease on the given date.

        Raises:
            BusinessLogicError: if the lease already ended before end_date
        """
        with transaction.atomic():
            lease = self.lease_repo.get_for_update(lease.id)
            LeaseScheduleValidator.validate_dates(lease.start_date, end_date)
            if lease.end_date and lease.end_date < end_date:
                raise BusinessLogicError(
                    message=f"Lease already ended on {lease.end_date.isoformat()}",
                    code="LEASE_ALREADY_ENDED",
                    details={"lease_id": lease.id},
                )
            lease.end_date = end_date
            lease.save(update_fields=['end_date', 'updated_at'])
            log_lease_event(lease, AuditLog.ACTION_TERMINATE,
                            f"Terminated lease effective {end_date.isoformat()}", user=user)

        self.log_info("Lease terminated", lease_id=lease.id, end_date=end_date.isoformat())
        return lease

    def get_lease(self, lease_id: int, agency=None) -> Optional[Lease]:
        filters = {'agency': agency} if agency is not None else {}
        return self.lease_repo.get_or_raise(lease_id, **filters)
