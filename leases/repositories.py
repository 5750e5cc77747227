"""
Lease repository - Data access layer for leases.
"""
import calendar
from datetime import date

from django.db.models import Q, QuerySet

from core.repositories import BaseRepository
from .models import Lease


class LeaseRepository(BaseRepository[Lease]):
    """Repository for Lease model"""

    def __init__(self):
        super().__init__(Lease)

    def covering_period(self, year: int, month: int, agency=None) -> QuerySet[Lease]:
        """Leases in force for at least one day of the given month"""
        first_day = date(year, month, 1)
        last_day = date(year, month, calendar.monthrange(year, month)[1])
        queryset = self.get_all(start_date__lte=last_day).filter(
            Q(end_date__isnull=True) | Q(end_date__gte=first_day)
        )
        if agency is not None:
            queryset = queryset.filter(agency=agency)
        return queryset.order_by('id')
