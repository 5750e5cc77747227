"""
Repository pattern implementation.
Abstracts data access and provides a clean interface for domain services.
"""
from typing import Generic, TypeVar, Optional
from django.db.models import QuerySet, Model
import logging

from core.exceptions import NotFoundError

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=Model)


class BaseRepository(Generic[T]):
    """
    Base repository providing common CRUD operations.
    Follows Repository pattern for data access abstraction.
    """

    def __init__(self, model: type[T]):
        self.model = model

    def get_by_id(self, id: int, **filters) -> Optional[T]:
        """Get a single instance by ID"""
        return self.model.objects.filter(id=id, **filters).first()

    def get_or_raise(self, id: int, **filters) -> T:
        """Get a single instance by ID or raise NotFoundError"""
        instance = self.get_by_id(id, **filters)
        if instance is None:
            raise NotFoundError(resource_type=self.model.__name__, resource_id=id)
        return instance

    def get_for_update(self, id: int, **filters) -> T:
        """
        Lock a row for the rest of the current transaction.
        Must be called inside transaction.atomic().
        """
        instance = self.model.objects.select_for_update().filter(id=id, **filters).first()
        if instance is None:
            raise NotFoundError(resource_type=self.model.__name__, resource_id=id)
        return instance

    def get_all(self, **filters) -> QuerySet[T]:
        """Get all instances matching filters"""
        return self.model.objects.filter(**filters)

    def create(self, **kwargs) -> T:
        """Create a new instance"""
        return self.model.objects.create(**kwargs)

    def update(self, instance: T, **kwargs) -> T:
        """Update an existing instance"""
        for key, value in kwargs.items():
            setattr(instance, key, value)
        instance.save()
        return instance

    def exists(self, **filters) -> bool:
        """Check if instance exists"""
        return self.model.objects.filter(**filters).exists()
