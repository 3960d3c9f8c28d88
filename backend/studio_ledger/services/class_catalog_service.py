"""Read access to the class schedule."""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import ClassNotFoundException
from ..models.class_schedule import ClassInstance
from ..models.types import utcnow
from ..repositories.factory import RepositoryFactory
from .base import BaseService


@dataclass
class ClassAvailability:
    class_instance: ClassInstance
    booked_seats: int

    @property
    def remaining_seats(self) -> int:
        return max(0, self.class_instance.capacity - self.booked_seats)


class ClassCatalogService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.class_repository = RepositoryFactory.create_class_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)

    def get_class(self, class_id: str) -> ClassInstance:
        with self.transaction():
            class_instance = self.class_repository.get_by_id(class_id)
        if class_instance is None:
            raise ClassNotFoundException(class_id)
        return class_instance

    def count_booked_seats(self, class_id: str) -> int:
        with self.transaction():
            return self.booking_repository.count_booked_seats(class_id)

    @BaseService.measure_operation("list_upcoming_classes")
    def list_upcoming_classes(
        self, now: Optional[datetime] = None, limit: int = 50
    ) -> List[ClassAvailability]:
        with self.transaction():
            rows = self.class_repository.list_upcoming_with_counts(now or utcnow(), limit=limit)
        return [ClassAvailability(class_instance=c, booked_seats=n) for c, n in rows]
