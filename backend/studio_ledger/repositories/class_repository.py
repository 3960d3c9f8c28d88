# backend/studio_ledger/repositories/class_repository.py
"""Class Repository for scheduled class instances."""

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.booking import BookingStatus, ClassBooking
from ..models.class_schedule import ClassInstance
from .base_repository import BaseRepository


class ClassRepository(BaseRepository[ClassInstance]):
    def __init__(self, db: Session):
        super().__init__(db, ClassInstance)

    def get_for_update(self, class_id: str) -> Optional[ClassInstance]:
        """Load a class under a row lock; bookings of the same class serialize on it."""
        return self.get_by_id(class_id, for_update=True)

    def list_upcoming_with_counts(
        self, now: datetime, limit: int = 50
    ) -> List[Tuple[ClassInstance, int]]:
        """Classes that have not started yet, soonest first, with their booked seat counts."""
        booked = func.count(ClassBooking.id)
        stmt = (
            select(ClassInstance, booked)
            .outerjoin(
                ClassBooking,
                and_(
                    ClassBooking.class_id == ClassInstance.id,
                    ClassBooking.status == BookingStatus.BOOKED.value,
                ),
            )
            .where(ClassInstance.starts_at > now)
            .group_by(ClassInstance.id)
            .order_by(ClassInstance.starts_at.asc())
            .limit(limit)
        )
        try:
            return [(row[0], int(row[1])) for row in self.db.execute(stmt).all()]
        except SQLAlchemyError as e:
            self._raise_translated(e, "list")
