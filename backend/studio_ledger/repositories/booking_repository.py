# backend/studio_ledger/repositories/booking_repository.py
"""
Booking Repository

Seat reservations. Inserts rely on the partial unique index on
(user_id, class_id) WHERE status = 'booked'; a rejected insert surfaces as
ConstraintViolationException and the caller decides what it means.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..models.booking import BookingStatus, ClassBooking
from .base_repository import BaseRepository


class BookingRepository(BaseRepository[ClassBooking]):
    def __init__(self, db: Session):
        super().__init__(db, ClassBooking)

    def find_active_booking(self, user_id: str, class_id: str) -> Optional[ClassBooking]:
        stmt = select(ClassBooking).where(
            ClassBooking.user_id == user_id,
            ClassBooking.class_id == class_id,
            ClassBooking.status == BookingStatus.BOOKED.value,
        )
        rows = self._execute_all(stmt)
        return rows[0] if rows else None

    def count_booked_seats(self, class_id: str) -> int:
        """Live count of ``booked`` rows; cancelled rows free their seat."""
        stmt = select(func.count(ClassBooking.id)).where(
            ClassBooking.class_id == class_id,
            ClassBooking.status == BookingStatus.BOOKED.value,
        )
        return int(self._execute_scalar(stmt) or 0)

    def insert_booking(
        self,
        *,
        user_id: str,
        class_id: str,
        pass_id: Optional[str],
        used_credit: bool,
    ) -> ClassBooking:
        """
        Insert a ``booked`` row.

        Raises:
            ConstraintViolationException: an active booking already exists
        """
        return self.create(
            user_id=user_id,
            class_id=class_id,
            pass_id=pass_id,
            used_credit=used_credit,
            status=BookingStatus.BOOKED.value,
        )

    def get_active_for_update(self, booking_id: str) -> Optional[ClassBooking]:
        booking = self.get_by_id(booking_id, for_update=True)
        if booking is None or not booking.is_active:
            return None
        return booking

    def cancel(self, booking: ClassBooking, when: datetime) -> ClassBooking:
        booking.status = BookingStatus.CANCELLED.value
        booking.cancelled_at = when
        self.flush()
        return booking

    def mark_checked_in(self, booking: ClassBooking, when: datetime) -> ClassBooking:
        if booking.checked_in_at is None:
            booking.checked_in_at = when
            self.flush()
        return booking

    def list_for_user(self, user_id: str, status: Optional[str] = None) -> List[ClassBooking]:
        stmt = select(ClassBooking).where(ClassBooking.user_id == user_id)
        if status:
            stmt = stmt.where(ClassBooking.status == status)
        stmt = stmt.order_by(ClassBooking.created_at.desc(), ClassBooking.id.desc())
        return self._execute_all(stmt)
