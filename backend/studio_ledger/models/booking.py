# backend/studio_ledger/models/booking.py
"""
Booking model.

A booking is a seat reservation for one user in one class instance.
Cancelled bookings keep their row; only ``status`` changes. At most one
``booked`` row may exist per (user, class), enforced by a partial unique
index so a cancelled booking does not block re-booking.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from ..database import Base
from .class_schedule import ClassInstance
from .types import TimestampMixin, UTCDateTime


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    BOOKED = "booked"
    CANCELLED = "cancelled"


class ClassBooking(TimestampMixin, Base):
    __tablename__ = "class_bookings"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    class_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("class_schedule.id"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BookingStatus.BOOKED.value
    )

    # Pass that admitted the booking; used_credit is False for unlimited passes
    pass_id: Mapped[Optional[str]] = mapped_column(
        String(26), ForeignKey("user_passes.id"), nullable=True
    )
    used_credit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    class_instance: Mapped[ClassInstance] = relationship(ClassInstance)

    @property
    def is_active(self) -> bool:
        return self.status == BookingStatus.BOOKED.value

    def __repr__(self) -> str:
        return f"<ClassBooking(id={self.id}, user_id={self.user_id}, class_id={self.class_id}, status={self.status})>"


Index(
    "uq_class_bookings_active_user_class",
    ClassBooking.user_id,
    ClassBooking.class_id,
    unique=True,
    postgresql_where=text("status = 'booked'"),
    sqlite_where=text("status = 'booked'"),
)

Index("ix_class_bookings_class_status", ClassBooking.class_id, ClassBooking.status)
