# backend/studio_ledger/models/class_schedule.py
"""Scheduled class instances."""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..database import Base
from .types import TimestampMixin, UTCDateTime


class ClassInstance(TimestampMixin, Base):
    """
    One scheduled occurrence of a class.

    Capacity is fixed at scheduling time; booking activity never writes here.
    """

    __tablename__ = "class_schedule"

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_class_schedule_capacity_positive"),
        CheckConstraint("ends_at > starts_at", name="ck_class_schedule_time_order"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    instructor_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)

    @property
    def class_date(self) -> date:
        return self.starts_at.date()

    def __repr__(self) -> str:
        return f"<ClassInstance(id={self.id}, title={self.title}, starts_at={self.starts_at})>"
