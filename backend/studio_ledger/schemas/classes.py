"""Class schedule schemas."""

from datetime import datetime
from typing import Optional

from .base import StandardizedModel


class ClassResponse(StandardizedModel):
    id: str
    title: str
    instructor_id: Optional[str] = None
    starts_at: datetime
    ends_at: datetime
    capacity: int
    booked_seats: int
    remaining_seats: int
