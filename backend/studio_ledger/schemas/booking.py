"""
Booking schemas for the class booking endpoints.
"""

from datetime import datetime
from typing import Optional

from pydantic import Field

from .base import StandardizedModel, StrictRequestModel


class BookingCreate(StrictRequestModel):
    class_id: str = Field(..., min_length=1, description="Class instance to book")
    preferred_pass_id: Optional[str] = Field(
        default=None,
        description="Credit pass to spend; ignored when an unlimited pass applies",
    )


class BookingCreateResponse(StandardizedModel):
    """
    Result of a booking attempt.

    ``already_booked`` is a success flag: the caller already holds a seat and
    nothing was charged.
    """

    booking_id: str
    used_credit: bool
    remaining_credits: Optional[int] = None
    already_booked: bool = False
    pass_id: Optional[str] = None


class CancelResponse(StandardizedModel):
    booking_id: str
    status: str
    refunded_credit: bool = False


class CheckInRequest(StrictRequestModel):
    code: str = Field(..., min_length=1, description="Scanned QR payload")


class CheckInResponse(StandardizedModel):
    booking_id: str
    class_id: str
    checked_in_at: datetime


class BookingResponse(StandardizedModel):
    id: str
    class_id: str
    status: str
    used_credit: bool
    pass_id: Optional[str] = None
    created_at: datetime
    cancelled_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    class_title: Optional[str] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
