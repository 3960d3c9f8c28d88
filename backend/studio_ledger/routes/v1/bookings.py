# backend/studio_ledger/routes/v1/bookings.py
"""
Class booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService.

Endpoints:
    GET / - The caller's bookings, most recent first
    POST / - Book a seat in a class
    POST /check-in - Check in by scanned QR code
    POST /{booking_id}/cancel - Cancel a booking
    POST /{booking_id}/check-in - Check in to a booked class
"""

import asyncio
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...api.dependencies import get_booking_service, get_current_user_id
from ...core.exceptions import DomainException
from ...models.booking import BookingStatus, ClassBooking
from ...schemas.booking import (
    BookingCreate,
    BookingCreateResponse,
    BookingResponse,
    CancelResponse,
    CheckInRequest,
    CheckInResponse,
)
from ...services.booking_service import BookingService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _booking_response(booking: ClassBooking) -> BookingResponse:
    class_instance = booking.class_instance
    return BookingResponse(
        id=booking.id,
        class_id=booking.class_id,
        status=booking.status,
        used_credit=booking.used_credit,
        pass_id=booking.pass_id,
        created_at=booking.created_at,
        cancelled_at=booking.cancelled_at,
        checked_in_at=booking.checked_in_at,
        class_title=class_instance.title if class_instance else None,
        starts_at=class_instance.starts_at if class_instance else None,
        ends_at=class_instance.ends_at if class_instance else None,
    )


def _check_in_response(booking: ClassBooking) -> CheckInResponse:
    return CheckInResponse(
        booking_id=booking.id,
        class_id=booking.class_id,
        checked_in_at=booking.checked_in_at,
    )


# ============================================================================
# SECTION 1: Static routes (no path parameters)
# ============================================================================


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    try:
        bookings = await asyncio.to_thread(
            booking_service.list_bookings_for_user,
            user_id,
            status=status_filter.value if status_filter else None,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return [_booking_response(b) for b in bookings]


@router.post("", response_model=BookingCreateResponse, status_code=status.HTTP_200_OK)
async def create_booking(
    payload: BookingCreate,
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    """
    Book a seat, paying from an unlimited window or one credit.

    Repeating the request for a class already booked returns the existing
    booking with ``already_booked=true``.
    """
    try:
        result = await asyncio.to_thread(
            booking_service.book_class,
            user_id,
            payload.class_id,
            preferred_pass_id=payload.preferred_pass_id,
        )
    except DomainException as e:
        handle_domain_exception(e)

    return BookingCreateResponse(
        booking_id=result.booking_id,
        used_credit=result.used_credit,
        remaining_credits=result.remaining_credits,
        already_booked=result.already_booked,
        pass_id=result.pass_id,
    )


@router.post("/check-in", response_model=CheckInResponse)
async def check_in_with_code(
    payload: CheckInRequest,
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> CheckInResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.check_in_with_code, payload.code, user_id=user_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return _check_in_response(booking)


# ============================================================================
# SECTION 2: Routes with path parameters
# ============================================================================


@router.post("/{booking_id}/cancel", response_model=CancelResponse)
async def cancel_booking(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> CancelResponse:
    try:
        result = await asyncio.to_thread(
            booking_service.cancel_booking, booking_id, user_id=user_id
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CancelResponse(
        booking_id=result.booking_id,
        status=result.status,
        refunded_credit=result.refunded_credit,
    )


@router.post("/{booking_id}/check-in", response_model=CheckInResponse)
async def check_in(
    booking_id: str,
    user_id: str = Depends(get_current_user_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> CheckInResponse:
    try:
        booking = await asyncio.to_thread(booking_service.check_in, booking_id, user_id=user_id)
    except DomainException as e:
        handle_domain_exception(e)
    return _check_in_response(booking)
