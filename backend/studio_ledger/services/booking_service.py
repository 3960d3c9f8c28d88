# backend/studio_ledger/services/booking_service.py
"""
Booking Service

The booking engine: reserves seats, pays for them from the user's passes,
and handles cancellation and check-in.

Concurrency model for ``book_class``:
- the class row is locked first, so bookings of one class serialize and the
  seat count read under the lock stays accurate until commit
- the user's active passes are locked next, so two bookings by the same
  user cannot spend the same credit
- the partial unique index on active bookings is the backstop against a
  double booking that slips past the pre-check

On SQLite the engine opens every transaction with BEGIN IMMEDIATE, which
gives the same serialization without row locks.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    BookingNotFoundException,
    CheckInClosedException,
    ClassFullException,
    ClassNotFoundException,
    ConstraintViolationException,
    NoEligiblePassException,
    TooLateToCancelException,
)
from ..domain.check_in_codes import parse_check_in_code
from ..domain.pass_rules import select_pass_for_booking
from ..events.ledger_events import BookingsChanged
from ..events.publisher import LedgerEventBus
from ..models.booking import BookingStatus, ClassBooking
from ..models.types import ensure_utc, utcnow
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .pass_service import PassService

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    booking_id: str
    used_credit: bool
    remaining_credits: Optional[int]
    already_booked: bool = False
    pass_id: Optional[str] = None


@dataclass
class CancellationResult:
    booking_id: str
    status: str
    refunded_credit: bool = False


class BookingService(BaseService):
    def __init__(
        self,
        db: Session,
        event_bus: Optional[LedgerEventBus] = None,
        pass_service: Optional[PassService] = None,
        *,
        cancellation_cutoff_hours: Optional[float] = None,
        refund_credit_on_cancel: Optional[bool] = None,
        check_in_opens_minutes: Optional[int] = None,
    ):
        super().__init__(db, event_bus)
        self.class_repository = RepositoryFactory.create_class_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.pass_repository = RepositoryFactory.create_pass_repository(db)
        self.pass_service = pass_service or PassService(db, event_bus)

        self.cancellation_cutoff = timedelta(
            hours=(
                settings.cancellation_cutoff_hours
                if cancellation_cutoff_hours is None
                else cancellation_cutoff_hours
            )
        )
        self.refund_credit_on_cancel = (
            settings.refund_credit_on_cancel
            if refund_credit_on_cancel is None
            else refund_credit_on_cancel
        )
        self.check_in_opens = timedelta(
            minutes=(
                settings.check_in_opens_minutes
                if check_in_opens_minutes is None
                else check_in_opens_minutes
            )
        )

    @BaseService.measure_operation("book_class")
    def book_class(
        self,
        user_id: str,
        class_id: str,
        preferred_pass_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingResult:
        """
        Reserve a seat for ``user_id`` in ``class_id`` and pay for it.

        Repeating the call for a class the user already holds a seat in
        returns the existing booking with ``already_booked=True`` and leaves
        passes untouched, so clients may retry freely.

        Raises:
            ClassNotFoundException: unknown class
            ClassFullException: every seat is booked
            NoEligiblePassException: no unlimited window and no credits
        """
        now = now or utcnow()
        try:
            with self.transaction():
                class_instance = self.class_repository.get_for_update(class_id)
                if class_instance is None:
                    raise ClassNotFoundException(class_id)

                existing = self.booking_repository.find_active_booking(user_id, class_id)
                if existing is not None:
                    result = self._already_booked_result(existing)
                else:
                    booked = self.booking_repository.count_booked_seats(class_id)
                    if booked >= class_instance.capacity:
                        raise ClassFullException(class_id, class_instance.capacity)

                    passes = self.pass_repository.list_for_user_for_update(user_id)
                    chosen = select_pass_for_booking(passes, now, preferred_pass_id)
                    if chosen is None:
                        raise NoEligiblePassException(user_id)

                    used_credit = not chosen.is_unlimited
                    if used_credit:
                        chosen = self.pass_service.debit_one_credit(chosen.id)

                    booking = self.booking_repository.insert_booking(
                        user_id=user_id,
                        class_id=class_id,
                        pass_id=chosen.id,
                        used_credit=used_credit,
                    )
                    result = BookingResult(
                        booking_id=booking.id,
                        used_credit=used_credit,
                        remaining_credits=chosen.remaining_credits if used_credit else None,
                        pass_id=chosen.id,
                    )
                    self.publish(
                        BookingsChanged(
                            user_id=user_id,
                            booking_id=booking.id,
                            class_id=class_id,
                            status=BookingStatus.BOOKED.value,
                            occurred_at=now,
                            used_credit=used_credit,
                        )
                    )
        except ConstraintViolationException:
            # A concurrent identical request inserted first; our debit was rolled back with it
            self.logger.info(
                f"Duplicate booking rejected by index for user {user_id} class {class_id}"
            )
            with self.transaction():
                existing = self.booking_repository.find_active_booking(user_id, class_id)
                if existing is None:
                    raise
                result = self._already_booked_result(existing)

        prometheus_metrics.inc_booking("already_booked" if result.already_booked else "booked")
        if not result.already_booked:
            self.log_operation(
                "book_class",
                user_id=user_id,
                class_id=class_id,
                booking_id=result.booking_id,
                used_credit=result.used_credit,
            )
        return result

    def _already_booked_result(self, booking: ClassBooking) -> BookingResult:
        remaining = None
        if booking.pass_id:
            pass_ = self.pass_repository.get_by_id(booking.pass_id)
            if pass_ is not None and not pass_.is_unlimited:
                remaining = pass_.remaining_credits
        return BookingResult(
            booking_id=booking.id,
            used_credit=False,
            remaining_credits=remaining,
            already_booked=True,
            pass_id=booking.pass_id,
        )

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        booking_id: str,
        now: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> CancellationResult:
        """
        Cancel an active booking.

        Cancelling exactly at the cutoff is allowed; anything closer to the
        class start is rejected and the booking is left untouched. Whether
        the credit comes back depends on ``refund_credit_on_cancel``.

        Raises:
            BookingNotFoundException: unknown, already cancelled, or not the caller's
            TooLateToCancelException: inside the cutoff window
        """
        now = ensure_utc(now or utcnow())
        with self.transaction():
            booking = self.booking_repository.get_active_for_update(booking_id)
            if booking is None or (user_id is not None and booking.user_id != user_id):
                raise BookingNotFoundException(booking_id)

            time_until_start = booking.class_instance.starts_at - now
            if time_until_start < self.cancellation_cutoff:
                raise TooLateToCancelException(
                    booking_id,
                    cutoff_hours=self.cancellation_cutoff.total_seconds() / 3600,
                    hours_until_start=time_until_start.total_seconds() / 3600,
                )

            self.booking_repository.cancel(booking, now)

            refunded = False
            if self.refund_credit_on_cancel and booking.used_credit and booking.pass_id:
                self.pass_service.refund_one_credit(booking.pass_id)
                refunded = True

            self.publish(
                BookingsChanged(
                    user_id=booking.user_id,
                    booking_id=booking.id,
                    class_id=booking.class_id,
                    status=BookingStatus.CANCELLED.value,
                    occurred_at=now,
                )
            )

        prometheus_metrics.inc_cancellation(refunded)
        self.log_operation("cancel_booking", booking_id=booking_id, refunded=refunded)
        return CancellationResult(
            booking_id=booking_id, status=BookingStatus.CANCELLED.value, refunded_credit=refunded
        )

    @BaseService.measure_operation("check_in")
    def check_in(
        self,
        booking_id: str,
        now: Optional[datetime] = None,
        user_id: Optional[str] = None,
        class_id: Optional[str] = None,
    ) -> ClassBooking:
        """
        Record attendance. Open from ``check_in_opens`` before start until
        the class ends; repeating a check-in keeps the first timestamp.
        """
        now = ensure_utc(now or utcnow())
        with self.transaction():
            booking = self.booking_repository.get_active_for_update(booking_id)
            if (
                booking is None
                or (user_id is not None and booking.user_id != user_id)
                or (class_id is not None and booking.class_id != class_id)
            ):
                raise BookingNotFoundException(booking_id)

            class_instance = booking.class_instance
            opens_at = class_instance.starts_at - self.check_in_opens
            closes_at = class_instance.ends_at
            if not opens_at <= now <= closes_at:
                raise CheckInClosedException(
                    booking_id, opens_at=opens_at.isoformat(), closes_at=closes_at.isoformat()
                )

            first_check_in = booking.checked_in_at is None
            self.booking_repository.mark_checked_in(booking, now)
            if first_check_in:
                self.publish(
                    BookingsChanged(
                        user_id=booking.user_id,
                        booking_id=booking.id,
                        class_id=booking.class_id,
                        status="checked_in",
                        occurred_at=now,
                    )
                )
        return booking

    def check_in_with_code(
        self, code: str, user_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> ClassBooking:
        decoded = parse_check_in_code(code, settings.check_in_scheme)
        return self.check_in(
            decoded.booking_id, now=now, user_id=user_id, class_id=decoded.class_id
        )

    @BaseService.measure_operation("list_bookings_for_user")
    def list_bookings_for_user(
        self, user_id: str, status: Optional[str] = None
    ) -> List[ClassBooking]:
        with self.transaction():
            bookings = self.booking_repository.list_for_user(user_id, status=status)
            for booking in bookings:
                # Load the class while the session is open
                _ = booking.class_instance
        return bookings
