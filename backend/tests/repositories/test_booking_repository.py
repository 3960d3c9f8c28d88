from datetime import timedelta

import pytest

from studio_ledger.core.exceptions import ConstraintViolationException
from studio_ledger.models.booking import BookingStatus
from studio_ledger.repositories.factory import RepositoryFactory

STUDENT_ID = "user_student_01"


@pytest.fixture
def booking_repository(db):
    return RepositoryFactory.create_booking_repository(db)


def test_partial_unique_index_rejects_second_active_booking(db, booking_repository, make_class):
    yoga = make_class()
    booking_repository.insert_booking(
        user_id=STUDENT_ID, class_id=yoga.id, pass_id=None, used_credit=False
    )

    with pytest.raises(ConstraintViolationException):
        booking_repository.insert_booking(
            user_id=STUDENT_ID, class_id=yoga.id, pass_id=None, used_credit=False
        )
    db.rollback()


def test_cancelled_booking_does_not_block_rebooking(db, booking_repository, make_class, now):
    yoga = make_class()
    first = booking_repository.insert_booking(
        user_id=STUDENT_ID, class_id=yoga.id, pass_id=None, used_credit=False
    )
    booking_repository.cancel(first, now)

    second = booking_repository.insert_booking(
        user_id=STUDENT_ID, class_id=yoga.id, pass_id=None, used_credit=False
    )
    db.commit()

    assert second.id != first.id
    assert booking_repository.find_active_booking(STUDENT_ID, yoga.id).id == second.id
    db.commit()


def test_count_booked_seats_ignores_cancelled(db, booking_repository, make_class, now):
    yoga = make_class()
    kept = booking_repository.insert_booking(
        user_id="a", class_id=yoga.id, pass_id=None, used_credit=False
    )
    dropped = booking_repository.insert_booking(
        user_id="b", class_id=yoga.id, pass_id=None, used_credit=False
    )
    booking_repository.cancel(dropped, now)

    assert booking_repository.count_booked_seats(yoga.id) == 1
    assert kept.status == BookingStatus.BOOKED.value
    db.commit()


def test_get_active_for_update_skips_cancelled(db, booking_repository, make_class, now):
    yoga = make_class()
    booking = booking_repository.insert_booking(
        user_id=STUDENT_ID, class_id=yoga.id, pass_id=None, used_credit=False
    )
    booking_repository.cancel(booking, now)

    assert booking_repository.get_active_for_update(booking.id) is None
    db.commit()


def test_mark_checked_in_keeps_first_timestamp(db, booking_repository, make_class, now):
    yoga = make_class()
    booking = booking_repository.insert_booking(
        user_id=STUDENT_ID, class_id=yoga.id, pass_id=None, used_credit=False
    )

    booking_repository.mark_checked_in(booking, now)
    booking_repository.mark_checked_in(booking, now + timedelta(minutes=10))

    assert booking.checked_in_at == now
    db.commit()


def test_list_for_user_most_recent_first(db, booking_repository, make_class):
    first = make_class(title="One")
    second = make_class(title="Two", starts_in=timedelta(hours=8))
    older = booking_repository.insert_booking(
        user_id=STUDENT_ID, class_id=first.id, pass_id=None, used_credit=False
    )
    older.created_at = older.created_at - timedelta(hours=1)
    newer = booking_repository.insert_booking(
        user_id=STUDENT_ID, class_id=second.id, pass_id=None, used_credit=False
    )
    db.commit()

    listed = booking_repository.list_for_user(STUDENT_ID)

    assert [b.id for b in listed] == [newer.id, older.id]
    db.commit()
