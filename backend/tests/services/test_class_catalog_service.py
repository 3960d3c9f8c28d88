from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from studio_ledger.core.exceptions import ClassNotFoundException, StoreUnavailableException
from studio_ledger.models.booking import BookingStatus
from studio_ledger.repositories.factory import RepositoryFactory
from studio_ledger.services.class_catalog_service import ClassCatalogService


@pytest.fixture
def catalog(db) -> ClassCatalogService:
    return ClassCatalogService(db)


def _database_is_locked(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("database is locked"))


class TestGetClass:
    def test_returns_scheduled_class(self, catalog, make_class):
        yoga = make_class(title="Yin")

        found = catalog.get_class(yoga.id)

        assert found.id == yoga.id
        assert found.title == "Yin"

    def test_unknown_class(self, catalog):
        with pytest.raises(ClassNotFoundException) as exc_info:
            catalog.get_class("01NOSUCHCLASS0000000000000")

        assert exc_info.value.code == "class_not_found"
        assert exc_info.value.details == {"class_id": "01NOSUCHCLASS0000000000000"}


class TestSeatCounts:
    def test_cancelled_bookings_free_their_seat(self, db, catalog, make_class):
        yoga = make_class(capacity=3)
        bookings = RepositoryFactory.create_booking_repository(db)
        for user_id in ("a", "b", "c"):
            bookings.insert_booking(
                user_id=user_id, class_id=yoga.id, pass_id=None, used_credit=False
            )
        cancelled = bookings.find_active_booking("b", yoga.id)
        cancelled.status = BookingStatus.CANCELLED.value
        db.commit()

        assert catalog.count_booked_seats(yoga.id) == 2

    def test_empty_class_has_no_booked_seats(self, catalog, make_class):
        yoga = make_class()

        assert catalog.count_booked_seats(yoga.id) == 0

    def test_upcoming_classes_report_remaining_seats(self, db, catalog, make_class, now):
        yoga = make_class(capacity=2)
        make_class(starts_in=timedelta(hours=-2))
        RepositoryFactory.create_booking_repository(db).insert_booking(
            user_id="a", class_id=yoga.id, pass_id=None, used_credit=False
        )
        db.commit()

        [listed] = catalog.list_upcoming_classes(now=now)

        assert listed.class_instance.id == yoga.id
        assert listed.booked_seats == 1
        assert listed.remaining_seats == 1


class TestStoreOutage:
    def test_failed_query_is_store_unavailable(self, db, catalog, make_class, monkeypatch):
        yoga = make_class()
        monkeypatch.setattr(db, "execute", _database_is_locked)

        with pytest.raises(StoreUnavailableException) as exc_info:
            catalog.get_class(yoga.id)

        assert exc_info.value.code == "store_unavailable"

    def test_failed_commit_is_store_unavailable(self, db, catalog, make_class, monkeypatch):
        yoga = make_class()
        monkeypatch.setattr(db, "commit", _database_is_locked)

        with pytest.raises(StoreUnavailableException):
            catalog.count_booked_seats(yoga.id)

    def test_store_unavailable_asks_clients_to_retry(self):
        http_exc = StoreUnavailableException().to_http_exception()

        assert http_exc.status_code == 503
        assert http_exc.headers == {"Retry-After": "2"}
