# backend/tests/conftest.py
"""
Pytest configuration for the studio ledger.

Every test gets its own file-backed SQLite database under ``tmp_path``.
File-backed (not in-memory) so that threads in the concurrency tests open
real separate connections and contend on the database lock the same way
concurrent requests do.
"""

import os

# Set testing mode BEFORE any studio_ledger imports
os.environ["is_testing"] = "true"
os.environ.setdefault("environment", "test")

from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from studio_ledger.api.dependencies.database import get_db
from studio_ledger.auth import create_access_token
from studio_ledger.database import build_engine, init_db
from studio_ledger.events.publisher import LedgerEventBus
from studio_ledger.main import app
from studio_ledger.models.class_schedule import ClassInstance
from studio_ledger.models.types import utcnow
from studio_ledger.models.user_pass import PassKind, UserPass

STUDENT_ID = "user_student_01"
OTHER_STUDENT_ID = "user_student_02"


@pytest.fixture
def engine(tmp_path) -> Iterator[Engine]:
    test_engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture(scope="function")
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def event_bus() -> LedgerEventBus:
    return LedgerEventBus()


@pytest.fixture
def now() -> datetime:
    return utcnow().replace(microsecond=0)


@pytest.fixture
def make_class(db: Session, now: datetime) -> Callable[..., ClassInstance]:
    """Schedule a class ``starts_in`` from now (default 5 hours) lasting an hour."""

    def _make(
        capacity: int = 10,
        starts_in: timedelta = timedelta(hours=5),
        title: str = "Hot Vinyasa",
        duration: timedelta = timedelta(hours=1),
    ) -> ClassInstance:
        starts_at = now + starts_in
        class_instance = ClassInstance(
            title=title,
            instructor_id="instructor_01",
            starts_at=starts_at,
            ends_at=starts_at + duration,
            capacity=capacity,
        )
        db.add(class_instance)
        db.commit()
        return class_instance

    return _make


@pytest.fixture
def make_pass(db: Session, now: datetime) -> Callable[..., UserPass]:
    """Create a credit pass, or an unlimited one when ``unlimited_for`` is given."""

    def _make(
        user_id: str = STUDENT_ID,
        credits: Optional[int] = 5,
        unlimited_for: Optional[timedelta] = None,
        pass_type: Optional[str] = None,
        is_active: bool = True,
        created_at: Optional[datetime] = None,
    ) -> UserPass:
        if unlimited_for is not None:
            user_pass = UserPass(
                user_id=user_id,
                pass_type=pass_type or "monthly-unlimited",
                kind=PassKind.UNLIMITED.value,
                remaining_credits=None,
                expires_at=now + unlimited_for,
                is_active=is_active,
            )
        else:
            user_pass = UserPass(
                user_id=user_id,
                pass_type=pass_type or "10-class",
                kind=PassKind.CREDITS.value,
                remaining_credits=credits,
                expires_at=None,
                is_active=is_active,
            )
        if created_at is not None:
            user_pass.created_at = created_at
        db.add(user_pass)
        db.commit()
        return user_pass

    return _make


@pytest.fixture
def client(session_factory: sessionmaker) -> Iterator[TestClient]:
    """Test client whose requests use the per-test database."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app, raise_server_exceptions=False)
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    return {"Authorization": f"Bearer {create_access_token(STUDENT_ID)}"}


@pytest.fixture
def other_auth_headers() -> dict:
    return {"Authorization": f"Bearer {create_access_token(OTHER_STUDENT_ID)}"}
