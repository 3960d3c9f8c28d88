"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from ..core.config import settings

logger = logging.getLogger(__name__)

_POSTGRES_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 10,
    # Fail fast when the pool is exhausted; callers surface 503 and retry
    "pool_timeout": 5,
    "pool_recycle": 300,
    "pool_pre_ping": True,
    "connect_args": {
        "connect_timeout": 5,
        "options": "-c statement_timeout=15000",
        "application_name": "studio_ledger",
    },
}


def configure_sqlite_engine(engine: Engine) -> Engine:
    """
    Make every SQLite transaction take the write lock up front.

    pysqlite's implicit transaction handling is switched off so that the
    "begin" event can emit ``BEGIN IMMEDIATE``. Concurrent writers then queue
    on the database lock (bounded by the driver ``timeout``) instead of
    interleaving reads and writes, which is what keeps seat counting safe
    without row locks.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
        connection_record.info["connect_time"] = datetime.now()

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def build_engine(db_url: str, *, echo: bool = False) -> Engine:
    """Create an engine for ``db_url`` with dialect-appropriate tuning."""
    if db_url.startswith("sqlite"):
        engine = create_engine(
            db_url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": settings.db_busy_timeout_seconds,
            },
        )
        return configure_sqlite_engine(engine)

    return create_engine(db_url, echo=echo, **_POSTGRES_POOL_KWARGS)


engine: Engine = build_engine(settings.database_url, echo=settings.db_echo)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """Create all tables. Schema migrations are out of scope; this is for local runs and tests."""
    from .. import models  # noqa: F401  # register mappers

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database schema ensured")


__all__ = [
    "Base",
    "SessionLocal",
    "build_engine",
    "configure_sqlite_engine",
    "engine",
    "get_db",
    "init_db",
]
