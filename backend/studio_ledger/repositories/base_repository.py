# backend/studio_ledger/repositories/base_repository.py
"""
Base Repository Pattern for the studio ledger.

Provides the foundation for all repository classes with:
- Common CRUD operations
- Type safety with generics
- Translation of driver errors into repository/domain errors

Repositories flush but never commit; the service layer owns the transaction.
"""

import logging
from typing import Any, Generic, List, NoReturn, Optional, Type, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import (
    ConstraintViolationException,
    RepositoryException,
    StoreUnavailableException,
)
from ..database.session_utils import supports_row_locks

# Type variable for generic model support
T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    """
    Concrete base repository implementation with common data access patterns.

    Attributes:
        db: SQLAlchemy session
        model: SQLAlchemy model class
    """

    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    def _raise_translated(self, exc: SQLAlchemyError, action: str) -> NoReturn:
        """
        Map a driver error onto the repository error taxonomy.

        OperationalError covers lock/statement timeouts and dropped connections,
        which callers may retry.
        """
        name = self.model.__name__
        if isinstance(exc, OperationalError):
            self.logger.warning(f"Store unavailable while trying to {action} {name}: {exc}")
            raise StoreUnavailableException() from exc
        if isinstance(exc, IntegrityError):
            self.logger.info(f"Constraint rejected {action} {name}: {exc.orig}")
            raise ConstraintViolationException(f"Integrity constraint violated: {exc.orig}") from exc
        self.logger.error(f"Error trying to {action} {name}: {str(exc)}")
        raise RepositoryException(f"Failed to {action} {name}: {str(exc)}") from exc

    def _lockable(self, stmt: Select) -> Select:
        """Add ``FOR UPDATE`` where the backend supports row locks."""
        if supports_row_locks(self.db):
            return stmt.with_for_update()
        return stmt

    def get_by_id(self, id: str, *, for_update: bool = False) -> Optional[T]:
        """Retrieve an entity by its primary key, optionally under a row lock."""
        try:
            stmt = select(self.model).where(self.model.id == id)
            if for_update:
                stmt = self._lockable(stmt)
            return self.db.execute(stmt).scalars().first()
        except SQLAlchemyError as e:
            self._raise_translated(e, "retrieve")

    def create(self, **kwargs: Any) -> T:
        """
        Create a new entity.

        Note: Does NOT commit - transaction management is handled by service layer.
        """
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()  # Get ID without committing
            return entity
        except SQLAlchemyError as e:
            self._raise_translated(e, "create")

    def flush(self) -> None:
        """Flush pending ORM changes."""
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self._raise_translated(e, "flush")

    def _execute_all(self, stmt: Select) -> List[T]:
        """Execute a select and return all ORM rows, with error translation."""
        try:
            return list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as e:
            self._raise_translated(e, "query")

    def _execute_scalar(self, stmt: Select) -> Any:
        try:
            return self.db.execute(stmt).scalar()
        except SQLAlchemyError as e:
            self._raise_translated(e, "query")
