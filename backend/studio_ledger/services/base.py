# backend/studio_ledger/services/base.py
"""
Base Service Pattern for the studio ledger.

Provides common functionality for all service classes including:
- Transaction management
- Logging
- Error translation
- Performance monitoring
- Post-commit event publishing
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ServiceException, StoreUnavailableException
from ..events.publisher import Event, LedgerEventBus
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class BaseService:
    """
    Base class for all service layer components.

    Each public operation runs inside ``transaction()``: one commit on
    success, a full rollback on any exception.
    """

    def __init__(self, db: Session, event_bus: Optional[LedgerEventBus] = None):
        """
        Initialize base service.

        Args:
            db: Database session
            event_bus: Optional bus notified after successful commits
        """
        self.db = db
        self.event_bus = event_bus
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def _txn_state(self) -> Dict[str, Any]:
        # Shared by every service bound to the same session
        return self.db.info.setdefault("ledger_txn", {"depth": 0, "events": []})

    @property
    def in_transaction(self) -> bool:
        return self._txn_state["depth"] > 0

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Context manager for database transactions.

        Usage:
            with self.transaction():
                # Do multiple operations
                self.db.add(entity)
                # Note: commit is handled automatically

        Nested blocks (including ones opened by other services on the same
        session) join the outermost one, which alone commits or rolls back.
        Events queued with ``publish()`` are delivered only after the commit.
        """
        state = self._txn_state
        if state["depth"] > 0:
            state["depth"] += 1
            try:
                yield self.db
            finally:
                state["depth"] -= 1
            return

        state["depth"] = 1
        try:
            yield self.db
            self.db.commit()
            self.logger.debug("Transaction committed successfully")
        except OperationalError as e:
            self.logger.warning(f"Store unavailable, transaction rolled back: {str(e)}")
            self._rollback(state)
            raise StoreUnavailableException() from e
        except SQLAlchemyError as e:
            self.logger.error(f"Transaction failed: {str(e)}")
            self._rollback(state)
            raise ServiceException(f"Database operation failed: {str(e)}") from e
        except Exception:
            self._rollback(state)
            raise
        finally:
            state["depth"] = 0

        pending, state["events"] = state["events"], []
        for bus, event in pending:
            bus.publish(event)

    def _rollback(self, state: Dict[str, Any]) -> None:
        state["events"] = []
        self.db.rollback()

    def publish(self, event: Event) -> None:
        """Queue an event for delivery after commit (or deliver now outside a transaction)."""
        if self.event_bus is None:
            return
        if self.in_transaction:
            self._txn_state["events"].append((self.event_bus, event))
        else:
            self.event_bus.publish(event)

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator to measure operation performance.

        Usage:
            @BaseService.measure_operation("book_class")
            def book_class(self, ...):
                # Method implementation

        Args:
            operation_name: Name of the operation for metrics
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self: "BaseService", *args: Any, **kwargs: Any) -> Any:
                start_time = time.time()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.time() - start_time

                    # Only log if it's actually slow
                    if elapsed > 1.0:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s"
                        )

                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="success" if success else "error",
                        error_type=error_type,
                    )

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        """
        Log an operation with context.

        Args:
            operation: Operation name
            **context: Additional context to log
        """
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})
