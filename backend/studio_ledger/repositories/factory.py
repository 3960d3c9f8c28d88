# backend/studio_ledger/repositories/factory.py
"""
Repository Factory

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .class_repository import ClassRepository
    from .pass_repository import PassRepository
    from .payment_event_repository import PaymentEventRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_pass_repository(db: Session) -> "PassRepository":
        from .pass_repository import PassRepository

        return PassRepository(db)

    @staticmethod
    def create_class_repository(db: Session) -> "ClassRepository":
        from .class_repository import ClassRepository

        return ClassRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_payment_event_repository(db: Session) -> "PaymentEventRepository":
        from .payment_event_repository import PaymentEventRepository

        return PaymentEventRepository(db)
