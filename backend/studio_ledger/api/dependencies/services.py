# backend/studio_ledger/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from ...events.publisher import LedgerEventBus
from ...services.booking_service import BookingService
from ...services.class_catalog_service import ClassCatalogService
from ...services.pass_service import PassService
from ...services.payment_reconciler_service import PaymentReconcilerService
from ...services.stripe_gateway import StripeGateway
from .database import get_db


@lru_cache(maxsize=1)
def get_event_bus() -> LedgerEventBus:
    """Application-wide ledger event bus; listeners subscribe at startup."""
    return LedgerEventBus()


@lru_cache(maxsize=1)
def get_stripe_gateway() -> StripeGateway:
    return StripeGateway()


def get_pass_service(
    db: Session = Depends(get_db), event_bus: LedgerEventBus = Depends(get_event_bus)
) -> PassService:
    return PassService(db, event_bus)


def get_class_catalog_service(db: Session = Depends(get_db)) -> ClassCatalogService:
    return ClassCatalogService(db)


def get_booking_service(
    db: Session = Depends(get_db), event_bus: LedgerEventBus = Depends(get_event_bus)
) -> BookingService:
    return BookingService(db, event_bus)


def get_payment_reconciler_service(
    db: Session = Depends(get_db),
    gateway: StripeGateway = Depends(get_stripe_gateway),
    event_bus: LedgerEventBus = Depends(get_event_bus),
) -> PaymentReconcilerService:
    return PaymentReconcilerService(db, gateway=gateway, event_bus=event_bus)
