"""FastAPI dependency providers."""

from ...auth import get_current_user_id
from .database import get_db
from .services import (
    get_booking_service,
    get_class_catalog_service,
    get_event_bus,
    get_pass_service,
    get_payment_reconciler_service,
    get_stripe_gateway,
)

__all__ = [
    "get_booking_service",
    "get_class_catalog_service",
    "get_current_user_id",
    "get_db",
    "get_event_bus",
    "get_pass_service",
    "get_payment_reconciler_service",
    "get_stripe_gateway",
]
