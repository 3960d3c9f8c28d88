"""Ledger domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

PASSES_CHANGED = "passes_changed"
BOOKINGS_CHANGED = "bookings_changed"


@dataclass
class PassesChanged:
    """Fired after a user's pass balances or windows changed."""

    user_id: str
    pass_id: str
    reason: str  # booking | refund | grant
    occurred_at: datetime

    topic = PASSES_CHANGED

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingsChanged:
    """Fired after a booking was created, cancelled, or checked in."""

    user_id: str
    booking_id: str
    class_id: str
    status: str
    occurred_at: datetime
    used_credit: Optional[bool] = None

    topic = BOOKINGS_CHANGED

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
