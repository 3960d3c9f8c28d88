"""
Database models for the studio ledger.

- UserPass: purchased credit packs and unlimited windows
- ClassInstance: scheduled classes with fixed capacity
- ClassBooking: seat reservations
- PaymentEvent: payment references already turned into pass grants
"""

from .booking import BookingStatus, ClassBooking
from .class_schedule import ClassInstance
from .payment_event import PaymentEvent
from .user_pass import PassKind, UserPass

__all__ = [
    "BookingStatus",
    "ClassBooking",
    "ClassInstance",
    "PassKind",
    "PaymentEvent",
    "UserPass",
]
