from .ledger_events import BOOKINGS_CHANGED, PASSES_CHANGED, BookingsChanged, PassesChanged
from .publisher import LedgerEventBus

__all__ = [
    "BOOKINGS_CHANGED",
    "PASSES_CHANGED",
    "BookingsChanged",
    "LedgerEventBus",
    "PassesChanged",
]
