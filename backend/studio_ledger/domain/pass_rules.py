"""Pass eligibility and selection rules shared by services, routes, and tests."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Iterable, Optional

from ..models.types import ensure_utc

if TYPE_CHECKING:
    from ..models.user_pass import UserPass


def is_eligible(pass_: "UserPass", now: datetime) -> bool:
    """A pass can admit a booking right now.

    Unlimited passes need ``expires_at`` strictly after ``now``; a missing
    expiry never counts as open-ended. Credit passes need at least one
    remaining credit.
    """
    if not pass_.is_active:
        return False
    if pass_.is_unlimited:
        expires_at = ensure_utc(pass_.expires_at)
        return expires_at is not None and expires_at > ensure_utc(now)
    return (pass_.remaining_credits or 0) > 0


def select_pass_for_booking(
    passes: Iterable["UserPass"],
    now: datetime,
    preferred_pass_id: Optional[str] = None,
) -> Optional["UserPass"]:
    """Pick the pass that pays for a booking.

    Order of preference: any eligible unlimited pass (no credit spent), then
    the preferred credit pass if it is usable, then the oldest eligible credit
    pass by (created_at, id).
    """
    eligible = [p for p in passes if is_eligible(p, now)]

    for candidate in eligible:
        if candidate.is_unlimited:
            return candidate

    credit_passes = [p for p in eligible if not p.is_unlimited]
    if preferred_pass_id:
        for candidate in credit_passes:
            if candidate.id == preferred_pass_id:
                return candidate

    if not credit_passes:
        return None
    return min(credit_passes, key=lambda p: (ensure_utc(p.created_at), p.id))
