"""
Pass Service

Owns every mutation of ``user_passes``:

- debit/refund of single credits (booking engine)
- credit grants and unlimited renewals (payment reconciler only)

Mutators join the caller's transaction when another service on the same
session is already inside one.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import InvalidOperationException, PassNotFoundException
from ..domain.pass_rules import is_eligible
from ..events.ledger_events import PassesChanged
from ..events.publisher import LedgerEventBus
from ..models.types import utcnow
from ..models.user_pass import PassKind, UserPass
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class PassService(BaseService):
    def __init__(self, db: Session, event_bus: Optional[LedgerEventBus] = None):
        super().__init__(db, event_bus)
        self.pass_repository = RepositoryFactory.create_pass_repository(db)

    # Reads

    @BaseService.measure_operation("get_passes_for_user")
    def get_passes_for_user(self, user_id: str) -> List[UserPass]:
        """All passes of the user, most recent first. No side effects."""
        with self.transaction():
            return self.pass_repository.list_for_user(user_id)

    def get_eligible_passes(self, user_id: str, now: Optional[datetime] = None) -> List[UserPass]:
        now = now or utcnow()
        return [p for p in self.get_passes_for_user(user_id) if is_eligible(p, now)]

    # Mutations used by the booking engine

    def debit_one_credit(self, pass_id: str) -> UserPass:
        """
        Spend one credit. The balance floors at zero and the pass is
        deactivated once it reaches zero.

        Raises:
            PassNotFoundException: unknown pass
            InvalidOperationException: the pass is an unlimited window
        """
        with self.transaction():
            pass_ = self._get_locked(pass_id)
            if pass_.is_unlimited:
                raise InvalidOperationException(
                    "Unlimited passes have no credits to debit", details={"pass_id": pass_id}
                )
            remaining = max(0, (pass_.remaining_credits or 0) - 1)
            pass_.remaining_credits = remaining
            pass_.is_active = remaining > 0
            self.pass_repository.flush()
            self.publish(PassesChanged(pass_.user_id, pass_.id, "booking", utcnow()))
        return pass_

    def refund_one_credit(self, pass_id: str) -> UserPass:
        """Give back one credit and reactivate the pass."""
        with self.transaction():
            pass_ = self._get_locked(pass_id)
            if pass_.is_unlimited:
                raise InvalidOperationException(
                    "Unlimited passes have no credits to refund", details={"pass_id": pass_id}
                )
            pass_.remaining_credits = (pass_.remaining_credits or 0) + 1
            pass_.is_active = True
            self.pass_repository.flush()
            self.publish(PassesChanged(pass_.user_id, pass_.id, "refund", utcnow()))
        return pass_

    # Grants, reachable only through the payment reconciler

    @BaseService.measure_operation("grant_credits")
    def grant_credits(self, user_id: str, pass_type: str, credits_to_add: int) -> UserPass:
        """
        Add credits to the user's pass of ``pass_type``, creating it if needed.

        An existing pass is force-activated and loses any expiry.
        """
        if credits_to_add <= 0:
            raise InvalidOperationException(
                "Credit grants must be positive", details={"credits": credits_to_add}
            )
        with self.transaction():
            pass_ = self.pass_repository.find_by_user_and_type(user_id, pass_type, for_update=True)
            if pass_ is not None:
                pass_.kind = PassKind.CREDITS.value
                pass_.remaining_credits = (pass_.remaining_credits or 0) + credits_to_add
                pass_.is_active = True
                pass_.expires_at = None
                self.pass_repository.flush()
            else:
                pass_ = self.pass_repository.create(
                    user_id=user_id,
                    pass_type=pass_type,
                    kind=PassKind.CREDITS.value,
                    remaining_credits=credits_to_add,
                    expires_at=None,
                    is_active=True,
                )
            self.log_operation(
                "grant_credits", user_id=user_id, pass_id=pass_.id, credits=credits_to_add
            )
            self.publish(PassesChanged(user_id, pass_.id, "grant", utcnow()))
        return pass_

    @BaseService.measure_operation("grant_or_renew_unlimited")
    def grant_or_renew_unlimited(
        self, user_id: str, pass_type: str, new_valid_until: datetime
    ) -> UserPass:
        """
        Set the window of the user's ``pass_type`` pass to ``new_valid_until``,
        creating the pass if needed. Credits are cleared.
        """
        with self.transaction():
            pass_ = self.pass_repository.find_by_user_and_type(user_id, pass_type, for_update=True)
            if pass_ is not None:
                pass_.kind = PassKind.UNLIMITED.value
                pass_.expires_at = new_valid_until
                pass_.is_active = True
                pass_.remaining_credits = None
                self.pass_repository.flush()
            else:
                pass_ = self.pass_repository.create(
                    user_id=user_id,
                    pass_type=pass_type,
                    kind=PassKind.UNLIMITED.value,
                    remaining_credits=None,
                    expires_at=new_valid_until,
                    is_active=True,
                )
            self.log_operation(
                "grant_or_renew_unlimited",
                user_id=user_id,
                pass_id=pass_.id,
                valid_until=new_valid_until.isoformat(),
            )
            self.publish(PassesChanged(user_id, pass_.id, "grant", utcnow()))
        return pass_

    def _get_locked(self, pass_id: str) -> UserPass:
        pass_ = self.pass_repository.get_by_id(pass_id, for_update=True)
        if pass_ is None:
            raise PassNotFoundException(pass_id)
        return pass_
