# backend/studio_ledger/repositories/pass_repository.py
"""
Pass Repository

Data access for ``user_passes``. Ordering rules live here so every caller
sees passes in the same order:

- listings: most recent first
- credit pass selection: oldest created first, then id
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.user_pass import UserPass
from .base_repository import BaseRepository


class PassRepository(BaseRepository[UserPass]):
    def __init__(self, db: Session):
        super().__init__(db, UserPass)

    def list_for_user(self, user_id: str) -> List[UserPass]:
        """All passes of a user, most recent first."""
        stmt = (
            select(UserPass)
            .where(UserPass.user_id == user_id)
            .order_by(UserPass.created_at.desc(), UserPass.id.desc())
        )
        return self._execute_all(stmt)

    def list_for_user_for_update(self, user_id: str) -> List[UserPass]:
        """
        All active passes of a user, locked, oldest first.

        Locking every active pass of the user (not just the one we end up
        debiting) keeps two concurrent bookings by the same user from
        choosing and spending the same credit.
        """
        stmt = (
            select(UserPass)
            .where(UserPass.user_id == user_id, UserPass.is_active.is_(True))
            .order_by(UserPass.created_at.asc(), UserPass.id.asc())
        )
        return self._execute_all(self._lockable(stmt))

    def find_by_user_and_type(
        self, user_id: str, pass_type: str, *, for_update: bool = False
    ) -> Optional[UserPass]:
        """The newest pass of ``pass_type`` for the user, if any."""
        stmt = (
            select(UserPass)
            .where(UserPass.user_id == user_id, UserPass.pass_type == pass_type)
            .order_by(UserPass.created_at.desc(), UserPass.id.desc())
            .limit(1)
        )
        if for_update:
            stmt = self._lockable(stmt)
        rows = self._execute_all(stmt)
        return rows[0] if rows else None
