# backend/studio_ledger/models/user_pass.py
"""
Pass model.

A pass is what a user buys: either a pack of class credits or an unlimited
window. Passes are never deleted; exhausted or lapsed passes stay on record
with ``is_active`` cleared or ``expires_at`` in the past.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from ..database import Base
from .types import TimestampMixin, UTCDateTime


class PassKind(str, Enum):
    CREDITS = "credits"
    UNLIMITED = "unlimited"


class UserPass(TimestampMixin, Base):
    """A user's purchased pass (credit pack or unlimited window)."""

    __tablename__ = "user_passes"

    __table_args__ = (
        CheckConstraint(
            "remaining_credits IS NULL OR remaining_credits >= 0",
            name="ck_user_passes_remaining_credits_non_negative",
        ),
        CheckConstraint("kind IN ('credits', 'unlimited')", name="ck_user_passes_kind"),
        Index("ix_user_passes_user_type", "user_id", "pass_type"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    pass_type: Mapped[str] = mapped_column(String(50), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default=PassKind.CREDITS.value)
    remaining_credits: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_unlimited(self) -> bool:
        return self.kind == PassKind.UNLIMITED.value

    def __repr__(self) -> str:
        return (
            f"<UserPass(id={self.id}, user_id={self.user_id}, type={self.pass_type}, "
            f"credits={self.remaining_credits}, expires_at={self.expires_at}, active={self.is_active})>"
        )
