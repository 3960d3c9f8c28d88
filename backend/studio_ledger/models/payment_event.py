"""Processed payment event ledger model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON
import ulid

from ..database import Base
from .types import UTCDateTime, utcnow


class PaymentEvent(Base):
    """
    One row per payment reference that has been turned into a pass grant.

    ``event_id`` is the provider reference the grant is keyed on (checkout
    session id or invoice id), so a client confirmation and the webhook for
    the same checkout resolve to the same row.
    """

    __tablename__ = "payment_events"

    __table_args__ = (
        sa.Index("ix_payment_events_user_id", "user_id"),
        sa.Index("ix_payment_events_event_type", "event_type"),
        sa.UniqueConstraint("source", "event_id", name="uq_payment_events_source_event_id"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    source: Mapped[str] = mapped_column(String(50), nullable=False)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    pass_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="processed")
    result: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=True,
    )
    received_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
