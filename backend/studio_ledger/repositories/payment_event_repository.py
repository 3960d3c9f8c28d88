"""Repository for processed payment events."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.payment_event import PaymentEvent
from .base_repository import BaseRepository


class PaymentEventRepository(BaseRepository[PaymentEvent]):
    def __init__(self, db: Session) -> None:
        super().__init__(db, PaymentEvent)

    def find_by_source_and_event_id(self, source: str, event_id: str) -> Optional[PaymentEvent]:
        stmt = select(PaymentEvent).where(
            PaymentEvent.source == source,
            PaymentEvent.event_id == event_id,
        )
        rows = self._execute_all(stmt)
        return rows[0] if rows else None
