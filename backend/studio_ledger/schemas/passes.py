"""Pass schemas for the "my passes" endpoint."""

from datetime import datetime
from typing import Optional

from .base import StandardizedModel


class PassResponse(StandardizedModel):
    id: str
    pass_type: str
    kind: str
    remaining_credits: Optional[int] = None
    expires_at: Optional[datetime] = None
    is_active: bool
    eligible: bool
    created_at: datetime
