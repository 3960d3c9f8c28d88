"""
Payment schemas for checkout creation, client confirmation and webhooks.
"""

from datetime import datetime
from typing import Dict, Optional

from pydantic import Field, field_validator

from .base import StandardizedModel, StrictRequestModel

# ========== Request Models ==========


class ConfirmPaymentRequest(StrictRequestModel):
    """Client confirmation after the checkout redirect."""

    session_id: str = Field(..., min_length=1, description="Stripe checkout session id")


class CheckoutRequest(StrictRequestModel):
    plan_id: str = Field(..., min_length=1, description="Stripe price id of the pass plan")
    success_url: str = Field(..., description="Redirect target after payment")
    cancel_url: str = Field(..., description="Redirect target when checkout is abandoned")
    metadata: Optional[Dict[str, str]] = None

    @field_validator("success_url", "cancel_url")
    @classmethod
    def _absolute_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("must be an absolute http(s) URL")
        return value


# ========== Response Models ==========


class ConfirmPaymentResponse(StandardizedModel):
    ok: bool = True
    type: str = Field(..., description="credits | unlimited")
    pass_type: str
    added: Optional[int] = Field(default=None, description="Credits added (credit plans)")
    expires_at: Optional[datetime] = Field(
        default=None, description="New window end (unlimited plans)"
    )
    duplicate: bool = False


class CheckoutResponse(StandardizedModel):
    url: str
    session_id: str


class WebhookResponse(StandardizedModel):
    status: str = Field(..., description="processed | duplicate | ignored")
    event_type: str
    reason: Optional[str] = None
