# backend/studio_ledger/routes/v1/payments.py
"""
Payment routes - API v1

Pass purchases go through Stripe hosted checkout. The client confirms the
session after the redirect; the webhook confirms it independently and the
reconciler applies whichever arrives first.

Endpoints:
    POST /checkout - Start a hosted checkout for a pass plan
    POST /confirm - Apply a completed checkout session to the caller's passes
"""

import asyncio
import logging

from fastapi import APIRouter, Depends

from ...api.dependencies import get_current_user_id, get_payment_reconciler_service
from ...core.exceptions import DomainException
from ...schemas.payments import (
    CheckoutRequest,
    CheckoutResponse,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
)
from ...services.payment_reconciler_service import PaymentReconcilerService
from .bookings import handle_domain_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    payload: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    reconciler: PaymentReconcilerService = Depends(get_payment_reconciler_service),
) -> CheckoutResponse:
    try:
        link = await asyncio.to_thread(
            reconciler.create_checkout_session,
            payload.plan_id,
            user_id,
            payload.success_url,
            payload.cancel_url,
            payload.metadata,
        )
    except DomainException as e:
        handle_domain_exception(e)
    return CheckoutResponse(url=link.url, session_id=link.session_id)


@router.post("/confirm", response_model=ConfirmPaymentResponse)
async def confirm_payment(
    payload: ConfirmPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    reconciler: PaymentReconcilerService = Depends(get_payment_reconciler_service),
) -> ConfirmPaymentResponse:
    """
    Apply a paid checkout session.

    Safe to repeat: a session already applied (by an earlier call or by the
    webhook) answers with ``duplicate=true`` and grants nothing.
    """
    try:
        result = await asyncio.to_thread(
            reconciler.confirm_checkout_session, payload.session_id, user_id
        )
    except DomainException as e:
        handle_domain_exception(e)

    return ConfirmPaymentResponse(
        ok=True,
        type=result.type,
        pass_type=result.pass_type,
        added=result.added,
        expires_at=result.expires_at,
        duplicate=result.duplicate,
    )
