"""
Stripe Webhook Endpoint

Receives checkout and subscription events from Stripe, verifies the
signature and hands the event to the payment reconciler. The reconciler
deduplicates by session/invoice id, so Stripe's at-least-once delivery is
safe.

Handled events:
- checkout.session.completed / checkout.session.async_payment_succeeded
- invoice.payment_succeeded (subscription renewals)
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
import stripe

from ..api.dependencies import get_payment_reconciler_service, get_stripe_gateway
from ..core.exceptions import DomainException
from ..schemas.payments import WebhookResponse
from ..services.payment_reconciler_service import PaymentReconcilerService
from ..services.stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stripe-webhooks"])


@router.post("", response_model=WebhookResponse)
async def handle_stripe_webhook(
    request: Request,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    reconciler: PaymentReconcilerService = Depends(get_payment_reconciler_service),
) -> WebhookResponse:
    """
    Handle a Stripe webhook delivery.

    Returns 400 for a missing or invalid signature. Errors while applying
    the event surface as 5xx so Stripe retries the delivery.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    if not signature:
        logger.warning("Missing Stripe signature header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing stripe-signature header"
        )

    try:
        event = gateway.construct_event(payload, signature)
    except stripe.SignatureVerificationError:
        logger.warning("Invalid Stripe webhook signature")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature"
        )
    except ValueError:
        logger.warning("Unparseable Stripe webhook payload")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")
    except DomainException as e:
        raise e.to_http_exception()

    event_type = event.get("type", "") if hasattr(event, "get") else ""
    logger.info(f"Processing Stripe webhook event: {event_type}")

    try:
        outcome = await asyncio.to_thread(reconciler.handle_webhook_event, event)
    except DomainException as e:
        logger.error(f"Failed to process {event_type} event: {e.message}")
        raise e.to_http_exception()

    return WebhookResponse(
        status=outcome.status, event_type=outcome.event_type, reason=outcome.reason
    )
