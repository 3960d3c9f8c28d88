"""
Stripe gateway

Thin wrapper over the Stripe SDK used by the payment reconciler. It only
talks to Stripe; nothing here touches the database. SDK failures surface as
PaymentProviderException so the API layer can answer 502.
"""

import logging
from typing import Any, Dict, Mapping, Optional

import stripe

from ..core.config import settings
from ..core.exceptions import PaymentProviderException, ServiceException

logger = logging.getLogger(__name__)


def stripe_field(obj: Any, key: str, default: Any = None) -> Any:
    """Read ``key`` from a Stripe object or a plain dict payload."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        value = obj.get(key, default)
    else:
        value = getattr(obj, key, default)
    return default if value is None else value


class StripeGateway:
    """Calls into Stripe on behalf of the payment services."""

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.stripe_api_key()
        self.webhook_secret = (
            webhook_secret
            if webhook_secret is not None
            else settings.stripe_webhook_secret.get_secret_value()
        )
        self.configured = bool(self.api_key)
        if self.configured:
            stripe.api_key = self.api_key
            # Fail fast instead of tying up worker threads on Stripe outages
            stripe.max_network_retries = 1
        else:
            logger.warning("Stripe secret key not configured - payment calls will fail")

    def _ensure_configured(self) -> None:
        if not self.configured:
            raise ServiceException("Stripe is not configured", code="stripe_not_configured")

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Any:
        """
        Verify the webhook signature and parse the event.

        Raises:
            ServiceException: webhook secret missing
            stripe.SignatureVerificationError: bad or missing signature
            ValueError: payload is not valid JSON
        """
        if not self.webhook_secret:
            raise ServiceException("Webhook secret not configured", code="stripe_not_configured")
        return stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)

    def retrieve_checkout_session(self, session_id: str) -> Any:
        self._ensure_configured()
        try:
            return stripe.checkout.Session.retrieve(
                session_id, expand=["line_items.data.price", "subscription"]
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve checkout session {session_id}: {str(e)}")
            raise PaymentProviderException(
                "Could not retrieve checkout session", details={"session_id": session_id}
            ) from e

    def retrieve_subscription(self, subscription_id: str) -> Any:
        self._ensure_configured()
        try:
            return stripe.Subscription.retrieve(subscription_id, expand=["items.data.price"])
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve subscription {subscription_id}: {str(e)}")
            raise PaymentProviderException(
                "Could not retrieve subscription", details={"subscription_id": subscription_id}
            ) from e

    def retrieve_payment_intent(self, payment_intent_id: str) -> Any:
        self._ensure_configured()
        try:
            return stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(f"Failed to retrieve payment intent {payment_intent_id}: {str(e)}")
            raise PaymentProviderException(
                "Could not retrieve payment intent",
                details={"payment_intent_id": payment_intent_id},
            ) from e

    def create_checkout_session(
        self,
        *,
        price_id: str,
        mode: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        """Create a hosted checkout session tagged with the buyer's user id."""
        self._ensure_configured()
        session_metadata = {"userId": user_id, **(metadata or {})}
        params: Dict[str, Any] = {
            "mode": mode,
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": user_id,
            "metadata": session_metadata,
        }
        if mode == "subscription":
            params["subscription_data"] = {"metadata": session_metadata}
        else:
            params["payment_intent_data"] = {"metadata": session_metadata}
        try:
            return stripe.checkout.Session.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Failed to create checkout session for {user_id}: {str(e)}")
            raise PaymentProviderException(
                "Could not create checkout session", details={"price_id": price_id}
            ) from e
