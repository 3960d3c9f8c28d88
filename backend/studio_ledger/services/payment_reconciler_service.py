"""
Payment Reconciler Service

Turns completed payments into pass grants. Two channels feed it:

- the client confirming a checkout session after the redirect back
- Stripe webhooks (checkout completion and subscription renewals)

Every grant is recorded in ``payment_events`` keyed by the provider
reference (checkout session id or invoice id) in the same transaction as
the pass mutation, so a reference is applied at most once no matter how
often or through which channel it arrives.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ConstraintViolationException,
    ForbiddenException,
    PaymentNotCompletedException,
    UnknownPassKindException,
)
from ..core.pass_plans import PassPlan, resolve_pass_plan
from ..events.publisher import LedgerEventBus
from ..models.types import ensure_utc, utcnow
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .pass_service import PassService
from .stripe_gateway import StripeGateway, stripe_field

logger = logging.getLogger(__name__)

PAYMENT_SOURCE_STRIPE = "stripe"

CHECKOUT_COMPLETED_EVENTS = frozenset(
    {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
)
INVOICE_PAID_EVENT = "invoice.payment_succeeded"
CLIENT_CONFIRMATION_EVENT = "checkout.session.confirmed"


@dataclass
class PassGrantResult:
    type: str  # credits | unlimited
    pass_id: str
    pass_type: str
    added: Optional[int] = None
    expires_at: Optional[datetime] = None
    duplicate: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "pass_id": self.pass_id,
            "pass_type": self.pass_type,
            "added": self.added,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_stored(cls, data: Dict[str, Any], *, duplicate: bool) -> "PassGrantResult":
        expires_at = data.get("expires_at")
        return cls(
            type=data["type"],
            pass_id=data["pass_id"],
            pass_type=data["pass_type"],
            added=data.get("added"),
            expires_at=ensure_utc(datetime.fromisoformat(expires_at)) if expires_at else None,
            duplicate=duplicate,
        )


@dataclass
class WebhookOutcome:
    status: str  # processed | duplicate | ignored
    event_type: str
    result: Optional[PassGrantResult] = None
    reason: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CheckoutSessionLink:
    session_id: str
    url: str


def _epoch_to_datetime(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _first_item_price_id(items: Any) -> Optional[str]:
    """Price id of the first line/subscription item; ``price`` may be expanded or a bare id."""
    data = stripe_field(items, "data") or []
    if not data:
        return None
    price = stripe_field(data[0], "price")
    if isinstance(price, str):
        return price
    return stripe_field(price, "id")


def _reference_id(value: Any) -> Optional[str]:
    """Id of a possibly-expanded Stripe reference."""
    if value is None or isinstance(value, str):
        return value
    return stripe_field(value, "id")


class PaymentReconcilerService(BaseService):
    def __init__(
        self,
        db: Session,
        gateway: Optional[StripeGateway] = None,
        event_bus: Optional[LedgerEventBus] = None,
        pass_service: Optional[PassService] = None,
    ):
        super().__init__(db, event_bus)
        self.gateway = gateway or StripeGateway()
        self.pass_service = pass_service or PassService(db, event_bus)
        self.payment_event_repository = RepositoryFactory.create_payment_event_repository(db)

    # Core grant

    @BaseService.measure_operation("apply_payment")
    def apply_payment(
        self,
        user_id: str,
        plan: Union[PassPlan, str],
        now: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
    ) -> PassGrantResult:
        """
        Grant what ``plan`` buys to ``user_id``.

        Credit plans add their credits. Unlimited plans set the window end to
        ``valid_until`` when the provider supplies one, otherwise to
        ``now + duration``.

        Not idempotent on its own; use ``reconcile`` for provider events.
        """
        if isinstance(plan, str):
            plan = resolve_pass_plan(plan)
        now = ensure_utc(now or utcnow())

        with self.transaction():
            if plan.is_unlimited:
                days = plan.duration_days or settings.default_unlimited_days
                new_valid_until = ensure_utc(valid_until) or now + timedelta(days=days)
                pass_ = self.pass_service.grant_or_renew_unlimited(
                    user_id, plan.pass_type, new_valid_until
                )
                return PassGrantResult(
                    type="unlimited",
                    pass_id=pass_.id,
                    pass_type=plan.pass_type,
                    expires_at=new_valid_until,
                )

            pass_ = self.pass_service.grant_credits(user_id, plan.pass_type, plan.credits or 0)
            return PassGrantResult(
                type="credits",
                pass_id=pass_.id,
                pass_type=plan.pass_type,
                added=plan.credits,
            )

    @BaseService.measure_operation("reconcile")
    def reconcile(
        self,
        *,
        event_id: str,
        event_type: str,
        user_id: str,
        plan: PassPlan,
        now: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        source: str = PAYMENT_SOURCE_STRIPE,
        channel: str = "webhook",
    ) -> PassGrantResult:
        """
        Apply a payment exactly once per ``(source, event_id)``.

        A reference seen before returns the stored grant with
        ``duplicate=True`` and touches no pass.
        """
        try:
            with self.transaction():
                existing = self.payment_event_repository.find_by_source_and_event_id(
                    source, event_id
                )
                if existing is not None:
                    duplicate = PassGrantResult.from_stored(existing.result or {}, duplicate=True)
                else:
                    ledger_row = self.payment_event_repository.create(
                        source=source,
                        event_id=event_id,
                        event_type=event_type,
                        user_id=user_id,
                        pass_type=plan.pass_type,
                        status="processing",
                    )
                    result = self.apply_payment(user_id, plan, now=now, valid_until=valid_until)
                    ledger_row.result = result.to_dict()
                    ledger_row.status = "processed"
                    ledger_row.processed_at = utcnow()
                    self.payment_event_repository.flush()
                    duplicate = None
        except ConstraintViolationException:
            # Another worker recorded the same reference first and our grant rolled back
            with self.transaction():
                existing = self.payment_event_repository.find_by_source_and_event_id(
                    source, event_id
                )
                if existing is None:
                    raise
                duplicate = PassGrantResult.from_stored(existing.result or {}, duplicate=True)

        if duplicate is not None:
            self.logger.info(f"Payment reference {source}:{event_id} already applied")
            prometheus_metrics.inc_duplicate_payment_event(source)
            return duplicate

        prometheus_metrics.inc_pass_grant(result.type, channel)
        self.log_operation(
            "reconcile",
            event_id=event_id,
            event_type=event_type,
            user_id=user_id,
            pass_type=plan.pass_type,
        )
        return result

    # Client confirmation channel

    @BaseService.measure_operation("confirm_checkout_session")
    def confirm_checkout_session(
        self, session_id: str, user_id: str, now: Optional[datetime] = None
    ) -> PassGrantResult:
        """
        Confirm a checkout session after the client is redirected back.

        Raises:
            UnknownPassKindException: the purchased price is not a known plan
            PaymentNotCompletedException: not paid yet / subscription not active
            ForbiddenException: the session belongs to another user
        """
        session = self.gateway.retrieve_checkout_session(session_id)

        owner = self._checkout_owner(session, allow_payment_intent_lookup=False)
        if owner and owner != user_id:
            raise ForbiddenException(
                "Checkout session belongs to another user",
                code="forbidden",
                details={"session_id": session_id},
            )

        plan = resolve_pass_plan(_first_item_price_id(stripe_field(session, "line_items")))

        valid_until = None
        if plan.checkout_mode == "payment":
            payment_status = stripe_field(session, "payment_status")
            if payment_status != "paid":
                raise PaymentNotCompletedException(session_id, payment_status)
        else:
            subscription = self._load_subscription(stripe_field(session, "subscription"))
            subscription_status = stripe_field(subscription, "status")
            if subscription is None or subscription_status != "active":
                raise PaymentNotCompletedException(session_id, subscription_status)
            valid_until = self._current_period_end(subscription)

        return self.reconcile(
            event_id=session_id,
            event_type=CLIENT_CONFIRMATION_EVENT,
            user_id=user_id,
            plan=plan,
            now=now,
            valid_until=valid_until,
            channel="confirm",
        )

    # Webhook channel

    @BaseService.measure_operation("handle_webhook_event")
    def handle_webhook_event(self, event: Any, now: Optional[datetime] = None) -> WebhookOutcome:
        """
        Route a verified Stripe event.

        Events that cannot be attributed (no user, unknown price, unpaid) are
        reported as ``ignored`` with a reason and logged; retrying them would
        not change the outcome. Unhandled event types are ignored silently.
        """
        event_type = stripe_field(event, "type", "")
        data_object = stripe_field(stripe_field(event, "data"), "object")

        if event_type in CHECKOUT_COMPLETED_EVENTS:
            return self._handle_checkout_completed(event_type, data_object, now)
        if event_type == INVOICE_PAID_EVENT:
            return self._handle_invoice_paid(event_type, data_object, now)

        self.logger.debug(f"Ignoring Stripe event type {event_type}")
        return WebhookOutcome(status="ignored", event_type=event_type, reason="unhandled_event_type")

    def _handle_checkout_completed(
        self, event_type: str, session_stub: Any, now: Optional[datetime]
    ) -> WebhookOutcome:
        session_id = stripe_field(session_stub, "id")
        session = self.gateway.retrieve_checkout_session(session_id)

        user_id = self._checkout_owner(session, allow_payment_intent_lookup=True)
        if not user_id:
            return self._unattributable(event_type, "missing_user_id", session_id=session_id)

        price_id = _first_item_price_id(stripe_field(session, "line_items"))
        try:
            plan = resolve_pass_plan(price_id)
        except UnknownPassKindException:
            return self._unattributable(
                event_type, "unknown_pass_kind", session_id=session_id, price_id=price_id
            )

        if plan.checkout_mode == "payment" and stripe_field(session, "payment_status") != "paid":
            # Delayed payment methods complete later via async_payment_succeeded
            self.logger.info(f"Checkout session {session_id} not paid yet, waiting")
            return WebhookOutcome(
                status="ignored",
                event_type=event_type,
                reason="payment_not_completed",
                details={"session_id": session_id},
            )

        result = self.reconcile(
            event_id=session_id,
            event_type=event_type,
            user_id=user_id,
            plan=plan,
            now=now,
        )
        return WebhookOutcome(
            status="duplicate" if result.duplicate else "processed",
            event_type=event_type,
            result=result,
        )

    def _handle_invoice_paid(
        self, event_type: str, invoice: Any, now: Optional[datetime]
    ) -> WebhookOutcome:
        invoice_id = stripe_field(invoice, "id")
        user_id = stripe_field(stripe_field(invoice, "metadata"), "userId")
        price_id = None

        subscription_id = self._invoice_subscription_id(invoice)
        if subscription_id:
            subscription = self.gateway.retrieve_subscription(subscription_id)
            user_id = user_id or stripe_field(stripe_field(subscription, "metadata"), "userId")
            price_id = _first_item_price_id(stripe_field(subscription, "items"))

        if not user_id:
            return self._unattributable(event_type, "missing_user_id", invoice_id=invoice_id)
        try:
            plan = resolve_pass_plan(price_id)
        except UnknownPassKindException:
            return self._unattributable(
                event_type, "unknown_pass_kind", invoice_id=invoice_id, price_id=price_id
            )

        result = self.reconcile(
            event_id=invoice_id,
            event_type=event_type,
            user_id=user_id,
            plan=plan,
            now=now,
        )
        return WebhookOutcome(
            status="duplicate" if result.duplicate else "processed",
            event_type=event_type,
            result=result,
        )

    def _unattributable(self, event_type: str, reason: str, **details: Any) -> WebhookOutcome:
        self.logger.error(f"Cannot apply {event_type}: {reason} {details}")
        return WebhookOutcome(status="ignored", event_type=event_type, reason=reason, details=details)

    # Checkout creation

    @BaseService.measure_operation("create_checkout_session")
    def create_checkout_session(
        self,
        plan_id: str,
        user_id: str,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CheckoutSessionLink:
        """Start a hosted checkout for ``plan_id``; the success URL receives the session id."""
        plan = resolve_pass_plan(plan_id)
        session = self.gateway.create_checkout_session(
            price_id=plan.plan_id,
            mode=plan.checkout_mode,
            user_id=user_id,
            success_url=success_url + "?session_id={CHECKOUT_SESSION_ID}",
            cancel_url=cancel_url,
            metadata={**(metadata or {}), "pass_type": plan.pass_type},
        )
        return CheckoutSessionLink(
            session_id=stripe_field(session, "id"), url=stripe_field(session, "url")
        )

    # Helpers

    def _checkout_owner(self, session: Any, *, allow_payment_intent_lookup: bool) -> Optional[str]:
        """metadata.userId, then client_reference_id, then the payment intent's metadata."""
        user_id = stripe_field(stripe_field(session, "metadata"), "userId")
        if not user_id:
            user_id = stripe_field(session, "client_reference_id")
        payment_intent_id = _reference_id(stripe_field(session, "payment_intent"))
        if (
            not user_id
            and allow_payment_intent_lookup
            and stripe_field(session, "mode") == "payment"
            and payment_intent_id
        ):
            payment_intent = self.gateway.retrieve_payment_intent(payment_intent_id)
            user_id = stripe_field(stripe_field(payment_intent, "metadata"), "userId")
        return user_id or None

    def _load_subscription(self, subscription: Any) -> Any:
        if isinstance(subscription, str):
            return self.gateway.retrieve_subscription(subscription)
        return subscription

    @staticmethod
    def _current_period_end(subscription: Any) -> Optional[datetime]:
        period_end = stripe_field(subscription, "current_period_end")
        if period_end is None:
            # Newer API versions report the period on subscription items
            data = stripe_field(stripe_field(subscription, "items"), "data") or []
            if data:
                period_end = stripe_field(data[0], "current_period_end")
        return _epoch_to_datetime(period_end)

    @staticmethod
    def _invoice_subscription_id(invoice: Any) -> Optional[str]:
        subscription_id = _reference_id(stripe_field(invoice, "subscription"))
        if subscription_id:
            return subscription_id
        details = stripe_field(stripe_field(invoice, "parent"), "subscription_details")
        return _reference_id(stripe_field(details, "subscription"))
