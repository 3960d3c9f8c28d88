"""
Payment reconciler tests.

Stripe is replaced by a MagicMock gateway returning plain dict payloads,
which the reconciler reads the same way as SDK objects.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import func, select

from studio_ledger.core.exceptions import (
    ForbiddenException,
    PaymentNotCompletedException,
    UnknownPassKindException,
)
from studio_ledger.core.pass_plans import resolve_pass_plan
from studio_ledger.models.payment_event import PaymentEvent
from studio_ledger.models.user_pass import UserPass
from studio_ledger.services.pass_service import PassService
from studio_ledger.services.payment_reconciler_service import PaymentReconcilerService

STUDENT_ID = "user_student_01"
TEN_CLASS_PRICE = "price_1S0rHLARpqh0Ut1ybWGa3ocf"
MONTHLY_PRICE = "price_1S0rJlARpqh0Ut1yaeBEQVRf"


def _checkout_session(
    session_id: str = "cs_test_1",
    price_id: str = TEN_CLASS_PRICE,
    *,
    mode: str = "payment",
    payment_status: str = "paid",
    user_id: str = STUDENT_ID,
    subscription=None,
) -> dict:
    return {
        "id": session_id,
        "mode": mode,
        "payment_status": payment_status,
        "metadata": {"userId": user_id} if user_id else {},
        "client_reference_id": None,
        "payment_intent": "pi_test_1" if mode == "payment" else None,
        "line_items": {"data": [{"price": {"id": price_id}}]},
        "subscription": subscription,
    }


@pytest.fixture
def gateway() -> MagicMock:
    return MagicMock()


@pytest.fixture
def reconciler(db, gateway, event_bus) -> PaymentReconcilerService:
    return PaymentReconcilerService(db, gateway=gateway, event_bus=event_bus)


def _passes(db):
    return PassService(db).get_passes_for_user(STUDENT_ID)


def _ledger_rows(db) -> int:
    count = db.execute(select(func.count(PaymentEvent.id))).scalar()
    db.commit()
    return count


class TestApplyPayment:
    def test_credit_plan_adds_credits(self, db, reconciler, now):
        result = reconciler.apply_payment(STUDENT_ID, TEN_CLASS_PRICE, now=now)

        assert result.type == "credits"
        assert result.added == 10
        assert result.pass_type == "10-class"
        [user_pass] = _passes(db)
        assert user_pass.remaining_credits == 10

    def test_unlimited_plan_defaults_window_to_plan_duration(self, reconciler, now):
        result = reconciler.apply_payment(STUDENT_ID, resolve_pass_plan(MONTHLY_PRICE), now=now)

        assert result.type == "unlimited"
        assert result.expires_at == now + timedelta(days=30)

    def test_unlimited_plan_uses_provider_period_end(self, reconciler, now):
        period_end = now + timedelta(days=29, hours=3)

        result = reconciler.apply_payment(
            STUDENT_ID, MONTHLY_PRICE, now=now, valid_until=period_end
        )

        assert result.expires_at == period_end

    def test_unknown_plan(self, reconciler, now):
        with pytest.raises(UnknownPassKindException):
            reconciler.apply_payment(STUDENT_ID, "price_nope", now=now)


class TestReconcile:
    def test_same_reference_is_applied_once(self, db, reconciler, now):
        plan = resolve_pass_plan(TEN_CLASS_PRICE)

        first = reconciler.reconcile(
            event_id="cs_1", event_type="checkout.session.completed",
            user_id=STUDENT_ID, plan=plan, now=now,
        )
        second = reconciler.reconcile(
            event_id="cs_1", event_type="checkout.session.completed",
            user_id=STUDENT_ID, plan=plan, now=now,
        )

        assert first.duplicate is False
        assert second.duplicate is True
        assert second.pass_id == first.pass_id
        assert second.added == 10
        [user_pass] = _passes(db)
        assert user_pass.remaining_credits == 10
        assert _ledger_rows(db) == 1

    def test_different_references_both_apply(self, db, reconciler, now):
        plan = resolve_pass_plan(TEN_CLASS_PRICE)

        reconciler.reconcile(
            event_id="cs_1", event_type="checkout.session.completed",
            user_id=STUDENT_ID, plan=plan, now=now,
        )
        reconciler.reconcile(
            event_id="cs_2", event_type="checkout.session.completed",
            user_id=STUDENT_ID, plan=plan, now=now,
        )

        [user_pass] = _passes(db)
        assert user_pass.remaining_credits == 20

    def test_failed_grant_leaves_no_ledger_row(self, db, reconciler, now, monkeypatch):
        plan = resolve_pass_plan(TEN_CLASS_PRICE)

        def boom(*args, **kwargs):
            raise RuntimeError("grant failed")

        monkeypatch.setattr(reconciler.pass_service, "grant_credits", boom)

        with pytest.raises(RuntimeError):
            reconciler.reconcile(
                event_id="cs_1", event_type="checkout.session.completed",
                user_id=STUDENT_ID, plan=plan, now=now,
            )

        assert _ledger_rows(db) == 0

    def test_losing_the_reference_race_reports_duplicate(self, db, reconciler, now, monkeypatch):
        plan = resolve_pass_plan(TEN_CLASS_PRICE)
        reconciler.reconcile(
            event_id="cs_1", event_type="checkout.session.completed",
            user_id=STUDENT_ID, plan=plan, now=now,
        )

        # The first lookup misses, as it would for a worker racing the one above
        lookup = reconciler.payment_event_repository.find_by_source_and_event_id
        calls = []

        def stale_lookup(source, event_id):
            calls.append(event_id)
            if len(calls) == 1:
                return None
            return lookup(source, event_id)

        monkeypatch.setattr(
            reconciler.payment_event_repository, "find_by_source_and_event_id", stale_lookup
        )

        result = reconciler.reconcile(
            event_id="cs_1", event_type="checkout.session.completed",
            user_id=STUDENT_ID, plan=plan, now=now,
        )

        assert result.duplicate is True
        assert result.added == 10
        assert len(calls) == 2
        assert [p.remaining_credits for p in _passes(db)] == [10]
        assert _ledger_rows(db) == 1

    def test_duplicate_unlimited_result_keeps_expiry(self, reconciler, now):
        plan = resolve_pass_plan(MONTHLY_PRICE)

        first = reconciler.reconcile(
            event_id="in_1", event_type="invoice.payment_succeeded",
            user_id=STUDENT_ID, plan=plan, now=now,
        )
        again = reconciler.reconcile(
            event_id="in_1", event_type="invoice.payment_succeeded",
            user_id=STUDENT_ID, plan=plan, now=now + timedelta(days=1),
        )

        assert again.duplicate is True
        assert again.expires_at == first.expires_at


class TestConfirmCheckoutSession:
    def test_paid_credit_checkout_grants_credits(self, db, reconciler, gateway, now):
        gateway.retrieve_checkout_session.return_value = _checkout_session()

        result = reconciler.confirm_checkout_session("cs_test_1", STUDENT_ID, now=now)

        assert result.type == "credits"
        assert result.added == 10
        gateway.retrieve_checkout_session.assert_called_once_with("cs_test_1")
        [user_pass] = _passes(db)
        assert user_pass.remaining_credits == 10

    def test_confirming_twice_is_a_duplicate(self, db, reconciler, gateway, now):
        gateway.retrieve_checkout_session.return_value = _checkout_session()

        reconciler.confirm_checkout_session("cs_test_1", STUDENT_ID, now=now)
        again = reconciler.confirm_checkout_session("cs_test_1", STUDENT_ID, now=now)

        assert again.duplicate is True
        [user_pass] = _passes(db)
        assert user_pass.remaining_credits == 10

    def test_unpaid_checkout_is_not_completed(self, db, reconciler, gateway, now):
        gateway.retrieve_checkout_session.return_value = _checkout_session(
            payment_status="unpaid"
        )

        with pytest.raises(PaymentNotCompletedException) as exc_info:
            reconciler.confirm_checkout_session("cs_test_1", STUDENT_ID, now=now)

        assert exc_info.value.details["provider_status"] == "unpaid"
        assert _passes(db) == []

    def test_unknown_price_fails_loudly(self, reconciler, gateway, now):
        gateway.retrieve_checkout_session.return_value = _checkout_session(
            price_id="price_retired"
        )

        with pytest.raises(UnknownPassKindException):
            reconciler.confirm_checkout_session("cs_test_1", STUDENT_ID, now=now)

    def test_session_of_another_user_is_forbidden(self, reconciler, gateway, now):
        gateway.retrieve_checkout_session.return_value = _checkout_session(user_id="someone_else")

        with pytest.raises(ForbiddenException):
            reconciler.confirm_checkout_session("cs_test_1", STUDENT_ID, now=now)

    def test_active_subscription_uses_period_end(self, reconciler, gateway, now):
        period_end = int((now + timedelta(days=30)).timestamp())
        gateway.retrieve_checkout_session.return_value = _checkout_session(
            "cs_sub_1",
            MONTHLY_PRICE,
            mode="subscription",
            subscription={"id": "sub_1", "status": "active", "current_period_end": period_end},
        )

        result = reconciler.confirm_checkout_session("cs_sub_1", STUDENT_ID, now=now)

        assert result.type == "unlimited"
        assert result.expires_at == datetime.fromtimestamp(period_end, tz=timezone.utc)

    def test_period_end_read_from_subscription_item(self, reconciler, gateway, now):
        period_end = int((now + timedelta(days=7)).timestamp())
        gateway.retrieve_checkout_session.return_value = _checkout_session(
            "cs_sub_1", MONTHLY_PRICE, mode="subscription", subscription="sub_1"
        )
        gateway.retrieve_subscription.return_value = {
            "id": "sub_1",
            "status": "active",
            "items": {"data": [{"current_period_end": period_end}]},
        }

        result = reconciler.confirm_checkout_session("cs_sub_1", STUDENT_ID, now=now)

        gateway.retrieve_subscription.assert_called_once_with("sub_1")
        assert result.expires_at == datetime.fromtimestamp(period_end, tz=timezone.utc)

    def test_incomplete_subscription_is_not_completed(self, reconciler, gateway, now):
        gateway.retrieve_checkout_session.return_value = _checkout_session(
            "cs_sub_1",
            MONTHLY_PRICE,
            mode="subscription",
            subscription={"id": "sub_1", "status": "incomplete"},
        )

        with pytest.raises(PaymentNotCompletedException):
            reconciler.confirm_checkout_session("cs_sub_1", STUDENT_ID, now=now)


class TestWebhookEvents:
    def test_checkout_completed_grants_once_with_confirmation(
        self, db, reconciler, gateway, now
    ):
        gateway.retrieve_checkout_session.return_value = _checkout_session()
        event = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_test_1"}}}

        outcome = reconciler.handle_webhook_event(event, now=now)
        confirmed = reconciler.confirm_checkout_session("cs_test_1", STUDENT_ID, now=now)

        assert outcome.status == "processed"
        assert confirmed.duplicate is True
        [user_pass] = _passes(db)
        assert user_pass.remaining_credits == 10

    def test_redelivered_event_is_duplicate(self, reconciler, gateway, now):
        gateway.retrieve_checkout_session.return_value = _checkout_session()
        event = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_test_1"}}}

        reconciler.handle_webhook_event(event, now=now)
        outcome = reconciler.handle_webhook_event(event, now=now)

        assert outcome.status == "duplicate"

    def test_user_resolved_from_payment_intent(self, db, reconciler, gateway, now):
        gateway.retrieve_checkout_session.return_value = _checkout_session(user_id="")
        gateway.retrieve_payment_intent.return_value = {"metadata": {"userId": STUDENT_ID}}
        event = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_test_1"}}}

        outcome = reconciler.handle_webhook_event(event, now=now)

        assert outcome.status == "processed"
        gateway.retrieve_payment_intent.assert_called_once_with("pi_test_1")
        assert len(_passes(db)) == 1

    def test_unattributable_checkout_is_ignored(self, db, reconciler, gateway, now, caplog):
        gateway.retrieve_checkout_session.return_value = _checkout_session(user_id="")
        gateway.retrieve_payment_intent.return_value = {"metadata": {}}
        event = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_test_1"}}}

        outcome = reconciler.handle_webhook_event(event, now=now)

        assert outcome.status == "ignored"
        assert outcome.reason == "missing_user_id"
        assert _ledger_rows(db) == 0

    def test_unknown_price_is_ignored(self, reconciler, gateway, now):
        gateway.retrieve_checkout_session.return_value = _checkout_session(price_id="price_retired")
        event = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_test_1"}}}

        outcome = reconciler.handle_webhook_event(event, now=now)

        assert outcome.status == "ignored"
        assert outcome.reason == "unknown_pass_kind"

    def test_unpaid_checkout_waits_for_async_success(self, db, reconciler, gateway, now):
        gateway.retrieve_checkout_session.return_value = _checkout_session(
            payment_status="unpaid"
        )
        completed = {"type": "checkout.session.completed", "data": {"object": {"id": "cs_test_1"}}}

        outcome = reconciler.handle_webhook_event(completed, now=now)
        assert outcome.status == "ignored"
        assert outcome.reason == "payment_not_completed"

        gateway.retrieve_checkout_session.return_value = _checkout_session()
        succeeded = {
            "type": "checkout.session.async_payment_succeeded",
            "data": {"object": {"id": "cs_test_1"}},
        }
        outcome = reconciler.handle_webhook_event(succeeded, now=now)

        assert outcome.status == "processed"
        [user_pass] = _passes(db)
        assert user_pass.remaining_credits == 10

    def test_invoice_paid_renews_unlimited_window(self, db, reconciler, gateway, now):
        gateway.retrieve_subscription.return_value = {
            "id": "sub_1",
            "metadata": {"userId": STUDENT_ID},
            "items": {"data": [{"price": {"id": MONTHLY_PRICE}}]},
        }
        event = {
            "type": "invoice.payment_succeeded",
            "data": {"object": {"id": "in_1", "subscription": "sub_1"}},
        }

        outcome = reconciler.handle_webhook_event(event, now=now)

        assert outcome.status == "processed"
        assert outcome.result.expires_at == now + timedelta(days=30)
        [user_pass] = _passes(db)
        assert user_pass.pass_type == "monthly-unlimited"

    def test_invoice_subscription_from_parent_details(self, reconciler, gateway, now):
        gateway.retrieve_subscription.return_value = {
            "id": "sub_9",
            "metadata": {"userId": STUDENT_ID},
            "items": {"data": [{"price": MONTHLY_PRICE}]},
        }
        event = {
            "type": "invoice.payment_succeeded",
            "data": {
                "object": {
                    "id": "in_9",
                    "parent": {"subscription_details": {"subscription": "sub_9"}},
                }
            },
        }

        outcome = reconciler.handle_webhook_event(event, now=now)

        assert outcome.status == "processed"
        gateway.retrieve_subscription.assert_called_once_with("sub_9")

    def test_other_event_types_are_ignored(self, reconciler, gateway):
        outcome = reconciler.handle_webhook_event(
            {"type": "customer.created", "data": {"object": {"id": "cus_1"}}}
        )

        assert outcome.status == "ignored"
        assert outcome.reason == "unhandled_event_type"
        gateway.retrieve_checkout_session.assert_not_called()


class TestCreateCheckoutSession:
    def test_builds_session_for_plan(self, reconciler, gateway):
        gateway.create_checkout_session.return_value = {
            "id": "cs_new",
            "url": "https://checkout.stripe.com/c/cs_new",
        }

        link = reconciler.create_checkout_session(
            MONTHLY_PRICE, STUDENT_ID, "https://studio.test/thanks", "https://studio.test/shop"
        )

        assert link.session_id == "cs_new"
        assert link.url == "https://checkout.stripe.com/c/cs_new"
        gateway.create_checkout_session.assert_called_once_with(
            price_id=MONTHLY_PRICE,
            mode="subscription",
            user_id=STUDENT_ID,
            success_url="https://studio.test/thanks?session_id={CHECKOUT_SESSION_ID}",
            cancel_url="https://studio.test/shop",
            metadata={"pass_type": "monthly-unlimited"},
        )

    def test_unknown_plan_is_rejected_before_calling_stripe(self, reconciler, gateway):
        with pytest.raises(UnknownPassKindException):
            reconciler.create_checkout_session(
                "price_nope", STUDENT_ID, "https://a.test/ok", "https://a.test/no"
            )

        gateway.create_checkout_session.assert_not_called()


def test_passes_persisted_as_user_pass_rows(db, reconciler, now):
    reconciler.apply_payment(STUDENT_ID, TEN_CLASS_PRICE, now=now)

    stored = db.execute(select(UserPass).where(UserPass.user_id == STUDENT_ID)).scalars().all()

    assert len(stored) == 1
