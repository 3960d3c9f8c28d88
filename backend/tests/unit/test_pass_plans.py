import pytest

from studio_ledger.core.exceptions import UnknownPassKindException
from studio_ledger.core.pass_plans import PASS_PLANS, resolve_pass_plan


def test_credit_plans_are_one_off_payments():
    plan = resolve_pass_plan("price_1S0rHLARpqh0Ut1ybWGa3ocf")

    assert plan.pass_type == "10-class"
    assert plan.credits == 10
    assert plan.checkout_mode == "payment"
    assert not plan.is_unlimited


def test_unlimited_plans_are_subscriptions():
    plan = resolve_pass_plan("price_1S0rJlARpqh0Ut1yaeBEQVRf")

    assert plan.pass_type == "monthly-unlimited"
    assert plan.is_unlimited
    assert plan.duration_days == 30
    assert plan.checkout_mode == "subscription"
    assert plan.credits is None


def test_legacy_five_class_price_maps_to_same_pass_type():
    assert resolve_pass_plan("price_1S0vfBARpqh0Ut1ybKjeqehJ").pass_type == "5-class"
    assert resolve_pass_plan("price_1S0rGpARpqh0Ut1yYrnt5R6V").pass_type == "5-class"


def test_every_plan_grants_something():
    for plan in PASS_PLANS.values():
        if plan.is_unlimited:
            assert plan.duration_days and plan.duration_days > 0
        else:
            assert plan.credits and plan.credits > 0


@pytest.mark.parametrize("plan_id", [None, "", "price_unknown"])
def test_unknown_plan_fails_loudly(plan_id):
    with pytest.raises(UnknownPassKindException) as exc_info:
        resolve_pass_plan(plan_id)

    assert exc_info.value.code == "unknown_pass_kind"
    assert exc_info.value.to_http_exception().status_code == 422
