"""
Static mapping from Stripe price ids to the pass they grant.

Credit packs are one-off payments; unlimited plans are subscriptions whose
window is renewed on every paid invoice.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from .exceptions import UnknownPassKindException

PASS_KIND_CREDITS = "credits"
PASS_KIND_UNLIMITED = "unlimited"


@dataclass(frozen=True)
class PassPlan:
    plan_id: str
    pass_type: str
    kind: str
    checkout_mode: str  # "payment" | "subscription"
    credits: Optional[int] = None
    duration_days: Optional[int] = None

    @property
    def is_unlimited(self) -> bool:
        return self.kind == PASS_KIND_UNLIMITED


def _credits(plan_id: str, pass_type: str, credits: int) -> PassPlan:
    return PassPlan(plan_id, pass_type, PASS_KIND_CREDITS, "payment", credits=credits)


def _unlimited(plan_id: str, pass_type: str, days: int) -> PassPlan:
    return PassPlan(plan_id, pass_type, PASS_KIND_UNLIMITED, "subscription", duration_days=days)


PASS_PLANS: Dict[str, PassPlan] = {
    plan.plan_id: plan
    for plan in (
        _credits("price_1S0r9bARpqh0Ut1y4lHGGuAT", "single", 1),
        _credits("price_1S0rGpARpqh0Ut1yYrnt5R6V", "5-class", 5),
        # Legacy 5-class price still referenced by older checkout sessions
        _credits("price_1S0vfBARpqh0Ut1ybKjeqehJ", "5-class", 5),
        _credits("price_1S0rHLARpqh0Ut1ybWGa3ocf", "10-class", 10),
        _credits("price_1S0rHqARpqh0Ut1ygGGaoqac", "25-class", 25),
        _unlimited("price_1S0rIRARpqh0Ut1yQkmz18xc", "weekly-unlimited", 7),
        _unlimited("price_1S0rJlARpqh0Ut1yaeBEQVRf", "monthly-unlimited", 30),
        _unlimited("price_1S0rKbARpqh0Ut1ydYwnH2Zy", "vip-monthly", 30),
        _unlimited("price_1S0rLOARpqh0Ut1y2lbJ17g7", "vip-yearly", 365),
    )
}


def resolve_pass_plan(plan_id: Optional[str]) -> PassPlan:
    """Look up a plan by price id; unknown ids fail loudly."""
    if not plan_id or plan_id not in PASS_PLANS:
        raise UnknownPassKindException(plan_id)
    return PASS_PLANS[plan_id]
