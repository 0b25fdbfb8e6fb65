"""
Subscription plans and status vocabularies.

A subscription row stores its plan as "monthly" / "yearly"; billing math and
Stripe speak in intervals ("month" / "year").
"""

PLAN_MONTHLY = "monthly"
PLAN_YEARLY = "yearly"

INTERVAL_MONTH = "month"
INTERVAL_YEAR = "year"
VALID_INTERVALS = frozenset({INTERVAL_MONTH, INTERVAL_YEAR})

# Prices in whole yen
MONTHLY_PRICE = 550
YEARLY_PRICE = 5500

_PLAN_LABELS = {
    PLAN_MONTHLY: "月額プラン",
    PLAN_YEARLY: "年額プラン",
}

# Subscription row status (mirrors Stripe's subscription.status)
SUBSCRIPTION_ACTIVE = "active"
SUBSCRIPTION_CANCELED = "canceled"

# User.subscription_status
USER_STATUS_NONE = "none"
USER_STATUS_ACTIVE = "active"
USER_STATUS_CANCELING = "canceling"
USER_STATUS_CANCELED = "canceled"
USER_STATUS_EXPIRED = "expired"

# Cancellation request status
REQUEST_PENDING = "pending"
REQUEST_APPROVED = "approved"
REQUEST_REJECTED = "rejected"


def plan_to_interval(plan: str) -> str:
    """Anything that is not explicitly yearly is billed monthly."""
    return INTERVAL_YEAR if plan == PLAN_YEARLY else INTERVAL_MONTH


def interval_to_plan(interval: str | None) -> str:
    return PLAN_YEARLY if interval == INTERVAL_YEAR else PLAN_MONTHLY


def plan_label(plan: str) -> str:
    """Human-readable plan name; unknown codes are shown as-is."""
    return _PLAN_LABELS.get(plan, plan)
