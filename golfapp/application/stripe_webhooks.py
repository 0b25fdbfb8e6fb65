"""
Stripe webhook processing.

Verified events are dispatched by type to handlers that sync the local
subscription/user/payment rows. Events for unknown customers are logged and
skipped so Stripe does not retry them forever.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable

import stripe
from sqlalchemy.orm import Session

from golfapp.application.payments import stripe_field
from golfapp.config import get_settings
from golfapp.domain.plan import (
    PLAN_MONTHLY, PLAN_YEARLY, SUBSCRIPTION_CANCELED, interval_to_plan,
    USER_STATUS_ACTIVE, USER_STATUS_CANCELING, USER_STATUS_EXPIRED,
)
from golfapp.infrastructure.db.models import User, SubscriptionModel, PaymentModel

logger = logging.getLogger(__name__)


class WebhookSignatureError(ValueError):
    pass


def construct_event(payload: bytes, signature: str | None):
    """Verify the stripe-signature header and parse the event."""
    if not signature:
        raise WebhookSignatureError("Missing stripe-signature header")
    try:
        return stripe.Webhook.construct_event(payload, signature, get_settings().STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        raise WebhookSignatureError(f"Webhook signature verification failed: {e}") from e


def _ts(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _first_item(subscription) -> Any:
    items = stripe_field(stripe_field(subscription, "items"), "data") or []
    return items[0] if items else None


def _price_id(item) -> str | None:
    return stripe_field(stripe_field(item, "price"), "id")


def _plan_for_price(price_id: str | None) -> str:
    yearly_price = get_settings().STRIPE_PRICE_YEARLY
    if yearly_price and price_id == yearly_price:
        return PLAN_YEARLY
    return PLAN_MONTHLY


def _period(subscription) -> tuple[datetime | None, datetime | None]:
    """current_period_* moved from the subscription onto its items in newer API versions."""
    item = _first_item(subscription)
    start = stripe_field(item, "current_period_start") or stripe_field(subscription, "current_period_start")
    end = stripe_field(item, "current_period_end") or stripe_field(subscription, "current_period_end")
    return _ts(start), _ts(end)


def _user_by_customer(db: Session, customer_id: str | None) -> User | None:
    if not customer_id:
        return None
    return db.query(User).filter(User.stripe_customer_id == customer_id).first()


def _user_by_subscription(db: Session, subscription_id: str | None) -> User | None:
    if not subscription_id:
        return None
    return db.query(User).filter(User.stripe_subscription_id == subscription_id).first()


# ── Handlers ─────────────────────────────────────────────────────────────────

def handle_checkout_session_completed(db: Session, session) -> None:
    customer_id = stripe_field(session, "customer")
    subscription_id = stripe_field(session, "subscription")
    user = _user_by_customer(db, customer_id)
    if not user:
        logger.error("User not found for customer %s", customer_id)
        return
    if subscription_id:
        user.stripe_subscription_id = subscription_id
        user.subscription_status = USER_STATUS_ACTIVE


def handle_subscription_created(db: Session, subscription) -> None:
    customer_id = stripe_field(subscription, "customer")
    user = _user_by_customer(db, customer_id)
    if not user:
        logger.error("User not found for customer %s", customer_id)
        return

    price_id = _price_id(_first_item(subscription))
    period_start, period_end = _period(subscription)

    db.add(SubscriptionModel(
        user_id=user.id,
        stripe_subscription_id=stripe_field(subscription, "id"),
        stripe_price_id=price_id,
        status=stripe_field(subscription, "status"),
        plan=_plan_for_price(price_id),
        start_date=period_start or datetime.now(timezone.utc),
        end_date=period_end,
        current_period_start=period_start,
        current_period_end=period_end,
    ))
    user.stripe_subscription_id = stripe_field(subscription, "id")
    user.subscription_status = USER_STATUS_ACTIVE
    user.subscription_ends_at = period_end


def handle_subscription_updated(db: Session, subscription) -> None:
    subscription_id = stripe_field(subscription, "id")
    user = _user_by_subscription(db, subscription_id)
    if not user:
        logger.error("User not found for subscription %s", subscription_id)
        return

    price_id = _price_id(_first_item(subscription))
    period_start, period_end = _period(subscription)
    status = stripe_field(subscription, "status")

    # start_date is the contract start and stays untouched
    db.query(SubscriptionModel).filter(
        SubscriptionModel.user_id == user.id,
        SubscriptionModel.stripe_subscription_id == subscription_id,
    ).update({
        SubscriptionModel.status: status,
        SubscriptionModel.stripe_price_id: price_id,
        SubscriptionModel.plan: _plan_for_price(price_id),
        SubscriptionModel.end_date: period_end,
        SubscriptionModel.current_period_start: period_start,
        SubscriptionModel.current_period_end: period_end,
    }, synchronize_session="fetch")

    if status in ("canceled", "unpaid"):
        user.subscription_status = USER_STATUS_EXPIRED
    elif stripe_field(subscription, "cancel_at_period_end"):
        user.subscription_status = USER_STATUS_CANCELING
    else:
        user.subscription_status = USER_STATUS_ACTIVE
    user.subscription_ends_at = period_end


def handle_subscription_deleted(db: Session, subscription) -> None:
    subscription_id = stripe_field(subscription, "id")
    user = _user_by_subscription(db, subscription_id)
    if not user:
        logger.error("User not found for subscription %s", subscription_id)
        return

    db.query(SubscriptionModel).filter(
        SubscriptionModel.user_id == user.id,
        SubscriptionModel.stripe_subscription_id == subscription_id,
    ).update({SubscriptionModel.status: SUBSCRIPTION_CANCELED}, synchronize_session="fetch")

    _, period_end = _period(subscription)
    user.subscription_status = USER_STATUS_EXPIRED
    user.subscription_ends_at = period_end


def _record_invoice_payment(db: Session, invoice, status: str, amount_field: str) -> None:
    subscription_id = stripe_field(invoice, "subscription")
    customer_id = stripe_field(invoice, "customer")
    if not subscription_id:
        return

    # Customer id first; subscription id as fallback
    user = _user_by_customer(db, customer_id) or _user_by_subscription(db, subscription_id)
    if not user:
        logger.error("User not found for customer %s or subscription %s", customer_id, subscription_id)
        return

    lines = stripe_field(stripe_field(invoice, "lines"), "data") or []
    recurring = stripe_field(stripe_field(lines[0], "price"), "recurring") if lines else None
    interval = stripe_field(recurring, "interval")

    db.add(PaymentModel(
        user_id=user.id,
        stripe_payment_intent_id=stripe_field(invoice, "payment_intent") or "",
        amount=stripe_field(invoice, amount_field) or 0,
        currency=stripe_field(invoice, "currency") or "jpy",
        status=status,
        plan=interval_to_plan(interval),
    ))


def handle_invoice_payment_succeeded(db: Session, invoice) -> None:
    _record_invoice_payment(db, invoice, "succeeded", "amount_paid")


def handle_invoice_payment_failed(db: Session, invoice) -> None:
    _record_invoice_payment(db, invoice, "failed", "amount_due")


EVENT_HANDLERS: dict[str, Callable[[Session, Any], None]] = {
    "checkout.session.completed": handle_checkout_session_completed,
    "customer.subscription.created": handle_subscription_created,
    "customer.subscription.updated": handle_subscription_updated,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_invoice_payment_succeeded,
    "invoice.payment_failed": handle_invoice_payment_failed,
}


def handle_stripe_event(db: Session, event) -> bool:
    """
    Dispatch a verified event to its handler and commit.

    Returns False for event types that are not handled.
    """
    event_type = stripe_field(event, "type")
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Ignoring Stripe event %s", event_type)
        return False

    obj = stripe_field(stripe_field(event, "data"), "object")
    handler(db, obj)
    db.commit()
    logger.info("Processed Stripe event %s (%s)", event_type, stripe_field(event, "id"))
    return True
