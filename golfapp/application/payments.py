"""
Stripe payment gateway: refunds and subscription cancellation.

Amounts are whole yen. JPY is a zero-decimal currency in Stripe, so the yen
value is sent unchanged.
"""
import logging

import stripe

from golfapp.config import get_settings

logger = logging.getLogger(__name__)


class StripeGateway:
    def __init__(self, api_key: str):
        self.api_key = api_key

    def refund_latest_charge(
        self,
        stripe_subscription_id: str,
        amount: int,
        idempotency_key: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str | None:
        """
        Refund `amount` yen against the charge of the subscription's latest invoice.

        Returns the refund id, or None when no charge could be located. Stripe
        replays the first result for a repeated idempotency_key.
        Raises stripe.StripeError on API failure.
        """
        stripe.api_key = self.api_key
        subscription = stripe.Subscription.retrieve(
            stripe_subscription_id,
            expand=["latest_invoice.payment_intent"],
        )
        charge_id = _latest_charge_id(subscription)
        if not charge_id:
            logger.warning("No charge found for subscription %s, refund skipped", stripe_subscription_id)
            return None

        options = {"idempotency_key": idempotency_key} if idempotency_key else {}
        refund = stripe.Refund.create(
            charge=charge_id,
            amount=amount,
            reason="requested_by_customer",
            metadata=metadata or {},
            **options,
        )
        logger.info("Refund %s created: %d JPY on charge %s", refund.id, amount, charge_id)
        return refund.id

    def cancel_subscription(self, stripe_subscription_id: str, at_period_end: bool) -> None:
        """Cancel now, or flag the subscription to end with the current period."""
        stripe.api_key = self.api_key
        if at_period_end:
            stripe.Subscription.modify(stripe_subscription_id, cancel_at_period_end=True)
            logger.info("Subscription %s set to cancel at period end", stripe_subscription_id)
        else:
            canceled = stripe.Subscription.cancel(stripe_subscription_id)
            logger.info("Subscription %s canceled (status=%s)", stripe_subscription_id, canceled.status)


def stripe_field(obj, key: str):
    """Read a field from a StripeObject or a plain dict (webhook payloads, tests)."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def _latest_charge_id(subscription) -> str | None:
    """Walk subscription -> latest_invoice -> payment_intent -> latest_charge."""
    invoice = stripe_field(subscription, "latest_invoice")
    if not invoice or isinstance(invoice, str):
        return None
    payment_intent = stripe_field(invoice, "payment_intent")
    if not payment_intent or isinstance(payment_intent, str):
        return None
    charge = stripe_field(payment_intent, "latest_charge")
    if isinstance(charge, str):
        return charge
    return stripe_field(charge, "id")


def get_payment_gateway() -> StripeGateway:
    """FastAPI dependency; tests override it with a fake."""
    return StripeGateway(get_settings().STRIPE_SECRET_KEY)
