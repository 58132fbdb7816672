import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe

from core.config import settings
from core.errors import ValidationError
from models.user import User
from services.plan_catalog import PlanTier, tier_for_stripe_price
from services.subscriptions import SubscriptionEvent, SubscriptionEventType

logger = logging.getLogger(__name__)

stripe.api_key = settings.STRIPE_SECRET_KEY

STRIPE_EVENT_TYPES = {
    "checkout.session.completed": SubscriptionEventType.CHECKOUT_COMPLETED,
    "invoice.payment_succeeded": SubscriptionEventType.INVOICE_PAID,
    "customer.subscription.updated": SubscriptionEventType.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": SubscriptionEventType.SUBSCRIPTION_DELETED,
}


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


def _cents(value: Optional[int]) -> Optional[float]:
    if value is None:
        return None
    return value / 100


def _first_price_id(obj: Dict[str, Any]) -> Optional[str]:
    items = (obj.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


class StripeBillingService:
    def create_checkout_session(self, user: User, tier: PlanTier) -> str:
        """Start a subscription checkout for ``tier`` and return the hosted page URL."""
        try:
            session = stripe.checkout.Session.create(
                mode="subscription",
                payment_method_types=["card"],
                line_items=[{"price": tier.stripe_price_id, "quantity": 1}],
                customer_email=user.email,
                success_url=f"{settings.FRONTEND_URL}/dashboard/planos?success=true",
                cancel_url=f"{settings.FRONTEND_URL}/dashboard/planos?canceled=true",
                metadata={"user_id": str(user.id), "plano": tier.name},
            )
        except stripe.error.StripeError as e:
            logger.error("Checkout session for user %s failed: %s", user.id, e)
            raise ValidationError("Could not start checkout", detail=str(e))
        logger.info("Checkout session %s created for user %s (%s)", session.id, user.id, tier.id)
        return session.url

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Verify the webhook signature and return the event as plain data."""
        if not signature:
            raise ValidationError("Missing Stripe signature")
        try:
            stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except stripe.error.SignatureVerificationError as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise ValidationError("Invalid webhook signature")
        except ValueError as e:
            raise ValidationError("Invalid webhook payload", detail=str(e))
        return json.loads(payload)


def to_subscription_event(event: Dict[str, Any]) -> Optional[SubscriptionEvent]:
    """Normalize a Stripe event; returns None for event types that do not affect plans."""
    event_type = STRIPE_EVENT_TYPES.get(event.get("type"))
    if event_type is None:
        return None
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == SubscriptionEventType.CHECKOUT_COMPLETED:
        metadata = obj.get("metadata") or {}
        user_id = metadata.get("user_id")
        plano = metadata.get("plano")
        return SubscriptionEvent(
            type=event_type,
            user_id=int(user_id) if user_id else None,
            stripe_customer_id=obj.get("customer"),
            stripe_subscription_id=obj.get("subscription"),
            plan_id=f"plan-{plano}" if plano else None,
            amount_paid=_cents(obj.get("amount_total")),
            reference=obj.get("id"),
        )

    if event_type == SubscriptionEventType.INVOICE_PAID:
        if not obj.get("subscription"):
            return None
        lines = (obj.get("lines") or {}).get("data") or []
        line = lines[0] if lines else {}
        tier = tier_for_stripe_price((line.get("price") or {}).get("id"))
        return SubscriptionEvent(
            type=event_type,
            stripe_customer_id=obj.get("customer"),
            stripe_subscription_id=obj.get("subscription"),
            plan_id=tier.id if tier else None,
            period_end=_timestamp((line.get("period") or {}).get("end")),
            amount_paid=_cents(obj.get("amount_paid")),
            reference=obj.get("id"),
            description=line.get("description"),
        )

    tier = tier_for_stripe_price(_first_price_id(obj))
    return SubscriptionEvent(
        type=event_type,
        stripe_customer_id=obj.get("customer"),
        stripe_subscription_id=obj.get("id"),
        plan_id=tier.id if tier else None,
        status=obj.get("status"),
        cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
        period_end=_timestamp(obj.get("current_period_end")),
        reference=event.get("id"),
    )


# Global instance
stripe_billing = StripeBillingService()
