import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from kombu.exceptions import OperationalError
from sqlalchemy.orm import Session

from core.config import settings
from core.db import get_db
from services.stripe_billing import stripe_billing, to_subscription_event
from services.subscriptions import SubscriptionEvent, apply_subscription_event
from tasks.subscription_tasks import process_subscription_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def dispatch_subscription_event(db: Session, event: SubscriptionEvent) -> str:
    """Queue the event for the worker, applying it inline when the broker is unreachable."""
    if settings.SUBSCRIPTION_EVENTS_ASYNC:
        try:
            process_subscription_event.delay(event.model_dump(mode="json"))
            return "queued"
        except OperationalError as e:
            logger.warning("Broker unavailable, applying %s inline: %s", event.type.value, e)
    apply_subscription_event(db, event)
    return "applied"


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
):
    payload = await request.body()
    event = stripe_billing.construct_event(payload, stripe_signature)
    logger.info("Stripe event %s (%s) received", event.get("id"), event.get("type"))

    subscription_event = to_subscription_event(event)
    if subscription_event is None:
        return {"received": True, "status": "ignored"}
    # Session work and the broker publish both block
    status = await run_in_threadpool(dispatch_subscription_event, db, subscription_event)
    return {"received": True, "status": status}
