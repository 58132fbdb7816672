"""Subscription lifecycle events and their effect on an account's plan.

Events arrive from the billing webhook already normalized (see
``services.stripe_billing``) and are applied here, usually from a Celery task.
"""
import calendar
import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from core.db import guarded_write
from models.plan_history import PlanHistory
from models.user import User
from services.plan_catalog import FREE_TIER_ID, PlanTier, get_tier, tier_for_description

logger = logging.getLogger(__name__)


class SubscriptionEventType(str, Enum):
    CHECKOUT_COMPLETED = "checkout_completed"
    INVOICE_PAID = "invoice_paid"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"


class SubscriptionEvent(BaseModel):
    type: SubscriptionEventType
    user_id: Optional[int] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    plan_id: Optional[str] = None
    status: Optional[str] = None
    cancel_at_period_end: bool = False
    period_end: Optional[datetime] = None
    amount_paid: Optional[float] = None
    reference: Optional[str] = None
    description: Optional[str] = None


def add_one_month(moment: datetime) -> datetime:
    year = moment.year + moment.month // 12
    month = moment.month % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _find_user(db: Session, event: SubscriptionEvent) -> Optional[User]:
    if event.user_id is not None:
        return db.query(User).filter(User.id == event.user_id).one_or_none()
    if event.stripe_subscription_id:
        user = db.query(User).filter(User.stripe_subscription_id == event.stripe_subscription_id).one_or_none()
        if user is not None:
            return user
    if event.stripe_customer_id:
        return db.query(User).filter(User.stripe_customer_id == event.stripe_customer_id).first()
    return None


def _record(db: Session, user: User, plan_name: str, payment_status: str, event: SubscriptionEvent, now: datetime, end: Optional[datetime]) -> None:
    db.add(
        PlanHistory(
            user_id=user.id,
            plan_name=plan_name,
            start_date=now,
            end_date=end,
            payment_status=payment_status,
            amount_paid=event.amount_paid,
            payment_method="card",
            stripe_reference=event.reference,
            stripe_subscription_id=event.stripe_subscription_id or user.stripe_subscription_id,
        )
    )


def _paid_tier(event: SubscriptionEvent, user: User) -> Optional[PlanTier]:
    for candidate in (get_tier(event.plan_id), get_tier(user.plan_active)):
        if candidate.is_paid:
            return candidate
    return tier_for_description(event.description)


def _checkout_completed(db: Session, user: User, event: SubscriptionEvent, now: datetime) -> None:
    tier = get_tier(event.plan_id)
    if not tier.is_paid:
        logger.warning("Checkout for user %s carried no paid plan (%s), ignored", user.id, event.plan_id)
        return
    user.plan_active = tier.id
    user.plan_expire_at = event.period_end or add_one_month(now)
    user.subscription_status = "active"
    user.stripe_customer_id = event.stripe_customer_id or user.stripe_customer_id
    user.stripe_subscription_id = event.stripe_subscription_id or user.stripe_subscription_id
    _record(db, user, tier.id, "paid", event, now, user.plan_expire_at)


def _invoice_paid(db: Session, user: User, event: SubscriptionEvent, now: datetime) -> None:
    tier = _paid_tier(event, user)
    if tier is None:
        logger.warning("Invoice %s for user %s does not match a paid plan, ignored", event.reference, user.id)
        return
    user.plan_active = tier.id
    user.plan_expire_at = event.period_end or add_one_month(now)
    user.subscription_status = "active"
    _record(db, user, tier.id, "paid", event, now, user.plan_expire_at)


def _subscription_updated(db: Session, user: User, event: SubscriptionEvent, now: datetime) -> None:
    if event.cancel_at_period_end:
        # Paid access runs until the end of the period, the lazy downgrade takes over after that
        user.subscription_status = "canceled_pending"
        user.plan_expire_at = event.period_end or user.plan_expire_at
        return
    if event.status == "active":
        tier = get_tier(event.plan_id)
        if tier.is_paid:
            user.plan_active = tier.id
        user.subscription_status = "active"
        user.plan_expire_at = event.period_end or user.plan_expire_at
        return
    user.subscription_status = event.status


def _subscription_deleted(db: Session, user: User, event: SubscriptionEvent, now: datetime) -> None:
    previous = user.plan_active
    user.plan_active = FREE_TIER_ID
    user.plan_expire_at = None
    user.subscription_status = "canceled"
    _record(db, user, previous, "canceled", event, now, now)


_HANDLERS = {
    SubscriptionEventType.CHECKOUT_COMPLETED: _checkout_completed,
    SubscriptionEventType.INVOICE_PAID: _invoice_paid,
    SubscriptionEventType.SUBSCRIPTION_UPDATED: _subscription_updated,
    SubscriptionEventType.SUBSCRIPTION_DELETED: _subscription_deleted,
}


def apply_subscription_event(db: Session, event: SubscriptionEvent, now: Optional[datetime] = None) -> Optional[User]:
    """Apply ``event`` to the matching account. Returns None when no account matches."""
    now = now or datetime.utcnow()
    user = _find_user(db, event)
    if user is None:
        logger.warning(
            "No account for %s event (user=%s customer=%s subscription=%s)",
            event.type.value,
            event.user_id,
            event.stripe_customer_id,
            event.stripe_subscription_id,
        )
        return None

    with guarded_write(db, f"apply {event.type.value}", user_id=user.id):
        _HANDLERS[event.type](db, user, event, now)
        db.commit()
    logger.info(
        "Applied %s for user %s: plan=%s status=%s expires=%s",
        event.type.value,
        user.id,
        user.plan_active,
        user.subscription_status,
        user.plan_expire_at,
    )
    return user
