import logging

from celery import current_app
from sqlalchemy.exc import SQLAlchemyError

import models  # noqa: F401
from core.db import db_session
from core.errors import IntegrityError
from services.entitlements import downgrade_expired_subscriptions
from services.subscriptions import SubscriptionEvent, apply_subscription_event

logger = logging.getLogger(__name__)


@current_app.task(bind=True, max_retries=5)
def process_subscription_event(self, event: dict):
    """
    Apply a normalized billing event to the matching account.
    Retries with exponential backoff when the database write fails.
    """
    subscription_event = SubscriptionEvent(**event)
    try:
        with db_session() as db:
            user = apply_subscription_event(db, subscription_event)
            user_id = user.id if user else None
    except (IntegrityError, SQLAlchemyError) as exc:
        countdown = min(2 ** self.request.retries, 60)
        logger.warning("Retrying %s in %ss: %s", subscription_event.type.value, countdown, exc)
        raise self.retry(exc=exc, countdown=countdown)

    return {"status": "applied" if user_id else "ignored", "user_id": user_id}


@current_app.task
def downgrade_expired_plans():
    """Periodic sweep moving expired paid plans to the free tier."""
    with db_session() as db:
        count = downgrade_expired_subscriptions(db)
    if count:
        logger.info("Downgraded %s expired subscriptions", count)
    return {"downgraded": count}
