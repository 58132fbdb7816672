"""Entitlement evaluation.

The effective tier of an account is resolved lazily on every query: a paid
plan whose expiry has passed is treated as the free tier and the stored record
is corrected on the spot. ``resolve_effective_tier`` is pure and returns the
correction as a ``DowngradeIntent``; the ``get_*``/``check_*`` helpers apply
it against the session.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.db import guarded_write
from core.errors import EntitlementError, IntegrityError
from models.category import ProductCategory
from models.product import Product
from models.store import Store
from models.user import User
from services.plan_catalog import FREE, FREE_TIER_ID, PlanTier, get_tier, list_tiers, minimal_tier_for

logger = logging.getLogger(__name__)

LIMITED_RESOURCES = {"product": Product, "category": ProductCategory}


@dataclass(frozen=True)
class DowngradeIntent:
    user_id: int
    as_of: datetime
    plan_active: str = FREE_TIER_ID
    plan_expire_at: Optional[datetime] = None


@dataclass(frozen=True)
class LimitCheck:
    current_count: int
    limit: Optional[int]
    can_create: bool
    tier_id: str


def resolve_effective_tier(subscription, now: Optional[datetime] = None) -> Tuple[PlanTier, Optional[DowngradeIntent]]:
    """Return the tier in force for ``subscription`` and the write needed to persist it, if any."""
    now = now or datetime.utcnow()
    tier = get_tier(subscription.plan_active)
    expire_at = subscription.plan_expire_at
    if tier.is_paid and expire_at is not None and expire_at < now:
        return FREE, DowngradeIntent(user_id=subscription.id, as_of=now)
    return tier, None


def apply_downgrade(db: Session, intent: DowngradeIntent) -> int:
    """Persist a downgrade. Renewals that landed in the meantime are left alone."""
    with guarded_write(db, "downgrade expired plan", user_id=intent.user_id):
        updated = (
            db.query(User)
            .filter(User.id == intent.user_id, User.plan_expire_at < intent.as_of)
            .update(
                {User.plan_active: intent.plan_active, User.plan_expire_at: intent.plan_expire_at},
                synchronize_session="fetch",
            )
        )
        db.commit()
    if updated:
        logger.info("Plan expired for user %s, downgraded to %s", intent.user_id, intent.plan_active)
    return updated


def _load_tier(db: Session, user_id: int) -> Optional[PlanTier]:
    try:
        user = db.query(User).filter(User.id == user_id).one_or_none()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Could not read subscription for user %s: %s", user_id, exc)
        return None
    if user is None:
        return FREE

    tier, intent = resolve_effective_tier(user)
    if intent is not None:
        try:
            apply_downgrade(db, intent)
        except IntegrityError:
            # The free tier is already in force for this request
            logger.warning("Downgrade for user %s will be retried on the next check", user_id)
    return tier


def get_effective_tier(db: Session, user_id: int) -> PlanTier:
    """Effective tier for ``user_id``; falls back to the free tier when the read fails."""
    return _load_tier(db, user_id) or FREE


def has_feature(db: Session, feature: str, user_id: int) -> bool:
    tier = _load_tier(db, user_id)
    if tier is None:
        return False
    return tier.includes(feature)


def require_feature(db: Session, feature: str, user_id: int) -> None:
    if has_feature(db, feature, user_id):
        return
    required = minimal_tier_for(feature)
    current = get_effective_tier(db, user_id)
    logger.info("User %s denied feature %s on %s", user_id, feature, current.id)
    raise EntitlementError(
        "Access denied",
        detail=f"The '{feature}' feature requires the {required.description} or higher",
        required_feature=feature,
        required_tier=required.id,
        current_tier=current.id,
    )


def _count(db: Session, resource: str, store_id: int) -> int:
    model = LIMITED_RESOURCES[resource]
    return db.query(func.count(model.id)).filter(model.store_id == store_id).scalar() or 0


def check_create_limit(db: Session, resource: str, store_id: int, user_id: int) -> LimitCheck:
    """Check whether one more ``resource`` may be created for ``store_id``.

    The store row stays locked until the caller's transaction ends, so the
    count and the following insert are not interleaved with another request.
    """
    if resource not in LIMITED_RESOURCES:
        raise ValueError(f"Unknown limited resource: {resource}")
    tier = get_effective_tier(db, user_id)
    limit = tier.limit_for(resource)
    with guarded_write(db, f"count {resource}s", store_id=store_id):
        db.query(Store.id).filter(Store.id == store_id).with_for_update().one_or_none()
        current = _count(db, resource, store_id)
    can_create = limit is None or current < limit
    return LimitCheck(current_count=current, limit=limit, can_create=can_create, tier_id=tier.id)


def _limit_error(resource: str, check: LimitCheck, current_count: int) -> EntitlementError:
    label = "Product" if resource == "product" else "Category"
    return EntitlementError(
        f"{label} limit reached",
        detail=f"Your plan allows up to {check.limit} {resource} entries. Upgrade to add more.",
        current_count=current_count,
        limit=check.limit,
        tier_id=check.tier_id,
    )


def require_create_limit(db: Session, resource: str, store_id: int, user_id: int) -> LimitCheck:
    check = check_create_limit(db, resource, store_id, user_id)
    if not check.can_create:
        logger.info("Store %s hit %s limit (%s/%s)", store_id, resource, check.current_count, check.limit)
        raise _limit_error(resource, check, check.current_count)
    return check


def enforce_limit_after_insert(db: Session, resource: str, store_id: int, check: LimitCheck) -> None:
    """Recount after the new row is flushed and undo the insert if a concurrent create overtook the limit.

    Must run in the same transaction as the insert, before it commits.
    """
    if check.limit is None:
        return
    with guarded_write(db, f"recount {resource}s", store_id=store_id):
        current = _count(db, resource, store_id)
    if current <= check.limit:
        return
    db.rollback()
    logger.warning("Store %s raced past %s limit (%s/%s), insert undone", store_id, resource, current, check.limit)
    raise _limit_error(resource, check, current - 1)


def _usage(current: int, limit: Optional[int]) -> Dict[str, Any]:
    percentage = 0 if limit is None else round(current / limit * 100)
    return {"current": current, "limit": limit, "percentage": percentage}


def describe_tier(tier: PlanTier) -> Dict[str, Any]:
    return {
        "id": tier.id,
        "name": tier.name,
        "description": tier.description,
        "limits": {"products": tier.max_products, "categories": tier.max_categories},
        "features": sorted(tier.features),
    }


def plan_info(db: Session, user: User, store_id: Optional[int] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Summary of the account's plan, with usage when the account has a store."""
    now = now or datetime.utcnow()
    tier = get_effective_tier(db, user.id)
    expires_at = user.plan_expire_at if tier.is_paid else None
    days_remaining = None
    if expires_at is not None:
        days_remaining = max(0, math.ceil((expires_at - now).total_seconds() / 86400))

    info = describe_tier(tier)
    info.update(
        {
            "status": "active",
            "subscription_status": user.subscription_status,
            "expires_at": expires_at,
            "days_remaining": days_remaining,
            "usage": None,
        }
    )
    if store_id is not None:
        info["usage"] = {
            "products": _usage(_count(db, "product", store_id), tier.max_products),
            "categories": _usage(_count(db, "category", store_id), tier.max_categories),
        }
    return info


def list_plans(current: PlanTier) -> List[Dict[str, Any]]:
    plans = []
    for tier in list_tiers():
        entry = describe_tier(tier)
        entry["is_current"] = tier.id == current.id
        plans.append(entry)
    return plans


def downgrade_expired_subscriptions(db: Session, now: Optional[datetime] = None) -> int:
    """Sweep every expired paid subscription through the same resolve/apply path."""
    now = now or datetime.utcnow()
    paid_ids = [tier.id for tier in list_tiers() if tier.is_paid]
    expired = (
        db.query(User)
        .filter(User.plan_active.in_(paid_ids), User.plan_expire_at.isnot(None), User.plan_expire_at < now)
        .all()
    )
    downgraded = 0
    for user in expired:
        _, intent = resolve_effective_tier(user, now)
        if intent is not None:
            downgraded += apply_downgrade(db, intent)
    return downgraded
