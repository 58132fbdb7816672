"""Storefront customers and the free-tier monthly new-customer cap."""
import logging
import re
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import EntitlementError, ValidationError
from models.customer import Customer
from models.store_usage import StoreMonthlyUsage
from services.plan_catalog import PlanTier

logger = logging.getLogger(__name__)

MIN_PHONE_DIGITS = 10


def normalize_phone(phone: Optional[str]) -> str:
    return re.sub(r"\D", "", phone or "")


def customer_cap_for(tier: PlanTier) -> Optional[int]:
    if tier.is_paid:
        return None
    return settings.FREE_TIER_MONTHLY_CUSTOMER_CAP


def _period(now: datetime) -> str:
    return now.strftime("%Y-%m")


def _ensure_usage_row(db: Session, store_id: int, now: datetime) -> None:
    period = _period(now)
    exists = (
        db.query(StoreMonthlyUsage.id)
        .filter(StoreMonthlyUsage.store_id == store_id, StoreMonthlyUsage.period == period)
        .first()
    )
    if exists is not None:
        return

    month_start = datetime(now.year, now.month, 1)
    created_this_month = (
        db.query(func.count(Customer.id))
        .filter(Customer.store_id == store_id, Customer.created_at >= month_start)
        .scalar()
    ) or 0
    try:
        with db.begin_nested():
            db.add(StoreMonthlyUsage(store_id=store_id, period=period, new_customers=created_this_month))
    except SQLIntegrityError:
        # Row created by a concurrent request; its counter is used as is
        logger.debug("Usage row for store %s %s already present", store_id, period)


def reserve_new_customer_slot(db: Session, store_id: int, cap: Optional[int], now: Optional[datetime] = None) -> None:
    """Count one new customer for this month, refusing when ``cap`` is already reached.

    The increment is a single conditional UPDATE, so two requests racing for the
    last slot cannot both succeed.
    """
    now = now or datetime.utcnow()
    period = _period(now)
    _ensure_usage_row(db, store_id, now)

    conditions = [StoreMonthlyUsage.store_id == store_id, StoreMonthlyUsage.period == period]
    if cap is not None:
        conditions.append(StoreMonthlyUsage.new_customers < cap)
    result = db.execute(
        update(StoreMonthlyUsage)
        .where(*conditions)
        .values(new_customers=StoreMonthlyUsage.new_customers + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return

    current = (
        db.query(StoreMonthlyUsage.new_customers)
        .filter(StoreMonthlyUsage.store_id == store_id, StoreMonthlyUsage.period == period)
        .scalar()
    )
    logger.info("Store %s reached the monthly customer cap (%s/%s)", store_id, current, cap)
    raise EntitlementError(
        "Monthly customer limit reached",
        detail=f"The free plan accepts up to {cap} new customers per month. Upgrade to keep growing.",
        current_count=current,
        limit=cap,
        tier_id="plan-free",
    )


def find_customer(db: Session, store_id: int, phone: str) -> Optional[Customer]:
    return (
        db.query(Customer)
        .filter(Customer.store_id == store_id, Customer.phone == normalize_phone(phone))
        .one_or_none()
    )


def upsert_customer(
    db: Session,
    store_id: int,
    name: str,
    phone: str,
    email: Optional[str] = None,
    cap: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Tuple[Customer, bool]:
    """Find the store's customer by phone or create one. Returns ``(customer, created)``.

    Only creations count against ``cap``; returning customers are never blocked.
    Changes are flushed, not committed.
    """
    digits = normalize_phone(phone)
    if len(digits) < MIN_PHONE_DIGITS:
        raise ValidationError("Invalid phone number", phone=phone)

    customer = find_customer(db, store_id, digits)
    if customer is not None:
        if name and name != customer.name:
            customer.name = name
        if email:
            customer.email = email
        db.flush()
        return customer, False

    reserve_new_customer_slot(db, store_id, cap, now)
    customer = Customer(store_id=store_id, name=name, phone=digits, email=email)
    db.add(customer)
    db.flush()
    logger.info("Customer %s registered for store %s", customer.id, store_id)
    return customer, True
