"""Merchant dashboard figures.

Weeks start on Sunday and every boundary is taken in UTC. Revenue counts
orders that were accepted by the store and not cancelled or refused.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.customer import Customer
from models.order import Order
from models.order_item import OrderItem
from models.product import Product
from services.order_workflow import OrderStatus

logger = logging.getLogger(__name__)

PENDING_STATES = (OrderStatus.EM_PROCESSAMENTO.value, OrderStatus.EM_PREPARACAO.value)
REVENUE_STATES = (OrderStatus.EM_PREPARACAO.value, OrderStatus.EM_ROTA.value, OrderStatus.FINALIZADO.value)
DAY_LABELS = ("Dom", "Seg", "Ter", "Qua", "Qui", "Sex", "Sáb")
TOP_PRODUCTS = 5


def _growth(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round((current / previous - 1) * 100, 1)


def _money(value) -> float:
    return float(Decimal(value or 0).quantize(Decimal("0.01")))


def _count_orders(db: Session, store_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None) -> int:
    qs = db.query(func.count(Order.id)).filter(Order.store_id == store_id)
    if start is not None:
        qs = qs.filter(Order.created_at >= start)
    if end is not None:
        qs = qs.filter(Order.created_at < end)
    return qs.scalar() or 0


def _revenue(db: Session, store_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None):
    qs = db.query(func.coalesce(func.sum(Order.total), 0)).filter(
        Order.store_id == store_id, Order.status.in_(REVENUE_STATES)
    )
    if start is not None:
        qs = qs.filter(Order.created_at >= start)
    if end is not None:
        qs = qs.filter(Order.created_at < end)
    return qs.scalar()


def _count_customers(db: Session, store_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None) -> int:
    qs = db.query(func.count(Customer.id)).filter(Customer.store_id == store_id)
    if start is not None:
        qs = qs.filter(Customer.created_at >= start)
    if end is not None:
        qs = qs.filter(Customer.created_at < end)
    return qs.scalar() or 0


def week_start(now: datetime) -> datetime:
    """Midnight of the Sunday that opens the week containing ``now``."""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return today - timedelta(days=(today.weekday() + 1) % 7)


def sales_chart(db: Session, store_id: int, start: datetime) -> List[Dict[str, Any]]:
    rows = (
        db.query(Order.created_at, Order.total)
        .filter(
            Order.store_id == store_id,
            Order.status.in_(REVENUE_STATES),
            Order.created_at >= start,
            Order.created_at < start + timedelta(days=7),
        )
        .all()
    )
    totals = [Decimal(0)] * 7
    for created_at, total in rows:
        totals[(created_at - start).days] += Decimal(total or 0)
    return [{"day": label, "value": _money(totals[i])} for i, label in enumerate(DAY_LABELS)]


def popular_products(db: Session, store_id: int, limit: int = TOP_PRODUCTS) -> List[Dict[str, Any]]:
    sold = func.sum(OrderItem.quantity).label("sold")
    rows = (
        db.query(Product.name, sold)
        .join(OrderItem, OrderItem.product_id == Product.id)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.store_id == store_id, Order.status.in_(REVENUE_STATES))
        .group_by(Product.id, Product.name)
        .order_by(sold.desc(), Product.name)
        .limit(limit)
        .all()
    )
    return [{"name": name, "sales": int(total or 0)} for name, total in rows]


def dashboard_insights(db: Session, store_id: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    this_week = week_start(now)
    last_week = this_week - timedelta(days=7)

    orders_this_week = _count_orders(db, store_id, this_week)
    orders_last_week = _count_orders(db, store_id, last_week, this_week)
    pending = (
        db.query(func.count(Order.id))
        .filter(Order.store_id == store_id, Order.status.in_(PENDING_STATES))
        .scalar()
        or 0
    )

    revenue_this_week = _revenue(db, store_id, this_week)
    revenue_last_week = _revenue(db, store_id, last_week, this_week)

    new_customers = _count_customers(db, store_id, this_week)
    new_customers_last_week = _count_customers(db, store_id, last_week, this_week)

    logger.debug("Dashboard insights computed for store %s", store_id)
    return {
        "orders_stats": {
            "total": _count_orders(db, store_id),
            "today": _count_orders(db, store_id, today),
            "growth": _growth(orders_this_week, orders_last_week),
        },
        "pending_orders": {"count": pending, "last_update": now},
        "revenue": {
            "total": _money(_revenue(db, store_id)),
            "this_week": _money(revenue_this_week),
            "growth": _growth(float(revenue_this_week or 0), float(revenue_last_week or 0)),
        },
        "customers": {
            "total": _count_customers(db, store_id),
            "new_this_week": new_customers,
            "growth": _growth(new_customers, new_customers_last_week),
        },
        "sales_chart": {"data": sales_chart(db, store_id, this_week), "current_day": DAY_LABELS[(now.weekday() + 1) % 7]},
        "popular_products": popular_products(db, store_id),
    }
