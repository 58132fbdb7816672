"""Order placement and lifecycle.

Placement runs in two phases: the order header is committed first, then the
items and the opening history row. If the second phase fails the header is
deleted again (compensating delete). Coupon redemptions and customer-cap
reservations committed with the header are not reverted.
"""
import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.config import settings
from core.db import guarded_write
from core.errors import DomainError, IntegrityError, NotFoundError, StateTransitionError, ValidationError
from models.customer import Address, Customer
from models.order import Order
from models.order_item import OrderItem
from models.order_status_history import OrderStatusHistory
from models.store import Store
from models.user import User
from security import jwt as jwt_utils
from services import order_workflow as workflow
from services.customers import customer_cap_for, normalize_phone, upsert_customer
from services.entitlements import get_effective_tier
from services.pricing import OrderItemDraft, apply_coupon, delivery_fee, reconcile_items
from services.stores import accepted_payment_methods, get_active_store, get_owner_store

logger = logging.getLogger(__name__)

ORDER_RECEIVED_NOTE = "Order received"
CUSTOMER_CANCEL_REASON = "Cancelled by customer"


@dataclass
class PlacedOrder:
    order: Order
    token: str
    estimated_time: int


def _place_order(
    db: Session,
    store: Store,
    data,
    origin: str,
    strict_coupon: bool,
    device_info: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Order:
    now = now or datetime.utcnow()
    tier = get_effective_tier(db, store.user_id)

    try:
        with guarded_write(db, "register order customer", store_id=store.id):
            customer, _ = upsert_customer(
                db,
                store.id,
                data.customer.name,
                data.customer.phone,
                data.customer.email,
                cap=customer_cap_for(tier),
                now=now,
            )
            address = Address(customer_id=customer.id, **data.address.dict())
            db.add(address)
            db.flush()

        reconciled = reconcile_items(db, [item.dict() for item in data.items], store.id)
        coupon = apply_coupon(db, data.coupon_code, store.id, reconciled.subtotal, now)
        if coupon.error and strict_coupon:
            raise ValidationError(coupon.error, coupon_code=data.coupon_code)
    except DomainError:
        db.rollback()
        raise

    fee = delivery_fee(store, address)
    order = Order(
        store_id=store.id,
        customer_id=customer.id,
        address_id=address.id,
        coupon_id=coupon.coupon_id,
        status=workflow.INITIAL_STATUS.value,
        payment_method=data.payment_method,
        payment_status=workflow.PaymentStatus.PENDENTE.value,
        change_for=data.change_for,
        subtotal=reconciled.subtotal,
        delivery_fee=fee,
        discount=coupon.discount,
        total=reconciled.subtotal + fee - coupon.discount,
        notes=data.notes,
        origin=origin,
        device_info=device_info,
    )
    with guarded_write(db, "create order", store_id=store.id):
        db.add(order)
        db.commit()

    try:
        _insert_order_items(db, order, reconciled.items)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Item insert failed for order %s: %s", order.id, exc)
        _compensate_order(db, order.id)
        raise IntegrityError("Failed to create order items", order_id=order.id) from exc

    db.refresh(order)
    logger.info("Order %s placed for store %s (%s, total %s)", order.id, store.id, origin, order.total)
    return order


def _insert_order_items(db: Session, order: Order, drafts: List[OrderItemDraft]) -> None:
    db.add_all(
        [
            OrderItem(
                order_id=order.id,
                product_id=draft.product_id,
                quantity=draft.quantity,
                unit_price=draft.unit_price,
                total_price=draft.total_price,
                notes=draft.notes,
            )
            for draft in drafts
        ]
    )
    db.add(OrderStatusHistory(order_id=order.id, status=order.status, notes=ORDER_RECEIVED_NOTE))
    db.commit()


def _compensate_order(db: Session, order_id: int) -> None:
    try:
        db.query(Order).filter(Order.id == order_id).delete(synchronize_session="fetch")
        db.commit()
        logger.warning("Order %s deleted after its items could not be saved", order_id)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.critical("Compensating delete failed, order %s left without items: %s", order_id, exc)


def create_order(db: Session, user: User, data) -> Order:
    """Place an order from the merchant dashboard."""
    store = get_owner_store(db, user)
    return _place_order(db, store, data, origin="dashboard", strict_coupon=settings.COUPON_STRICT_DASHBOARD_ORDERS)


def create_customer_order(db: Session, store_id: int, data) -> PlacedOrder:
    """Place an order from the public storefront and issue the shopper's token."""
    store = get_active_store(db, store_id)
    accepted = accepted_payment_methods(store)
    if data.payment_method not in accepted:
        raise ValidationError("Payment method not accepted by this store", accepted_methods=accepted)

    order = _place_order(
        db,
        store,
        data,
        origin="app",
        strict_coupon=settings.COUPON_STRICT_CUSTOMER_ORDERS,
        device_info=getattr(data, "device_info", None),
    )
    token = jwt_utils.create_customer_token(order.customer_id, store.id)
    return PlacedOrder(order=order, token=token, estimated_time=settings.ESTIMATED_DELIVERY_MINUTES)


def _get_owned_order(db: Session, order_id: int, user: User) -> Order:
    order = (
        db.query(Order)
        .join(Store, Store.id == Order.store_id)
        .filter(Order.id == order_id, Store.user_id == user.id)
        .one_or_none()
    )
    if not order:
        raise NotFoundError("Order not found", order_id=order_id)
    return order


def get_order(db: Session, order_id: int, user: User) -> Order:
    return _get_owned_order(db, order_id, user)


def _record_history(db: Session, order: Order, status: str, notes: Optional[str]) -> None:
    try:
        db.add(OrderStatusHistory(order_id=order.id, status=status, notes=notes))
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Status history not recorded for order %s (%s): %s", order.id, status, exc)


def update_status(db: Session, order_id: int, new_status: str, notes: Optional[str], user: User) -> Order:
    order = _get_owned_order(db, order_id, user)
    target = workflow.validate_transition(order.status, new_status)

    with guarded_write(db, "update order status", order_id=order.id):
        order.status = target.value
        db.commit()
    logger.info("Order %s moved to %s", order.id, target.value)

    # The status change stands even if the history row is lost
    _record_history(db, order, target.value, notes)
    db.refresh(order)
    return order


def update_payment_proof(db: Session, order_id: int, payment_proof_url: str, user: User) -> Order:
    order = _get_owned_order(db, order_id, user)
    if order.payment_method != workflow.PaymentMethod.PIX.value:
        raise ValidationError(
            "Payment proof is only accepted for pix orders", payment_method=order.payment_method
        )
    with guarded_write(db, "save payment proof", order_id=order.id):
        order.payment_proof_url = str(payment_proof_url)
        order.payment_status = workflow.PaymentStatus.CONFIRMADO.value
        db.commit()
        db.refresh(order)
    return order


def confirm_payment(db: Session, order_id: int, user: User) -> Order:
    order = _get_owned_order(db, order_id, user)
    with guarded_write(db, "confirm payment", order_id=order.id):
        order.payment_status = workflow.PaymentStatus.CONFIRMADO.value
        db.commit()
        db.refresh(order)
    return order


def _get_customer_order(db: Session, order_id: int, customer: Customer) -> Order:
    order = (
        db.query(Order)
        .filter(Order.id == order_id, Order.customer_id == customer.id, Order.store_id == customer.store_id)
        .one_or_none()
    )
    if not order:
        raise NotFoundError("Order not found", order_id=order_id)
    return order


def cancel_order(db: Session, order_id: int, customer: Customer, reason: Optional[str] = None) -> Order:
    """Shopper-initiated cancellation, only before the store starts preparing the order."""
    order = _get_customer_order(db, order_id, customer)
    if not workflow.customer_can_cancel(order.status):
        raise StateTransitionError("This order can no longer be cancelled", current_status=order.status)

    reason = reason or CUSTOMER_CANCEL_REASON
    with guarded_write(db, "cancel order", order_id=order.id):
        order.status = workflow.OrderStatus.CANCELADO.value
        order.canceled_by = "customer"
        order.canceled_reason = reason
        db.commit()
    logger.info("Order %s cancelled by customer %s", order.id, customer.id)

    _record_history(db, order, order.status, reason)
    db.refresh(order)
    return order


def order_status_for_customer(db: Session, order_id: int, customer: Customer) -> Dict[str, Any]:
    order = _get_customer_order(db, order_id, customer)
    return {
        "id": order.id,
        "status": order.status,
        "payment_status": order.payment_status,
        "total": order.total,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "estimated_time_remaining": workflow.estimated_minutes_remaining(order.status),
        "can_cancel": workflow.customer_can_cancel(order.status),
        "history": order.status_history,
    }


def list_orders(
    db: Session,
    user: User,
    status: Optional[str] = None,
    payment_method: Optional[str] = None,
    payment_status: Optional[str] = None,
    customer_phone: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    store = get_owner_store(db, user)
    query = db.query(Order).filter(Order.store_id == store.id)

    if status:
        query = query.filter(Order.status == workflow.parse_status(status).value)
    if payment_method:
        query = query.filter(Order.payment_method == payment_method)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if customer_phone:
        digits = normalize_phone(customer_phone)
        query = query.join(Customer, Customer.id == Order.customer_id).filter(Customer.phone.contains(digits))
    if date_from:
        query = query.filter(Order.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        query = query.filter(Order.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    total = query.with_entities(func.count(Order.id)).scalar() or 0
    orders = query.order_by(Order.created_at.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "orders": orders,
        "pagination": {"total": total, "page": page, "limit": limit, "pages": math.ceil(total / limit) if limit else 0},
    }


def identify_customer(db: Session, store_id: int, name: str, phone: str, email: Optional[str] = None) -> Dict[str, Any]:
    """Storefront sign-in by phone: returns the customer, saved addresses, recent orders and a token."""
    store = get_active_store(db, store_id)
    tier = get_effective_tier(db, store.user_id)
    try:
        with guarded_write(db, "identify customer", store_id=store.id):
            customer, created = upsert_customer(db, store.id, name, phone, email, cap=customer_cap_for(tier))
            db.commit()
    except DomainError:
        db.rollback()
        raise

    recent_orders = (
        db.query(Order)
        .filter(Order.customer_id == customer.id, Order.store_id == store.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(3)
        .all()
    )
    return {
        "customer": customer,
        "is_new": created,
        "addresses": list(customer.addresses),
        "recent_orders": recent_orders,
        "token": jwt_utils.create_customer_token(customer.id, store.id),
    }