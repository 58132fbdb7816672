"""Server-side pricing for order lines and coupons.

Client-supplied prices are never read: every line is priced from the store's
own product rows.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Optional, Sequence

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from core.errors import NotFoundError, ValidationError
from models.coupon import Coupon
from models.product import Product

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def _to_decimal(value: float | int | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _money(value: float | int | Decimal) -> Decimal:
    return _to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


@dataclass
class OrderItemDraft:
    product_id: int
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    notes: Optional[str] = None


@dataclass
class ReconciledItems:
    items: List[OrderItemDraft] = field(default_factory=list)
    subtotal: Decimal = ZERO


@dataclass
class CouponResult:
    discount: Decimal = ZERO
    coupon_id: Optional[int] = None
    error: Optional[str] = None


def unit_price_for(product: Product) -> Decimal:
    if product.discount_price is not None:
        return _money(product.discount_price)
    return _money(product.price)


def reconcile_items(db: Session, items: Sequence[Any], store_id: int) -> ReconciledItems:
    """Price ``items`` (mappings or objects with product_id/quantity/notes) against ``store_id``'s catalog."""
    if not items:
        raise ValidationError("Order has no items")

    # Fetch all products in a single query
    product_ids = [_field(item, "product_id") for item in items]
    products_map = {
        p.id: p for p in db.query(Product).filter(Product.store_id == store_id, Product.id.in_(product_ids)).all()
    }

    if len(products_map) != len(set(product_ids)):
        missing = sorted(pid for pid in set(product_ids) if pid not in products_map)
        raise NotFoundError(
            "One or more products were not found or do not belong to this store", product_ids=missing
        )

    unavailable = sorted(p.id for p in products_map.values() if p.status != "active")
    if unavailable:
        raise ValidationError("One or more products are not available right now", product_ids=unavailable)

    result = ReconciledItems()
    for item in items:
        product = products_map[_field(item, "product_id")]
        quantity = _field(item, "quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Invalid quantity for product {product.name}", product_id=product.id)

        unit_price = unit_price_for(product)
        total_price = unit_price * quantity
        result.subtotal += total_price
        result.items.append(
            OrderItemDraft(
                product_id=product.id,
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
                notes=_field(item, "notes"),
            )
        )
    return result


def compute_discount(coupon: Coupon, subtotal: Decimal) -> Decimal:
    """Discount for ``subtotal``: percentage or fixed, capped by max_discount_amount and the subtotal."""
    value = _to_decimal(coupon.discount_value)
    if coupon.discount_type == "percentage":
        discount = _money(subtotal * value / 100)
    else:
        discount = _money(value)
    if coupon.max_discount_amount is not None:
        discount = min(discount, _money(coupon.max_discount_amount))
    return min(discount, _money(subtotal))


def _claim_usage(db: Session, coupon_id: int) -> bool:
    result = db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit),
        )
        .values(usage_count=Coupon.usage_count + 1)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


def _reject(code: str, store_id: int, error: str) -> CouponResult:
    logger.info("Coupon %s rejected for store %s: %s", code, store_id, error)
    return CouponResult(error=error)


def apply_coupon(
    db: Session, code: Optional[str], store_id: int, subtotal: Decimal, now: Optional[datetime] = None
) -> CouponResult:
    """Look up and redeem a coupon.

    Failures are soft: the result carries ``error`` and a zero discount, and the
    caller decides whether to surface it. A successful redemption increments
    ``usage_count`` inside the caller's transaction.
    """
    if not code:
        return CouponResult()
    now = now or datetime.utcnow()
    code = code.strip().upper()
    subtotal = _money(subtotal)

    coupon = (
        db.query(Coupon)
        .filter(
            Coupon.store_id == store_id,
            Coupon.code == code,
            Coupon.is_active.is_(True),
            Coupon.valid_from <= now,
            Coupon.valid_until >= now,
        )
        .one_or_none()
    )
    if coupon is None:
        return _reject(code, store_id, "Invalid or expired coupon")

    if coupon.min_order_value is not None and subtotal < _money(coupon.min_order_value):
        return _reject(
            code,
            store_id,
            f"Minimum order value not reached. The order must be at least R$ {_money(coupon.min_order_value):.2f}",
        )

    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        return _reject(code, store_id, "Coupon usage limit reached")

    discount = compute_discount(coupon, subtotal)
    if not _claim_usage(db, coupon.id):
        return _reject(code, store_id, "Coupon usage limit reached")
    return CouponResult(discount=discount, coupon_id=coupon.id)


def delivery_fee(store, address) -> Decimal:
    # Flat zero until per-store delivery zones exist
    return ZERO
