"""
Tests for server-side order pricing and coupon redemption.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from core.errors import NotFoundError, ValidationError
from models.coupon import Coupon
from services import pricing


class TestReconcileItems:
    """Line pricing against the store catalog."""

    def test_client_prices_are_ignored(self, db, test_store, make_product):
        burger = make_product(name="X-Burger", price="19.90")
        items = [{"product_id": burger.id, "quantity": 2, "unit_price": "0.01"}]

        result = pricing.reconcile_items(db, items, test_store.id)

        assert result.subtotal == Decimal("39.80")
        assert result.items[0].unit_price == Decimal("19.90")
        assert result.items[0].total_price == Decimal("39.80")

    def test_discount_price_wins_over_list_price(self, db, test_store, make_product):
        fries = make_product(name="Fries", price="12.00", discount_price="9.50")
        result = pricing.reconcile_items(db, [{"product_id": fries.id, "quantity": 3}], test_store.id)
        assert result.subtotal == Decimal("28.50")

    def test_subtotal_sums_lines(self, db, test_store, make_product):
        a = make_product(name="A", price="10.00")
        b = make_product(name="B", price="2.55")
        result = pricing.reconcile_items(
            db, [{"product_id": a.id, "quantity": 1}, {"product_id": b.id, "quantity": 4, "notes": "no ice"}], test_store.id
        )
        assert result.subtotal == Decimal("20.20")
        assert result.items[1].notes == "no ice"

    def test_empty_order_rejected(self, db, test_store):
        with pytest.raises(ValidationError):
            pricing.reconcile_items(db, [], test_store.id)

    def test_product_from_another_store_not_found(self, db, make_user, make_store, make_product, test_store):
        other_store = make_store(make_user(email="other@example.com"))
        foreign = make_product(name="Foreign", store=other_store)

        with pytest.raises(NotFoundError) as exc:
            pricing.reconcile_items(db, [{"product_id": foreign.id, "quantity": 1}], test_store.id)
        assert exc.value.context["product_ids"] == [foreign.id]

    def test_inactive_product_rejected(self, db, test_store, make_product):
        hidden = make_product(name="Hidden", status="inactive")
        with pytest.raises(ValidationError) as exc:
            pricing.reconcile_items(db, [{"product_id": hidden.id, "quantity": 1}], test_store.id)
        assert exc.value.context["product_ids"] == [hidden.id]

    @pytest.mark.parametrize("quantity", [0, -1, "2", 1.5, None, True])
    def test_invalid_quantities_rejected(self, db, test_store, make_product, quantity):
        product = make_product()
        with pytest.raises(ValidationError):
            pricing.reconcile_items(db, [{"product_id": product.id, "quantity": quantity}], test_store.id)


class TestComputeDiscount:
    """Discount arithmetic."""

    def test_percentage_capped_by_max_discount(self):
        coupon = Coupon(discount_type="percentage", discount_value=Decimal("50"), max_discount_amount=Decimal("10"))
        assert pricing.compute_discount(coupon, Decimal("100.00")) == Decimal("10.00")

    def test_percentage_rounds_to_cents(self):
        coupon = Coupon(discount_type="percentage", discount_value=Decimal("10"))
        assert pricing.compute_discount(coupon, Decimal("39.85")) == Decimal("3.99")

    def test_fixed_discount_never_exceeds_subtotal(self):
        coupon = Coupon(discount_type="fixed", discount_value=Decimal("50"))
        assert pricing.compute_discount(coupon, Decimal("30.00")) == Decimal("30.00")


class TestApplyCoupon:
    """Coupon lookup, validation and usage counting."""

    def test_valid_coupon_redeems_once(self, db, test_store, make_coupon):
        coupon = make_coupon(code="PROMO10")

        result = pricing.apply_coupon(db, "promo10", test_store.id, Decimal("39.80"))
        db.commit()
        db.refresh(coupon)

        assert result.error is None
        assert result.discount == Decimal("3.98")
        assert result.coupon_id == coupon.id
        assert coupon.usage_count == 1

    def test_no_code_is_not_an_error(self, db, test_store):
        result = pricing.apply_coupon(db, None, test_store.id, Decimal("10"))
        assert result.discount == Decimal("0.00")
        assert result.error is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"is_active": False},
            {"valid_until": datetime.utcnow() - timedelta(days=1)},
            {"valid_from": datetime.utcnow() + timedelta(days=1)},
        ],
    )
    def test_unusable_coupon_is_soft_failure(self, db, test_store, make_coupon, overrides):
        make_coupon(code="SOFT", **overrides)
        result = pricing.apply_coupon(db, "SOFT", test_store.id, Decimal("50"))
        assert result.error == "Invalid or expired coupon"
        assert result.discount == Decimal("0.00")
        assert result.coupon_id is None

    def test_coupon_of_another_store_is_invalid(self, db, make_user, make_store, make_coupon, test_store):
        other = make_store(make_user(email="other@example.com"))
        make_coupon(code="THEIRS", store_id=other.id)
        assert pricing.apply_coupon(db, "THEIRS", test_store.id, Decimal("50")).error == "Invalid or expired coupon"

    def test_minimum_order_value(self, db, test_store, make_coupon):
        make_coupon(code="BIG", min_order_value=Decimal("50"))
        result = pricing.apply_coupon(db, "BIG", test_store.id, Decimal("49.99"))
        assert result.error.startswith("Minimum order value not reached")
        assert "50.00" in result.error

    def test_usage_limit(self, db, test_store, make_coupon):
        coupon = make_coupon(code="ONCE", usage_limit=1)

        first = pricing.apply_coupon(db, "ONCE", test_store.id, Decimal("20"))
        db.commit()
        second = pricing.apply_coupon(db, "ONCE", test_store.id, Decimal("20"))
        db.commit()
        db.refresh(coupon)

        assert first.error is None
        assert second.error == "Coupon usage limit reached"
        assert coupon.usage_count == 1

    def test_claim_is_conditional_on_current_count(self, db, test_store, make_coupon):
        """A redemption based on a stale read cannot push usage past the limit."""
        coupon = make_coupon(code="LAST", usage_limit=1)

        assert pricing._claim_usage(db, coupon.id) is True
        assert pricing._claim_usage(db, coupon.id) is False
        db.commit()
        db.refresh(coupon)
        assert coupon.usage_count == 1


def test_delivery_fee_is_zero(test_store):
    assert pricing.delivery_fee(test_store, None) == Decimal("0.00")
