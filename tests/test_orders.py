"""
Tests for order placement and lifecycle services.
"""
from datetime import datetime
from decimal import Decimal
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from core.errors import EntitlementError, IntegrityError, NotFoundError, StateTransitionError, ValidationError
from models.customer import Customer
from models.order import Order
from models.order_item import OrderItem
from models.store_usage import StoreMonthlyUsage
from schemas.order import CustomerOrderCreate, OrderCreate
from security import jwt as jwt_utils
from services import customers as customer_service
from services import orders as order_service


@pytest.fixture
def burger(make_product):
    return make_product(name="X-Burger", price="19.90")


@pytest.fixture
def place(db, test_user, order_payload, burger):
    """Place a dashboard order for two burgers."""
    def _place(**kwargs):
        items = kwargs.pop("items", [{"product_id": burger.id, "quantity": 2}])
        return order_service.create_order(db, test_user, OrderCreate(**order_payload(items, **kwargs)))
    return _place


@pytest.fixture
def place_from_app(db, test_store, order_payload, burger):
    def _place(**kwargs):
        items = kwargs.pop("items", [{"product_id": burger.id, "quantity": 1}])
        data = CustomerOrderCreate(**order_payload(items, **kwargs), device_info={"platform": "web"})
        return order_service.create_customer_order(db, test_store.id, data)
    return _place


def _fill_customer_cap(db, store, count):
    for i in range(count):
        db.add(Customer(store_id=store.id, name=f"Customer {i}", phone=f"1190000{i:04d}"))
    db.commit()


class TestPlaceOrder:
    """Order creation."""

    def test_order_is_priced_server_side(self, db, place):
        order = place()

        assert order.subtotal == Decimal("39.80")
        assert order.discount == Decimal("0.00")
        assert order.delivery_fee == Decimal("0.00")
        assert order.total == Decimal("39.80")
        assert order.status == "em_processamento"
        assert order.payment_status == "pendente"
        assert order.origin == "dashboard"
        assert len(order.items) == 1
        assert order.items[0].unit_price == Decimal("19.90")
        assert [h.notes for h in order.status_history] == ["Order received"]

    def test_coupon_discount_applied(self, db, place, make_coupon):
        coupon = make_coupon(code="PROMO10")
        order = place(coupon_code="promo10")
        db.refresh(coupon)

        assert order.discount == Decimal("3.98")
        assert order.total == Decimal("35.82")
        assert order.coupon_id == coupon.id
        assert coupon.usage_count == 1

    def test_dashboard_ignores_bad_coupon(self, db, place):
        order = place(coupon_code="NOPE")
        assert order.discount == Decimal("0.00")
        assert order.coupon_id is None

    def test_storefront_rejects_bad_coupon(self, db, place_from_app):
        with pytest.raises(ValidationError) as exc:
            place_from_app(coupon_code="NOPE")
        assert exc.value.message == "Invalid or expired coupon"
        assert db.query(Order).count() == 0
        assert db.query(Customer).count() == 0

    def test_returning_customer_is_reused(self, db, place):
        first = place(phone="(11) 99999-0000")
        second = place(phone="11999990000", name="Maria S.")
        assert first.customer_id == second.customer_id
        assert db.query(Customer).count() == 1
        assert db.get(Customer, first.customer_id).name == "Maria S."

    def test_unknown_product_creates_nothing(self, db, place):
        with pytest.raises(NotFoundError):
            place(items=[{"product_id": 9999, "quantity": 1}])
        assert db.query(Order).count() == 0

    def test_items_failure_deletes_order(self, db, place, monkeypatch):
        monkeypatch.setattr(order_service, "_insert_order_items", Mock(side_effect=SQLAlchemyError("disk full")))

        with pytest.raises(IntegrityError) as exc:
            place()

        assert exc.value.status_code == 500
        assert db.query(Order).count() == 0
        assert db.query(OrderItem).count() == 0


class TestStorefrontOrder:
    """Orders placed by shoppers."""

    def test_returns_token_and_estimate(self, db, test_store, place_from_app):
        placed = place_from_app()

        payload = jwt_utils.decode_customer(placed.token)
        assert payload["sub"] == str(placed.order.customer_id)
        assert payload["store_id"] == test_store.id
        assert placed.estimated_time == 30
        assert placed.order.origin == "app"
        assert placed.order.device_info == {"platform": "web"}

    def test_payment_method_must_be_accepted(self, db, make_store, make_user, order_payload, make_product):
        store = make_store(make_user(email="pix@example.com"), payment_methods=["pix"])
        product = make_product(name="Acai", store=store)
        data = CustomerOrderCreate(**order_payload([{"product_id": product.id, "quantity": 1}], payment_method="dinheiro"))

        with pytest.raises(ValidationError) as exc:
            order_service.create_customer_order(db, store.id, data)
        assert exc.value.context["accepted_methods"] == ["pix"]

    def test_inactive_store(self, db, test_store, place_from_app):
        test_store.status = "inactive"
        db.commit()
        with pytest.raises(NotFoundError):
            place_from_app()


class TestCustomerCap:
    """Free-tier monthly new-customer limit."""

    def test_cap_blocks_new_customers_only(self, db, test_store, place_from_app):
        _fill_customer_cap(db, test_store, 100)

        with pytest.raises(EntitlementError) as exc:
            place_from_app(phone="11988887777")
        assert exc.value.to_dict()["limit"] == 100
        assert db.query(Order).count() == 0

        placed = place_from_app(phone="11900000007")
        assert placed.order.id is not None

    def test_paid_store_is_uncapped(self, db, test_user, test_store, place_from_app):
        test_user.plan_active = "plan-vitrine"
        db.commit()
        _fill_customer_cap(db, test_store, 100)
        assert place_from_app(phone="11988887777").order.id is not None

    def test_last_slot_goes_to_one_request(self, db, test_store):
        now = datetime.utcnow()
        customer_service.reserve_new_customer_slot(db, test_store.id, cap=1, now=now)
        with pytest.raises(EntitlementError):
            customer_service.reserve_new_customer_slot(db, test_store.id, cap=1, now=now)
        usage = db.query(StoreMonthlyUsage).filter(StoreMonthlyUsage.store_id == test_store.id).one()
        assert usage.new_customers == 1

    def test_identify_counts_against_cap(self, db, test_store):
        _fill_customer_cap(db, test_store, 100)
        with pytest.raises(EntitlementError):
            order_service.identify_customer(db, test_store.id, "New Person", "11955554444")
        result = order_service.identify_customer(db, test_store.id, "Old Friend", "11900000001")
        assert result["is_new"] is False

    def test_short_phone_rejected(self, db, test_store):
        with pytest.raises(ValidationError):
            customer_service.upsert_customer(db, test_store.id, "Ana", "12345")


class TestLifecycle:
    """Status updates, payments and cancellation."""

    def test_full_lifecycle(self, db, test_user, place):
        order = place()

        order = order_service.update_status(db, order.id, "em_preparacao", None, test_user)
        order = order_service.update_status(db, order.id, "em_rota", "Motoboy saiu", test_user)
        with pytest.raises(StateTransitionError):
            order_service.update_status(db, order.id, "cancelado", None, test_user)
        order = order_service.update_status(db, order.id, "finalizado", None, test_user)
        with pytest.raises(StateTransitionError):
            order_service.update_status(db, order.id, "em_preparacao", None, test_user)

        assert order.status == "finalizado"
        assert [h.status for h in order.status_history] == [
            "em_processamento",
            "em_preparacao",
            "em_rota",
            "finalizado",
        ]

    def test_history_failure_keeps_status(self, db, test_user, place, monkeypatch):
        order = place()
        monkeypatch.setattr(order_service, "OrderStatusHistory", Mock(side_effect=SQLAlchemyError("locked")))

        order = order_service.update_status(db, order.id, "em_preparacao", None, test_user)

        db.expire_all()
        assert db.get(Order, order.id).status == "em_preparacao"
        assert len(db.get(Order, order.id).status_history) == 1

    def test_other_merchant_cannot_see_order(self, db, make_user, make_store, place):
        order = place()
        intruder = make_user(email="intruder@example.com")
        make_store(intruder)
        with pytest.raises(NotFoundError):
            order_service.get_order(db, order.id, intruder)

    def test_payment_proof_only_for_pix(self, db, test_user, place):
        pix = place()
        cash = place(payment_method="dinheiro")

        updated = order_service.update_payment_proof(db, pix.id, "https://cdn.example.com/proof.png", test_user)
        assert updated.payment_status == "confirmado"
        assert updated.payment_proof_url == "https://cdn.example.com/proof.png"

        with pytest.raises(ValidationError):
            order_service.update_payment_proof(db, cash.id, "https://cdn.example.com/proof.png", test_user)

    def test_confirm_payment(self, db, test_user, place):
        order = place(payment_method="dinheiro")
        assert order_service.confirm_payment(db, order.id, test_user).payment_status == "confirmado"

    def test_customer_cancel(self, db, test_user, place_from_app):
        placed = place_from_app()
        customer = db.get(Customer, placed.order.customer_id)

        status = order_service.order_status_for_customer(db, placed.order.id, customer)
        assert status["can_cancel"] is True
        assert status["estimated_time_remaining"] == 25

        order = order_service.cancel_order(db, placed.order.id, customer)
        assert order.status == "cancelado"
        assert order.canceled_by == "customer"
        assert order.status_history[-1].notes == "Cancelled by customer"

    def test_customer_cannot_cancel_after_preparation(self, db, test_user, place_from_app):
        placed = place_from_app()
        customer = db.get(Customer, placed.order.customer_id)
        order_service.update_status(db, placed.order.id, "em_preparacao", None, test_user)

        with pytest.raises(StateTransitionError) as exc:
            order_service.cancel_order(db, placed.order.id, customer, "changed my mind")
        assert exc.value.context["current_status"] == "em_preparacao"

    def test_customer_sees_only_own_orders(self, db, place_from_app):
        mine = place_from_app(phone="11911112222")
        theirs = place_from_app(phone="11933334444")
        me = db.get(Customer, mine.order.customer_id)
        with pytest.raises(NotFoundError):
            order_service.order_status_for_customer(db, theirs.order.id, me)


class TestListOrders:
    """Dashboard listing filters and pagination."""

    def test_filters_and_pagination(self, db, test_user, place):
        first = place()
        place(phone="11977776666", payment_method="dinheiro")
        place(phone="11977776666", payment_method="cartao")
        order_service.update_status(db, first.id, "em_preparacao", None, test_user)

        page = order_service.list_orders(db, test_user, page=1, limit=2)
        assert page["pagination"] == {"total": 3, "page": 1, "limit": 2, "pages": 2}
        assert len(page["orders"]) == 2

        preparing = order_service.list_orders(db, test_user, status="em_preparacao")
        assert [o.id for o in preparing["orders"]] == [first.id]

        by_phone = order_service.list_orders(db, test_user, customer_phone="(11) 97777-6666")
        assert by_phone["pagination"]["total"] == 2

        cash = order_service.list_orders(db, test_user, payment_method="dinheiro")
        assert cash["pagination"]["total"] == 1

    def test_invalid_status_filter(self, db, test_user, test_store):
        with pytest.raises(ValidationError):
            order_service.list_orders(db, test_user, status="lost")
