from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app
from core import config as core_config
from core.db import Base, build_engine, get_db
from models.category import ProductCategory
from models.coupon import Coupon
from models.product import Product
from models.store import Store
from models.user import User
from security.password import hash_password
from security import jwt as jwt_utils


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.REFRESH_SECRET = "test-refresh"
    core_config.settings.TESTING = True
    core_config.settings.SUBSCRIPTION_EVENTS_ASYNC = False
    core_config.settings.COUPON_STRICT_DASHBOARD_ORDERS = False
    core_config.settings.COUPON_STRICT_CUSTOMER_ORDERS = True
    core_config.settings.FREE_TIER_MONTHLY_CUSTOMER_CAP = 100
    core_config.settings.RATE_LIMIT_ENABLED = False
    yield


@pytest.fixture()
def session_factory():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture()
def db_session_override(session_factory):
    db = session_factory()

    def _get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()


@pytest.fixture()
def db(db_session_override):
    return db_session_override


@pytest.fixture()
def client(db_session_override):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    """Factory for merchant accounts."""
    def _make_user(email="owner@example.com", plan_active="plan-free", plan_expire_at=None):
        user = User(
            first_name="Test",
            last_name="Owner",
            email=email,
            password_hash=hash_password("testpass123"),
            plan_active=plan_active,
            plan_expire_at=plan_expire_at,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def make_store(db):
    """Factory for stores owned by a given user."""
    def _make_store(user, name="Test Store", slug=None, status="active", payment_methods=None):
        store = Store(
            user_id=user.id,
            name=name,
            slug=slug or f"store-{user.id}",
            status=status,
            payment_methods=payment_methods or ["pix", "cartao", "dinheiro"],
        )
        db.add(store)
        db.commit()
        db.refresh(store)
        return store
    return _make_store


@pytest.fixture
def test_user(make_user):
    return make_user()


@pytest.fixture
def test_store(make_store, test_user):
    return make_store(test_user)


@pytest.fixture
def auth_token(test_user):
    """Generate a valid JWT token for test user."""
    return jwt_utils.create_access_token(str(test_user.id))


@pytest.fixture
def auth_headers(auth_token):
    """Return authorization headers with valid token."""
    return {"Authorization": f"Bearer {auth_token}"}


@pytest.fixture
def make_product(db, test_store):
    def _make_product(name="X-Burger", price="19.90", discount_price=None, status="active", store=None, category_id=None):
        target = store or test_store
        product = Product(
            store_id=target.id,
            name=name,
            slug=f"{name.lower().replace(' ', '-')}-{target.id}",
            price=Decimal(price),
            discount_price=Decimal(discount_price) if discount_price is not None else None,
            status=status,
            category_id=category_id,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product
    return _make_product


@pytest.fixture
def make_category(db, test_store):
    def _make_category(name="Lanches", store=None):
        category = ProductCategory(store_id=(store or test_store).id, name=name)
        db.add(category)
        db.commit()
        db.refresh(category)
        return category
    return _make_category


@pytest.fixture
def make_coupon(db, test_store):
    def _make_coupon(code="PROMO10", discount_type="percentage", discount_value="10", **kwargs):
        now = datetime.utcnow()
        coupon = Coupon(
            store_id=kwargs.pop("store_id", test_store.id),
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            valid_from=kwargs.pop("valid_from", now - timedelta(days=1)),
            valid_until=kwargs.pop("valid_until", now + timedelta(days=30)),
            **kwargs,
        )
        db.add(coupon)
        db.commit()
        db.refresh(coupon)
        return coupon
    return _make_coupon


@pytest.fixture
def order_payload():
    """Builder for order request bodies."""
    def _order_payload(items, phone="11999990000", payment_method="pix", coupon_code=None, name="Maria Silva"):
        payload = {
            "customer": {"name": name, "phone": phone},
            "address": {
                "street": "Rua das Flores",
                "number": "42",
                "neighborhood": "Centro",
                "city": "Sao Paulo",
                "zip_code": "01001-000",
            },
            "items": items,
            "payment_method": payment_method,
        }
        if coupon_code:
            payload["coupon_code"] = coupon_code
        return payload
    return _order_payload
