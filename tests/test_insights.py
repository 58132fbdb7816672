"""
Tests for the merchant dashboard figures.
"""
from datetime import datetime, timedelta

import pytest

from models.customer import Customer
from schemas.order import OrderCreate
from services import insights
from services import orders as order_service

# Wednesday; its week opens on Sunday 2026-10-11
NOW = datetime(2026, 10, 14, 15, 0)


class TestWeekBoundaries:
    def test_week_starts_on_sunday(self):
        assert insights.week_start(NOW) == datetime(2026, 10, 11)
        assert insights.week_start(datetime(2026, 10, 11, 8, 30)) == datetime(2026, 10, 11)
        assert insights.week_start(datetime(2026, 10, 17, 23, 59)) == datetime(2026, 10, 11)

    def test_growth(self):
        assert insights._growth(3, 0) == 0.0
        assert insights._growth(3, 2) == 50.0
        assert insights._growth(1, 4) == -75.0


@pytest.fixture
def seeded(db, test_user, test_store, make_product, order_payload):
    """Orders spread over this week and the previous one."""
    burger = make_product(name="X-Burger", price="19.90")
    coke = make_product(name="Coca", price="5.00")

    def place(phone, name, status, created_at, items=None):
        items = items or [{"product_id": burger.id, "quantity": 2}]
        order = order_service.create_order(db, test_user, OrderCreate(**order_payload(items, phone=phone, name=name)))
        order.status = status
        order.created_at = created_at
        db.commit()
        return order

    place("11911110000", "Ana Lima", "finalizado", datetime(2026, 10, 14, 10, 0))
    place(
        "11922220000",
        "Bruno Reis",
        "em_preparacao",
        datetime(2026, 10, 12, 19, 0),
        items=[{"product_id": burger.id, "quantity": 2}, {"product_id": coke.id, "quantity": 1}],
    )
    place("11911110000", "Ana Lima", "cancelado", datetime(2026, 10, 13, 12, 0))
    place("11911110000", "Ana Lima", "em_processamento", datetime(2026, 10, 14, 11, 0))
    place("11933330000", "Carla Dias", "finalizado", datetime(2026, 10, 6, 20, 0))

    joined = {"11911110000": datetime(2026, 10, 12), "11922220000": datetime(2026, 10, 12), "11933330000": datetime(2026, 10, 5)}
    for customer in db.query(Customer).filter(Customer.store_id == test_store.id):
        customer.created_at = joined[customer.phone]
    db.commit()
    return test_store


class TestDashboardInsights:
    """Aggregates over a seeded store."""

    def test_order_figures(self, db, seeded):
        result = insights.dashboard_insights(db, seeded.id, NOW)

        assert result["orders_stats"] == {"total": 5, "today": 2, "growth": 300.0}
        assert result["pending_orders"]["count"] == 2
        assert result["pending_orders"]["last_update"] == NOW

    def test_revenue_skips_open_and_cancelled_orders(self, db, seeded):
        result = insights.dashboard_insights(db, seeded.id, NOW)

        assert result["revenue"] == {"total": 124.4, "this_week": 84.6, "growth": 112.6}

    def test_customer_figures(self, db, seeded):
        result = insights.dashboard_insights(db, seeded.id, NOW)

        assert result["customers"] == {"total": 3, "new_this_week": 2, "growth": 100.0}

    def test_sales_chart_by_day(self, db, seeded):
        chart = insights.dashboard_insights(db, seeded.id, NOW)["sales_chart"]

        assert chart["current_day"] == "Qua"
        assert [entry["day"] for entry in chart["data"]] == ["Dom", "Seg", "Ter", "Qua", "Qui", "Sex", "Sáb"]
        assert [entry["value"] for entry in chart["data"]] == [0.0, 44.8, 0.0, 39.8, 0.0, 0.0, 0.0]

    def test_popular_products_by_quantity(self, db, seeded):
        popular = insights.dashboard_insights(db, seeded.id, NOW)["popular_products"]

        assert popular == [{"name": "X-Burger", "sales": 6}, {"name": "Coca", "sales": 1}]

    def test_empty_store(self, db, test_store):
        result = insights.dashboard_insights(db, test_store.id, NOW)

        assert result["orders_stats"] == {"total": 0, "today": 0, "growth": 0.0}
        assert result["revenue"] == {"total": 0.0, "this_week": 0.0, "growth": 0.0}
        assert all(entry["value"] == 0.0 for entry in result["sales_chart"]["data"])
        assert result["popular_products"] == []


class TestDashboardRoute:
    """GET /dashboard/insights"""

    def test_insights_for_merchant_store(self, client, auth_headers, seeded):
        response = client.get("/dashboard/insights", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()["insights"]
        assert body["orders_stats"]["total"] == 5
        assert body["revenue"]["total"] == 124.4
        assert len(body["sales_chart"]["data"]) == 7
        assert body["popular_products"][0] == {"name": "X-Burger", "sales": 6}

    def test_requires_store(self, client, auth_headers):
        response = client.get("/dashboard/insights", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "Store not found. Create a store first."

    def test_requires_token(self, client):
        assert client.get("/dashboard/insights").status_code == 401
