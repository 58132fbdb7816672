"""
Tests for the storefront request counters.
"""
from unittest.mock import Mock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from core import config as core_config
from core.errors import RateLimitError
from services import rate_limit


@pytest.fixture
def limits_on(monkeypatch):
    """Enable rate limiting against a fresh in-memory counter store."""
    monkeypatch.setattr(core_config.settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(rate_limit, "redis_client", rate_limit._FakeRedis())
    return rate_limit.redis_client


class TestHit:
    """Counting and refusal."""

    def test_disabled_never_counts(self, monkeypatch):
        monkeypatch.setattr(core_config.settings, "RATE_LIMIT_ENABLED", False)
        client = Mock()
        monkeypatch.setattr(rate_limit, "redis_client", client)
        for _ in range(20):
            assert rate_limit.hit("identify", "1:10.0.0.1", 1) == 0
        client.incr.assert_not_called()

    def test_refuses_past_limit(self, limits_on):
        for expected in range(1, 4):
            assert rate_limit.hit("order", "1:10.0.0.1", 3, 900) == expected
        with pytest.raises(RateLimitError) as exc:
            rate_limit.hit("order", "1:10.0.0.1", 3, 900)
        assert exc.value.status_code == 429
        assert 0 < exc.value.to_dict()["retry_after"] <= 900

    def test_window_set_on_first_hit(self, limits_on):
        rate_limit.hit("identify", "1:10.0.0.1", 10, 60)
        assert 0 < limits_on.ttl("ratelimit:identify:1:10.0.0.1") <= 60

    def test_identities_are_independent(self, limits_on):
        rate_limit.hit("order", "1:a", 1, 900)
        assert rate_limit.hit("order", "1:b", 1, 900) == 1
        assert rate_limit.hit("identify", "1:a", 1, 900) == 1

    def test_redis_outage_lets_requests_through(self, monkeypatch):
        monkeypatch.setattr(core_config.settings, "RATE_LIMIT_ENABLED", True)
        client = Mock()
        client.incr.side_effect = RedisConnectionError("refused")
        monkeypatch.setattr(rate_limit, "redis_client", client)
        assert rate_limit.hit("order", "1:10.0.0.1", 1, 900) == 0


class TestOrderIdentity:
    def test_phone_digits_preferred(self):
        assert rate_limit.order_identity("(11) 99999-0000", "10.0.0.1") == "11999990000"

    def test_falls_back_to_ip(self):
        assert rate_limit.order_identity(None, "10.0.0.1") == "10.0.0.1"
        assert rate_limit.order_identity("--", "10.0.0.1") == "10.0.0.1"


class TestPublicRouteLimits:
    """Storefront endpoints answer 429 once the window is used up."""

    def test_identify_limited_per_client(self, client, test_store, limits_on):
        body = {"name": "Maria Silva", "phone": "11999990000"}
        for _ in range(core_config.settings.IDENTIFY_RATE_LIMIT):
            assert client.post(f"/public/stores/{test_store.id}/identify", json=body).status_code == 200

        response = client.post(f"/public/stores/{test_store.id}/identify", json=body)

        assert response.status_code == 429
        assert response.json()["error"] == "Too many requests, please try again later"
        assert response.json()["retry_after"] > 0

    def test_orders_limited_per_phone(self, client, test_store, make_product, order_payload, limits_on):
        product = make_product()
        url = f"/public/stores/{test_store.id}/orders"
        for _ in range(core_config.settings.ORDER_RATE_LIMIT):
            response = client.post(url, json=order_payload([{"product_id": product.id, "quantity": 1}]))
            assert response.status_code == 201

        response = client.post(url, json=order_payload([{"product_id": product.id, "quantity": 1}]))
        assert response.status_code == 429

        other = order_payload([{"product_id": product.id, "quantity": 1}], phone="11988887777", name="Joana Souza")
        assert client.post(url, json=other).status_code == 201
