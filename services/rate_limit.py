"""Fixed-window request counters for the public storefront endpoints."""
import logging
from datetime import datetime
from typing import Optional

import redis
from redis.exceptions import RedisError

from core.config import settings
from core.errors import RateLimitError
from services.customers import normalize_phone

logger = logging.getLogger(__name__)


class _FakeRedis:
    def __init__(self):
        self._store = {}
        self._exp = {}

    def _cleanup(self, key):
        exp = self._exp.get(key)
        if exp is not None and datetime.utcnow().timestamp() > exp:
            self._store.pop(key, None)
            self._exp.pop(key, None)

    def incr(self, key):
        self._cleanup(key)
        self._store[key] = int(self._store.get(key, 0)) + 1
        return self._store[key]

    def expire(self, key, ttl):
        if key in self._store:
            self._exp[key] = datetime.utcnow().timestamp() + int(ttl)

    def ttl(self, key):
        self._cleanup(key)
        if key not in self._store:
            return -2
        if key not in self._exp:
            return -1
        return max(int(self._exp[key] - datetime.utcnow().timestamp()), 0)


redis_client = _FakeRedis() if settings.TESTING else redis.from_url(settings.REDIS_URL, decode_responses=True)

RATE_LIMIT_PREFIX = "ratelimit:"


def hit(scope: str, identity: str, limit: int, window_seconds: Optional[int] = None) -> int:
    """Count one request for ``identity`` in ``scope`` and refuse it past ``limit`` per window.

    Requests are let through when Redis is unreachable.
    """
    if not settings.RATE_LIMIT_ENABLED:
        return 0
    window = window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
    key = f"{RATE_LIMIT_PREFIX}{scope}:{identity}"
    try:
        count = redis_client.incr(key)
        if count == 1 or redis_client.ttl(key) == -1:
            redis_client.expire(key, window)
        if count <= limit:
            return count
        ttl = redis_client.ttl(key)
    except RedisError as e:
        logger.warning("Rate limit check for %s skipped, Redis unavailable: %s", key, e)
        return 0
    logger.info("Rate limit hit for %s (%s/%s)", key, count, limit)
    raise RateLimitError(
        "Too many requests, please try again later",
        retry_after=ttl if ttl and ttl > 0 else window,
    )


def order_identity(phone: Optional[str], client_ip: str) -> str:
    """Orders are counted per shopper phone, falling back to the caller's address."""
    return normalize_phone(phone) or client_ip
