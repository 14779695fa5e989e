"""
Redis cache for plan features, tenant-isolated, with graceful degradation.

Keys pattern: {prefix}:tenant:{tenant_id}:plan_features
"""

import logging
import json
from typing import Any, Optional, Callable, Dict

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask

logger = logging.getLogger(__name__)


class PlanFeatureCache:
    """
    Key -> value + expiry cache for a tenant's plan features.

    When Redis is disabled or unreachable every lookup misses and callers
    read the database directly.
    """

    def __init__(self, app: Optional[Flask] = None, client: Optional[redis.Redis] = None):
        self.client: Optional[redis.Redis] = client
        self._enabled: bool = client is not None
        self._prefix: str = "mostrador"
        self._ttl: int = 300

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize Redis client from Flask app config."""
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'mostrador')
        self._ttl = int(app.config.get('PLAN_FEATURES_TTL', 300))

        if self.client is not None:
            self._enabled = True
            return

        self._enabled = app.config.get('CACHE_ENABLED', True)
        redis_url = app.config.get('REDIS_URL', 'redis://redis:6379/0')

        if not self._enabled:
            logger.info("[CACHE] Cache is DISABLED via config")
            return

        try:
            self.client = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=3,
                socket_timeout=3,
                retry_on_timeout=True,
                health_check_interval=30
            )
            self.client.ping()
            logger.info(f"[CACHE] Redis connected: {redis_url}")
        except (ConnectionError, TimeoutError, RedisError) as e:
            logger.warning(f"[CACHE] Redis connection failed: {e}. Cache DISABLED.")
            self._enabled = False
            self.client = None

    @property
    def ttl(self) -> int:
        return self._ttl

    def is_available(self) -> bool:
        return self._enabled and self.client is not None

    def _build_key(self, tenant_id: int) -> str:
        return f"{self._prefix}:tenant:{tenant_id}:plan_features"

    def get(self, tenant_id: int) -> Optional[Dict[str, Any]]:
        if not self.is_available():
            return None
        try:
            value = self.client.get(self._build_key(tenant_id))
            if value is None:
                return None
            return json.loads(value)
        except (RedisError, json.JSONDecodeError) as e:
            logger.warning(f"[CACHE] Get error: {e}")
            return None

    def set(self, tenant_id: int, features: Dict[str, Any]) -> bool:
        if not self.is_available():
            return False
        try:
            self.client.setex(self._build_key(tenant_id), self._ttl, json.dumps(features))
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error: {e}")
            return False

    def invalidate(self, tenant_id: int) -> bool:
        """Drop a tenant's entry; called whenever its subscription changes."""
        if not self.is_available():
            return False
        try:
            self.client.delete(self._build_key(tenant_id))
            logger.info(f"[CACHE] INVALIDATE: {self._build_key(tenant_id)}")
            return True
        except RedisError as e:
            logger.warning(f"[CACHE] Delete error: {e}")
            return False

    def memoize(self, tenant_id: int, loader_fn: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
        """Cache-aside: return the cached features, or load and cache them."""
        cached = self.get(tenant_id)
        if cached is not None:
            return cached
        value = loader_fn()
        self.set(tenant_id, value)
        return value


_cache: Optional[PlanFeatureCache] = None


def init_cache(app: Flask) -> PlanFeatureCache:
    """Initialize the cache singleton and register it on the app."""
    global _cache
    _cache = PlanFeatureCache(app)
    app.extensions['plan_feature_cache'] = _cache
    return _cache


def get_cache() -> PlanFeatureCache:
    """Get cache instance (a disabled one when the app never initialised it)."""
    global _cache
    if _cache is None:
        _cache = PlanFeatureCache()
    return _cache
