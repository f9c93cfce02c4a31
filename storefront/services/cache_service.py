"""
Redis cache service for storefront read paths (active coupons).
Degrades gracefully: when Redis is unavailable every call is a miss.
"""

import logging
import json
from typing import Any, Optional, Callable

import redis
from redis.exceptions import RedisError, ConnectionError, TimeoutError
from flask import Flask

logger = logging.getLogger(__name__)


class CacheService:
    """
    Redis-based caching service.

    Keys pattern: {prefix}:{module}:{key}
    """

    def __init__(self, app: Optional[Flask] = None):
        """Initialize cache service."""
        self.client: Optional[redis.Redis] = None
        self._enabled: bool = False
        self._prefix: str = ""
        self.default_ttl: int = 60
        self.coupons_ttl: int = 300

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize Redis client from Flask app config."""
        self._enabled = app.config.get('CACHE_ENABLED', True)
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'storefront')
        self.default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)
        self.coupons_ttl = app.config.get('CACHE_COUPONS_TTL', 300)
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

    def is_available(self) -> bool:
        """Check if cache is available and healthy."""
        if not self._enabled or not self.client:
            return False
        try:
            self.client.ping()
            return True
        except (ConnectionError, RedisError):
            return False

    def _build_key(self, module: str, key: str) -> str:
        return f"{self._prefix}:{module}:{key}"

    def get(self, module: str, key: str) -> Optional[Any]:
        """Get value from cache."""
        if not self.is_available():
            return None
        try:
            value = self.client.get(self._build_key(module, key))
            if value is None:
                return None
            return json.loads(value)
        except (RedisError, json.JSONDecodeError) as e:
            logger.warning(f"[CACHE] Get error: {e}")
            return None

    def set(self, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with TTL."""
        if not self.is_available():
            return False
        try:
            self.client.setex(self._build_key(module, key), ttl or self.default_ttl, json.dumps(value))
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error: {e}")
            return False

    def memoize(self, module: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Cache-aside pattern: get from cache, or load and cache."""
        cached = self.get(module, key)
        if cached is not None:
            return cached
        value = loader_fn()
        self.set(module, key, value, ttl)
        return value


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    """Initialize cache service singleton."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    """Get cache service instance."""
    if _cache_service is None:
        raise RuntimeError("Cache not initialized.")
    return _cache_service
