"""
Redis Cache Service.
Caches hot-reloadable store configuration with graceful degradation.
"""

import logging
import json
from typing import Any, Optional, Callable, Dict
from datetime import datetime, date
from decimal import Decimal

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
        self._default_ttl: int = 60

        if app:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """Initialize Redis client from Flask app config."""
        self._enabled = app.config.get('CACHE_ENABLED', True)
        self._prefix = app.config.get('CACHE_KEY_PREFIX', 'fulfillment')
        self._default_ttl = app.config.get('CACHE_DEFAULT_TTL', 60)
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
                socket_keepalive=True,
                max_connections=50,
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

    def _serialize(self, value: Any) -> str:
        """Serialize Python object to JSON string with Decimal precision."""
        def default_handler(obj: Any) -> Any:
            if isinstance(obj, (datetime, date)):
                return obj.isoformat()
            elif isinstance(obj, Decimal):
                return {"__decimal__": str(obj)}
            raise TypeError(f"Object of type {type(obj)} is not JSON serializable")
        return json.dumps(value, default=default_handler)

    def _deserialize(self, value: str) -> Any:
        """Deserialize JSON string to Python object, reconstructing Decimals."""
        def object_hook(dct: Dict[str, Any]) -> Any:
            if "__decimal__" in dct:
                return Decimal(dct["__decimal__"])
            return dct
        return json.loads(value, object_hook=object_hook)

    def get(self, module: str, key: str) -> Optional[Any]:
        """Get value from cache."""
        if not self.is_available():
            return None
        try:
            value = self.client.get(self._build_key(module, key))
            if value is None:
                return None
            return self._deserialize(value)
        except (RedisError, json.JSONDecodeError) as e:
            logger.warning(f"[CACHE] Get error: {e}")
            return None

    def set(self, module: str, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with TTL."""
        if not self.is_available():
            return False
        try:
            serialized = self._serialize(value)
            self.client.setex(self._build_key(module, key), ttl or self._default_ttl, serialized)
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"[CACHE] Set error: {e}")
            return False

    def delete_pattern(self, module: str, pattern: str = "*") -> int:
        """Delete all keys matching a pattern for a module."""
        if not self.is_available():
            return 0
        try:
            full_pattern = self._build_key(module, pattern)
            deleted_count = 0
            cursor = 0
            while True:
                cursor, keys = self.client.scan(cursor, match=full_pattern, count=100)
                if keys:
                    pipeline = self.client.pipeline()
                    for key in keys:
                        pipeline.delete(key)
                    pipeline.execute()
                    deleted_count += len(keys)
                if cursor == 0:
                    break
            if deleted_count > 0:
                logger.info(f"[CACHE] INVALIDATE: {full_pattern} ({deleted_count} keys)")
            return deleted_count
        except RedisError as e:
            logger.warning(f"[CACHE] Invalidate error: {e}")
            return 0

    def memoize(self, module: str, key: str, loader_fn: Callable[[], Any], ttl: Optional[int] = None) -> Any:
        """Cache-aside pattern: get from cache, or load and cache."""
        cached = self.get(module, key)
        if cached is not None:
            return cached
        value = loader_fn()
        self.set(module, key, value, ttl)
        return value

    def invalidate_module(self, module: str) -> int:
        """Invalidate all cache for a module."""
        return self.delete_pattern(module, "*")


_cache_service: Optional[CacheService] = None


def init_cache(app: Flask) -> None:
    """Initialize cache service singleton."""
    global _cache_service
    _cache_service = CacheService(app)
    app.extensions['cache'] = _cache_service


def get_cache() -> CacheService:
    """Get cache service instance (a disabled one outside the app)."""
    if _cache_service is None:
        return CacheService()
    return _cache_service
