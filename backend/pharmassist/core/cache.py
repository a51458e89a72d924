"""
Redis cache client wrapper with circuit breaker.

Used for slow, stable lookups (brand -> generic resolution, label data).
The cache is best-effort: a missing or failing Redis only costs latency,
never correctness, so every method degrades to a miss instead of raising.

- Pool size: 20 connections
- Connection timeout: 5 seconds
"""
import hashlib
import json
from typing import Any, Optional

import redis.asyncio as redis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from pharmassist.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    CircuitState,
)
from pharmassist.core.logging import get_logger

logger = get_logger(__name__)

_redis_pool: Optional[Redis] = None
_cache_circuit_breaker: Optional[CircuitBreaker] = None


async def initialize_redis(redis_url: Optional[str]) -> bool:
    """
    Open the Redis connection pool.

    Returns:
        True if Redis answered a PING, False otherwise (caching disabled)
    """
    global _redis_pool, _cache_circuit_breaker

    if not redis_url:
        logger.info("redis_disabled", message="REDIS_URL not set; caching disabled")
        return False

    try:
        logger.info("redis_initializing", url=redis_url)
        _redis_pool = redis.from_url(
            redis_url,
            max_connections=20,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            decode_responses=True,
        )
        await _redis_pool.ping()
        _cache_circuit_breaker = CircuitBreaker(name="redis_cache")
        logger.info("redis_initialized")
        return True
    except Exception as e:
        logger.error(
            "redis_initialization_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        _redis_pool = None
        return False


async def close_redis() -> None:
    """Close Redis connection pool."""
    global _redis_pool

    if _redis_pool:
        try:
            await _redis_pool.aclose()
            logger.info("redis_closed")
        except Exception as e:
            logger.error("redis_close_failed", error=str(e), exc_info=True)
        finally:
            _redis_pool = None


def get_redis_client() -> Optional[Redis]:
    return _redis_pool


class CacheClient:
    """JSON get/set on top of Redis, guarded by a circuit breaker."""

    def __init__(self, redis_client: Optional[Redis] = None, circuit_breaker: Optional[CircuitBreaker] = None):
        self._redis = redis_client
        self.circuit_breaker = circuit_breaker if circuit_breaker is not None else _cache_circuit_breaker

    @property
    def redis(self) -> Optional[Redis]:
        return self._redis if self._redis is not None else get_redis_client()

    def _breaker_open(self) -> bool:
        return bool(self.circuit_breaker) and self.circuit_breaker.state == CircuitState.OPEN

    async def _run(self, func, *args):
        if self.circuit_breaker:
            return await self.circuit_breaker.call_async(func, *args)
        return await func(*args)

    async def get(self, key: str) -> Optional[Any]:
        """Cached value, or None on miss or any error."""
        client = self.redis
        if client is None or self._breaker_open():
            return None

        try:
            value = await self._run(client.get, key)
        except CircuitBreakerOpenError:
            logger.debug("cache_circuit_breaker_open", key=key)
            return None
        except RedisError as e:
            logger.warning("cache_get_error", key=key, error=str(e), error_type=type(e).__name__)
            return None

        if value is None:
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        """Store a JSON-serialisable value; False when caching is unavailable."""
        client = self.redis
        if client is None or self._breaker_open():
            return False

        serialized = value if isinstance(value, str) else json.dumps(value)
        try:
            await self._run(client.setex, key, ttl, serialized)
            return True
        except CircuitBreakerOpenError:
            logger.debug("cache_circuit_breaker_open", key=key)
            return False
        except RedisError as e:
            logger.warning("cache_set_error", key=key, error=str(e), error_type=type(e).__name__)
            return False


_cache_client: Optional[CacheClient] = None


def get_cache_client() -> CacheClient:
    global _cache_client
    if _cache_client is None:
        _cache_client = CacheClient()
    return _cache_client


def hash_key(value: str) -> str:
    """Stable short hash for cache keys."""
    return hashlib.md5(value.strip().lower().encode()).hexdigest()
