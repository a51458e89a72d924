"""
Unit tests for the Redis cache wrapper.
"""
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from pharmassist.core.cache import CacheClient, hash_key, initialize_redis
from pharmassist.core.circuit_breaker import CircuitBreaker, CircuitState


@pytest.mark.asyncio
async def test_cache_client_get_set():
    """Test cache client get and set operations."""
    with patch("pharmassist.core.cache.get_redis_client") as mock_get_redis:
        mock_redis = AsyncMock()
        mock_get_redis.return_value = mock_redis

        cache = CacheClient(circuit_breaker=CircuitBreaker("test-cache"))

        mock_redis.setex = AsyncMock(return_value=True)
        success = await cache.set("drug:generic:abc", ["paracetamol"], 300)
        assert success is True
        mock_redis.setex.assert_awaited_once_with("drug:generic:abc", 300, '["paracetamol"]')

        mock_redis.get = AsyncMock(return_value='["paracetamol"]')
        result = await cache.get("drug:generic:abc")
        assert result == ["paracetamol"]


@pytest.mark.asyncio
async def test_cache_miss_returns_none():
    mock_redis = AsyncMock()
    mock_redis.get = AsyncMock(return_value=None)
    cache = CacheClient(redis_client=mock_redis, circuit_breaker=None)
    assert await cache.get("missing") is None


@pytest.mark.asyncio
async def test_cache_without_redis_is_a_miss():
    """No Redis configured: reads miss and writes report False."""
    with patch("pharmassist.core.cache.get_redis_client", return_value=None):
        cache = CacheClient(circuit_breaker=None)
        assert await cache.get("key") is None
        assert await cache.set("key", "value", 60) is False


@pytest.mark.asyncio
async def test_redis_errors_degrade_to_miss():
    """A failing Redis never raises out of the cache."""
    mock_redis = AsyncMock()
    mock_redis.get = AsyncMock(side_effect=RedisConnectionError("down"))
    mock_redis.setex = AsyncMock(side_effect=RedisConnectionError("down"))
    cache = CacheClient(redis_client=mock_redis, circuit_breaker=CircuitBreaker("test-cache-errors"))

    assert await cache.get("key") is None
    assert await cache.set("key", "value", 60) is False


@pytest.mark.asyncio
async def test_cache_client_circuit_breaker_open():
    """With the breaker open Redis is not touched."""
    mock_redis = AsyncMock()
    breaker = CircuitBreaker("test-cache-open", min_requests_for_threshold=1)
    breaker._record_result(False)
    assert breaker.state == CircuitState.OPEN

    cache = CacheClient(redis_client=mock_redis, circuit_breaker=breaker)
    assert await cache.get("key") is None
    assert await cache.set("key", "value", 300) is False
    mock_redis.get.assert_not_called()
    mock_redis.setex.assert_not_called()


@pytest.mark.asyncio
async def test_initialize_redis_without_url_disables_cache():
    assert await initialize_redis(None) is False


def test_hash_key_is_case_and_space_insensitive():
    assert hash_key(" Dolo 650 ") == hash_key("dolo 650")
    assert hash_key("dolo 650") != hash_key("crocin")
