"""
Tests for the namespaced JSON cache

Tests cover:
- Namespace prefixes and default TTLs
- Hash function for key generation
- get/set/delete round trips over a mocked Redis client
- SET NX semantics for placeholder writes
- Hit/miss stats per namespace
- Graceful degradation when Redis errors
"""

import json
from unittest.mock import AsyncMock

import pytest

from jobscout.services.cache import CacheNamespace, JsonCache, hash_content


class TestHashContent:
    """Test content hashing for cache keys."""

    def test_hash_content_returns_16_char_hex(self):
        """Hash should return 16-character hex string."""
        result = hash_content("test content")
        assert len(result) == 16
        assert all(c in "0123456789abcdef" for c in result)

    def test_hash_content_deterministic(self):
        """Same content should produce same hash."""
        assert hash_content("Senior Python Developer") == hash_content("Senior Python Developer")

    def test_hash_content_different_for_different_input(self):
        assert hash_content("Python Developer") != hash_content("Java Developer")

    def test_hash_content_handles_dict(self):
        """Dict ordering shouldn't matter."""
        assert hash_content({"a": 1, "b": 2}) == hash_content({"b": 2, "a": 1})


class TestCacheNamespace:
    """Test namespace prefixes and TTLs."""

    def test_aggregate_ttl_is_five_minutes(self):
        assert CacheNamespace.AGGREGATE.ttl == 300

    def test_glassdoor_ttl_is_one_day(self):
        assert CacheNamespace.GLASSDOOR.ttl == 86400

    def test_for_key_resolves_prefix(self):
        assert CacheNamespace.for_key("match:p-1:job-1") is CacheNamespace.MATCH
        assert CacheNamespace.for_key("job:normalized:job-1") is CacheNamespace.NORMALIZED_JOB
        assert CacheNamespace.for_key("jobs:aggregate:x") is CacheNamespace.AGGREGATE

    def test_for_key_unknown_prefix(self):
        assert CacheNamespace.for_key("something:else") is None


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()
    return redis


@pytest.fixture
def cache_service(mock_redis):
    """Create JsonCache instance with mock Redis."""
    cache = JsonCache(redis_url="redis://localhost:6379")
    cache.redis = mock_redis
    return cache


class TestJsonCacheReads:
    @pytest.mark.asyncio
    async def test_get_json_miss(self, cache_service, mock_redis):
        """Should return None on cache miss."""
        result = await cache_service.get_json("match:p:j")

        assert result is None
        mock_redis.get.assert_called_once_with("match:p:j")
        assert cache_service.stats["misses"]["match"] == 1

    @pytest.mark.asyncio
    async def test_get_json_hit(self, cache_service, mock_redis):
        """Should decode the stored document on hit."""
        mock_redis.get.return_value = json.dumps({"status": "ready", "score": 80})

        result = await cache_service.get_json("match:p:j")

        assert result == {"status": "ready", "score": 80}
        assert cache_service.stats["hits"]["match"] == 1

    @pytest.mark.asyncio
    async def test_get_json_unknown_namespace_counts_as_other(self, cache_service, mock_redis):
        await cache_service.get_json("misc-key")

        assert cache_service.stats["misses"]["other"] == 1

    @pytest.mark.asyncio
    async def test_get_json_redis_error_is_miss(self, cache_service, mock_redis):
        """Redis failures degrade to a miss."""
        mock_redis.get.side_effect = ConnectionError("redis down")

        assert await cache_service.get_json("match:p:j") is None


class TestJsonCacheWrites:
    @pytest.mark.asyncio
    async def test_set_json_uses_namespace_ttl(self, cache_service, mock_redis):
        """Omitted TTL falls back to the namespace default."""
        await cache_service.set_json("jobs:aggregate:abc", {"results": []})

        args, kwargs = mock_redis.set.call_args
        assert args[0] == "jobs:aggregate:abc"
        assert json.loads(args[1]) == {"results": []}
        assert kwargs["ex"] == 300
        assert kwargs["nx"] is False

    @pytest.mark.asyncio
    async def test_set_json_explicit_ttl(self, cache_service, mock_redis):
        await cache_service.set_json("match:p:j", {"score": 1}, ttl_seconds=42)

        assert mock_redis.set.call_args.kwargs["ex"] == 42

    @pytest.mark.asyncio
    async def test_set_json_only_if_absent_passes_nx(self, cache_service, mock_redis):
        """Placeholder writes use SET NX; a refused write returns False."""
        mock_redis.set.return_value = None

        written = await cache_service.set_json("match:p:j", {"status": "pending"}, 900, only_if_absent=True)

        assert written is False
        assert mock_redis.set.call_args.kwargs["nx"] is True

    @pytest.mark.asyncio
    async def test_set_json_redis_error_returns_false(self, cache_service, mock_redis):
        mock_redis.set.side_effect = ConnectionError("redis down")

        assert await cache_service.set_json("match:p:j", {}) is False

    @pytest.mark.asyncio
    async def test_delete_key(self, cache_service, mock_redis):
        assert await cache_service.delete_key("profile:p-1") is True
        mock_redis.delete.return_value = 0
        assert await cache_service.delete_key("profile:p-1") is False


class TestJsonCacheHealthAndStats:
    @pytest.mark.asyncio
    async def test_health_check_ok(self, cache_service, mock_redis):
        assert await cache_service.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_failure(self, cache_service, mock_redis):
        mock_redis.ping.side_effect = ConnectionError("redis down")

        assert await cache_service.health_check() is False

    @pytest.mark.asyncio
    async def test_get_stats_hit_rate(self, cache_service, mock_redis):
        mock_redis.get.return_value = json.dumps({"a": 1})
        await cache_service.get_json("profile:p-1")
        mock_redis.get.return_value = None
        await cache_service.get_json("profile:p-2")

        stats = cache_service.get_stats()

        assert stats["profile"] == {"hits": 1, "misses": 1, "total": 2, "hit_rate": 0.5}
        assert stats["match"]["hit_rate"] == 0.0

    @pytest.mark.asyncio
    async def test_close_releases_client(self, cache_service, mock_redis):
        await cache_service.close()

        mock_redis.aclose.assert_awaited_once()
        assert cache_service.redis is None
