"""
Namespaced JSON Cache over Redis

Every expensive artifact in the search pipeline is stored here as a JSON
document under a namespaced key with a TTL:

Cache Key Patterns:
    - job:normalized:{job_key} - LLM-normalized job fields
    - jobs:aggregate:{fingerprint} - aggregated search results (5min)
    - match:{profile_key}:{job_key} - pending/ready match explanations
    - company:research:{company}:{profile} - company research briefs
    - profile:{profile_id} - profile documents
    - glassdoor:{company}:{mode}:{role} - company ratings and reviews

Failure policy:
    All operations fail soft. A Redis outage turns reads into misses and
    writes into no-ops (False), so the pipeline keeps serving, only slower.

Usage:
    cache = await get_cache()

    cached = await cache.get_json("jobs:aggregate:engineer::remote::50")
    if cached is None:
        result = await aggregator.aggregate(criteria)
        await cache.set_json(key, result, CacheNamespace.AGGREGATE.ttl)

    # Write only when nothing is stored yet (Redis SET NX)
    claimed = await cache.set_json(match_key, placeholder, ttl, only_if_absent=True)
"""

import json
import hashlib
import logging
from enum import Enum
from typing import Any, Dict, Optional

import redis.asyncio as redis

from jobscout.config import get_settings
from jobscout.middleware.metrics import record_cache_hit, record_cache_miss

logger = logging.getLogger(__name__)


class CacheNamespace(Enum):
    """Cache namespaces with key prefixes and default TTL values in seconds."""

    NORMALIZED_JOB = ("job:normalized:", 900)
    AGGREGATE = ("jobs:aggregate:", 300)          # 5 minutes
    MATCH = ("match:", 900)
    COMPANY_RESEARCH = ("company:research:", 900)
    PROFILE = ("profile:", 900)
    GLASSDOOR = ("glassdoor:", 86400)             # 24 hours

    def __init__(self, prefix: str, ttl: int):
        self.prefix = prefix
        self._ttl = ttl

    @property
    def ttl(self) -> int:
        return self._ttl

    @classmethod
    def for_key(cls, key: str) -> Optional["CacheNamespace"]:
        # Longest prefix first so "job:normalized:" wins over shorter prefixes
        for namespace in sorted(cls, key=lambda n: len(n.prefix), reverse=True):
            if key.startswith(namespace.prefix):
                return namespace
        return None


def hash_content(*args: Any) -> str:
    """
    Generate a 16-character hex hash from content.

    Dict keys are sorted for consistent hashing.

    Args:
        *args: Content to hash (will be JSON serialized)

    Returns:
        16-character hex string
    """
    content = json.dumps(args, sort_keys=True, default=str)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


def _namespace_label(key: str) -> str:
    namespace = CacheNamespace.for_key(key)
    return namespace.name.lower() if namespace else "other"


class JsonCache:
    """
    Redis-backed JSON document cache.

    Provides graceful degradation when Redis is unavailable,
    returning None / False instead of raising exceptions.

    Attributes:
        redis: Async Redis client
        stats: Dict tracking hits/misses per namespace
    """

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = None
        labels = [n.name.lower() for n in CacheNamespace] + ["other"]
        self.stats: Dict[str, Dict[str, int]] = {
            "hits": {label: 0 for label in labels},
            "misses": {label: 0 for label in labels},
        }

    async def _ensure_connected(self) -> Optional[redis.Redis]:
        """Ensure Redis connection is established."""
        if self.redis is None:
            try:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True
                )
            except Exception as e:
                logger.warning(f"Failed to connect to Redis: {e}")
                return None
        return self.redis

    def _record(self, key: str, hit: bool) -> None:
        label = _namespace_label(key)
        bucket = "hits" if hit else "misses"
        self.stats[bucket][label] += 1
        if hit:
            record_cache_hit(label)
        else:
            record_cache_miss(label)

    async def get_json(self, key: str) -> Optional[Any]:
        """
        Read and decode a cached JSON document.

        Returns:
            Decoded value, or None on miss, decode error or Redis error
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return None

            cached = await client.get(key)
            if cached is None:
                self._record(key, hit=False)
                return None

            self._record(key, hit=True)
            return json.loads(cached)

        except Exception as e:
            logger.warning(f"Redis get error ({key}): {e}")
            self._record(key, hit=False)
            return None

    async def set_json(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
        only_if_absent: bool = False,
    ) -> bool:
        """
        Encode and store a JSON document.

        Args:
            key: Namespaced cache key
            value: JSON-serializable value
            ttl_seconds: Expiry in seconds (namespace default when omitted)
            only_if_absent: Skip the write when the key already exists

        Returns:
            True if the value was written, False on error or when
            only_if_absent found an existing entry
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return False

            if ttl_seconds is None:
                namespace = CacheNamespace.for_key(key)
                ttl_seconds = namespace.ttl if namespace else None

            payload = json.dumps(value, default=str)
            result = await client.set(
                key,
                payload,
                ex=ttl_seconds if ttl_seconds and ttl_seconds > 0 else None,
                nx=only_if_absent,
            )
            return bool(result)

        except Exception as e:
            logger.warning(f"Redis set error ({key}): {e}")
            return False

    async def delete_key(self, key: str) -> bool:
        """Delete a cached entry. Returns True if a key was removed."""
        try:
            client = await self._ensure_connected()
            if not client:
                return False

            result = await client.delete(key)
            return result > 0

        except Exception as e:
            logger.warning(f"Redis delete error ({key}): {e}")
            return False

    # ==================== Health & Stats ====================

    async def health_check(self) -> bool:
        """
        Check Redis connection health.

        Returns:
            True if Redis is responsive
        """
        try:
            client = await self._ensure_connected()
            if not client:
                return False

            await client.ping()
            return True

        except Exception as e:
            logger.warning(f"Redis health check failed: {e}")
            return False

    def get_stats(self) -> Dict[str, Dict[str, Any]]:
        """
        Get cache statistics including hit rates.

        Returns:
            Dict with stats per namespace
        """
        stats = {}

        for label in self.stats["hits"]:
            hits = self.stats["hits"][label]
            misses = self.stats["misses"][label]
            total = hits + misses

            stats[label] = {
                "hits": hits,
                "misses": misses,
                "total": total,
                "hit_rate": hits / total if total > 0 else 0.0,
            }

        return stats

    async def close(self) -> None:
        """Close Redis connection."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None


# ==================== Factory Function ====================

_cache_instance: Optional[JsonCache] = None


async def get_cache(redis_url: Optional[str] = None) -> JsonCache:
    """
    Get or create cache singleton.

    Args:
        redis_url: Optional Redis URL (uses settings if not provided)

    Returns:
        JsonCache instance
    """
    global _cache_instance

    if _cache_instance is None:
        url = redis_url or get_settings().redis_url
        _cache_instance = JsonCache(redis_url=url)

    return _cache_instance
