"""
Cache Service - short-TTL memoization of read-heavy tree queries

Two backends share one async interface:
- LocalCache: in-process dict, expired entries purged lazily on read
- RedisCache: shared across workers, TTL handled by Redis
"""

import json
import re
import time
from typing import Any, Callable, Dict, Optional, Tuple

import redis.asyncio as redis

from app.core.config import settings
from app.core.logging_config import logger


# Key conventions so features don't invalidate each other's entries
PREFIX_PUBLIC_FILES = "public_files_"
KEY_SEMINARS = "seminars_list"
PREFIX_FILE_STATS = "file_stats_"


def public_files_key(kind: str) -> str:
    return f"{PREFIX_PUBLIC_FILES}{kind}"


class LocalCache:
    """
    In-memory TTL cache.

    Expiry is evaluated at read time: an expired entry stays in memory
    until the next get/has on its key or a clear.
    """

    def __init__(self, default_ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl if default_ttl is not None else settings.CACHE_DEFAULT_TTL
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            logger.debug(f"Cache MISS: {key}")
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            logger.debug(f"Cache EXPIRED: {key}")
            return None
        logger.debug(f"Cache HIT: {key}")
        return value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = (value, self._clock() + ttl)

    async def has(self, key: str) -> bool:
        return await self.get(key) is not None

    async def clear(self, key: Optional[str] = None) -> None:
        """Clear one key, or everything when key is None"""
        if key is None:
            self._entries.clear()
            logger.debug("Cache cleared")
        else:
            self._entries.pop(key, None)

    async def clear_pattern(self, pattern: str) -> int:
        """Remove every key matching the regex; returns the count removed"""
        regex = re.compile(pattern)
        doomed = [k for k in self._entries if regex.search(k)]
        for k in doomed:
            del self._entries[k]
        if doomed:
            logger.debug(f"Cache cleared {len(doomed)} keys matching {pattern!r}")
        return len(doomed)

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisCache:
    """
    Redis-backed variant for multi-worker deployments.

    Values are stored as JSON under a namespace prefix. Cache errors are
    logged and treated as misses.
    """

    NAMESPACE = "encg:cache:"

    def __init__(self, url: Optional[str] = None, default_ttl: Optional[float] = None,
                 client: Optional[redis.Redis] = None):
        self.url = url or settings.REDIS_URL
        self.default_ttl = default_ttl if default_ttl is not None else settings.CACHE_DEFAULT_TTL
        self._redis = client

    async def _get_redis(self) -> redis.Redis:
        """Lazy initialization of the Redis client"""
        if self._redis is None:
            self._redis = redis.Redis.from_url(self.url, decode_responses=True)
            logger.info("Redis cache connection established")
        return self._redis

    async def get(self, key: str) -> Optional[Any]:
        try:
            r = await self._get_redis()
            data = await r.get(f"{self.NAMESPACE}{key}")
            if data is None:
                logger.debug(f"Cache MISS: {key}")
                return None
            logger.debug(f"Cache HIT: {key}")
            return json.loads(data)
        except Exception as e:
            logger.warning(f"Cache error (get): {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        try:
            r = await self._get_redis()
            await r.set(f"{self.NAMESPACE}{key}", json.dumps(value, default=str), px=int(ttl * 1000))
        except Exception as e:
            logger.warning(f"Cache error (set): {e}")

    async def has(self, key: str) -> bool:
        try:
            r = await self._get_redis()
            return bool(await r.exists(f"{self.NAMESPACE}{key}"))
        except Exception as e:
            logger.warning(f"Cache error (has): {e}")
            return False

    async def clear(self, key: Optional[str] = None) -> None:
        if key is not None:
            try:
                r = await self._get_redis()
                await r.delete(f"{self.NAMESPACE}{key}")
            except Exception as e:
                logger.warning(f"Cache error (clear): {e}")
            return
        await self.clear_pattern(".*")

    async def clear_pattern(self, pattern: str) -> int:
        regex = re.compile(pattern)
        removed = 0
        try:
            r = await self._get_redis()
            async for full_key in r.scan_iter(match=f"{self.NAMESPACE}*"):
                if regex.search(full_key[len(self.NAMESPACE):]):
                    await r.delete(full_key)
                    removed += 1
        except Exception as e:
            logger.warning(f"Cache error (clear_pattern): {e}")
        return removed

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_cache():
    """Build the cache backend selected by CACHE_BACKEND"""
    if settings.CACHE_BACKEND == "redis":
        return RedisCache()
    return LocalCache()
