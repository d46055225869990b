"""Redis-backed cache used for webhook delivery dedupe"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from redis import asyncio as aioredis

from core.config import settings


def _json_dumps(value: Any) -> str:
    return json.dumps(value, default=str)


def _json_loads(value: Optional[str]) -> Any:
    if value is None:
        return None
    return json.loads(value)


class RedisCache:
    """Namespaced JSON values on top of redis.asyncio"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Any:
        return _json_loads(await self._client.get(self._format_key(key)))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expire = settings.redis.default_ttl if ttl is None else ttl
        await self._client.set(self._format_key(key), _json_dumps(value), ex=expire if expire > 0 else None)

    async def set_if_absent(self, key: str, value: Any, ttl: int) -> bool:
        """SET NX EX; True when this call created the key."""
        created = await self._client.set(self._format_key(key), _json_dumps(value), ex=ttl, nx=True)
        return bool(created)

    async def delete(self, key: str) -> bool:
        return bool(await self._client.delete(self._format_key(key)))


_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisCache] = None
_lock = asyncio.Lock()


async def init_redis_cache(namespace: Optional[str] = None) -> RedisCache:
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL is not configured")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )

        _redis_client = client
        _cache_instance = RedisCache(
            client=client,
            namespace=namespace or settings.redis.namespace,
        )
        return _cache_instance


async def get_redis_cache() -> Optional[RedisCache]:
    """The shared cache, or None when Redis is not configured."""
    if _cache_instance is None:
        if not settings.redis.url:
            return None
        return await init_redis_cache()
    return _cache_instance


async def shutdown_redis_cache() -> None:
    global _redis_client, _cache_instance

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        _cache_instance = None
