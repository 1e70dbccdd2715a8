"""Thin JSON cache over redis.asyncio; disabled caches report misses."""

import json
import logging
from typing import Any

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisCache:
    def __init__(self, url: str, enabled: bool = True, socket_timeout: float = 5.0):
        self.enabled = enabled
        self._client = redis.from_url(url, socket_timeout=socket_timeout) if enabled else None

    def is_enabled(self) -> bool:
        return self._client is not None

    async def get(self, key: str) -> Any | None:
        if self._client is None:
            return None
        raw = await self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        if self._client is None:
            return
        await self._client.set(key, json.dumps(value), ex=ttl)

    async def delete(self, key: str) -> None:
        if self._client is None:
            return
        await self._client.delete(key)

    async def delete_pattern(self, pattern: str) -> int:
        if self._client is None:
            return 0
        deleted = 0
        async for key in self._client.scan_iter(match=pattern):
            deleted += await self._client.delete(key)
        return deleted

    async def ping(self) -> bool:
        if self._client is None:
            return False
        return bool(await self._client.ping())

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
