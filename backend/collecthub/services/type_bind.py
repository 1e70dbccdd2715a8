"""Type binding cache: maps a source's remote category ids to local category ids.

Bindings live in the database; lookups are cached in Redis with a TTL and
fall back to an in-process map when Redis is disabled or unreachable.
"""

import logging
import time
from typing import Any

import httpx
from redis.exceptions import RedisError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from collecthub.exceptions import CollectError
from collecthub.models.base import dialect_insert, utcnow
from collecthub.models.category import Category
from collecthub.models.type_binding import TypeBinding
from collecthub.services.redis_cache import RedisCache

logger = logging.getLogger(__name__)

CACHE_PREFIX = "type_bind:"


def _cache_key(source_id: int) -> str:
    return f"{CACHE_PREFIX}{source_id}"


class TypeBindService:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        cache: RedisCache | None = None,
        ttl: int = 3600,
        remote_timeout: float = 15.0,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.ttl = ttl
        self.remote_timeout = remote_timeout
        # source_id -> (remote -> local, expires_at)
        self._memory: dict[int, tuple[dict[int, int], float]] = {}

    def _redis_enabled(self) -> bool:
        return self.cache is not None and self.cache.is_enabled()

    async def preload(self) -> int:
        """Warm the cache for every source that has bindings."""
        async with self.session_factory() as session:
            result = await session.execute(select(TypeBinding.source_id).distinct())
            source_ids = [sid for sid in result.scalars().all() if sid]
        for source_id in source_ids:
            await self.get_bind_map(source_id)
        logger.info(f"Preloaded type bindings for {len(source_ids)} sources")
        return len(source_ids)

    async def get_bind_map(self, source_id: int) -> dict[int, int]:
        if self._redis_enabled():
            try:
                cached = await self.cache.get(_cache_key(source_id))
                if cached is not None:
                    return {int(remote): int(local) for remote, local in cached}
            except RedisError as e:
                logger.warning(f"Type bind cache read failed, using memory cache: {e}")

        entry = self._memory.get(source_id)
        if entry and entry[1] > time.monotonic():
            return entry[0]

        async with self.session_factory() as session:
            result = await session.execute(
                select(TypeBinding.remote_type_id, TypeBinding.local_type_id).where(
                    TypeBinding.source_id == source_id
                )
            )
            bind_map = {int(remote): int(local) for remote, local in result.all()}

        stored = False
        if self._redis_enabled():
            try:
                await self.cache.set(_cache_key(source_id), list(bind_map.items()), self.ttl)
                stored = True
            except RedisError as e:
                logger.warning(f"Type bind cache write failed, using memory cache: {e}")
        if not stored:
            self._memory[source_id] = (bind_map, time.monotonic() + self.ttl)
        return bind_map

    async def clear_cache(self, source_id: int | None = None) -> None:
        if source_id is not None:
            self._memory.pop(source_id, None)
            keys = [_cache_key(source_id)]
        else:
            self._memory.clear()
            keys = []

        if not self._redis_enabled():
            return
        try:
            if keys:
                for key in keys:
                    await self.cache.delete(key)
            else:
                await self.cache.delete_pattern(f"{CACHE_PREFIX}*")
        except RedisError as e:
            logger.warning(f"Type bind cache invalidation failed: {e}")

    async def list_bindings(self, source_id: int) -> list[dict[str, Any]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(TypeBinding, Category.name)
                .outerjoin(Category, Category.id == TypeBinding.local_type_id)
                .where(TypeBinding.source_id == source_id)
                .order_by(TypeBinding.remote_type_id.asc())
            )
            return [
                {
                    "id": binding.id,
                    "source_id": binding.source_id,
                    "remote_type_id": binding.remote_type_id,
                    "remote_type_name": binding.remote_type_name,
                    "local_type_id": binding.local_type_id,
                    "local_type_name": local_name,
                }
                for binding, local_name in result.all()
            ]

    async def _upsert(self, session, source_id: int, remote_type_id: int, remote_type_name: str, local_type_id: int):
        now = utcnow()
        stmt = dialect_insert(session, TypeBinding.__table__).values(
            source_id=source_id,
            remote_type_id=remote_type_id,
            remote_type_name=remote_type_name,
            local_type_id=local_type_id,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["source_id", "remote_type_id"],
            set_={
                "remote_type_name": stmt.excluded.remote_type_name,
                "local_type_id": stmt.excluded.local_type_id,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await session.execute(stmt)

    async def save_bind(self, source_id: int, remote_type_id: int, local_type_id: int, remote_type_name: str = "") -> None:
        if not source_id or not remote_type_id:
            raise CollectError("source_id and remote_type_id required")
        async with self.session_factory() as session:
            async with session.begin():
                await self._upsert(session, source_id, remote_type_id, remote_type_name.strip(), local_type_id)
        await self.clear_cache(source_id)

    async def save_bind_batch(self, source_id: int, bindings: list[dict[str, Any]]) -> dict[str, int]:
        """Upsert many bindings at once; a local id <= 0 removes the binding."""
        if not source_id:
            raise CollectError("source_id required")

        to_delete: list[int] = []
        to_upsert: list[tuple[int, str, int]] = []
        for b in bindings:
            remote_type_id = int(b.get("remote_type_id") or 0)
            if not remote_type_id:
                continue
            local_type_id = int(b.get("local_type_id") or 0)
            if local_type_id <= 0:
                to_delete.append(remote_type_id)
            else:
                to_upsert.append((remote_type_id, str(b.get("remote_type_name") or "").strip(), local_type_id))

        async with self.session_factory() as session:
            async with session.begin():
                if to_delete:
                    await session.execute(
                        delete(TypeBinding).where(
                            TypeBinding.source_id == source_id,
                            TypeBinding.remote_type_id.in_(to_delete),
                        )
                    )
                for remote_type_id, remote_type_name, local_type_id in to_upsert:
                    await self._upsert(session, source_id, remote_type_id, remote_type_name, local_type_id)

        await self.clear_cache(source_id)
        return {"count": len(to_upsert), "deleted": len(to_delete)}

    async def delete_bind(self, source_id: int, remote_type_id: int) -> None:
        if not source_id or not remote_type_id:
            raise CollectError("source_id and remote_type_id required")
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(TypeBinding).where(
                        TypeBinding.source_id == source_id,
                        TypeBinding.remote_type_id == remote_type_id,
                    )
                )
        await self.clear_cache(source_id)

    async def fetch_remote_types(self, base_url: str) -> dict[str, Any]:
        """Fetch a source's category list (``?ac=list``)."""
        base = (base_url or "").strip().rstrip("/")
        if not base:
            return {"ok": False, "msg": "base_url required", "types": []}
        try:
            async with httpx.AsyncClient(timeout=self.remote_timeout, follow_redirects=True) as client:
                resp = await client.get(base, params={"ac": "list"})
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch remote types from {base}: {e}")
            return {"ok": False, "msg": str(e) or "Fetch failed", "types": []}

        classes = data.get("class") if isinstance(data, dict) else None
        if not isinstance(classes, list):
            return {"ok": False, "msg": "Invalid response format", "types": []}

        types = []
        for t in classes:
            if not isinstance(t, dict):
                continue
            try:
                types.append(
                    {
                        "type_id": int(t.get("type_id") or 0),
                        "type_name": str(t.get("type_name") or ""),
                        "type_pid": int(t.get("type_pid") or 0),
                    }
                )
            except (TypeError, ValueError):
                logger.warning(f"Skipping remote type with bad id from {base}: {t!r}")
        return {"ok": True, "types": types}
