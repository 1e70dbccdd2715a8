"""Key/value settings store for collect policy and the ingestion secret."""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from collecthub.models.base import dialect_insert, utcnow
from collecthub.models.setting import Setting
from collecthub.schemas.collect_settings import CollectSettings, CollectSettingsUpdate, SystemSettings

logger = logging.getLogger(__name__)

COLLECT_KEY = "collect"
SYSTEM_KEY = "system"


class CollectSettingsService:
    def __init__(self, session_factory: async_sessionmaker, fallback_interface_pass: str = ""):
        self.session_factory = session_factory
        self.fallback_interface_pass = fallback_interface_pass

    async def _load(self, session: AsyncSession, key: str) -> dict[str, Any]:
        result = await session.execute(select(Setting.value_json).where(Setting.key == key))
        value = result.scalar_one_or_none()
        return value if isinstance(value, dict) else {}

    async def _store(self, session: AsyncSession, key: str, value: dict[str, Any]) -> None:
        now = utcnow()
        stmt = dialect_insert(session, Setting.__table__).values(key=key, value_json=value, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"value_json": stmt.excluded.value_json, "updated_at": stmt.excluded.updated_at},
        )
        await session.execute(stmt)

    async def get(self) -> CollectSettings:
        """Stored collect settings merged over the defaults."""
        async with self.session_factory() as session:
            stored = await self._load(session, COLLECT_KEY)
        return CollectSettings.model_validate(stored)

    async def save(self, partial: CollectSettingsUpdate) -> CollectSettings:
        changes = partial.model_dump(exclude_unset=True, exclude_none=True)
        async with self.session_factory() as session:
            async with session.begin():
                stored = await self._load(session, COLLECT_KEY)
                merged = CollectSettings.model_validate({**stored, **changes})
                await self._store(session, COLLECT_KEY, merged.model_dump())
        logger.info(f"Collect settings saved ({', '.join(sorted(changes)) or 'no changes'})")
        return merged

    async def get_system(self) -> SystemSettings:
        async with self.session_factory() as session:
            stored = await self._load(session, SYSTEM_KEY)
        return SystemSettings.model_validate(stored)

    async def save_system(self, interface_pass: str) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                stored = await self._load(session, SYSTEM_KEY)
                stored["interface_pass"] = interface_pass.strip()
                await self._store(session, SYSTEM_KEY, stored)

    async def interface_pass(self) -> str:
        """Ingestion secret: the system setting wins over the environment value."""
        system = await self.get_system()
        return (system.interface_pass or self.fallback_interface_pass or "").strip()
