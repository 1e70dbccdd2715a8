"""Steps shared by the video and article ingestion endpoints."""

import logging
import random
import re
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from collecthub.models.category import Category
from collecthub.schemas.collect_settings import CollectSettings
from collecthub.schemas.receive import ReceiveCode, ReceiveResult
from collecthub.services.collect_settings import CollectSettingsService
from collecthub.services.collect_task import CollectTaskService
from collecthub.services.synonyms import apply_synonyms, parse_synonyms
from collecthub.services.type_bind import TypeBindService

logger = logging.getLogger(__name__)

MIN_PASS_LENGTH = 16
_TAG = re.compile(r"<[^>]+>")


def text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def to_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def letter_for(name: str) -> str:
    """Index letter: first character upper-cased when it is A-Z, otherwise '#'."""
    first = name[:1].upper()
    return first if "A" <= first <= "Z" else "#"


def strip_tags(html: str) -> str:
    return _TAG.sub("", html)


def rand_int(low: int, high: int) -> int:
    low = min(max(int(low), 0), 2_000_000_000)
    high = min(max(int(high), 0), 2_000_000_000)
    if high <= low:
        return low
    return random.randint(low, high)


def rand_score(low: float, high: float) -> float:
    a = max(0.0, min(10.0, float(low)))
    b = max(0.0, min(10.0, float(high)))
    lo, hi = min(a, b), max(a, b)
    return round(lo + random.random() * (hi - lo), 1)


class Rewriter:
    """Synonym pairs per field, empty when rewriting is disabled."""

    def __init__(self, cfg: CollectSettings):
        enabled = cfg.enable_synonyms
        self.name = parse_synonyms(cfg.name_synonyms_text) if enabled else []
        self.content = parse_synonyms(cfg.content_synonyms_text) if enabled else []
        self.play_from = parse_synonyms(cfg.play_from_synonyms_text) if enabled else []
        self.area = parse_synonyms(cfg.area_synonyms_text) if enabled else []
        self.lang = parse_synonyms(cfg.lang_synonyms_text) if enabled else []

    @staticmethod
    def apply(value: str, pairs: list[tuple[str, str]]) -> str:
        return apply_synonyms(value, pairs) if pairs and value else value


class ReceiveBase:
    """Secret check, keyword filter and category resolution."""

    category_module: int
    id_field: str

    def __init__(
        self,
        session_factory: async_sessionmaker,
        settings_service: CollectSettingsService,
        type_bind: TypeBindService,
        tasks: CollectTaskService,
    ):
        self.session_factory = session_factory
        self.settings_service = settings_service
        self.type_bind = type_bind
        self.tasks = tasks

    async def check_pass(self, body: dict[str, Any]) -> ReceiveResult | None:
        expected = await self.settings_service.interface_pass()
        if text(body.get("pass")) != expected:
            return ReceiveResult.reject(ReceiveCode.PASS_MISMATCH, "pass error")
        if len(expected) < MIN_PASS_LENGTH:
            return ReceiveResult.reject(ReceiveCode.PASS_TOO_SHORT, "pass too short")
        return None

    @staticmethod
    def blocked_keyword(name: str, cfg: CollectSettings) -> str | None:
        for keyword in (k.strip() for k in cfg.filter_keywords.split(",")):
            if keyword and keyword in name:
                return keyword
        return None

    async def resolve_category(
        self,
        session: AsyncSession,
        body: dict[str, Any],
    ) -> tuple[Category | None, ReceiveResult | None]:
        """Map the pushed category reference to a local category.

        A source with bindings is strict: an unbound remote id is rejected.
        A source without bindings passes the remote id through; when that id
        is not a local category of this module the name is tried instead.
        """
        type_id = to_int(body.get("type_id"))
        type_name = text(body.get("type_name"))
        source_id = to_int(body.get("source_id"))
        if not type_id and not type_name:
            return None, ReceiveResult.reject(ReceiveCode.TYPE_NOT_FOUND, "require type")

        if source_id > 0 and type_id > 0:
            bind_map = await self.type_bind.get_bind_map(source_id)
            local = bind_map.get(type_id)
            if local and local > 0:
                type_id = local
            elif bind_map:
                return None, ReceiveResult.reject(
                    ReceiveCode.TYPE_UNBOUND,
                    f"type {type_id} not bound for source {source_id}",
                )

        category = None
        if type_id > 0:
            category = (
                await session.execute(
                    select(Category).where(Category.id == type_id, Category.module == self.category_module)
                )
            ).scalar_one_or_none()
        if category is None and type_name:
            category = (
                await session.execute(
                    select(Category)
                    .where(
                        Category.module == self.category_module,
                        Category.status == 1,
                        Category.name == type_name,
                    )
                    .order_by(Category.id.asc())
                    .limit(1)
                )
            ).scalar_one_or_none()
        if category is None:
            return None, ReceiveResult.reject(ReceiveCode.TYPE_NOT_FOUND, "type not found")
        return category, None

    async def record_ledger(
        self,
        session: AsyncSession,
        body: dict[str, Any],
        local_id: int,
        is_new: bool,
    ) -> None:
        """Mark the remote item as pushed when the worker identified it."""
        source_id = to_int(body.get("source_id"))
        remote_id = text(body.get("remote_id") or body.get(self.id_field))
        if source_id <= 0 or not remote_id:
            return
        task_id = to_int(body.get("task_id")) or None
        await self.tasks.record_collected_item(session, source_id, remote_id, local_id, is_new, task_id=task_id)
