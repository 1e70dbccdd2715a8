"""Video ingestion: merge one harvested record into the local catalog."""

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from collecthub.models.base import dialect_insert, utcnow
from collecthub.models.category import CATEGORY_MODULE_VOD
from collecthub.models.player import Player
from collecthub.models.vod import Vod, VodEpisode, VodSource
from collecthub.schemas.collect_settings import CollectSettings
from collecthub.schemas.receive import ReceiveCode, ReceiveResult
from collecthub.services.receive_common import (
    ReceiveBase,
    Rewriter,
    letter_for,
    rand_int,
    rand_score,
    text,
    to_int,
)

logger = logging.getLogger(__name__)

# Dedup field -> Vod column; "name" is always matched
DEDUP_COLUMNS = {
    "year": Vod.year,
    "area": Vod.area,
    "lang": Vod.lang,
    "actor": Vod.actor,
    "director": Vod.director,
}

# Update fields written from the incoming record when non-empty; "play" is handled separately
UPDATE_ATTRS = ("pic", "remarks", "area", "lang", "year", "actor", "director", "content", "writer", "pubdate", "duration")


def build_play_list_from_legacy(play_from: str, play_url: str) -> list[dict[str, Any]]:
    """Convert ``vod_play_from``/``vod_play_url`` into the ``playList`` shape.

    Groups are separated by ``$$$``, episodes by ``#`` and each episode is
    ``title$url``. Groups without a name or without any URL are dropped.
    """
    froms = [s for s in text(play_from).split("$$$") if s]
    urls = [s for s in text(play_url).split("$$$") if s]

    play_list = []
    for i, raw_from in enumerate(froms):
        player_name = raw_from.strip()
        url_str = urls[i].strip() if i < len(urls) else ""
        if not player_name or not url_str:
            continue

        episodes = []
        for idx, chunk in enumerate(url_str.split("#")):
            title, _, url = chunk.partition("$")
            url = url.strip()
            if not url:
                continue
            episodes.append({
                "episode_num": idx + 1,
                "title": title.strip() or f"Episode {idx + 1}",
                "url": url,
                "sort": idx,
            })
        if episodes:
            play_list.append({"player_name": player_name, "episodes": episodes})
    return play_list


class ReceiveVodService(ReceiveBase):
    category_module = CATEGORY_MODULE_VOD
    id_field = "vod_id"

    async def receive(self, body: dict[str, Any]) -> ReceiveResult:
        """Run the ingestion pipeline for one video record.

        Expected rejections come back as coded results, never as exceptions.
        Everything after validation happens in one transaction.
        """
        if not body.get("playList") and body.get("vod_play_from") and body.get("vod_play_url"):
            body["playList"] = build_play_list_from_legacy(body["vod_play_from"], body["vod_play_url"])

        rejected = await self.check_pass(body)
        if rejected:
            return rejected

        vod_name = text(body.get("vod_name"))
        if not vod_name:
            return ReceiveResult.reject(ReceiveCode.NAME_REQUIRED, "require name")

        cfg = await self.settings_service.get()
        keyword = self.blocked_keyword(vod_name, cfg)
        if keyword:
            return ReceiveResult.reject(ReceiveCode.BLOCKED_KEYWORD, f"blocked by keyword: {keyword}")

        rewriter = Rewriter(cfg)
        fields = {
            "name": rewriter.apply(vod_name, rewriter.name),
            "pic": text(body.get("vod_pic")),
            "remarks": text(body.get("vod_remarks")),
            "year": text(body.get("vod_year")),
            "area": rewriter.apply(text(body.get("vod_area")), rewriter.area),
            "lang": rewriter.apply(text(body.get("vod_lang")), rewriter.lang),
            "actor": text(body.get("vod_actor")),
            "director": text(body.get("vod_director")),
            "writer": text(body.get("vod_writer")),
            "pubdate": text(body.get("vod_pubdate")),
            "duration": text(body.get("vod_duration")),
            "content": rewriter.apply(text(body.get("vod_content")), rewriter.content),
        }
        if fields["name"] != vod_name:
            logger.debug(f'Synonyms rewrote name "{vod_name}" => "{fields["name"]}"')

        play_list = body.get("playList") or []

        async with self.session_factory() as session:
            async with session.begin():
                category, rejected = await self.resolve_category(session, body)
                if rejected:
                    return rejected

                existing = await self._find_existing(session, cfg, fields, category.id)

                if existing is None:
                    vod = Vod(
                        type_id=category.id,
                        class_name=category.name,
                        letter=letter_for(fields["name"]),
                        status=cfg.default_vod_status,
                        **fields,
                        **self._seed(cfg),
                    )
                    session.add(vod)
                    await session.flush()
                    await self._apply_play_list(session, vod.id, play_list, cfg.play_update_mode, rewriter)
                    await self.record_ledger(session, body, vod.id, True)
                    logger.info(f"Created vod {vod.id} ({vod.name})")
                    return ReceiveResult(code=ReceiveCode.CREATED, msg="add ok", vod_id=vod.id)

                update_fields = cfg.effective_update_fields()
                if not update_fields:
                    return ReceiveResult(
                        code=ReceiveCode.NOTHING_TO_UPDATE,
                        msg="duplicate, no update fields configured",
                        vod_id=existing.id,
                    )

                for attr in UPDATE_ATTRS:
                    if attr in update_fields and fields[attr]:
                        setattr(existing, attr, fields[attr])
                existing.updated_at = utcnow()

                if "play" in update_fields:
                    if cfg.play_update_mode == "replace":
                        await session.execute(delete(VodEpisode).where(VodEpisode.vod_id == existing.id))
                        await session.execute(delete(VodSource).where(VodSource.vod_id == existing.id))
                    await self._apply_play_list(session, existing.id, play_list, cfg.play_update_mode, rewriter)

                await self.record_ledger(session, body, existing.id, False)
                logger.info(f"Updated vod {existing.id} ({existing.name})")
                return ReceiveResult(code=ReceiveCode.UPDATED, msg="update ok", vod_id=existing.id)

    async def _find_existing(
        self,
        session: AsyncSession,
        cfg: CollectSettings,
        fields: dict[str, str],
        type_id: int,
    ) -> Vod | None:
        query = select(Vod).where(Vod.name == fields["name"])
        if "type" in cfg.dedup_fields:
            query = query.where(Vod.type_id == type_id)
        for field, column in DEDUP_COLUMNS.items():
            if field in cfg.dedup_fields and fields[field]:
                query = query.where(column == fields[field])
        result = await session.execute(query.order_by(Vod.id.asc()).limit(1))
        return result.scalar_one_or_none()

    @staticmethod
    def _seed(cfg: CollectSettings) -> dict[str, Any]:
        return {
            "hits": rand_int(cfg.random_hits_min, cfg.random_hits_max) if cfg.random_hits else 0,
            "up": rand_int(cfg.random_up_min, cfg.random_up_max) if cfg.random_up_down else 0,
            "down": rand_int(cfg.random_down_min, cfg.random_down_max) if cfg.random_up_down else 0,
            "score": rand_score(cfg.random_score_min, cfg.random_score_max) if cfg.random_score else 0.0,
        }

    async def _resolve_source(self, session: AsyncSession, vod_id: int, group: dict[str, Any], rewriter: Rewriter):
        player_id = to_int(group.get("playerId") or group.get("player_id"))
        player_name = rewriter.apply(text(group.get("playerName") or group.get("player_name")), rewriter.play_from)
        if not player_id and not player_name:
            return None

        if not player_id:
            found = await session.execute(
                select(Player.id).where(Player.from_key == player_name, Player.status == 1).limit(1)
            )
            player_id = found.scalar_one_or_none() or 0

        lookup = select(VodSource).where(VodSource.vod_id == vod_id)
        if player_id:
            lookup = lookup.where(VodSource.player_id == player_id)
        else:
            lookup = lookup.where(VodSource.player_id == 0, VodSource.player_name == player_name)
        source = (await session.execute(lookup.limit(1))).scalar_one_or_none()
        if source is None:
            source = VodSource(
                vod_id=vod_id,
                player_id=player_id,
                player_name=player_name,
                sort=to_int(group.get("sort")),
            )
            session.add(source)
            await session.flush()
        return source

    async def _apply_play_list(
        self,
        session: AsyncSession,
        vod_id: int,
        play_list: list[dict[str, Any]],
        mode: str,
        rewriter: Rewriter,
    ) -> None:
        """Attach play sources and episodes; episodes are keyed by (source, episode number)."""
        if not isinstance(play_list, list):
            return

        for group in play_list:
            if not isinstance(group, dict):
                continue
            source = await self._resolve_source(session, vod_id, group, rewriter)
            if source is None:
                continue

            episodes = group.get("episodes") or []
            if not isinstance(episodes, list):
                continue
            if mode == "replace":
                await session.execute(delete(VodEpisode).where(VodEpisode.source_id == source.id))

            for idx, ep in enumerate(episodes):
                if not isinstance(ep, dict):
                    continue
                url = text(ep.get("url"))
                if not url:
                    continue
                stmt = dialect_insert(session, VodEpisode.__table__).values(
                    vod_id=vod_id,
                    source_id=source.id,
                    episode_num=to_int(ep.get("num") or ep.get("episode_num")) or idx + 1,
                    title=text(ep.get("title")),
                    url=url,
                    sort=to_int(ep.get("sort"), idx),
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["source_id", "episode_num"],
                    set_={
                        "title": stmt.excluded.title,
                        "url": stmt.excluded.url,
                        "sort": stmt.excluded.sort,
                    },
                )
                await session.execute(stmt)
