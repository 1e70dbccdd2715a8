"""Article ingestion: same pipeline as videos over the article table."""

import logging
from typing import Any

from sqlalchemy import select

from collecthub.models.article import Article
from collecthub.models.base import utcnow
from collecthub.models.category import CATEGORY_MODULE_ARTICLE
from collecthub.schemas.receive import ReceiveCode, ReceiveResult
from collecthub.services.receive_common import (
    ReceiveBase,
    Rewriter,
    letter_for,
    rand_int,
    rand_score,
    strip_tags,
    text,
    to_int,
)

logger = logging.getLogger(__name__)

BLURB_LENGTH = 200
ARTICLE_UPDATE_ATTRS = ("pic", "content", "remarks")


class ReceiveArticleService(ReceiveBase):
    category_module = CATEGORY_MODULE_ARTICLE
    id_field = "art_id"

    async def receive(self, body: dict[str, Any]) -> ReceiveResult:
        rejected = await self.check_pass(body)
        if rejected:
            return rejected

        art_name = text(body.get("art_name"))
        if not art_name:
            return ReceiveResult.reject(ReceiveCode.NAME_REQUIRED, "require name")

        cfg = await self.settings_service.get()
        keyword = self.blocked_keyword(art_name, cfg)
        if keyword:
            return ReceiveResult.reject(ReceiveCode.BLOCKED_KEYWORD, f"blocked by keyword: {keyword}")

        rewriter = Rewriter(cfg)
        name = rewriter.apply(art_name, rewriter.name)
        content = rewriter.apply(text(body.get("art_content")), rewriter.content)
        pic = text(body.get("art_pic"))
        remarks = text(body.get("art_remarks"))
        blurb = text(body.get("art_blurb")) or strip_tags(content)[:BLURB_LENGTH]

        async with self.session_factory() as session:
            async with session.begin():
                category, rejected = await self.resolve_category(session, body)
                if rejected:
                    return rejected

                query = select(Article).where(Article.name == name)
                if "type" in cfg.dedup_fields:
                    query = query.where(Article.type_id == category.id)
                existing = (await session.execute(query.order_by(Article.id.asc()).limit(1))).scalar_one_or_none()

                if existing is None:
                    article = Article(
                        type_id=category.id,
                        type_pid=category.parent_id or 0,
                        name=name,
                        sub=text(body.get("art_sub")),
                        letter=letter_for(name),
                        pic=pic,
                        author=text(body.get("art_author")),
                        source=text(body.get("art_from") or body.get("art_source")),
                        tag=text(body.get("art_tag")),
                        blurb=blurb,
                        remarks=remarks,
                        content=content,
                        jump_url=text(body.get("art_jumpurl")),
                        level=to_int(body.get("art_level")),
                        status=to_int(body.get("art_status"), 1) if body.get("art_status") is not None else 1,
                        hits=rand_int(cfg.random_hits_min, cfg.random_hits_max)
                        if cfg.random_hits
                        else to_int(body.get("art_hits")),
                        up=rand_int(cfg.random_up_min, cfg.random_up_max)
                        if cfg.random_up_down
                        else to_int(body.get("art_up")),
                        down=rand_int(cfg.random_down_min, cfg.random_down_max)
                        if cfg.random_up_down
                        else to_int(body.get("art_down")),
                        score=rand_score(cfg.random_score_min, cfg.random_score_max) if cfg.random_score else 0.0,
                    )
                    session.add(article)
                    await session.flush()
                    await self.record_ledger(session, body, article.id, True)
                    logger.info(f"Created article {article.id} ({article.name})")
                    return ReceiveResult(code=ReceiveCode.CREATED, msg="add ok", art_id=article.id)

                update_fields = [f for f in cfg.effective_update_fields() if f in ARTICLE_UPDATE_ATTRS]
                if not update_fields:
                    return ReceiveResult(
                        code=ReceiveCode.NOTHING_TO_UPDATE,
                        msg="duplicate, no update fields configured",
                        art_id=existing.id,
                    )

                incoming = {"pic": pic, "content": content, "remarks": remarks}
                for attr in update_fields:
                    if incoming[attr]:
                        setattr(existing, attr, incoming[attr])
                existing.updated_at = utcnow()

                await self.record_ledger(session, body, existing.id, False)
                logger.info(f"Updated article {existing.id} ({existing.name})")
                return ReceiveResult(code=ReceiveCode.UPDATED, msg="update ok", art_id=existing.id)
