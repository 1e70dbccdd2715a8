"""Seed a demo collect source, job, local categories and players.

Creates the taxonomy the ingestion endpoints resolve against, one source
pointing at a demo catalog, and an hourly job bound to it. Safe to re-run.

Usage:
    docker compose exec backend python -m scripts.seed_collect
"""

import asyncio

from sqlalchemy import select

from collecthub.config import get_settings
from collecthub.models.base import AsyncSessionLocal, Base, engine
from collecthub.models.category import CATEGORY_MODULE_ARTICLE, CATEGORY_MODULE_VOD, Category
from collecthub.models.collect_job import CollectJob
from collecthub.models.collect_source import CollectSource
from collecthub.models.player import Player
from collecthub.services.collect_settings import CollectSettingsService

settings = get_settings()

CATEGORIES = [
    ("Movies", CATEGORY_MODULE_VOD),
    ("Series", CATEGORY_MODULE_VOD),
    ("Anime", CATEGORY_MODULE_VOD),
    ("Documentary", CATEGORY_MODULE_VOD),
    ("News", CATEGORY_MODULE_ARTICLE),
    ("Reviews", CATEGORY_MODULE_ARTICLE),
]

PLAYERS = [
    {"from_key": "m3u8", "name": "HLS"},
    {"from_key": "mp4", "name": "MP4"},
]

DEMO_SOURCE = {
    "name": "Demo Catalog",
    "base_url": "https://catalog.example.com/api.php/provide/vod",
    "collect_type": 2,
}

DEMO_JOB = {
    "name": "Demo hourly",
    "schedule": "@every 3600",
    "collect_time": 24,
}


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    categories_created = players_created = 0
    async with AsyncSessionLocal() as session:
        async with session.begin():
            for name, module in CATEGORIES:
                existing = await session.execute(
                    select(Category.id).where(Category.name == name, Category.module == module)
                )
                if existing.scalar_one_or_none() is None:
                    session.add(Category(name=name, module=module))
                    categories_created += 1

            for player in PLAYERS:
                existing = await session.execute(select(Player.id).where(Player.from_key == player["from_key"]))
                if existing.scalar_one_or_none() is None:
                    session.add(Player(**player))
                    players_created += 1

            source = (
                await session.execute(select(CollectSource).where(CollectSource.base_url == DEMO_SOURCE["base_url"]))
            ).scalar_one_or_none()
            if source is None:
                source = CollectSource(**DEMO_SOURCE)
                session.add(source)
                await session.flush()

            job = (
                await session.execute(select(CollectJob).where(CollectJob.name == DEMO_JOB["name"]))
            ).scalar_one_or_none()
            if job is None:
                job = CollectJob(**DEMO_JOB)
                job.sources = [source]
                session.add(job)

    if settings.interface_pass:
        await CollectSettingsService(AsyncSessionLocal).save_system(settings.interface_pass)

    print(f"Done: {categories_created} categories, {players_created} players, source {source.id}, job {job.id}")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
