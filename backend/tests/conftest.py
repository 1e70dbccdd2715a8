import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from collecthub.config import Settings
from collecthub.main import create_app
from collecthub.models.base import Base
from collecthub.models.category import CATEGORY_MODULE_ARTICLE, CATEGORY_MODULE_VOD, Category
from collecthub.models.player import Player
from collecthub.schemas.collect_job import CollectJobCreate
from collecthub.schemas.collect_source import CollectSourceCreate
from collecthub.services.container import build_services

WORKER_TOKEN = "worker-token-123"
ADMIN_TOKEN = "admin-token-456"
INTERFACE_PASS = "interface-pass-0123456789"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'collect.db'}",
        redis_cache_enabled=False,
        collector_worker_token=WORKER_TOKEN,
        admin_token=ADMIN_TOKEN,
        interface_pass=INTERFACE_PASS,
        public_base_url="http://orchestrator.test",
        scheduler_backend="off",
        runner_enabled=False,
        worker_dir=str(tmp_path),
    )


@pytest.fixture
async def engine(settings):
    # NullPool: no connection outlives the event loop that opened it
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def services(settings, session_factory):
    return build_services(settings, session_factory)


@pytest.fixture
async def client(settings, engine, session_factory, services):
    app = create_app(settings=settings, engine=engine, session_factory=session_factory)
    app.state.settings = settings
    app.state.services = services
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def worker_headers():
    return {"Authorization": f"Bearer {WORKER_TOKEN}"}


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
async def categories(session_factory):
    """Local taxonomy: two video categories and one article category under a parent."""
    async with session_factory() as session:
        async with session.begin():
            movies = Category(name="Movies", module=CATEGORY_MODULE_VOD)
            series = Category(name="Series", module=CATEGORY_MODULE_VOD)
            news_root = Category(name="Articles", module=CATEGORY_MODULE_ARTICLE)
            session.add_all([movies, series, news_root])
            await session.flush()
            news = Category(name="News", module=CATEGORY_MODULE_ARTICLE, parent_id=news_root.id)
            session.add(news)
            session.add(Player(from_key="m3u8", name="HLS"))
            await session.flush()
    return {"movies": movies.id, "series": series.id, "news": news.id, "news_root": news_root.id}


async def make_source(services, name="Source A", base_url="https://a.example.com/api"):
    source = await services.collect.create_source(CollectSourceCreate(name=name, base_url=base_url))
    return source.id


async def make_job(services, source_ids, name="Hourly", schedule="3600"):
    job = await services.collect.create_job(
        CollectJobCreate(name=name, schedule=schedule, source_ids=source_ids)
    )
    return job.id
