"""Collect scheduling tasks run by Celery beat."""

import asyncio
import logging

import redis.asyncio as redis
from redis.exceptions import LockError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from collecthub.config import get_settings
from collecthub.services.container import build_services
from collecthub.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

RUNNER_LOCK_KEY = "collecthub:runner-lock"


async def _with_services(fn):
    # Each task invocation gets its own event loop, so no pooled connections are shared
    settings = get_settings()
    engine = create_async_engine(settings.database_url, poolclass=NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    services = build_services(settings, session_factory)
    try:
        return await fn(services)
    finally:
        await services.cache.close()
        await engine.dispose()


async def _tick(services) -> dict:
    reaped = await services.collect.reap_stale_runs()
    enqueued = await services.collect.enqueue_due_jobs()
    return {"reaped": reaped, "enqueued": enqueued}


def _redis_client(settings):
    return redis.from_url(settings.redis_url, socket_timeout=5.0)


async def _kick(services) -> dict:
    # Each invocation has its own runner, so the one-collector guard lives in redis
    settings = get_settings()
    client = _redis_client(settings)
    try:
        lock = client.lock(RUNNER_LOCK_KEY, timeout=settings.runner_lock_timeout_seconds)
        if not await lock.acquire(blocking=False):
            logger.info("Collector already running in another worker, skipping kick")
            return {"ran": False, "skipped": "locked"}
        try:
            ran = await services.runner.kick()
        finally:
            try:
                await lock.release()
            except LockError as e:
                logger.warning(f"Runner lock release failed: {e}")
        return {"ran": ran}
    finally:
        await client.aclose()


@celery_app.task(name="collect.tick")
def tick():
    """Reap stale runs, then enqueue due jobs."""
    result = asyncio.run(_with_services(_tick))
    if result["reaped"] or result["enqueued"]:
        logger.info(f"Collect tick: reaped {result['reaped']}, enqueued runs {result['enqueued']}")
    if result["enqueued"]:
        kick_runner.delay()
    return result


@celery_app.task(name="collect.kick_runner")
def kick_runner():
    """Run the reference collector once if there is pending work."""
    settings = get_settings()
    if not settings.runner_enabled:
        return {"ran": False, "skipped": "runner disabled"}
    return asyncio.run(_with_services(_kick))
