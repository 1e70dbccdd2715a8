"""Wire the collect services from settings and a session factory."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import async_sessionmaker

from collecthub.config import Settings
from collecthub.services.collect import CollectService
from collecthub.services.collect_settings import CollectSettingsService
from collecthub.services.collect_task import CollectTaskService
from collecthub.services.collector_queue import CollectorQueueService
from collecthub.services.receive_article import ReceiveArticleService
from collecthub.services.receive_vod import ReceiveVodService
from collecthub.services.redis_cache import RedisCache
from collecthub.services.scheduler import CollectScheduler
from collecthub.services.type_bind import TypeBindService
from collecthub.services.worker_runner import WorkerRunner


@dataclass
class CollectServices:
    cache: RedisCache
    tasks: CollectTaskService
    collect: CollectService
    settings: CollectSettingsService
    type_bind: TypeBindService
    queue: CollectorQueueService
    receive_vod: ReceiveVodService
    receive_article: ReceiveArticleService
    runner: WorkerRunner
    scheduler: CollectScheduler


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker,
    cache: RedisCache | None = None,
) -> CollectServices:
    cache = cache or RedisCache(settings.redis_url, enabled=settings.redis_cache_enabled)

    tasks = CollectTaskService(session_factory, error_message_max=settings.error_message_max)
    collect = CollectService(
        session_factory,
        tasks,
        stale_run_seconds=settings.stale_run_seconds,
        reaper_batch_size=settings.reaper_batch_size,
        run_message_max=settings.run_message_max,
    )
    settings_service = CollectSettingsService(session_factory, fallback_interface_pass=settings.interface_pass)
    type_bind = TypeBindService(
        session_factory,
        cache=cache,
        ttl=settings.type_bind_cache_ttl,
        remote_timeout=settings.remote_types_timeout,
    )
    runner = WorkerRunner(
        collect,
        api_base=settings.public_base_url,
        token=settings.collector_worker_token,
        worker_dir=settings.worker_dir,
        worker_binary=settings.worker_binary,
        build_command=settings.worker_build_command,
        interval_seconds=settings.runner_interval_seconds,
        tail_lines=settings.worker_log_tail_lines,
    )

    return CollectServices(
        cache=cache,
        tasks=tasks,
        collect=collect,
        settings=settings_service,
        type_bind=type_bind,
        queue=CollectorQueueService(collect, tasks, settings_service, public_base_url=settings.public_base_url),
        receive_vod=ReceiveVodService(session_factory, settings_service, type_bind, tasks),
        receive_article=ReceiveArticleService(session_factory, settings_service, type_bind, tasks),
        runner=runner,
        scheduler=CollectScheduler(
            collect,
            runner=runner if settings.runner_enabled else None,
            interval_seconds=settings.tick_interval_seconds,
        ),
    )
