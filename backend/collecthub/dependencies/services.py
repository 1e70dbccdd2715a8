"""Resolve the collect services built in the application lifespan."""

from fastapi import Request

from collecthub.services.collect import CollectService
from collecthub.services.collect_settings import CollectSettingsService
from collecthub.services.collect_task import CollectTaskService
from collecthub.services.collector_queue import CollectorQueueService
from collecthub.services.container import CollectServices
from collecthub.services.receive_article import ReceiveArticleService
from collecthub.services.receive_vod import ReceiveVodService
from collecthub.services.type_bind import TypeBindService
from collecthub.services.worker_runner import WorkerRunner


def get_services(request: Request) -> CollectServices:
    return request.app.state.services


def get_collect(request: Request) -> CollectService:
    return get_services(request).collect


def get_tasks(request: Request) -> CollectTaskService:
    return get_services(request).tasks


def get_queue(request: Request) -> CollectorQueueService:
    return get_services(request).queue


def get_settings_service(request: Request) -> CollectSettingsService:
    return get_services(request).settings


def get_type_bind(request: Request) -> TypeBindService:
    return get_services(request).type_bind


def get_receive_vod(request: Request) -> ReceiveVodService:
    return get_services(request).receive_vod


def get_receive_article(request: Request) -> ReceiveArticleService:
    return get_services(request).receive_article


def get_runner(request: Request) -> WorkerRunner:
    return get_services(request).runner
