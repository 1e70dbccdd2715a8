"""Celery application configuration and beat schedule.

Alternative to the in-process scheduler (``SCHEDULER_BACKEND=celery``): beat
fires the same reaper/enqueuer tick and runner kick on fixed intervals.
"""

from celery import Celery

from collecthub.config import get_settings

settings = get_settings()

celery_app = Celery(
    "collecthub",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "collecthub.tasks.collect_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    task_track_started=True,
    task_time_limit=3600,
    task_soft_time_limit=3540,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "collect-tick": {
        "task": "collect.tick",
        "schedule": settings.tick_interval_seconds,
    },
    "collect-kick-runner": {
        "task": "collect.kick_runner",
        "schedule": settings.runner_interval_seconds,
        "options": {"expires": settings.runner_interval_seconds},
    },
}
