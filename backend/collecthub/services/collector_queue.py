"""Worker pull protocol: hand out claimed tasks and apply worker reports."""

import logging
from typing import Any

from sqlalchemy import select, update

from collecthub.exceptions import CollectError
from collecthub.models.base import utcnow
from collecthub.models.collect_job import CollectJob
from collecthub.models.collect_run import ACTIVE_STATUSES, CollectRun, CollectStatus
from collecthub.models.collect_source import CollectSource
from collecthub.models.collect_task import CollectTask
from collecthub.schemas.collect_source import CollectSourceSummary
from collecthub.schemas.collector_queue import PulledJob, PulledRun, PullResponse, ReportRequest
from collecthub.services.collect import CollectService
from collecthub.services.collect_settings import CollectSettingsService
from collecthub.services.collect_task import ClaimedTask, CollectTaskService

logger = logging.getLogger(__name__)

RUN_FIELDS = (
    "progress_page",
    "progress_total_pages",
    "pushed_count",
    "updated_count",
    "created_count",
    "error_count",
)


class CollectorQueueService:
    def __init__(
        self,
        collect: CollectService,
        tasks: CollectTaskService,
        settings_service: CollectSettingsService,
        public_base_url: str = "",
    ):
        self.collect = collect
        self.tasks = tasks
        self.settings_service = settings_service
        self.public_base_url = public_base_url.rstrip("/")

    @property
    def session_factory(self):
        return self.collect.session_factory

    async def pull(self, worker_id: str | None = None) -> PullResponse:
        """Claim the oldest pending task and describe it to the worker.

        The parent run moves to running on its first claim. Tasks whose run,
        job or source is gone (or whose run already finished) are failed and
        the next task is claimed. An empty response (``run`` is None) means
        there is no work.
        """
        worker_id = (worker_id or "").strip()[:100]

        while True:
            claimed = await self.tasks.claim_next_task()
            if claimed is None:
                return PullResponse(run=None)
            described = await self._start_claimed(claimed, worker_id)
            if described is not None:
                break
        pulled_job, source_summary = described

        collect_settings = await self.settings_service.get()
        pulled_job.domain_url = self.public_base_url
        pulled_job.api_pass = await self.settings_service.interface_pass()
        pulled_job.filter_keywords = collect_settings.filter_keywords

        logger.info(f"Worker {worker_id or '-'} pulled task {claimed.id} (run {claimed.run_id})")
        return PullResponse(
            run=PulledRun(
                id=claimed.run_id,
                job_id=pulled_job.id,
                task_id=claimed.id,
                source_id=claimed.source_id,
                current_page=claimed.current_page,
                total_pages=claimed.total_pages,
            ),
            job=pulled_job,
            sources=[source_summary],
        )

    async def _start_claimed(
        self, claimed: ClaimedTask, worker_id: str
    ) -> tuple[PulledJob, CollectSourceSummary] | None:
        """Mark the claimed task's run as picked up; None when the task had to be dropped."""
        now = utcnow()

        async with self.session_factory() as session:
            async with session.begin():
                run = await session.get(CollectRun, claimed.run_id)
                job = await session.get(CollectJob, run.job_id) if run and run.job_id else None
                source = await session.get(CollectSource, claimed.source_id)

                reason = None
                if run is None:
                    reason = "run not found"
                elif CollectStatus(run.status).is_terminal:
                    reason = "run already finished"
                elif job is None:
                    reason = "job not found"
                elif source is None:
                    reason = "source not found"
                if reason:
                    await self.tasks.complete_task(claimed.id, CollectStatus.FAILED, reason, session=session)
                    logger.warning(f"Dropped claimed task {claimed.id}: {reason}")
                    return None

                values: dict[str, Any] = {"updated_at": now}
                if worker_id:
                    values["worker_id"] = worker_id
                if run.status == CollectStatus.PENDING:
                    values["status"] = CollectStatus.RUNNING
                    values["started_at"] = now
                await session.execute(
                    update(CollectRun)
                    .where(CollectRun.id == run.id, CollectRun.status.in_(ACTIVE_STATUSES))
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

                return PulledJob.model_validate(job), CollectSourceSummary.model_validate(source)

    async def report(self, body: ReportRequest) -> None:
        """Apply a worker report to the run and, when scoped to a task, to that task.

        Reports against a finished run are accepted and ignored.
        """
        run_id = body.id
        status = CollectStatus(body.status) if body.status is not None else None
        message = body.message.strip()[: self.collect.run_message_max] if body.message is not None else None

        async with self.session_factory() as session:
            async with session.begin():
                run = (
                    await session.execute(select(CollectRun).where(CollectRun.id == run_id).with_for_update())
                ).scalar_one_or_none()
                if run is None:
                    raise CollectError("run not found")
                if CollectStatus(run.status).is_terminal:
                    logger.debug(f"Ignoring report for finished run {run_id}")
                    return

                now = utcnow()
                if body.task_id:
                    await self._apply_task_report(session, body, status, message)
                    stats = await self.tasks.aggregate_stats(session, run_id)
                    await session.refresh(run)

                    if run.status == CollectStatus.PENDING:
                        run.status = CollectStatus.RUNNING
                        run.started_at = run.started_at or now
                    if stats.all_terminal:
                        run.status = CollectStatus.DONE if stats.completed_tasks else CollectStatus.FAILED
                        run.finished_at = now
                else:
                    for field in RUN_FIELDS:
                        value = getattr(body, field)
                        if value is not None:
                            setattr(run, field, max(0, value))
                    if status is not None:
                        self._transition_run(run, status, now)

                if body.progress_page is not None:
                    run.progress_page = max(0, body.progress_page)
                if body.progress_total_pages is not None:
                    run.progress_total_pages = max(0, body.progress_total_pages)
                if message is not None:
                    run.message = message
                run.updated_at = now

    async def _apply_task_report(
        self,
        session,
        body: ReportRequest,
        status: CollectStatus | None,
        message: str | None,
    ) -> None:
        owner = await session.execute(select(CollectTask.run_id).where(CollectTask.id == body.task_id))
        if owner.scalar_one_or_none() != body.id:
            raise CollectError("task not found for run")

        await self.tasks.report_progress(
            body.task_id,
            current_page=body.progress_page,
            total_pages=body.progress_total_pages,
            created_count=body.created_count,
            updated_count=body.updated_count,
            error_count=body.error_count,
            session=session,
        )
        if status is not None and status.is_terminal:
            error_message = message if status == CollectStatus.FAILED else None
            await self.tasks.complete_task(body.task_id, status, error_message, session=session)

    @staticmethod
    def _transition_run(run: CollectRun, status: CollectStatus, now) -> None:
        run.status = status
        if status == CollectStatus.RUNNING and run.started_at is None:
            run.started_at = now
        if status.is_terminal:
            run.finished_at = now
