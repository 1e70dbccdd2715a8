"""Run/Job store: sources, jobs, runs, the stale-run reaper and the due-job enqueuer."""

import logging
import re
from datetime import datetime, timedelta
from typing import Any

from croniter import croniter
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from collecthub.exceptions import CollectError, InvalidStateError, NotFoundError
from collecthub.models.base import as_utc, utcnow
from collecthub.models.collect_job import CollectJob, collect_job_sources
from collecthub.models.collect_run import ACTIVE_STATUSES, CollectRun, CollectStatus
from collecthub.models.collect_source import CollectSource
from collecthub.models.collect_task import CollectTask
from collecthub.schemas.collect_job import CollectJobCreate, CollectJobSave
from collecthub.schemas.collect_source import CollectSourceCreate, CollectSourceSave
from collecthub.services.collect_task import CollectTaskService

logger = logging.getLogger(__name__)

_EVERY = re.compile(r"^@every\s+(\d+)$")

NO_SOURCES_MESSAGE = "no sources bound to this job"
CANCEL_MESSAGE = "cancelled by user"


def parse_schedule_seconds(schedule: str | None) -> int:
    """Interval in seconds for ``"3600"`` or ``"@every 3600"``; anything else is 0 (never due)."""
    s = (schedule or "").strip()
    if not s:
        return 0
    if s.isdigit():
        return int(s)
    match = _EVERY.match(s)
    if match:
        return int(match.group(1))
    return 0


def is_cron_schedule(schedule: str | None) -> bool:
    s = (schedule or "").strip()
    return bool(s) and parse_schedule_seconds(s) <= 0 and croniter.is_valid(s)


def cron_due(schedule: str, now: datetime, last_created: datetime | None) -> bool:
    """True when ``now`` falls in a minute the cron expression fires and no run was created in it yet."""
    minute = now.replace(second=0, microsecond=0)
    fired = croniter(schedule.strip(), minute + timedelta(seconds=1)).get_prev(datetime)
    if fired != minute:
        return False
    return last_created is None or last_created < minute


class CollectService:
    """Jobs, sources and runs; run fan-out goes through the task queue."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        tasks: CollectTaskService,
        stale_run_seconds: int = 600,
        reaper_batch_size: int = 50,
        run_message_max: int = 2000,
    ):
        self.session_factory = session_factory
        self.tasks = tasks
        self.stale_run_seconds = max(60, stale_run_seconds)
        self.reaper_batch_size = reaper_batch_size
        self.run_message_max = run_message_max

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def list_sources(self) -> list[CollectSource]:
        async with self.session_factory() as session:
            result = await session.execute(select(CollectSource).order_by(CollectSource.id.desc()))
            return list(result.scalars().all())

    async def create_source(self, data: CollectSourceCreate) -> CollectSource:
        name = data.name.strip()
        base_url = data.base_url.strip().rstrip("/")
        if len(name) < 2:
            raise CollectError("name invalid")
        if not base_url:
            raise CollectError("base_url required")

        async with self.session_factory() as session:
            async with session.begin():
                existing = await session.execute(
                    select(CollectSource.id).where(CollectSource.base_url == base_url)
                )
                if existing.scalar_one_or_none() is not None:
                    raise CollectError("base_url already exists")

                source = CollectSource(
                    name=name,
                    base_url=base_url,
                    collect_type=data.collect_type,
                    status=data.status,
                )
                session.add(source)
                await session.flush()

        logger.info(f"Created source {source.id} ({base_url})")
        return source

    async def save_source(self, data: CollectSourceSave) -> CollectSource:
        changes = data.model_dump(exclude_unset=True, exclude_none=True, exclude={"id"})
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        if "base_url" in changes:
            changes["base_url"] = changes["base_url"].strip().rstrip("/")
            if not changes["base_url"]:
                raise CollectError("base_url required")

        async with self.session_factory() as session:
            async with session.begin():
                source = await session.get(CollectSource, data.id)
                if source is None:
                    raise NotFoundError("source not found")
                if "base_url" in changes and changes["base_url"] != source.base_url:
                    clash = await session.execute(
                        select(CollectSource.id).where(
                            CollectSource.base_url == changes["base_url"],
                            CollectSource.id != source.id,
                        )
                    )
                    if clash.scalar_one_or_none() is not None:
                        raise CollectError("base_url already exists")
                for key, value in changes.items():
                    setattr(source, key, value)
                source.updated_at = utcnow()
        return source

    async def delete_source(self, source_id: int) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                source = await session.get(CollectSource, source_id)
                if source is None:
                    raise NotFoundError("source not found")
                bound = await session.execute(
                    select(func.count())
                    .select_from(collect_job_sources)
                    .where(collect_job_sources.c.source_id == source_id)
                )
                if bound.scalar_one():
                    raise InvalidStateError("source is bound to a job")
                await session.delete(source)
        logger.info(f"Deleted source {source_id}")

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def list_jobs(self) -> list[CollectJob]:
        async with self.session_factory() as session:
            result = await session.execute(select(CollectJob).order_by(CollectJob.id.desc()))
            return list(result.scalars().all())

    async def _load_sources(self, session: AsyncSession, source_ids: list[int]) -> list[CollectSource]:
        wanted = list(dict.fromkeys(int(s) for s in source_ids if s))
        if not wanted:
            return []
        result = await session.execute(select(CollectSource).where(CollectSource.id.in_(wanted)))
        found = result.scalars().all()
        if len(found) != len(wanted):
            missing = sorted(set(wanted) - {s.id for s in found})
            raise NotFoundError(f"source not found: {missing}")
        return list(found)

    async def create_job(self, data: CollectJobCreate) -> CollectJob:
        fields = data.model_dump(exclude={"source_ids"})
        fields["name"] = fields["name"].strip()
        fields["schedule"] = fields["schedule"].strip()

        async with self.session_factory() as session:
            async with session.begin():
                job = CollectJob(**fields)
                job.sources = await self._load_sources(session, data.source_ids)
                session.add(job)
                await session.flush()

        logger.info(f"Created job {job.id} ({job.name}) with {len(job.sources)} source(s)")
        return job

    async def save_job(self, data: CollectJobSave) -> CollectJob:
        changes = data.model_dump(exclude_unset=True, exclude_none=True, exclude={"id", "source_ids"})
        if "schedule" in changes:
            changes["schedule"] = changes["schedule"].strip()

        async with self.session_factory() as session:
            async with session.begin():
                job = await session.get(CollectJob, data.id)
                if job is None:
                    raise NotFoundError("job not found")
                for key, value in changes.items():
                    setattr(job, key, value)
                if data.source_ids is not None:
                    job.sources = await self._load_sources(session, data.source_ids)
                job.updated_at = utcnow()
        return job

    async def delete_job(self, job_id: int) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                job = await session.get(CollectJob, job_id)
                if job is None:
                    raise NotFoundError("job not found")
                await session.delete(job)
        logger.info(f"Deleted job {job_id}")

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def create_run(self, job_id: int, source_ids: list[int] | None = None) -> int:
        """Create a run and fan it out into one pending task per source.

        Sources come from ``source_ids`` when given, otherwise from the job's
        bindings. A run that resolves to no sources is still created but is
        failed immediately so the operator sees why nothing happened.
        """
        if not job_id:
            raise CollectError("job_id invalid")

        async with self.session_factory() as session:
            async with session.begin():
                job = await session.get(CollectJob, job_id)
                if job is None:
                    raise NotFoundError("job not found")

                if source_ids:
                    resolved = await self._load_sources(session, source_ids)
                else:
                    resolved = list(job.sources)

                run = CollectRun(job_id=job.id, status=CollectStatus.PENDING)
                session.add(run)
                await session.flush()

                if not resolved:
                    now = utcnow()
                    run.status = CollectStatus.FAILED
                    run.message = NO_SOURCES_MESSAGE
                    run.finished_at = now
                    logger.warning(f"Run {run.id} for job {job.id} failed: {NO_SOURCES_MESSAGE}")
                    return run.id

                created = await self.tasks.create_tasks_for_run(session, run.id, [s.id for s in resolved])

        logger.info(f"Created run {run.id} for job {job_id} with {created} task(s)")
        return run.id

    async def list_runs(
        self,
        page: int = 1,
        page_size: int = 20,
        status: int | None = None,
        job_id: int | None = None,
    ) -> dict[str, Any]:
        page = max(1, page)
        page_size = min(100, max(1, page_size))

        filters = []
        if status is not None and status in {s.value for s in CollectStatus}:
            filters.append(CollectRun.status == status)
        if job_id:
            filters.append(CollectRun.job_id == job_id)

        async with self.session_factory() as session:
            total = (await session.execute(select(func.count(CollectRun.id)).where(*filters))).scalar_one()
            rows = await session.execute(
                select(CollectRun, CollectJob.name)
                .outerjoin(CollectJob, CollectJob.id == CollectRun.job_id)
                .where(*filters)
                .order_by(CollectRun.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            items = [(run, job_name) for run, job_name in rows.all()]

        return {"page": page, "page_size": page_size, "total": int(total or 0), "items": items}

    async def get_run(self, run_id: int) -> CollectRun:
        async with self.session_factory() as session:
            run = await session.get(CollectRun, run_id)
            if run is None:
                raise NotFoundError("run not found")
            return run

    async def cancel_run(self, run_id: int) -> None:
        """Fail a pending or running run and all of its open tasks.

        Advisory only: a worker already holding a task is not interrupted, and
        its later reports are accepted as no-ops.
        """
        if not run_id:
            raise CollectError("id invalid")

        async with self.session_factory() as session:
            async with session.begin():
                now = utcnow()
                result = await session.execute(
                    update(CollectRun)
                    .where(CollectRun.id == run_id, CollectRun.status.in_(ACTIVE_STATUSES))
                    .values(
                        status=CollectStatus.FAILED,
                        message=CANCEL_MESSAGE,
                        finished_at=now,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    exists = await session.execute(select(CollectRun.id).where(CollectRun.id == run_id))
                    if exists.scalar_one_or_none() is None:
                        raise NotFoundError("run not found")
                    raise InvalidStateError("run is not pending or running")

                failed = await self.tasks.fail_open_tasks(session, [run_id], CANCEL_MESSAGE)

        logger.info(f"Cancelled run {run_id} ({failed} open task(s) failed)")

    async def delete_run(self, run_id: int) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(delete(CollectTask).where(CollectTask.run_id == run_id))
                result = await session.execute(delete(CollectRun).where(CollectRun.id == run_id))
                if result.rowcount == 0:
                    raise NotFoundError("run not found")
        logger.info(f"Deleted run {run_id}")

    # ------------------------------------------------------------------
    # Reaper / enqueuer
    # ------------------------------------------------------------------

    async def reap_stale_runs(self, now: datetime | None = None) -> int:
        """Fail running runs that have not been updated within the staleness threshold."""
        now = now or utcnow()
        cutoff = now - timedelta(seconds=self.stale_run_seconds)
        message = f"stale run timeout (no update for {self.stale_run_seconds}s)"

        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(CollectRun)
                    .where(
                        CollectRun.status == CollectStatus.RUNNING,
                        CollectRun.finished_at.is_(None),
                        CollectRun.updated_at < cutoff,
                    )
                    .order_by(CollectRun.updated_at.asc())
                    .limit(self.reaper_batch_size)
                    .with_for_update(skip_locked=True)
                )
                stale = result.scalars().all()
                if not stale:
                    return 0

                for run in stale:
                    run.status = CollectStatus.FAILED
                    run.message = message
                    run.error_count = max(run.error_count or 0, 1)
                    run.finished_at = now
                    run.updated_at = now

                await self.tasks.fail_open_tasks(session, [run.id for run in stale], message)

        logger.warning(f"Reaped {len(stale)} stale run(s): {[run.id for run in stale]}")
        return len(stale)

    async def enqueue_due_jobs(self, now: datetime | None = None) -> list[int]:
        """Create a run for every enabled, scheduled job that is due and has no active run.

        Interval schedules are due once the interval elapsed since the last run;
        cron expressions (UTC) are due in a minute they fire, at most once per minute.
        """
        now = now or utcnow()

        async with self.session_factory() as session:
            jobs = (
                await session.execute(
                    select(CollectJob.id, CollectJob.schedule).where(
                        CollectJob.status == 1,
                        CollectJob.schedule != "",
                    )
                )
            ).all()

            due: list[int] = []
            for job_id, schedule in jobs:
                interval = parse_schedule_seconds(schedule)
                cron = interval <= 0 and is_cron_schedule(schedule)
                if interval <= 0 and not cron:
                    continue

                active = await session.execute(
                    select(CollectRun.id)
                    .where(CollectRun.job_id == job_id, CollectRun.status.in_(ACTIVE_STATUSES))
                    .limit(1)
                )
                if active.scalar_one_or_none() is not None:
                    continue

                last_created = (
                    await session.execute(
                        select(func.max(CollectRun.created_at)).where(CollectRun.job_id == job_id)
                    )
                ).scalar_one_or_none()
                last_created = as_utc(last_created)
                if cron:
                    if not cron_due(schedule, now, last_created):
                        continue
                elif last_created is not None and (now - last_created).total_seconds() < interval:
                    continue
                due.append(job_id)

        created: list[int] = []
        for job_id in due:
            run_id = await self.create_run(job_id)
            logger.info(f"Enqueued run {run_id} for due job {job_id}")
            created.append(run_id)
        return created

    # ------------------------------------------------------------------
    # Runner helpers
    # ------------------------------------------------------------------

    async def has_pending_work(self) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CollectRun.id).where(CollectRun.status == CollectStatus.PENDING).limit(1)
            )
            if result.scalar_one_or_none() is not None:
                return True
        return await self.tasks.has_pending_tasks()

    async def oldest_pending_run_id(self) -> int | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CollectRun.id)
                .where(CollectRun.status == CollectStatus.PENDING)
                .order_by(CollectRun.id.asc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def fail_run_if_active(self, run_id: int | None, message: str) -> bool:
        """Fail a run (and its open tasks) while it is still pending or running.

        A run its worker already finished is left as reported.
        """
        if not run_id:
            return False
        message = (message or "").strip()[: self.run_message_max]

        async with self.session_factory() as session:
            async with session.begin():
                now = utcnow()
                result = await session.execute(
                    update(CollectRun)
                    .where(CollectRun.id == run_id, CollectRun.status.in_(ACTIVE_STATUSES))
                    .values(
                        status=CollectStatus.FAILED,
                        message=message,
                        error_count=case((CollectRun.error_count < 1, 1), else_=CollectRun.error_count),
                        finished_at=now,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    return False
                await self.tasks.fail_open_tasks(session, [run_id], message)

        logger.warning(f"Run {run_id} failed: {message}")
        return True
