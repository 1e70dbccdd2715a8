"""Task queue: transactional claim, progress, completion and aggregation of collect tasks."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from collecthub.exceptions import CollectError
from collecthub.models.base import dialect_insert, utcnow
from collecthub.models.collect_record import CollectRecord
from collecthub.models.collect_run import CollectRun, CollectStatus
from collecthub.models.collect_source import CollectSource
from collecthub.models.collect_task import CollectTask

logger = logging.getLogger(__name__)

NON_TERMINAL = (CollectStatus.PENDING, CollectStatus.RUNNING)


@dataclass(slots=True)
class ClaimedTask:
    id: int
    run_id: int
    source_id: int
    current_page: int
    total_pages: int


@dataclass(slots=True)
class TaskStats:
    total_tasks: int = 0
    pending_tasks: int = 0
    running_tasks: int = 0
    completed_tasks: int = 0
    failed_tasks: int = 0
    total_created: int = 0
    total_updated: int = 0
    total_errors: int = 0

    @property
    def all_terminal(self) -> bool:
        return self.total_tasks > 0 and self.pending_tasks == 0 and self.running_tasks == 0

    def as_dict(self) -> dict[str, int]:
        return {
            "totalTasks": self.total_tasks,
            "pendingTasks": self.pending_tasks,
            "runningTasks": self.running_tasks,
            "completedTasks": self.completed_tasks,
            "failedTasks": self.failed_tasks,
            "totalCreated": self.total_created,
            "totalUpdated": self.total_updated,
            "totalErrors": self.total_errors,
        }


def _non_negative(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


class CollectTaskService:
    """One row per (run, source); the exclusive unit of work a worker claims."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        error_message_max: int = 500,
        claim_attempts: int = 5,
    ):
        self.session_factory = session_factory
        self.error_message_max = error_message_max
        self.claim_attempts = claim_attempts

    async def create_tasks_for_run(self, session: AsyncSession, run_id: int, source_ids: list[int]) -> int:
        """Insert one pending task per source, skipping sources the run already has."""
        wanted = list(dict.fromkeys(int(s) for s in source_ids if s))
        if not run_id or not wanted:
            return 0

        existing = await session.execute(
            select(CollectTask.source_id).where(
                CollectTask.run_id == run_id,
                CollectTask.source_id.in_(wanted),
            )
        )
        present = set(existing.scalars().all())

        created = 0
        for source_id in wanted:
            if source_id in present:
                continue
            session.add(CollectTask(run_id=run_id, source_id=source_id, status=CollectStatus.PENDING))
            created += 1
        await session.flush()
        return created

    async def claim_next_task(self) -> ClaimedTask | None:
        """Hand out the oldest pending task across all runs, or None.

        The row is read under a row lock (SKIP LOCKED where supported) and then
        flipped to running with a status guard, so only one caller can win it.
        Lock contention is retried without any change in input.
        """
        for attempt in range(self.claim_attempts):
            try:
                claimed = await self._try_claim()
            except OperationalError:
                if attempt == self.claim_attempts - 1:
                    raise
                logger.debug("Task claim contention, retrying (attempt %d)", attempt + 1)
                await asyncio.sleep(0.05 * (attempt + 1))
                continue

            if claimed is False:
                # Lost the race for this row; look again.
                continue
            return claimed
        return None

    async def _try_claim(self) -> ClaimedTask | None | bool:
        now = utcnow()
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(CollectTask)
                    .where(CollectTask.status == CollectStatus.PENDING)
                    .order_by(CollectTask.id.asc())
                    .limit(1)
                    .with_for_update(skip_locked=True)
                )
                task = result.scalar_one_or_none()
                if task is None:
                    return None

                flipped = await session.execute(
                    update(CollectTask)
                    .where(
                        CollectTask.id == task.id,
                        CollectTask.status == CollectStatus.PENDING,
                    )
                    .values(status=CollectStatus.RUNNING, started_at=now, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if flipped.rowcount != 1:
                    return False

                logger.debug(f"Claimed task {task.id} (run {task.run_id}, source {task.source_id})")
                return ClaimedTask(
                    id=task.id,
                    run_id=task.run_id,
                    source_id=task.source_id,
                    current_page=task.current_page or 1,
                    total_pages=task.total_pages or 0,
                )

    async def report_progress(
        self,
        task_id: int,
        current_page: int | None = None,
        total_pages: int | None = None,
        created_count: int | None = None,
        updated_count: int | None = None,
        error_count: int | None = None,
        session: AsyncSession | None = None,
    ) -> bool:
        """Absolute (not delta) progress update; omitted fields are left as they are."""
        if not task_id:
            raise CollectError("task_id invalid")

        values: dict[str, Any] = {"updated_at": utcnow()}
        if current_page is not None:
            values["current_page"] = max(1, _non_negative(current_page))
        if total_pages is not None:
            values["total_pages"] = _non_negative(total_pages)
        if created_count is not None:
            values["created_count"] = _non_negative(created_count)
        if updated_count is not None:
            values["updated_count"] = _non_negative(updated_count)
        if error_count is not None:
            values["error_count"] = _non_negative(error_count)

        stmt = (
            update(CollectTask)
            .where(CollectTask.id == task_id, CollectTask.status.in_(NON_TERMINAL))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if session is not None:
            result = await session.execute(stmt)
            return result.rowcount > 0
        async with self.session_factory() as own:
            async with own.begin():
                result = await own.execute(stmt)
                return result.rowcount > 0

    async def complete_task(
        self,
        task_id: int,
        status: CollectStatus,
        error_message: str | None = None,
        session: AsyncSession | None = None,
    ) -> bool:
        """Terminal transition. Done is only reachable from running; failed from pending or running."""
        if not task_id:
            raise CollectError("task_id invalid")
        status = CollectStatus(status)
        if not status.is_terminal:
            raise CollectError("status must be done or failed")

        allowed = (CollectStatus.RUNNING,) if status == CollectStatus.DONE else NON_TERMINAL
        now = utcnow()
        values: dict[str, Any] = {"status": status, "finished_at": now, "updated_at": now}
        if error_message:
            values["error_message"] = str(error_message)[: self.error_message_max]

        stmt = (
            update(CollectTask)
            .where(CollectTask.id == task_id, CollectTask.status.in_(allowed))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if session is not None:
            result = await session.execute(stmt)
        else:
            async with self.session_factory() as own:
                async with own.begin():
                    result = await own.execute(stmt)

        completed = result.rowcount > 0
        if completed:
            logger.info(f"Task {task_id} finished with status {status.name.lower()}")
        return completed

    async def fail_open_tasks(self, session: AsyncSession, run_ids: list[int], message: str) -> int:
        """Fail every non-terminal task of the given runs (cancel / reap cascade)."""
        if not run_ids:
            return 0
        now = utcnow()
        result = await session.execute(
            update(CollectTask)
            .where(CollectTask.run_id.in_(run_ids), CollectTask.status.in_(NON_TERMINAL))
            .values(
                status=CollectStatus.FAILED,
                error_message=message[: self.error_message_max],
                finished_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def task_stats(self, run_id: int, session: AsyncSession | None = None) -> TaskStats:
        """Sum a run's tasks, recomputed on demand."""
        stmt = select(
            func.count(CollectTask.id),
            func.sum(case((CollectTask.status == CollectStatus.PENDING, 1), else_=0)),
            func.sum(case((CollectTask.status == CollectStatus.RUNNING, 1), else_=0)),
            func.sum(case((CollectTask.status == CollectStatus.DONE, 1), else_=0)),
            func.sum(case((CollectTask.status == CollectStatus.FAILED, 1), else_=0)),
            func.sum(CollectTask.created_count),
            func.sum(CollectTask.updated_count),
            func.sum(CollectTask.error_count),
        ).where(CollectTask.run_id == run_id)

        if session is not None:
            row = (await session.execute(stmt)).one()
        else:
            async with self.session_factory() as own:
                row = (await own.execute(stmt)).one()

        return TaskStats(*(int(value or 0) for value in row))

    async def aggregate_stats(self, session: AsyncSession, run_id: int) -> TaskStats:
        """Re-derive the run's denormalized counters from its tasks."""
        stats = await self.task_stats(run_id, session=session)
        await session.execute(
            update(CollectRun)
            .where(CollectRun.id == run_id)
            .values(
                pushed_count=stats.total_created + stats.total_updated,
                created_count=stats.total_created,
                updated_count=stats.total_updated,
                error_count=stats.total_errors,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return stats

    async def has_pending_tasks(self) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CollectTask.id).where(CollectTask.status == CollectStatus.PENDING).limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def record_collected_item(
        self,
        session: AsyncSession,
        source_id: int,
        remote_id: str,
        local_id: int | None,
        is_new: bool,
        task_id: int | None = None,
    ) -> None:
        """Upsert the dedup ledger row for (source, remote id)."""
        now = utcnow()
        stmt = dialect_insert(session, CollectRecord.__table__).values(
            task_id=task_id,
            source_id=source_id,
            remote_id=str(remote_id),
            local_id=local_id,
            is_new=is_new,
            created_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["source_id", "remote_id"],
            set_={
                "task_id": stmt.excluded.task_id,
                "local_id": stmt.excluded.local_id,
                "is_new": stmt.excluded.is_new,
                "created_at": stmt.excluded.created_at,
            },
        )
        await session.execute(stmt)

    async def check_record_exists(self, source_id: int, remote_id: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CollectRecord.id)
                .where(CollectRecord.source_id == source_id, CollectRecord.remote_id == str(remote_id))
                .limit(1)
            )
            return result.scalar_one_or_none() is not None

    async def list_tasks(
        self,
        page: int = 1,
        page_size: int = 20,
        run_id: int | None = None,
        source_id: int | None = None,
        status: int | None = None,
    ) -> dict[str, Any]:
        page = max(1, page)
        page_size = min(100, max(1, page_size))

        filters = []
        if run_id:
            filters.append(CollectTask.run_id == run_id)
        if source_id:
            filters.append(CollectTask.source_id == source_id)
        if status is not None and status in {s.value for s in CollectStatus}:
            filters.append(CollectTask.status == status)

        async with self.session_factory() as session:
            total = (
                await session.execute(select(func.count(CollectTask.id)).where(*filters))
            ).scalar_one()
            rows = await session.execute(
                select(CollectTask, CollectSource.name)
                .outerjoin(CollectSource, CollectSource.id == CollectTask.source_id)
                .where(*filters)
                .order_by(CollectTask.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            items = [(task, source_name) for task, source_name in rows.all()]

        return {"page": page, "page_size": page_size, "total": int(total or 0), "items": items}
