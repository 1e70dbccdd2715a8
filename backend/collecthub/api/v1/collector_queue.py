"""Worker pull protocol endpoints."""

from fastapi import APIRouter, Depends, Query

from collecthub.dependencies.auth import require_collector
from collecthub.dependencies.services import get_queue, get_tasks
from collecthub.schemas.collect_run import CollectTaskPage, CollectTaskRead
from collecthub.schemas.collector_queue import (
    OkResponse,
    PullRequest,
    PullResponse,
    RecordExistsResponse,
    ReportRequest,
)
from collecthub.services.collect_task import CollectTaskService
from collecthub.services.collector_queue import CollectorQueueService

router = APIRouter(
    prefix="/collector/queue",
    tags=["collector"],
    dependencies=[Depends(require_collector)],
)


def task_page(result: dict) -> CollectTaskPage:
    return CollectTaskPage(
        page=result["page"],
        page_size=result["page_size"],
        total=result["total"],
        items=[
            CollectTaskRead(
                **CollectTaskRead.model_validate(task).model_dump(exclude={"source_name"}),
                source_name=source_name,
            )
            for task, source_name in result["items"]
        ],
    )


@router.post("/pull", response_model=PullResponse)
async def pull(
    body: PullRequest | None = None,
    queue: CollectorQueueService = Depends(get_queue),
):
    """Claim the oldest pending task; ``run`` is null when there is no work."""
    return await queue.pull(body.worker_id if body else None)


@router.post("/report", response_model=OkResponse)
async def report(
    body: ReportRequest,
    queue: CollectorQueueService = Depends(get_queue),
):
    """Progress or completion from a worker."""
    await queue.report(body)
    return OkResponse()


@router.get("/tasks", response_model=CollectTaskPage)
async def list_tasks(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    run_id: int | None = Query(None),
    source_id: int | None = Query(None),
    status: int | None = Query(None, ge=0, le=3),
    tasks: CollectTaskService = Depends(get_tasks),
):
    result = await tasks.list_tasks(page, page_size, run_id=run_id, source_id=source_id, status=status)
    return task_page(result)


@router.get("/task-stats/{run_id}")
async def task_stats(
    run_id: int,
    tasks: CollectTaskService = Depends(get_tasks),
):
    stats = await tasks.task_stats(run_id)
    return stats.as_dict()


@router.get("/records/exists", response_model=RecordExistsResponse)
async def record_exists(
    source_id: int = Query(..., gt=0),
    remote_id: str = Query(..., min_length=1, max_length=100),
    tasks: CollectTaskService = Depends(get_tasks),
):
    """Whether an item of this source was already collected, so workers can skip it."""
    return RecordExistsResponse(exists=await tasks.check_record_exists(source_id, remote_id))
